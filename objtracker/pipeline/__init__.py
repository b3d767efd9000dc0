"""
Tracker pipeline: detection ingestion and point-in-time queries.
"""

from .tracker_service import TrackerService
