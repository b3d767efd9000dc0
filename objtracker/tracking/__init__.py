"""
Object Tracking Module.

Responsibilities:
- Keyed track storage by (class, object id)
- Per-track Kalman filtering for time-aware prediction
- TTL and idle-time eviction
"""

from .kalman_tracker import BoxEstimator, KalmanBoxTracker
from .track_registry import TrackRecord, TrackRegistry
