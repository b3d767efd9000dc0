"""
Detection sources.

Responsibilities:
- Turn recorded detections into DetectionBatch objects
- Time stamp conversion
"""

from .replay import read_detection_log, parse_batch, ros_time_to_ms
