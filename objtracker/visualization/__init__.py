"""
Visualization Module.

Responsibilities:
- Render detections and predictions for debugging
- Never mutate tracking state
"""

from .overlay import TrackOverlayRenderer
