"""
Core contracts for the object tracker.

Data flow (NEVER REORDER within a batch):
1. Upsert every detection of the batch
2. Age and evict stale tracks once
3. Notify observers with the committed snapshot
"""

from .contracts import (
    BoundingBox,
    Detection,
    DetectionBatch,
    QueryRequest,
    PredictedObject,
    IngestResult,
    TrackingFrame,
    UNSPECIFIED,
)
from .config import TrackerConfig, load_config
from .errors import (
    TrackerError,
    PreconditionViolation,
    EstimatorNotInitializedError,
    InvalidDetectionError,
    ConfigError,
)
