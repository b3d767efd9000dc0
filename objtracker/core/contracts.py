"""
Core data contracts for the object tracker.

All components exchange these types:
- Detections arrive in per-frame batches
- Queries carry wire sentinels for unspecified filters
- Results are tagged with class/id metadata
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from .errors import InvalidDetectionError


# Wire value meaning "no filter" for class or object id
UNSPECIFIED = -1

TrackKey = Tuple[int, int]  # (class_id, object_id)


# ============================================================
# CORE DATA STRUCTURES
# ============================================================

@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned box given by its top-left corner and size."""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def from_sequence(cls, values: Sequence[Any]) -> BoundingBox:
        """
        Build a box from [x, y, width, height].

        Raises:
            InvalidDetectionError: wrong length, non-numeric or non-finite
                values, or a negative size
        """
        try:
            x, y, w, h = (float(v) for v in values)
        except (TypeError, ValueError) as e:
            raise InvalidDetectionError(f"Box must be 4 numbers, got {values!r}") from e

        if not all(math.isfinite(v) for v in (x, y, w, h)):
            raise InvalidDetectionError(f"Box has non-finite values: {values!r}")
        if w < 0 or h < 0:
            raise InvalidDetectionError(f"Box has negative size: {values!r}")

        return cls(x=x, y=y, width=w, height=h)

    @classmethod
    def from_array(cls, arr: NDArray[np.float64]) -> BoundingBox:
        """Wrap an estimator output vector; no validation."""
        return cls(x=float(arr[0]), y=float(arr[1]), width=float(arr[2]), height=float(arr[3]))

    def as_array(self) -> NDArray[np.float64]:
        """Measurement vector [x, y, width, height]."""
        return np.array([self.x, self.y, self.width, self.height], dtype=np.float64)

    @property
    def corners(self) -> Tuple[int, int, int, int]:
        """Integer (x_min, y_min, x_max, y_max) for drawing."""
        return (
            int(round(self.x)),
            int(round(self.y)),
            int(round(self.x + self.width)),
            int(round(self.y + self.height)),
        )

    def to_list(self) -> List[float]:
        return [self.x, self.y, self.width, self.height]


def _as_int(value: Any, name: str) -> int:
    # bool is an int subclass but never a valid identifier
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise InvalidDetectionError(f"{name} must be an integer, got {value!r}")
    return int(value)


@dataclass(frozen=True)
class Detection:
    """
    A single detector output for one frame.

    object_id is unique within a class for the detector's lifetime,
    so (class_id, object_id) is the track key.
    """
    class_id: int
    object_id: int
    box: BoundingBox
    timestamp_ms: int = 0

    # Carried through untouched
    score: Optional[float] = None
    label: Optional[str] = None

    @property
    def key(self) -> TrackKey:
        return (self.class_id, self.object_id)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], timestamp_ms: int = 0) -> Detection:
        """
        Parse a detection from its wire form.

        Accepts either "class"/"id" or "class_id"/"object_id" keys and a
        "box" of [x, y, width, height].

        Raises:
            InvalidDetectionError: missing fields or invalid values
        """
        if not isinstance(data, Mapping):
            raise InvalidDetectionError(f"Detection must be a mapping, got {type(data).__name__}")

        class_id = data.get("class", data.get("class_id"))
        object_id = data.get("id", data.get("object_id"))
        if class_id is None or object_id is None or "box" not in data:
            raise InvalidDetectionError(f"Detection is missing class, id or box: {dict(data)!r}")

        score = data.get("score")
        label = data.get("label")
        if label is not None and not isinstance(label, str):
            raise InvalidDetectionError(f"label must be a string, got {label!r}")

        try:
            stamp = int(data.get("timestamp_ms", timestamp_ms))
            score = float(score) if score is not None else None
        except (TypeError, ValueError, OverflowError) as e:
            raise InvalidDetectionError(f"Bad timestamp_ms or score in {dict(data)!r}") from e

        return cls(
            class_id=_as_int(class_id, "class"),
            object_id=_as_int(object_id, "id"),
            box=BoundingBox.from_sequence(data["box"]),
            timestamp_ms=stamp,
            score=score,
            label=label,
        )

    def with_box(self, box: BoundingBox) -> Detection:
        """Copy of this detection carrying a different box."""
        return Detection(
            class_id=self.class_id,
            object_id=self.object_id,
            box=box,
            timestamp_ms=self.timestamp_ms,
            score=self.score,
            label=self.label,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "class": self.class_id,
            "id": self.object_id,
            "box": self.box.to_list(),
            "timestamp_ms": self.timestamp_ms,
        }
        if self.score is not None:
            data["score"] = self.score
        if self.label is not None:
            data["label"] = self.label
        return data


@dataclass
class DetectionBatch:
    """
    All detections sharing one arrival timestamp.

    Items may be parsed Detections or raw wire dicts; raw items are
    validated during ingestion so one bad item does not sink the batch.
    """
    timestamp_ms: int
    detections: List[Any] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.detections)


@dataclass(frozen=True)
class QueryRequest:
    """
    Point-in-time query.

    class_id / object_id use UNSPECIFIED (-1) for "any".
    """
    timestamp_ms: int
    class_id: int = UNSPECIFIED
    object_id: int = UNSPECIFIED

    @property
    def class_filter(self) -> Optional[int]:
        return None if self.class_id == UNSPECIFIED else self.class_id

    @property
    def object_filter(self) -> Optional[int]:
        return None if self.object_id == UNSPECIFIED else self.object_id


# ============================================================
# RESULT TYPES
# ============================================================

@dataclass(frozen=True)
class PredictedObject:
    """Estimator extrapolation merged with the track's last detection metadata."""
    detection: Detection  # last raw detection
    predicted_box: BoundingBox
    elapsed_ms: int

    @property
    def class_id(self) -> int:
        return self.detection.class_id

    @property
    def object_id(self) -> int:
        return self.detection.object_id

    @property
    def key(self) -> TrackKey:
        return self.detection.key

    def as_detection(self) -> Detection:
        """The prediction in detection form, as returned over the wire."""
        return self.detection.with_box(self.predicted_box)


@dataclass
class IngestResult:
    """Result from applying one detection batch."""
    timestamp_ms: int
    created_keys: List[TrackKey] = field(default_factory=list)
    updated_keys: List[TrackKey] = field(default_factory=list)
    evicted_keys: List[TrackKey] = field(default_factory=list)
    rejected_count: int = 0


@dataclass
class TrackingFrame:
    """
    What observers receive after a batch commits.

    Built under the registry lock, delivered outside it.
    """
    timestamp_ms: int
    detections: List[Detection]
    predictions: List[PredictedObject]
    result: IngestResult
