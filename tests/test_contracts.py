"""Tests for detection and query contracts."""

import numpy as np
import pytest

from objtracker.core.contracts import (
    BoundingBox,
    Detection,
    PredictedObject,
    QueryRequest,
    UNSPECIFIED,
)
from objtracker.core.errors import InvalidDetectionError


def test_detection_from_wire_dict() -> None:
    detection = Detection.from_dict(
        {"class": 2, "id": 9, "box": [1, 2, 3, 4], "score": 0.8, "label": "cup"},
        timestamp_ms=150,
    )

    assert detection.key == (2, 9)
    assert detection.box == BoundingBox(1.0, 2.0, 3.0, 4.0)
    assert detection.timestamp_ms == 150
    assert detection.score == pytest.approx(0.8)
    assert detection.label == "cup"


def test_detection_accepts_long_key_names() -> None:
    detection = Detection.from_dict({"class_id": 1, "object_id": 3, "box": (0, 0, 1, 1)})
    assert detection.key == (1, 3)


@pytest.mark.parametrize("data", [
    {"id": 1, "box": [0, 0, 1, 1]},
    {"class": 1, "id": 1},
    {"class": 1, "id": True, "box": [0, 0, 1, 1]},
    {"class": 1.5, "id": 1, "box": [0, 0, 1, 1]},
    {"class": 1, "id": 1, "box": [0, 0, 1]},
    {"class": 1, "id": 1, "box": [0, 0, "wide", 1]},
    {"class": 1, "id": 1, "box": [0, float("inf"), 1, 1]},
    {"class": 1, "id": 1, "box": [0, 0, 1, -1]},
])
def test_invalid_detection_rejected(data) -> None:
    with pytest.raises(InvalidDetectionError):
        Detection.from_dict(data)


def test_box_corners_and_array() -> None:
    box = BoundingBox(10.4, 20.6, 5.0, 5.0)

    assert box.corners == (10, 21, 15, 26)
    np.testing.assert_array_equal(box.as_array(), [10.4, 20.6, 5.0, 5.0])


def test_query_request_sentinels() -> None:
    request = QueryRequest(timestamp_ms=0)
    assert request.class_id == UNSPECIFIED
    assert request.class_filter is None
    assert request.object_filter is None

    request = QueryRequest(timestamp_ms=0, class_id=0, object_id=4)
    assert request.class_filter == 0
    assert request.object_filter == 4


def test_predicted_object_as_detection_keeps_metadata() -> None:
    detection = Detection(1, 7, BoundingBox(10, 10, 5, 5), timestamp_ms=0, label="ball")
    prediction = PredictedObject(detection, BoundingBox(14, 10, 5, 5), elapsed_ms=100)

    wire = prediction.as_detection()

    assert wire.key == (1, 7)
    assert wire.label == "ball"
    assert wire.box.x == 14
    assert detection.box.x == 10
