"""Tests for the JSON-lines detection log source."""

import json

import pytest

from objtracker.core.errors import InvalidDetectionError
from objtracker.sources.replay import parse_batch, read_detection_log, ros_time_to_ms


def test_ros_time_to_ms() -> None:
    assert ros_time_to_ms(12, 500_000_000) == 12_500
    assert ros_time_to_ms(0, 999_999) == 0
    assert ros_time_to_ms(3, 0) == 3000


def test_parse_batch_with_stamp() -> None:
    parsed = parse_batch({
        "stamp": {"sec": 1, "nsec": 250_000_000},
        "detections": [{"class": 1, "id": 7, "box": [10, 10, 5, 5]}],
    })

    assert parsed.timestamp_ms == 1250
    assert len(parsed) == 1


def test_parse_batch_with_timestamp_ms() -> None:
    assert parse_batch({"timestamp_ms": 42}).timestamp_ms == 42


@pytest.mark.parametrize("record", [
    {"detections": []},
    {"timestamp_ms": 0, "detections": {"class": 1}},
    [1, 2, 3],
])
def test_parse_batch_rejects_malformed(record) -> None:
    with pytest.raises(InvalidDetectionError):
        parse_batch(record)


def test_read_detection_log_skips_bad_lines(tmp_path, log_messages) -> None:
    path = tmp_path / "run.jsonl"
    lines = [
        json.dumps({"timestamp_ms": 0, "detections": [{"class": 1, "id": 7, "box": [10, 10, 5, 5]}]}),
        "",
        "{not json",
        json.dumps({"detections": []}),
        json.dumps({"stamp": {"sec": 0, "nsec": 100_000_000}, "detections": []}),
    ]
    path.write_text("\n".join(lines) + "\n")

    batches = list(read_detection_log(path))

    assert [b.timestamp_ms for b in batches] == [0, 100]
    assert sum("skipping malformed batch" in m for m in log_messages) == 2
