"""
Detection log replay source.

Reads recorded detection batches from a JSON-lines file, one batch per line:

    {"stamp": {"sec": 12, "nsec": 500000000},
     "detections": [{"class": 1, "id": 7, "box": [10, 10, 5, 5]}]}

"timestamp_ms" may be given instead of "stamp". Individual detections are
passed through raw; the tracker validates them item by item.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterator, Union

from loguru import logger

from objtracker.core.contracts import DetectionBatch
from objtracker.core.errors import InvalidDetectionError


def ros_time_to_ms(sec: int, nsec: int) -> int:
    """Convert a (sec, nsec) time stamp to integer milliseconds."""
    return int(sec) * 1000 + int(nsec) // 1_000_000


def parse_batch(record: Dict[str, Any]) -> DetectionBatch:
    """
    Build a DetectionBatch from one decoded log line.

    Raises:
        InvalidDetectionError: no usable time stamp or detection list
    """
    if not isinstance(record, dict):
        raise InvalidDetectionError(f"Batch must be an object, got {type(record).__name__}")

    if "timestamp_ms" in record:
        timestamp_ms = int(record["timestamp_ms"])
    elif isinstance(record.get("stamp"), dict):
        stamp = record["stamp"]
        timestamp_ms = ros_time_to_ms(stamp.get("sec", 0), stamp.get("nsec", 0))
    else:
        raise InvalidDetectionError("Batch has no timestamp_ms or stamp")

    detections = record.get("detections", [])
    if not isinstance(detections, list):
        raise InvalidDetectionError("Batch detections must be a list")

    return DetectionBatch(timestamp_ms=timestamp_ms, detections=detections)


def read_detection_log(path: Union[str, Path]) -> Iterator[DetectionBatch]:
    """
    Yield batches from a JSON-lines detection log.

    Blank lines are ignored; malformed lines are skipped with a warning.
    """
    path = Path(path)
    skipped = 0

    with open(path) as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield parse_batch(json.loads(line))
            except (json.JSONDecodeError, InvalidDetectionError, TypeError, ValueError) as e:
                skipped += 1
                logger.warning(f"{path.name}:{line_no}: skipping malformed batch: {e}")

    if skipped:
        logger.info(f"Replay of {path.name} skipped {skipped} malformed lines")
