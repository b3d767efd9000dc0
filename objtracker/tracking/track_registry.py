"""
Track Registry with Keyed Identity.

Guarantees:
- One record per (class_id, object_id); association is exact key match
- Every record exclusively owns one initialized estimator
- Stale records are never returned from a time-aware lookup
- All access is serialized by a single registry lock
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional

from loguru import logger

from objtracker.core.config import TTL_POLICY_RESET, TrackerConfig
from objtracker.core.contracts import Detection, TrackKey
from objtracker.core.errors import PreconditionViolation
from .kalman_tracker import BoxEstimator, KalmanBoxTracker

EstimatorFactory = Callable[[], BoxEstimator]


@dataclass
class TrackRecord:
    """Internal representation of a tracked object."""
    last_detection: Detection
    estimator: Optional[BoxEstimator]  # None once released
    ttl: int
    last_update_time_ms: int

    # Diagnostics
    created_time_ms: int = 0
    hits: int = 1

    @property
    def key(self) -> TrackKey:
        return self.last_detection.key

    @property
    def class_id(self) -> int:
        return self.last_detection.class_id

    @property
    def object_id(self) -> int:
        return self.last_detection.object_id

    def idle_ms(self, now_ms: int) -> int:
        return now_ms - self.last_update_time_ms


class TrackRegistry:
    """
    Two-level track store: class_id -> object_id -> TrackRecord.

    The registry lock is reentrant so a caller can hold it across a
    whole ingestion batch (see `transaction`) while the individual
    operations still lock on their own.
    """

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        estimator_factory: Optional[EstimatorFactory] = None,
    ):
        """
        Initialize track registry.

        Args:
            config: TTL, idle-time and estimator settings
            estimator_factory: Builds one fresh, uninitialized estimator
                per new track; defaults to a KalmanBoxTracker from config
        """
        self.config = config or TrackerConfig()
        self._estimator_factory = estimator_factory or self._default_estimator

        self._tracks: Dict[int, Dict[int, TrackRecord]] = {}
        self._lock = threading.RLock()

    def _default_estimator(self) -> BoxEstimator:
        return KalmanBoxTracker(
            process_noise=self.config.process_noise,
            measurement_noise=self.config.measurement_noise,
            clamp_size=self.config.clamp_size,
        )

    @property
    def transaction(self) -> threading.RLock:
        """The registry lock, for callers that need several operations to be atomic."""
        return self._lock

    # --------------------------------------------------------
    # Mutation
    # --------------------------------------------------------

    def upsert(
        self,
        class_id: int,
        object_id: int,
        detection: Detection,
        now_ms: int,
    ) -> bool:
        """
        Create or refresh the track for (class_id, object_id).

        Returns:
            True if a new track was created

        Raises:
            PreconditionViolation: the record's estimator is not initialized
        """
        with self._lock:
            record = self._tracks.get(class_id, {}).get(object_id)

            if record is None:
                estimator = self._estimator_factory()
                estimator.init(detection.box.as_array())
                self._tracks.setdefault(class_id, {})[object_id] = TrackRecord(
                    last_detection=detection,
                    estimator=estimator,
                    ttl=self.config.default_ttl,
                    last_update_time_ms=now_ms,
                    created_time_ms=now_ms,
                )
                logger.debug(f"New track created: class={class_id} id={object_id}")
                return True

            elapsed = now_ms - record.last_update_time_ms
            if elapsed < 0:
                logger.debug(
                    f"Out-of-order detection for class={class_id} id={object_id} "
                    f"({elapsed} ms), treating as no elapsed time"
                )

            try:
                record.estimator.update(detection.box.as_array(), elapsed)
            except PreconditionViolation:
                logger.error(
                    f"Track class={class_id} id={object_id} holds an uninitialized estimator"
                )
                raise

            # Record fields change only once the estimator accepted the measurement
            record.last_detection = detection
            if self.config.ttl_policy == TTL_POLICY_RESET:
                record.ttl = self.config.default_ttl
            else:
                record.ttl += 1
            record.last_update_time_ms = now_ms
            record.hits += 1
            return False

    def age_and_evict(self, now_ms: int) -> List[TrackKey]:
        """
        Decrement every TTL once and drop expired tracks.

        A track expires when its TTL reaches zero or, with idle eviction
        enabled, when it has not been updated for more than max_idle_ms.
        Removal happens after the full scan.

        Returns:
            Keys of the evicted tracks
        """
        with self._lock:
            to_remove: List[TrackKey] = []

            for record in self._iter_records():
                record.ttl -= 1
                if record.ttl <= 0 or self._is_idle(record, now_ms):
                    to_remove.append(record.key)

            for class_id, object_id in to_remove:
                self._release(class_id, object_id)
                logger.debug(f"Track evicted: class={class_id} id={object_id}")

            return to_remove

    def remove(self, class_id: int, object_id: int) -> bool:
        """Remove one track. Returns False if it was not present."""
        with self._lock:
            if object_id not in self._tracks.get(class_id, {}):
                return False
            self._release(class_id, object_id)
            return True

    def clear(self):
        """Drop every track and release all estimators."""
        with self._lock:
            count = len(self)
            for class_id, object_id in [r.key for r in self._iter_records()]:
                self._release(class_id, object_id)
            logger.info(f"Track registry cleared ({count} tracks released)")

    def _release(self, class_id: int, object_id: int):
        # Single point where a record and its estimator leave the registry
        by_id = self._tracks[class_id]
        record = by_id.pop(object_id)
        record.estimator = None
        if not by_id:
            del self._tracks[class_id]

    # --------------------------------------------------------
    # Reads
    # --------------------------------------------------------

    def lookup(
        self,
        class_id: Optional[int] = None,
        object_id: Optional[int] = None,
        now_ms: Optional[int] = None,
    ) -> List[TrackRecord]:
        """
        Find tracks by key.

        Modes:
            class_id and object_id -> exact match (at most one record)
            class_id only          -> every id under that class
            object_id only         -> that id under every class
            neither                -> every record

        Args:
            now_ms: If given, records that are stale at this time are skipped

        Returns:
            Matching records; order is unspecified. Empty if nothing matches.
        """
        with self._lock:
            if class_id is not None and object_id is not None:
                record = self._tracks.get(class_id, {}).get(object_id)
                candidates = [record] if record is not None else []
            elif class_id is not None:
                candidates = list(self._tracks.get(class_id, {}).values())
            elif object_id is not None:
                candidates = [
                    by_id[object_id] for by_id in self._tracks.values() if object_id in by_id
                ]
            else:
                candidates = list(self._iter_records())

            if now_ms is None:
                return candidates
            return [r for r in candidates if not self.is_stale(r, now_ms)]

    def is_stale(self, record: TrackRecord, now_ms: int) -> bool:
        """True if the record must not be served at now_ms."""
        return record.ttl <= 0 or self._is_idle(record, now_ms)

    def _is_idle(self, record: TrackRecord, now_ms: int) -> bool:
        return self.config.idle_eviction and record.idle_ms(now_ms) > self.config.max_idle_ms

    def _iter_records(self) -> Iterator[TrackRecord]:
        for by_id in self._tracks.values():
            yield from by_id.values()

    def __len__(self) -> int:
        with self._lock:
            return sum(len(by_id) for by_id in self._tracks.values())

    def __contains__(self, key: TrackKey) -> bool:
        class_id, object_id = key
        with self._lock:
            return object_id in self._tracks.get(class_id, {})
