"""
Tracker Service.

Two independent entry points against one guarded track registry:

Ingestion (per batch, NEVER REORDER):
1. Upsert every valid detection of the batch
2. Age and evict stale tracks exactly once
3. Notify observers outside the registry lock

Queries:
- predict: extrapolate each matching track to the request time
- get_objects: last raw detection of each matching track
"""

from __future__ import annotations

import queue
import threading
from typing import Any, Callable, List, Optional

from loguru import logger

from objtracker.core.config import TrackerConfig
from objtracker.core.contracts import (
    BoundingBox,
    Detection,
    DetectionBatch,
    IngestResult,
    PredictedObject,
    QueryRequest,
    TrackingFrame,
)
from objtracker.core.errors import InvalidDetectionError, TrackerError
from objtracker.tracking.track_registry import EstimatorFactory, TrackRecord, TrackRegistry

Observer = Callable[[TrackingFrame], None]


class TrackerService:
    """
    Detection ingestion and point-in-time queries over a TrackRegistry.

    Guarantees:
    - A batch is applied atomically with respect to queries
    - A malformed detection never aborts the rest of its batch
    - Observers never run under the registry lock
    """

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        estimator_factory: Optional[EstimatorFactory] = None,
        observers: Optional[List[Observer]] = None,
    ):
        """
        Initialize tracker service.

        Args:
            config: Tracker configuration
            estimator_factory: Optional estimator override, see TrackRegistry
            observers: Callables notified after each committed batch
        """
        self.config = config or TrackerConfig()
        self._registry = TrackRegistry(self.config, estimator_factory)
        self._observers: List[Observer] = list(observers or [])

        self._last_batch_ms: Optional[int] = None
        self._batches_processed = 0

        # Background ingestion
        self._batch_queue: queue.Queue = queue.Queue(maxsize=self.config.queue_size)
        self._worker_thread: Optional[threading.Thread] = None
        self._is_running = False

        logger.info(
            f"Tracker service initialized (ttl={self.config.default_ttl}, "
            f"max_idle_ms={self.config.max_idle_ms}, policy={self.config.ttl_policy})"
        )

    @property
    def registry(self) -> TrackRegistry:
        return self._registry

    def add_observer(self, observer: Observer):
        self._observers.append(observer)

    # ============================================================
    # INGESTION
    # ============================================================

    def process_batch(self, batch: DetectionBatch) -> IngestResult:
        """
        Apply one batch of detections sharing a timestamp.

        Returns:
            IngestResult with created, updated and evicted keys

        Raises:
            PreconditionViolation: a track's estimator was found uninitialized;
                the batch is aborted before eviction
        """
        now_ms = batch.timestamp_ms
        result = IngestResult(timestamp_ms=now_ms)
        frame: Optional[TrackingFrame] = None

        with self._registry.transaction:
            if self._last_batch_ms is not None and now_ms < self._last_batch_ms:
                logger.debug(f"Batch time went backwards: {self._last_batch_ms} -> {now_ms}")
            self._last_batch_ms = now_ms

            for item in batch.detections:
                try:
                    detection = self._parse_detection(item, now_ms)
                except InvalidDetectionError as e:
                    result.rejected_count += 1
                    logger.warning(f"Rejected detection at {now_ms} ms: {e}")
                    continue

                created = self._registry.upsert(
                    detection.class_id, detection.object_id, detection, now_ms
                )
                (result.created_keys if created else result.updated_keys).append(detection.key)

            result.evicted_keys = self._registry.age_and_evict(now_ms)
            self._batches_processed += 1

            if self._observers:
                frame = TrackingFrame(
                    timestamp_ms=now_ms,
                    detections=[r.last_detection for r in self._registry.lookup()],
                    predictions=self.predict(now_ms),
                    result=result,
                )

        if frame is not None:
            self._notify_observers(frame)

        return result

    @staticmethod
    def _parse_detection(item: Any, now_ms: int) -> Detection:
        if isinstance(item, Detection):
            return item
        return Detection.from_dict(item, timestamp_ms=now_ms)

    def _notify_observers(self, frame: TrackingFrame):
        for observer in self._observers:
            try:
                observer(frame)
            except Exception as e:
                # Observers are output-only and must not affect tracking
                logger.error(f"Observer {observer!r} failed: {e}")

    # ============================================================
    # QUERIES
    # ============================================================

    def predict(
        self,
        now_ms: int,
        class_id: Optional[int] = None,
        object_id: Optional[int] = None,
    ) -> List[PredictedObject]:
        """
        Extrapolate every matching live track to now_ms.

        Stale tracks (idle beyond max_idle_ms) are excluded even if not
        yet evicted. No match gives an empty list.
        """
        with self._registry.transaction:
            records = self._registry.lookup(class_id, object_id, now_ms=now_ms)
            predictions = [self._predict_record(r, now_ms) for r in records]

        if not predictions and object_id is not None:
            logger.debug(f"No live track for class={class_id} id={object_id}")
        return predictions

    @staticmethod
    def _predict_record(record: TrackRecord, now_ms: int) -> PredictedObject:
        elapsed = now_ms - record.last_update_time_ms
        box = BoundingBox.from_array(record.estimator.predict(elapsed))
        return PredictedObject(
            detection=record.last_detection,
            predicted_box=box,
            elapsed_ms=elapsed,
        )

    def snapshot(
        self,
        class_id: Optional[int] = None,
        object_id: Optional[int] = None,
        now_ms: Optional[int] = None,
    ) -> List[Detection]:
        """
        Last raw detection of every matching track; never extrapolated.

        Args:
            now_ms: If given, tracks stale at this time are excluded
        """
        records = self._registry.lookup(class_id, object_id, now_ms=now_ms)
        return [r.last_detection for r in records]

    def predict_detections(self, request: QueryRequest) -> List[Detection]:
        """Prediction query in wire form: detections carrying predicted boxes."""
        predictions = self.predict(
            request.timestamp_ms, request.class_filter, request.object_filter
        )
        return [p.as_detection() for p in predictions]

    def get_objects(self, request: QueryRequest) -> List[Detection]:
        """Inventory query in wire form."""
        return self.snapshot(
            request.class_filter, request.object_filter, now_ms=request.timestamp_ms
        )

    # ============================================================
    # BACKGROUND INGESTION
    # ============================================================

    def start(self) -> bool:
        """
        Start the background ingestion worker.

        Returns:
            True if the worker is running
        """
        if self._is_running:
            return True

        self._is_running = True
        self._worker_thread = threading.Thread(
            target=self._ingest_loop, name="tracker-ingest", daemon=True
        )
        self._worker_thread.start()
        logger.info("Tracker ingestion worker started")
        return True

    def submit(self, batch: DetectionBatch, timeout: Optional[float] = None) -> bool:
        """
        Queue a batch for the background worker.

        Returns:
            False if the queue stayed full for the whole timeout
        """
        try:
            self._batch_queue.put(batch, timeout=timeout)
            return True
        except queue.Full:
            logger.warning(f"Ingestion queue full, dropping batch at {batch.timestamp_ms} ms")
            return False

    def wait_until_idle(self):
        """Block until every submitted batch has been processed."""
        self._batch_queue.join()

    def stop(self):
        """Stop the worker after it drains the queue."""
        if not self._is_running:
            return
        self.wait_until_idle()
        self._is_running = False
        if self._worker_thread:
            self._worker_thread.join(timeout=2.0)
            self._worker_thread = None
        logger.info("Tracker ingestion worker stopped")

    def _ingest_loop(self):
        """Main ingestion loop (runs in background thread)."""
        while self._is_running:
            try:
                batch = self._batch_queue.get(timeout=0.1)
            except queue.Empty:
                continue

            try:
                self.process_batch(batch)
            except TrackerError as e:
                logger.error(f"Batch at {batch.timestamp_ms} ms aborted: {e}")
            except Exception as e:
                # The worker outlives a bad batch so queued work keeps draining
                logger.exception(f"Unexpected error in batch at {batch.timestamp_ms} ms: {e}")
            finally:
                self._batch_queue.task_done()

    def shutdown(self):
        """Stop the worker and release every track."""
        self.stop()
        self._registry.clear()
        logger.info(f"Tracker service shut down after {self._batches_processed} batches")

    @property
    def is_running(self) -> bool:
        """Check if the ingestion worker is running."""
        return self._is_running

    @property
    def batches_processed(self) -> int:
        return self._batches_processed
