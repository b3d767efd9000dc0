"""Shared fixtures for tracker tests."""

from __future__ import annotations

from typing import List

import numpy as np
import pytest
from loguru import logger

from objtracker.core.config import TrackerConfig
from objtracker.core.contracts import BoundingBox, Detection
from objtracker.core.errors import EstimatorNotInitializedError, EstimatorStateError
from objtracker.pipeline.tracker_service import TrackerService
from objtracker.tracking.kalman_tracker import BoxEstimator
from objtracker.tracking.track_registry import TrackRegistry


class RecordingEstimator(BoxEstimator):
    """Estimator that returns the last measurement and records every call."""

    def __init__(self):
        self.init_calls: List[tuple] = []
        self.update_calls: List[tuple] = []
        self.predict_calls: List[float] = []
        self._state = None

    @property
    def is_initialized(self) -> bool:
        return self._state is not None

    def init(self, measurement):
        if self._state is not None:
            raise EstimatorStateError("init twice")
        self._state = np.asarray(measurement, dtype=np.float64).copy()
        self.init_calls.append(tuple(self._state))

    def update(self, measurement, elapsed_ms):
        if self._state is None:
            raise EstimatorNotInitializedError("update before init")
        self._state = np.asarray(measurement, dtype=np.float64).copy()
        self.update_calls.append((tuple(self._state), elapsed_ms))

    def predict(self, elapsed_ms):
        if self._state is None:
            raise EstimatorNotInitializedError("predict before init")
        self.predict_calls.append(elapsed_ms)
        return self._state.copy()


class UninitializedEstimator(RecordingEstimator):
    """Simulates a registry invariant breach: init() leaves no state."""

    def init(self, measurement):
        self.init_calls.append(tuple(measurement))


class FailingUpdateEstimator(RecordingEstimator):
    """Estimator whose update() fails with an error outside the tracker hierarchy."""

    def update(self, measurement, elapsed_ms):
        raise RuntimeError("numerical failure")


class EstimatorFactory:
    def __init__(self, cls=RecordingEstimator):
        self.cls = cls
        self.created: List[RecordingEstimator] = []

    def __call__(self) -> BoxEstimator:
        estimator = self.cls()
        self.created.append(estimator)
        return estimator


def make_detection(class_id: int, object_id: int, box=(10, 10, 5, 5), timestamp_ms: int = 0) -> Detection:
    return Detection(
        class_id=class_id,
        object_id=object_id,
        box=BoundingBox(*map(float, box)),
        timestamp_ms=timestamp_ms,
    )


@pytest.fixture
def config() -> TrackerConfig:
    return TrackerConfig()


@pytest.fixture
def estimator_factory() -> EstimatorFactory:
    return EstimatorFactory()


@pytest.fixture
def registry(config, estimator_factory) -> TrackRegistry:
    return TrackRegistry(config, estimator_factory)


@pytest.fixture
def service(config) -> TrackerService:
    svc = TrackerService(config)
    yield svc
    svc.shutdown()


@pytest.fixture
def log_messages():
    """Collect loguru messages emitted during the test."""
    messages: List[str] = []
    handler_id = logger.add(lambda m: messages.append(m.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
