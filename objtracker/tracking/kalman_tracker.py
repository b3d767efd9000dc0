"""
Kalman Filter for Bounding Box Tracking.

Provides time-aware extrapolation of a tracked object's box between
detection arrivals.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence, Union

import numpy as np
from numpy.typing import NDArray

from objtracker.core.errors import EstimatorNotInitializedError, EstimatorStateError

Measurement = Union[Sequence[float], NDArray[np.float64]]


class BoxEstimator(ABC):
    """
    Per-object motion estimator contract.

    init() must be called exactly once before update()/predict().
    Elapsed times are in milliseconds; negative values mean no time passed.
    """

    @abstractmethod
    def init(self, measurement: Measurement) -> None:
        """Establish the initial state from [x, y, width, height]."""

    @abstractmethod
    def update(self, measurement: Measurement, elapsed_ms: float) -> None:
        """Incorporate a measurement taken elapsed_ms after the previous one."""

    @abstractmethod
    def predict(self, elapsed_ms: float) -> NDArray[np.float64]:
        """
        Extrapolated [x, y, width, height] elapsed_ms after the last update.

        Zero elapsed returns the last measurement exactly.
        """

    @property
    @abstractmethod
    def is_initialized(self) -> bool:
        ...


class KalmanBoxTracker(BoxEstimator):
    """
    Constant-velocity Kalman filter over a bounding box.

    State vector: [x, y, w, h, vx, vy, vw, vh] (velocities in px/s)
    Measurement: [x, y, w, h]
    """

    def __init__(
        self,
        process_noise: float = 1.0,
        measurement_noise: float = 0.1,
        clamp_size: bool = True,
    ):
        """
        Create an uninitialized filter.

        Args:
            process_noise: Process noise scale (per second)
            measurement_noise: Measurement noise covariance
            clamp_size: Clamp predicted width/height to >= 0
        """
        # State dimension: 8 (x, y, w, h, vx, vy, vw, vh)
        # Measurement dimension: 4 (x, y, w, h)
        self.dim_x = 8
        self.dim_z = 4

        self.process_noise = process_noise
        self.measurement_noise = measurement_noise
        self.clamp_size = clamp_size

        # Measurement matrix picks the positions out of the state
        self.H = np.zeros((self.dim_z, self.dim_x))
        self.H[:, :self.dim_z] = np.eye(self.dim_z)

        # Measurement noise covariance
        self.R = np.eye(self.dim_z) * measurement_noise

        self.x = np.zeros(self.dim_x)
        self.P = np.eye(self.dim_x)

        # Last committed measurement
        self.z = np.zeros(self.dim_z)

        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def _require_init(self, operation: str):
        if not self._initialized:
            raise EstimatorNotInitializedError(
                f"{operation}() called before init() on {type(self).__name__}"
            )

    @staticmethod
    def _as_measurement(measurement: Measurement) -> NDArray[np.float64]:
        z = np.asarray(measurement, dtype=np.float64).reshape(-1)
        if z.shape != (4,):
            raise ValueError(f"Measurement must have 4 values, got shape {z.shape}")
        return z

    @staticmethod
    def _seconds(elapsed_ms: float) -> float:
        # Out-of-order batches give negative elapsed time; treat as no time passed
        return max(float(elapsed_ms), 0.0) / 1000.0

    def _transition(self, dt: float) -> NDArray[np.float64]:
        """State transition matrix for a step of dt seconds."""
        F = np.eye(self.dim_x)
        for i in range(self.dim_z):
            F[i, i + self.dim_z] = dt  # position += velocity * dt
        return F

    def _process_covariance(self, dt: float) -> NDArray[np.float64]:
        Q = np.eye(self.dim_x) * self.process_noise * dt
        Q[4:, 4:] *= 10  # Higher noise for velocity components
        return Q

    def init(self, measurement: Measurement) -> None:
        """
        Initialize state from the first measurement.

        Raises:
            EstimatorStateError: init() was already called
        """
        if self._initialized:
            raise EstimatorStateError("init() called twice on the same estimator")

        z = self._as_measurement(measurement)

        self.x = np.zeros(self.dim_x)
        self.x[:self.dim_z] = z
        # velocities stay at 0 initially

        # Initial state covariance
        self.P = np.eye(self.dim_x)
        self.P[:4, :4] *= self.measurement_noise
        self.P[4:, 4:] *= 1000  # High uncertainty for initial velocities

        self.z = z
        self._initialized = True

    def update(self, measurement: Measurement, elapsed_ms: float) -> None:
        """
        Advance the filter by elapsed_ms and correct with a measurement.

        Raises:
            EstimatorNotInitializedError: init() was never called
        """
        self._require_init("update")
        z = self._as_measurement(measurement)
        dt = self._seconds(elapsed_ms)

        # State and covariance prediction
        F = self._transition(dt)
        self.x = F @ self.x
        self.P = F @ self.P @ F.T + self._process_covariance(dt)

        # Innovation (measurement residual)
        y = z - self.H @ self.x

        # Innovation covariance
        S = self.H @ self.P @ self.H.T + self.R

        # Kalman gain
        K = self.P @ self.H.T @ np.linalg.inv(S)

        # State update
        self.x = self.x + K @ y

        # Covariance update
        I = np.eye(self.dim_x)
        self.P = (I - K @ self.H) @ self.P

        self.z = z

    def predict(self, elapsed_ms: float) -> NDArray[np.float64]:
        """
        Extrapolate the box without touching the persisted state.

        Returns:
            [x, y, width, height]; elapsed_ms <= 0 gives the last
            committed measurement, not the filtered state
        """
        self._require_init("predict")
        dt = self._seconds(elapsed_ms)

        if dt == 0.0:
            box = self.z.copy()
        else:
            box = (self._transition(dt) @ self.x)[:self.dim_z].copy()
        if self.clamp_size:
            box[2:] = np.maximum(box[2:], 0.0)
        return box
