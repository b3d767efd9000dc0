"""
Tracker exception hierarchy.

Lookups that match nothing are not errors; they return empty results.
"""

from __future__ import annotations


class TrackerError(Exception):
    """Base class for all tracker errors."""


class PreconditionViolation(TrackerError):
    """An operation was invoked in a state that the registry should never produce."""


class EstimatorNotInitializedError(PreconditionViolation):
    """update/predict called on an estimator that was never initialized."""


class EstimatorStateError(PreconditionViolation):
    """init called twice on the same estimator."""


class InvalidDetectionError(TrackerError):
    """A detection could not be parsed or carries an invalid box."""


class ConfigError(TrackerError):
    """Invalid configuration value or unreadable configuration file."""
