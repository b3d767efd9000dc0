"""
Tracker configuration.

Values come from dataclass defaults, then config/settings.yaml,
then command-line overrides.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from loguru import logger

from .errors import ConfigError


TTL_POLICY_INCREMENT = "increment"
TTL_POLICY_RESET = "reset"
TTL_POLICIES = (TTL_POLICY_INCREMENT, TTL_POLICY_RESET)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config" / "settings.yaml"


@dataclass
class TrackerConfig:
    """
    Configuration for the track registry and its estimators.

    Attributes:
        default_ttl: Batches a track survives without being re-detected
        max_idle_ms: Wall-clock idle time after which a track is dropped
        ttl_policy: "increment" adds one to TTL on every hit,
            "reset" sets it back to default_ttl
        idle_eviction: Evict on idle time as well as TTL; False keeps
            only the TTL check
        clamp_size: Clamp predicted width/height to >= 0; False returns
            raw extrapolation
        process_noise: Kalman process noise scale
        measurement_noise: Kalman measurement noise scale
        queue_size: Max pending batches for the background worker
    """
    default_ttl: int = 5
    max_idle_ms: int = 5000
    ttl_policy: str = TTL_POLICY_INCREMENT
    idle_eviction: bool = True
    clamp_size: bool = True

    # Estimator
    process_noise: float = 1.0
    measurement_noise: float = 0.1

    # Worker
    queue_size: int = 64

    def __post_init__(self):
        if self.default_ttl < 1:
            raise ConfigError(f"default_ttl must be >= 1, got {self.default_ttl}")
        if self.max_idle_ms < 0:
            raise ConfigError(f"max_idle_ms must be >= 0, got {self.max_idle_ms}")
        if self.ttl_policy not in TTL_POLICIES:
            raise ConfigError(
                f"ttl_policy must be one of {TTL_POLICIES}, got {self.ttl_policy!r}"
            )
        if self.process_noise < 0 or self.measurement_noise <= 0:
            raise ConfigError("process_noise must be >= 0 and measurement_noise > 0")
        if self.queue_size < 1:
            raise ConfigError(f"queue_size must be >= 1, got {self.queue_size}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> TrackerConfig:
        """Build from a mapping, ignoring unknown keys."""
        data = data or {}
        known = {f.name for f in fields(cls)}

        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown tracker settings: {', '.join(unknown)}")

        try:
            return cls(**{k: v for k, v in data.items() if k in known})
        except TypeError as e:
            raise ConfigError(str(e)) from e


def load_settings(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load the raw settings mapping from YAML.

    Falls back to config/settings.yaml, then to an empty mapping.

    Raises:
        ConfigError: the file exists but is not a valid YAML mapping
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not path.exists():
        if config_path:
            raise ConfigError(f"Config file not found: {path}")
        return {}

    try:
        with open(path) as f:
            settings = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if settings is None:
        return {}
    if not isinstance(settings, dict):
        raise ConfigError(f"Config root must be a mapping: {path}")

    logger.debug(f"Loaded settings from {path}")
    return settings


def load_config(config_path: Optional[Union[str, Path]] = None) -> TrackerConfig:
    """Load the `tracker:` section of the settings file."""
    return TrackerConfig.from_dict(load_settings(config_path).get("tracker", {}))
