"""Tests for tracker configuration loading and validation."""

import pytest

from objtracker.core.config import TrackerConfig, load_config, load_settings
from objtracker.core.errors import ConfigError


def test_defaults_match_original_node() -> None:
    config = TrackerConfig()

    assert config.default_ttl == 5
    assert config.max_idle_ms == 5000
    assert config.ttl_policy == "increment"
    assert config.idle_eviction is True
    assert config.clamp_size is True


@pytest.mark.parametrize("kwargs", [
    {"default_ttl": 0},
    {"max_idle_ms": -1},
    {"ttl_policy": "decay"},
    {"measurement_noise": 0.0},
    {"process_noise": -1.0},
    {"queue_size": 0},
])
def test_invalid_values_raise(kwargs) -> None:
    with pytest.raises(ConfigError):
        TrackerConfig(**kwargs)


def test_from_dict_ignores_unknown_keys(log_messages) -> None:
    config = TrackerConfig.from_dict({"default_ttl": 3, "colour": "red"})

    assert config.default_ttl == 3
    assert any("colour" in m for m in log_messages)


def test_load_config_from_yaml(tmp_path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text(
        "tracker:\n"
        "  default_ttl: 8\n"
        "  ttl_policy: reset\n"
        "  idle_eviction: false\n"
    )

    config = load_config(path)

    assert config.default_ttl == 8
    assert config.ttl_policy == "reset"
    assert config.idle_eviction is False
    assert config.max_idle_ms == 5000


def test_empty_yaml_gives_defaults(tmp_path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("")

    assert load_config(path) == TrackerConfig()


def test_missing_explicit_file_raises(tmp_path) -> None:
    with pytest.raises(ConfigError):
        load_settings(tmp_path / "nope.yaml")


def test_invalid_yaml_raises(tmp_path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("tracker: [unclosed\n")

    with pytest.raises(ConfigError):
        load_settings(path)


def test_non_mapping_root_raises(tmp_path) -> None:
    path = tmp_path / "settings.yaml"
    path.write_text("- 1\n- 2\n")

    with pytest.raises(ConfigError):
        load_settings(path)


def test_bundled_settings_load() -> None:
    assert load_config() == TrackerConfig()
