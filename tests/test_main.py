"""End-to-end tests for the replay CLI."""

import json
import sys

import pytest
from loguru import logger

from main import build_config, build_parser, load_settings, run


@pytest.fixture(autouse=True)
def restore_logger():
    yield
    # run() replaces every loguru handler
    logger.remove()
    logger.add(sys.stderr)


@pytest.fixture
def detection_log(tmp_path):
    path = tmp_path / "run.jsonl"
    batches = [
        {"timestamp_ms": 0, "detections": [
            {"class": 1, "id": 7, "box": [10, 10, 5, 5]},
            {"class": 2, "id": 1, "box": [50, 50, 10, 10]},
        ]},
        {"timestamp_ms": 100, "detections": [
            {"class": 1, "id": 7, "box": [12, 10, 5, 5]},
            {"class": 2, "id": 1, "box": [50, 50, 10, 10]},
            {"class": 3, "box": [0, 0, 1, 1]},
        ]},
    ]
    path.write_text("\n".join(json.dumps(b) for b in batches) + "\n")
    return path


def output_lines(capsys):
    return [json.loads(line) for line in capsys.readouterr().out.splitlines()]


def test_predicts_every_live_object(detection_log, capsys) -> None:
    args = build_parser().parse_args([str(detection_log), "--predict-offset-ms", "100"])

    assert run(args) == 0

    objects = {(o["class"], o["id"]): o for o in output_lines(capsys)}
    assert set(objects) == {(1, 7), (2, 1)}
    assert objects[(1, 7)]["box"][0] > 12.0


def test_raw_query_filtered_by_class(detection_log, capsys) -> None:
    args = build_parser().parse_args([str(detection_log), "--raw", "--class", "1"])

    assert run(args) == 0

    [obj] = output_lines(capsys)
    assert obj["box"] == [12.0, 10.0, 5.0, 5.0]


def test_empty_log_returns_error_code(tmp_path, capsys) -> None:
    path = tmp_path / "empty.jsonl"
    path.write_text("")

    assert run(build_parser().parse_args([str(path)])) == 1
    assert capsys.readouterr().out == ""


def test_cli_overrides_settings() -> None:
    args = build_parser().parse_args(
        ["x.jsonl", "--ttl", "9", "--ttl-policy", "reset", "--no-idle-eviction", "--no-clamp"]
    )

    config = build_config(load_settings(), args)

    assert config.default_ttl == 9
    assert config.ttl_policy == "reset"
    assert config.idle_eviction is False
    assert config.clamp_size is False
    assert config.max_idle_ms == 5000
