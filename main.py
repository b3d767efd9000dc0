#!/usr/bin/env python3
"""
Kalman Object Tracker

Replays a recorded detection log through the tracker and prints the
predicted position of every live object.

Usage:
    python main.py DETECTIONS.jsonl [--config CONFIG_PATH] [--predict-offset-ms MS]

Examples:
    python main.py run.jsonl
    python main.py run.jsonl --class 1 --predict-offset-ms 200
    python main.py run.jsonl --ttl-policy reset --display
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from loguru import logger

from objtracker.core.config import TTL_POLICIES, TrackerConfig, load_settings
from objtracker.core.contracts import QueryRequest, UNSPECIFIED
from objtracker.core.errors import TrackerError
from objtracker.pipeline.tracker_service import TrackerService
from objtracker.sources.replay import read_detection_log
from objtracker.visualization.overlay import TrackOverlayRenderer


# ============================================================
# LOGGING CONFIGURATION
# ============================================================

def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Configure logging."""
    logger.remove()  # Remove default handler

    # Console output with colors
    logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{module}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>",
        colorize=True,
    )

    # File output
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level="DEBUG",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {module}:{line} | {message}",
            rotation="10 MB",
            retention="7 days",
        )


# ============================================================
# MAIN APPLICATION
# ============================================================

def build_config(settings: dict, args: argparse.Namespace) -> TrackerConfig:
    """Settings file values, then command-line overrides."""
    config = TrackerConfig.from_dict(settings.get("tracker", {}))

    overrides = {}
    if args.ttl is not None:
        overrides["default_ttl"] = args.ttl
    if args.max_idle_ms is not None:
        overrides["max_idle_ms"] = args.max_idle_ms
    if args.ttl_policy is not None:
        overrides["ttl_policy"] = args.ttl_policy
    if args.no_idle_eviction:
        overrides["idle_eviction"] = False
    if args.no_clamp:
        overrides["clamp_size"] = False

    return replace(config, **overrides) if overrides else config


def run(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    log_settings = settings.get("logging") or {}
    setup_logging(
        args.log_level or log_settings.get("level", "INFO"),
        args.log or log_settings.get("file"),
    )

    config = build_config(settings, args)
    service = TrackerService(config)

    renderer = None
    if args.display:
        renderer = TrackOverlayRenderer(display=True)
        service.add_observer(renderer)

    last_ms = None
    try:
        for batch in read_detection_log(args.detections):
            result = service.process_batch(batch)
            last_ms = batch.timestamp_ms
            if result.rejected_count:
                logger.debug(f"Batch {last_ms}: {result.rejected_count} detections rejected")

        if last_ms is None:
            logger.warning(f"No batches in {args.detections}")
            return 1

        request = QueryRequest(
            timestamp_ms=last_ms + args.predict_offset_ms,
            class_id=args.class_id,
            object_id=args.object_id,
        )
        query = service.get_objects if args.raw else service.predict_detections
        for detection in query(request):
            print(json.dumps(detection.to_dict()))

    finally:
        if renderer is not None:
            renderer.close()
        service.shutdown()

    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Kalman Object Tracker")
    parser.add_argument("detections", help="JSON-lines detection log to replay")
    parser.add_argument("--config", help="Path to settings YAML")
    parser.add_argument("--log", help="Log file path")
    parser.add_argument("--log-level", default=None, help="Console log level")
    parser.add_argument(
        "--predict-offset-ms", type=int, default=0,
        help="Query time relative to the last batch",
    )
    parser.add_argument("--class", dest="class_id", type=int, default=UNSPECIFIED)
    parser.add_argument("--id", dest="object_id", type=int, default=UNSPECIFIED)
    parser.add_argument("--raw", action="store_true", help="Print last detections, no prediction")
    parser.add_argument("--ttl", type=int, help="Override default_ttl")
    parser.add_argument("--max-idle-ms", type=int, help="Override max_idle_ms")
    parser.add_argument("--ttl-policy", choices=TTL_POLICIES)
    parser.add_argument("--no-idle-eviction", action="store_true")
    parser.add_argument("--no-clamp", action="store_true")
    parser.add_argument("--display", action="store_true", help="Show overlay window")
    return parser


def main():
    args = build_parser().parse_args()

    try:
        sys.exit(run(args))
    except TrackerError as e:
        logger.error(f"Fatal: {e}")
        sys.exit(2)


if __name__ == "__main__":
    main()
