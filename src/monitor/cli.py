"""CLI entry-point for the security event monitor.

Usage examples
--------------
# Replay a recorded event stream on a virtual clock:
python -m src.monitor.cli --input data/events.jsonl

# With a custom rule/escalation config:
python -m src.monitor.cli --input data/events.jsonl --config config/monitoring.yaml

# Watch mode (tail a JSONL file written by upstream handlers):
python -m src.monitor.cli --input data/events_live.jsonl --watch
"""

from __future__ import annotations

import argparse

from src.monitor.config import load_config
from src.monitor.pipeline import replay, watch
from src.shared.logger import setup_logging


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="monitor",
        description="Security event monitor: thresholds, alerts, escalation, correlation",
    )
    p.add_argument(
        "--input",
        default="data/events.jsonl",
        help="Input JSONL file, one {type, timestamp, details} object per line. "
             "Default: data/events.jsonl",
    )
    p.add_argument(
        "--config",
        default=None,
        help="Path to monitoring.yaml. Built-in defaults are used when omitted.",
    )
    p.add_argument(
        "--out-dir",
        default="out",
        help="Output directory. Default: out/",
    )
    p.add_argument(
        "--watch",
        action="store_true",
        default=False,
        help="Enable watch mode: tail the input JSONL on the wall clock.",
    )
    p.add_argument(
        "--poll-interval-ms",
        type=int,
        default=1000,
        help="Poll interval for watch mode, ms (default: 1000).",
    )
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level. Default: INFO",
    )
    return p


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    config = load_config(args.config)

    if args.watch:
        watch(
            input_path=args.input,
            out_dir=args.out_dir,
            config=config,
            poll_interval_sec=args.poll_interval_ms / 1000.0,
        )
    else:
        replay(input_path=args.input, out_dir=args.out_dir, config=config)


if __name__ == "__main__":
    main()
