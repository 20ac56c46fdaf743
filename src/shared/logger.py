"""Logging setup and the ``secure_log`` sink used by monitoring code."""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

from src.shared.sanitize import sanitize_details

SECURITY_LOGGER = "security"

# JS-style level names used by upstream handlers
_LEVEL_ALIASES = {"warn": "WARNING", "log": "INFO", "fatal": "CRITICAL"}


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger with a compact single-line format.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    numeric = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
        force=True,
    )


def _numeric_level(level: str) -> int:
    name = _LEVEL_ALIASES.get(level.lower(), level.upper())
    value = getattr(logging, name, logging.INFO)
    return value if isinstance(value, int) else logging.INFO


def secure_log(level: str, message: str, details: dict[str, Any] | None = None) -> None:
    """Write a security log line with sanitized *details* attached as JSON.

    Detail values go through the same sanitizer as recorded events, so
    attacker-controlled strings cannot forge log lines.
    """
    payload = json.dumps(sanitize_details(details or {}), ensure_ascii=False, sort_keys=True)
    logging.getLogger(SECURITY_LOGGER).log(_numeric_level(level), "%s %s", message, payload)
