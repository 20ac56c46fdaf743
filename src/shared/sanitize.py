"""Input normalisation for event types, detail maps and actor names.

Nothing here raises: malformed input is coerced into something safe to
store and log.
"""

from __future__ import annotations

import math
import re
from typing import Any

MAX_TYPE_LEN = 50
MAX_KEY_LEN = 50
MAX_VALUE_LEN = 200
MAX_ACTOR_LEN = 50

_TYPE_STRIP = re.compile(r"[^A-Za-z0-9_-]")
_KEY_STRIP = re.compile(r"[^\w-]", re.ASCII)
# control chars plus HTML-special characters
_VALUE_STRIP = re.compile(r"[\x00-\x1f\x7f<>\"'&]")


def sanitize_event_type(event_type: Any) -> str:
    """Keep alnum/dash/underscore only, cap at 50 chars."""
    cleaned = _TYPE_STRIP.sub("", str(event_type))[:MAX_TYPE_LEN]
    return cleaned or "unknown"


def sanitize_value(value: Any) -> str | int | float | bool | None:
    """Return a storable form of *value*, or ``None`` to drop it."""
    # bool first: it is a subclass of int
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return 0
        return value
    if isinstance(value, str):
        return _VALUE_STRIP.sub("", value)[:MAX_VALUE_LEN]
    return None


def sanitize_details(details: Any) -> dict[str, Any]:
    """Sanitize a detail map; non-mappings yield an empty dict."""
    if not isinstance(details, dict):
        return {}
    out: dict[str, Any] = {}
    for key, value in details.items():
        clean_key = _KEY_STRIP.sub("", str(key))[:MAX_KEY_LEN]
        if not clean_key:
            continue
        clean = sanitize_value(value)
        if clean is not None:
            out[clean_key] = clean
    return out


def sanitize_actor(actor: Any) -> str:
    return _VALUE_STRIP.sub("", str(actor))[:MAX_ACTOR_LEN] or "system"
