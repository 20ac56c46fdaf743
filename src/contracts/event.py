"""SecurityEvent — one sanitized event held in a per-type buffer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def iso(ts: float | None) -> str | None:
    """Epoch seconds -> ISO-8601 UTC string (``None`` passes through)."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


@dataclass(frozen=True, slots=True)
class SecurityEvent:
    """Immutable record of a security-relevant occurrence."""

    event_id: str  # e.g. "EVT-000001"
    type: str  # sanitized event type
    timestamp: float  # epoch seconds
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.event_id,
            "type": self.type,
            "timestamp": iso(self.timestamp),
            "details": dict(self.details),
        }

    def to_json(self) -> str:
        """Return compact JSON string."""
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))
