"""Alert model and its lifecycle transitions."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from src.contracts.enums import AlertStatus, Severity
from src.contracts.event import iso


class InvalidTransition(Exception):
    """Raised when an alert is asked to move to a status it cannot reach."""


@dataclass(slots=True)
class Alert:
    """Alert raised when a threshold rule is breached.

    Status moves only ``active -> acknowledged``, ``active -> overdue`` or
    ``overdue -> acknowledged``.  Use :meth:`acknowledge` and
    :meth:`mark_overdue` instead of assigning ``status`` directly.
    """

    alert_id: str  # e.g. "ALR-000001"
    type: str
    severity: Severity
    count: int
    threshold: int
    window_sec: float
    created_at: float  # epoch seconds
    response_deadline: float  # created_at + response SLA
    status: AlertStatus = AlertStatus.ACTIVE
    acknowledged_at: float | None = None
    acknowledged_by: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def is_open(self) -> bool:
        """True while the alert still waits for a human (active or overdue)."""
        return self.status in (AlertStatus.ACTIVE, AlertStatus.OVERDUE)

    @property
    def response_time(self) -> float:
        return self.response_deadline - self.created_at

    def acknowledge(self, actor: str, at: float) -> None:
        if not self.is_open:
            raise InvalidTransition(f"{self.alert_id}: {self.status.value} -> acknowledged")
        self.status = AlertStatus.ACKNOWLEDGED
        self.acknowledged_at = at
        self.acknowledged_by = actor

    def mark_overdue(self) -> None:
        if self.status is not AlertStatus.ACTIVE:
            raise InvalidTransition(f"{self.alert_id}: {self.status.value} -> overdue")
        self.status = AlertStatus.OVERDUE

    # ── serialisation ─────────────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.alert_id,
            "type": self.type,
            "severity": self.severity.value,
            "count": self.count,
            "threshold": self.threshold,
            "window_sec": self.window_sec,
            "created_at": iso(self.created_at),
            "status": self.status.value,
            "response_deadline": iso(self.response_deadline),
            "acknowledged_at": iso(self.acknowledged_at),
            "acknowledged_by": self.acknowledged_by,
            "details": dict(self.details),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))
