"""Canonical enumerations shared by the monitor and the dispatcher."""

from __future__ import annotations

from enum import Enum


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertStatus(str, Enum):
    ACTIVE = "active"
    ACKNOWLEDGED = "acknowledged"
    OVERDUE = "overdue"


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class ChannelKind(str, Enum):
    CONSOLE = "console"
    PUSH = "push"
    DASHBOARD = "dashboard"
    SOUND = "sound"
    EMAIL = "email"  # placeholder, needs a backend


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    ERROR = "error"


class NotificationKind(str, Enum):
    """What a subscriber callback is being told about."""

    EVENT = "event"
    ALERT = "alert"
    ESCALATION = "escalation"
    ACKNOWLEDGMENT = "acknowledgment"


class EscalationState(str, Enum):
    DISPATCHED = "dispatched"
    ESCALATING = "escalating"
    ACKNOWLEDGED = "acknowledged"
    MAX_ESCALATIONS_REACHED = "max_escalations_reached"
