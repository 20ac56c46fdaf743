"""Contracts — canonical data structures shared by all modules."""

from src.contracts.alert import Alert, InvalidTransition
from src.contracts.correlation import Correlation
from src.contracts.enums import (
    AlertStatus,
    ChannelKind,
    EscalationState,
    HealthStatus,
    NotificationKind,
    Severity,
    Trend,
)
from src.contracts.event import SecurityEvent
from src.contracts.rules import EscalationPolicy, EscalationStep, ThresholdRule

__all__ = [
    "Alert",
    "AlertStatus",
    "ChannelKind",
    "Correlation",
    "EscalationPolicy",
    "EscalationState",
    "EscalationStep",
    "HealthStatus",
    "InvalidTransition",
    "NotificationKind",
    "SecurityEvent",
    "Severity",
    "ThresholdRule",
    "Trend",
]
