"""Correlation — a burst of same-(type, severity) alerts folded together."""

from __future__ import annotations

from dataclasses import dataclass, field

from src.contracts.alert import Alert


@dataclass(slots=True)
class Correlation:
    correlation_id: str
    original_alert: Alert
    correlated_alerts: list[Alert] = field(default_factory=list)
    aggregate_count: int = 0

    def fold(self, alert: Alert) -> int:
        """Add *alert* to the group and return the number of folds so far."""
        self.correlated_alerts.append(alert)
        self.aggregate_count += max(0, alert.count)
        return len(self.correlated_alerts)
