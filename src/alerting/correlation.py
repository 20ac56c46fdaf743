"""Alert correlation — fold same-(type, severity) bursts into one group.

A new alert correlates with a history entry when both share type and
severity and the entry was created less than ``window_sec`` before it.
The group id is derived from the first alert of the chain, so a
sustained burst keeps folding into the same Correlation.
"""

from __future__ import annotations

import dataclasses

from src.contracts.alert import Alert
from src.contracts.correlation import Correlation
from src.monitor.state import HistoryEntry


def correlation_key(alert: Alert) -> str:
    return f"{alert.type}_{alert.severity.value}_{alert.alert_id}"


def find_recent(history: list[HistoryEntry], alert: Alert, window_sec: float) -> HistoryEntry | None:
    """Oldest in-window entry matching *alert*'s type and severity."""
    for entry in history:
        prior = entry.alert
        if prior is alert or prior.alert_id == alert.alert_id:
            continue
        if prior.type != alert.type or prior.severity is not alert.severity:
            continue
        if 0 <= alert.created_at - prior.created_at < window_sec:
            return entry
    return None


def root_alert(history: list[HistoryEntry], correlation_id: str, fallback: Alert) -> Alert:
    return next((e.alert for e in history if e.correlation_id == correlation_id), fallback)


def open_correlation(correlation_id: str, original: Alert) -> Correlation:
    return Correlation(
        correlation_id=correlation_id,
        original_alert=original,
        aggregate_count=original.count,
    )


def summary_alert(correlation: Correlation) -> Alert:
    """Reduced-frequency notification payload for a correlation group."""
    original = correlation.original_alert
    return dataclasses.replace(
        original,
        alert_id=f"corr_{original.alert_id}",
        count=correlation.aggregate_count,
        details={
            **original.details,
            "correlation_id": correlation.correlation_id,
            "correlated_count": len(correlation.correlated_alerts),
        },
    )
