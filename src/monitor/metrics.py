"""Metrics Engine -- sliding-window statistics per event type.

All windows are recomputed relative to *now* on every call; nothing here
is cached or persisted.

Metrics computed per event type
───────────────────────────────
  total        — events currently retained in the buffer
  last_hour    — events with ``timestamp > now - 1h``
  last_24h     — events with ``timestamp > now - 24h``
  last_7_days  — events with ``timestamp > now - 7d``
  avg_daily    — ``last_7_days / 7`` rounded to 1 decimal
  avg_hourly   — ``last_24h / 24`` rounded to 1 decimal
  last_event   — timestamp of the newest event (None for an empty buffer)
  trend        — see :func:`calculate_trend`

Trend
─────
    ``recent``   = events in the last 2 hours
    ``previous`` = events in the 2 hours before that

    recent > previous × 1.5  → increasing
    recent < previous × 0.5  → decreasing
    otherwise                → stable   (also for fewer than 2 events)
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from src.contracts.enums import Trend
from src.contracts.event import SecurityEvent, iso

log = logging.getLogger(__name__)

HOUR = 3600.0
DAY = 24 * HOUR
TREND_BUCKET_SEC = 2 * HOUR


@dataclass
class EventTypeMetrics:
    """Derived view over one event type's buffer."""

    event_type: str
    total: int = 0
    last_hour: int = 0
    last_24h: int = 0
    last_7_days: int = 0
    avg_daily: float = 0.0
    avg_hourly: float = 0.0
    last_event: float | None = None
    trend: Trend = Trend.STABLE

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["trend"] = self.trend.value
        d["last_event"] = iso(self.last_event)
        return d


def calculate_trend(events: list[SecurityEvent], now: float) -> Trend:
    if len(events) < 2:
        return Trend.STABLE
    recent = sum(1 for e in events if e.timestamp > now - TREND_BUCKET_SEC)
    previous = sum(
        1 for e in events if now - 2 * TREND_BUCKET_SEC < e.timestamp <= now - TREND_BUCKET_SEC
    )
    if recent > previous * 1.5:
        return Trend.INCREASING
    if recent < previous * 0.5:
        return Trend.DECREASING
    return Trend.STABLE


def compute_type_metrics(event_type: str, events: list[SecurityEvent], now: float) -> EventTypeMetrics:
    m = EventTypeMetrics(event_type=event_type, total=len(events))
    for e in events:
        age = now - e.timestamp
        if age < 7 * DAY:
            m.last_7_days += 1
            if age < DAY:
                m.last_24h += 1
                if age < HOUR:
                    m.last_hour += 1
    m.avg_daily = round(m.last_7_days / 7, 1)
    m.avg_hourly = round(m.last_24h / 24, 1)
    m.last_event = events[-1].timestamp if events else None
    m.trend = calculate_trend(events, now)
    return m


def compute(buffers: dict[str, list[SecurityEvent]], now: float) -> dict[str, EventTypeMetrics]:
    """Compute metrics for every buffered event type.

    *buffers* should be a snapshot; the caller holds the state lock while
    copying it.
    """
    result = {etype: compute_type_metrics(etype, events, now) for etype, events in buffers.items()}
    log.debug("Computed metrics for %d event types", len(result))
    return result


def is_spike(m: EventTypeMetrics, factor: float = 3.0) -> bool:
    """Current-hour count above *factor* × the 24h hourly average."""
    return m.avg_hourly > 0 and m.last_hour > m.avg_hourly * factor
