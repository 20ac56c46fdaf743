"""Slow-burn pattern detection over the last hour of events.

A type qualifies when it has at least ``min_events`` events in the last
hour and the mean gap between consecutive events, over at least
``min_intervals`` gaps, is below ``max_avg_interval_sec``.  This catches
steady activity that never crosses a single-window threshold.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from src.contracts.event import SecurityEvent

log = logging.getLogger(__name__)

LOOKBACK_SEC = 3600.0


@dataclass(frozen=True)
class PatternFinding:
    event_type: str
    count: int
    avg_interval_sec: float


def find_patterns(
    buffers: dict[str, list[SecurityEvent]],
    now: float,
    *,
    min_events: int = 5,
    min_intervals: int = 3,
    max_avg_interval_sec: float = 600.0,
    exclude: Iterable[str] = (),
) -> list[PatternFinding]:
    skip = set(exclude)
    findings: list[PatternFinding] = []
    for etype, events in buffers.items():
        if etype in skip:
            continue
        stamps = sorted(e.timestamp for e in events if e.timestamp > now - LOOKBACK_SEC)
        if len(stamps) < min_events:
            continue
        intervals = [b - a for a, b in zip(stamps, stamps[1:])]
        if len(intervals) < min_intervals:
            continue
        avg = sum(intervals) / len(intervals)
        if avg < max_avg_interval_sec:
            findings.append(PatternFinding(etype, len(stamps), avg))
    if findings:
        log.debug("Pattern scan: %d findings", len(findings))
    return findings
