"""MonitorState — the shared mutable state behind one monitoring instance.

Both the EventMonitor and the AlertDispatcher receive the same state
object.  Every read or write of the collections below happens under
``state.lock`` (a re-entrant lock, so public methods may call each other).
Tests build isolated instances with a :class:`ManualClock`.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from src.contracts.alert import Alert
from src.contracts.correlation import Correlation
from src.contracts.event import SecurityEvent
from src.monitor.config import MonitorConfig
from src.shared.clock import Clock, SystemClock
from src.shared.logger import secure_log
from src.shared.scheduler import Scheduler

log = logging.getLogger(__name__)

LogSink = Callable[[str, str, dict[str, Any]], None]
Subscriber = Callable[[dict[str, Any]], None]


@dataclass
class PerformanceCounters:
    started_at: float
    event_count: int = 0
    processing_ms: float = 0.0

    @property
    def avg_processing_ms(self) -> float:
        return self.processing_ms / self.event_count if self.event_count else 0.0


@dataclass
class HistoryEntry:
    """One alert as seen by the dispatcher."""

    alert: Alert
    processed_at: float
    correlation_id: str


class MonitorState:
    def __init__(
        self,
        config: MonitorConfig | None = None,
        clock: Clock | None = None,
        *,
        log_sink: LogSink = secure_log,
        perf_timer: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.config = config or MonitorConfig()
        self.clock = clock or SystemClock()
        self.scheduler = Scheduler(self.clock)
        self.lock = threading.RLock()
        self.log_sink = log_sink
        self.perf_timer = perf_timer

        self.buffers: dict[str, list[SecurityEvent]] = {}
        self.alerts: list[Alert] = []
        self.history: list[HistoryEntry] = []
        self.correlations: dict[str, Correlation] = {}
        self.preferences: dict[str, bool] = dict(self.config.preferences)
        self.subscribers: list[Subscriber] = []
        self.modules: set[str] = set()
        self.perf = PerformanceCounters(started_at=self.clock.now())

        self._event_seq = itertools.count(1)
        self._alert_seq = itertools.count(1)

    def now(self) -> float:
        return self.clock.now()

    def next_event_id(self) -> str:
        return f"EVT-{next(self._event_seq):06d}"

    def next_alert_id(self) -> str:
        return f"ALR-{next(self._alert_seq):06d}"

    def find_alert(self, alert_id: str) -> Alert | None:
        with self.lock:
            return next((a for a in self.alerts if a.alert_id == alert_id), None)

    def is_alert_open(self, alert_id: str) -> bool:
        alert = self.find_alert(alert_id)
        return alert is not None and alert.is_open

    def secure_log(self, level: str, message: str, **details: Any) -> None:
        """Forward to the injected sink; a broken sink is only logged locally."""
        try:
            self.log_sink(level, message, details)
        except Exception:  # noqa: BLE001
            log.exception("secure_log sink failed for %r", message)
