"""EventMonitor — record events, evaluate threshold rules, raise alerts.

Flow of one ``record_event`` call
─────────────────────────────────
  1. sanitize type and details (never rejects input)
  2. append a SecurityEvent to the per-type buffer
  3. evaluate the type's ThresholdRule over its sliding window
     (``timestamp > now - window``); ``count >= threshold`` raises an Alert
  4. notify subscribers: ``alert`` (if raised), then ``event``
  5. account processing time; a running average above the limit records
     a ``performanceDegradation`` event

Every qualifying event above threshold raises a fresh Alert; bursts are
folded later by the dispatcher's correlation step.

Background tasks (see ``start``)
────────────────────────────────
  metrics_check      30 s   spike scan -> ``anomalyDetected`` events
  health_check       60 s   processing-time guard
  alert_review      120 s   SLA review: active -> overdue, escalate critical
  retention_cleanup 300 s   drop data older than 7 days (acknowledged alerts kept)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from src.contracts.alert import Alert
from src.contracts.enums import AlertStatus, HealthStatus, NotificationKind, Severity
from src.contracts.event import SecurityEvent
from src.monitor import health
from src.monitor.metrics import EventTypeMetrics, compute, is_spike
from src.monitor.state import MonitorState, Subscriber
from src.shared.sanitize import sanitize_actor, sanitize_details, sanitize_event_type
from src.shared.scheduler import ScheduledTask

log = logging.getLogger(__name__)

MODULE_NAME = "EventMonitor"
ANOMALY_EVENT = "anomalyDetected"
PERFORMANCE_EVENT = "performanceDegradation"
PATTERN_ALERT = "alertPattern"

# Types produced by the monitoring system itself; excluded from spike and pattern scans.
SYNTHETIC_TYPES = frozenset({ANOMALY_EVENT, PATTERN_ALERT})


class EventMonitor:
    """Event ingestion, sliding-window rules and alert lifecycle."""

    def __init__(self, state: MonitorState) -> None:
        self.state = state
        self.cfg = state.config
        self._tasks: list[ScheduledTask] = []
        with state.lock:
            state.modules.add(MODULE_NAME)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._tasks:
            return
        sched = self.state.scheduler
        iv = self.cfg.intervals
        self._tasks = [
            sched.call_every(iv["metrics_check"], self.check_metric_spikes, name="metrics_check"),
            sched.call_every(iv["health_check"], self.check_performance_health, name="health_check"),
            sched.call_every(iv["alert_review"], self.review_alert_status, name="alert_review"),
            sched.call_every(iv["retention_cleanup"], self.cleanup_expired_data, name="retention_cleanup"),
        ]
        self.state.secure_log("info", "Security monitoring initialized", thresholds=len(self.cfg.rules))

    def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks = []

    def register_module(self, name: str) -> None:
        """Report an upstream handler as available (shown in health checks)."""
        with self.state.lock:
            self.state.modules.add(str(name)[:50])

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback*; returns a zero-arg unsubscribe function.

        A non-callable is not registered and gets a no-op unsubscribe.
        """
        if not callable(callback):
            log.warning("Ignoring non-callable subscriber %r", type(callback).__name__)
            return lambda: None
        with self.state.lock:
            self.state.subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: Subscriber) -> bool:
        with self.state.lock:
            try:
                self.state.subscribers.remove(callback)
            except ValueError:
                return False
        return True

    def _notify(self, kind: NotificationKind, data: Any) -> None:
        with self.state.lock:
            subscribers = list(self.state.subscribers)
        message = {"type": kind.value, "data": data, "timestamp": self.state.now()}
        for callback in subscribers:
            try:
                callback(message)
            except Exception as exc:  # noqa: BLE001
                log.exception("Subscriber failed on %s notification", kind.value)
                self.state.secure_log("error", "Subscriber notification failed", error=str(exc))

    # ------------------------------------------------------------------
    # Ingress
    # ------------------------------------------------------------------

    def record_event(self, event_type: Any, details: Any = None) -> SecurityEvent | None:
        """Record one event.  Never raises; returns None only on internal failure."""
        started = self.state.perf_timer()
        try:
            event = self._record(event_type, details)
        except Exception:  # noqa: BLE001
            log.exception("record_event failed for type %r", event_type)
            return None

        elapsed_ms = (self.state.perf_timer() - started) * 1000.0
        with self.state.lock:
            perf = self.state.perf
            perf.event_count += 1
            perf.processing_ms += max(0.0, elapsed_ms)
            avg = perf.avg_processing_ms
            count = perf.event_count

        if avg > self.cfg.max_avg_processing_ms and event.type != PERFORMANCE_EVENT:
            self.record_event(
                PERFORMANCE_EVENT, {"avgProcessingTime": round(avg), "eventCount": count}
            )
        return event

    def _record(self, event_type: Any, details: Any) -> SecurityEvent:
        with self.state.lock:
            now = self.state.now()
            etype = sanitize_event_type(event_type)
            event = SecurityEvent(
                event_id=self.state.next_event_id(),
                type=etype,
                timestamp=now,
                details=sanitize_details(details),
            )
            self.state.buffers.setdefault(etype, []).append(event)
            alert = self._check_alert(etype, now)

        if alert is not None:
            self._notify(NotificationKind.ALERT, alert)
            self.state.secure_log(
                "warn", "Security alert triggered",
                eventType=alert.type, severity=alert.severity.value,
                count=alert.count, alertId=alert.alert_id,
            )
        self._notify(NotificationKind.EVENT, event)
        self.state.secure_log("info", "Security event recorded", eventType=etype, eventId=event.event_id)
        return event

    def _check_alert(self, etype: str, now: float) -> Alert | None:
        rule = self.cfg.rules.get(etype)
        if rule is None:
            return None
        window_start = now - rule.window_sec
        count = sum(1 for e in self.state.buffers.get(etype, []) if e.timestamp > window_start)
        if count < rule.threshold:
            return None
        alert = Alert(
            alert_id=self.state.next_alert_id(),
            type=etype,
            severity=rule.severity,
            count=count,
            threshold=rule.threshold,
            window_sec=rule.window_sec,
            created_at=now,
            response_deadline=now + self.cfg.sla_for(rule.severity),
        )
        self.state.alerts.append(alert)
        log.info("Alert %s raised: %s %d/%d (%s)", alert.alert_id, etype, count,
                 rule.threshold, rule.severity.value)
        return alert

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_metrics(self) -> dict[str, EventTypeMetrics]:
        with self.state.lock:
            snapshot = {k: list(v) for k, v in self.state.buffers.items()}
            now = self.state.now()
        return compute(snapshot, now)

    def get_active_alerts(self) -> list[dict[str, Any]]:
        with self.state.lock:
            now = self.state.now()
            open_alerts = [a for a in self.state.alerts if a.is_open]
            result = []
            for a in open_alerts:
                d = a.to_dict()
                elapsed = now - a.created_at
                d["elapsed"] = elapsed
                d["time_to_response"] = max(0.0, a.response_time - elapsed)
                result.append(d)
        return result

    def acknowledge_alert(self, alert_id: str, actor: Any = "system") -> bool:
        with self.state.lock:
            alert = self.state.find_alert(alert_id)
            if alert is None or not alert.is_open:
                return False
            alert.acknowledge(sanitize_actor(actor), self.state.now())

        self.state.secure_log(
            "info", "Alert acknowledged", alertId=alert.alert_id, acknowledgedBy=alert.acknowledged_by
        )
        self._notify(NotificationKind.ACKNOWLEDGMENT, alert)
        return True

    def perform_health_check(self) -> dict[str, Any]:
        try:
            metrics = self.get_metrics()
            with self.state.lock:
                return health.run_health_check(
                    now=self.state.now(),
                    registered=set(self.state.modules),
                    open_alerts=[a for a in self.state.alerts if a.is_open],
                    metrics=metrics,
                    perf=self.state.perf,
                    cfg=self.cfg,
                )
        except Exception as exc:  # noqa: BLE001
            log.exception("Health check failed")
            return {
                "timestamp": self.state.now(),
                "status": HealthStatus.ERROR.value,
                "checks": {},
                "performance": {},
                "error": str(exc),
            }

    # ------------------------------------------------------------------
    # Periodic work
    # ------------------------------------------------------------------

    def check_metric_spikes(self) -> int:
        """Record an ``anomalyDetected`` event per spiking type."""
        spikes = [
            (etype, m)
            for etype, m in self.get_metrics().items()
            if etype not in SYNTHETIC_TYPES and is_spike(m, self.cfg.spike_factor)
        ]
        for etype, m in spikes:
            self.record_event(
                ANOMALY_EVENT,
                {
                    "eventType": etype,
                    "currentHour": m.last_hour,
                    "average": m.avg_hourly,
                    "spike": round(m.last_hour / m.avg_hourly, 2),
                },
            )
        return len(spikes)

    def check_performance_health(self) -> bool:
        """Return True when the processing-time average is within limits."""
        with self.state.lock:
            snapshot = health.performance_snapshot(self.state.perf, self.state.now())
        if snapshot["avg_processing_time"] <= self.cfg.max_avg_processing_ms:
            return True
        self.record_event(
            PERFORMANCE_EVENT,
            {
                "avgProcessingTime": round(snapshot["avg_processing_time"]),
                "eventCount": snapshot["event_count"],
                "uptime": snapshot["uptime"],
            },
        )
        return False

    def review_alert_status(self) -> list[Alert]:
        """Mark alerts past their response deadline overdue; returns them."""
        overdue: list[Alert] = []
        with self.state.lock:
            now = self.state.now()
            for alert in self.state.alerts:
                if alert.status is AlertStatus.ACTIVE and now - alert.created_at > alert.response_time:
                    alert.mark_overdue()
                    overdue.append(alert)

        for alert in overdue:
            self.state.secure_log(
                "error", "Alert response time exceeded",
                alertId=alert.alert_id, eventType=alert.type,
                elapsed=round(self.state.now() - alert.created_at),
                responseTime=round(alert.response_time),
            )
            if alert.severity is Severity.CRITICAL:
                log.error("[ESCALATED-ALERT] %s %s overdue", alert.alert_id, alert.type)
                self._notify(NotificationKind.ESCALATION, alert)
        return overdue

    def cleanup_expired_data(self) -> tuple[int, int]:
        """Drop events and unacknowledged alerts beyond retention.

        Returns ``(events_removed, alerts_removed)``.
        """
        with self.state.lock:
            cutoff = self.state.now() - self.cfg.retention_sec
            removed_events = 0
            for etype in list(self.state.buffers):
                kept = [e for e in self.state.buffers[etype] if e.timestamp > cutoff]
                removed_events += len(self.state.buffers[etype]) - len(kept)
                if kept:
                    self.state.buffers[etype] = kept
                else:
                    del self.state.buffers[etype]

            before = len(self.state.alerts)
            self.state.alerts = [
                a for a in self.state.alerts
                if a.created_at > cutoff or a.status is AlertStatus.ACKNOWLEDGED
            ]
            removed_alerts = before - len(self.state.alerts)

        if removed_events or removed_alerts:
            log.info("Retention cleanup: %d events, %d alerts removed", removed_events, removed_alerts)
        return removed_events, removed_alerts
