"""AlertDispatcher — route alerts to channels, escalate, correlate.

Processing one alert
────────────────────
  1. record it in the shared alert history
  2. if a same-(type, severity) alert arrived within the correlation
     window, fold it into that Correlation; every 3rd fold sends one
     summary through console + dashboard, otherwise stay quiet
  3. else send through the policy's step-0 channels and schedule the
     remaining steps; each step checks at fire time that the alert is
     still open and silently does nothing once it was acknowledged

Channel enablement is read from preferences at send time, so toggling a
channel affects escalation steps that are already scheduled.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from src.alerting import correlation as corr
from src.alerting.channels import (
    ChannelBackends,
    DashboardChannel,
    NotificationChannel,
    PushChannel,
    build_channels,
)
from src.alerting.escalation import EscalationTracker
from src.alerting.patterns import find_patterns
from src.contracts.alert import Alert
from src.contracts.enums import AlertStatus, ChannelKind, EscalationState, NotificationKind, Severity
from src.monitor.engine import PATTERN_ALERT, SYNTHETIC_TYPES, EventMonitor
from src.monitor.state import HistoryEntry, MonitorState
from src.shared.scheduler import ScheduledTask

log = logging.getLogger(__name__)

MODULE_NAME = "AlertDispatcher"
ESCALATION_CHANNELS = (ChannelKind.CONSOLE, ChannelKind.PUSH)
CORRELATION_CHANNELS = (ChannelKind.CONSOLE, ChannelKind.DASHBOARD)


class AlertDispatcher:
    def __init__(
        self,
        state: MonitorState,
        channels: dict[ChannelKind, NotificationChannel] | None = None,
        *,
        backends: ChannelBackends | None = None,
        focus_hook: Callable[[], None] | None = None,
    ) -> None:
        self.state = state
        self.cfg = state.config
        self.focus_hook = focus_hook
        if channels is None:
            if backends is None:
                backends = ChannelBackends(signals_path=self.cfg.signals_path)
            channels = build_channels(
                state.scheduler,
                state.clock,
                backends,
                push_auto_close_sec=self.cfg.push_auto_close_sec,
                sound_spacing_sec=self.cfg.sound_spacing_sec,
                on_push_click=self._on_push_click,
            )
        self.channels = channels
        self._trackers: dict[str, EscalationTracker] = {}
        self._tasks: list[ScheduledTask] = []
        self._unsubscribe: Callable[[], None] | None = None
        with state.lock:
            state.modules.add(MODULE_NAME)

    # ------------------------------------------------------------------
    # Wiring / lifecycle
    # ------------------------------------------------------------------

    def attach(self, monitor: EventMonitor) -> None:
        """Listen to *monitor*'s alert, escalation and acknowledgment notices."""
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._unsubscribe = monitor.subscribe(self._on_monitor_message)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def start(self) -> None:
        if self._tasks:
            return
        self._request_push_permission()
        sched = self.state.scheduler
        iv = self.cfg.intervals
        self._tasks = [
            sched.call_every(iv["pattern_detection"], self.detect_patterns, name="pattern_detection"),
            sched.call_every(iv["correlation_cleanup"], self.cleanup_correlation_data, name="correlation_cleanup"),
        ]
        self.state.secure_log(
            "info", "Alert dispatcher initialized",
            channels=len(self.channels), policies=len(self.cfg.escalation),
        )

    def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        self.detach()

    def _request_push_permission(self) -> None:
        push = self.channels.get(ChannelKind.PUSH)
        if not isinstance(push, PushChannel) or push.backend is None:
            return
        result = push.request_permission()
        if result == "granted":
            self.state.secure_log("info", "Push notification permission granted")
        elif result == "denied":
            with self.state.lock:
                self.state.preferences[ChannelKind.PUSH.value] = False
            self.state.secure_log("warn", "Push notification permission denied")

    def _on_monitor_message(self, message: dict[str, Any]) -> None:
        kind = message.get("type")
        data = message.get("data")
        if not isinstance(data, Alert):
            return
        if kind == NotificationKind.ALERT.value:
            self.process_alert(data)
        elif kind == NotificationKind.ESCALATION.value:
            self.handle_escalation(data)
        elif kind == NotificationKind.ACKNOWLEDGMENT.value:
            with self.state.lock:
                tracker = self._trackers.get(data.alert_id)
                if tracker is not None:
                    tracker.acknowledge()

    def channel(self, kind: ChannelKind) -> NotificationChannel | None:
        return self.channels.get(kind)

    def _on_push_click(self, alert: Alert) -> None:
        if self.focus_hook is not None:
            self.focus_hook()
        dashboard = self.channels.get(ChannelKind.DASHBOARD)
        if isinstance(dashboard, DashboardChannel):
            dashboard.show(alert)

    # ------------------------------------------------------------------
    # Alert processing
    # ------------------------------------------------------------------

    def process_alert(self, alert: Alert) -> None:
        """Correlate or dispatch *alert*.  Never raises."""
        try:
            self._process(alert)
        except Exception as exc:  # noqa: BLE001
            log.exception("Alert processing failed for %s", getattr(alert, "alert_id", "?"))
            self.state.secure_log(
                "error", "Alert processing failed",
                alertId=getattr(alert, "alert_id", "unknown"), error=str(exc),
            )

    def _process(self, alert: Alert) -> None:
        summary: Alert | None = None
        with self.state.lock:
            history = self.state.history
            prior = corr.find_recent(history, alert, self.cfg.correlation_window_sec)
            correlation_id = prior.correlation_id if prior else corr.correlation_key(alert)
            history.append(HistoryEntry(alert, self.state.now(), correlation_id))

            if prior is not None:
                group = self.state.correlations.get(correlation_id)
                if group is None:
                    original = corr.root_alert(history, correlation_id, prior.alert)
                    group = corr.open_correlation(correlation_id, original)
                    self.state.correlations[correlation_id] = group
                folds = group.fold(alert)
                if folds % self.cfg.correlation_notify_every == 0:
                    summary = corr.summary_alert(group)

        if prior is not None:
            if summary is not None:
                self._send(summary, CORRELATION_CHANNELS)
            self.state.secure_log(
                "info", "Alert correlated",
                correlationId=correlation_id, newAlertId=alert.alert_id, totalCorrelated=folds,
            )
            return

        self._dispatch(alert)
        self.state.secure_log(
            "info", "Alert processed",
            alertId=alert.alert_id, type=alert.type, severity=alert.severity.value,
        )

    def _dispatch(self, alert: Alert) -> None:
        policy = self.cfg.escalation.get(alert.severity) or self.cfg.escalation.get(Severity.LOW)
        if policy is None:
            log.warning("No escalation policy for %s; alert %s not dispatched",
                        alert.severity.value, alert.alert_id)
            return

        tracker = EscalationTracker(alert.alert_id, policy, dispatched_at=self.state.now())
        with self.state.lock:
            self._trackers[alert.alert_id] = tracker

        if policy.initial is not None:
            self._send(alert, policy.initial.channels)

        for step_no, step in enumerate(policy.scheduled, start=1):
            self.state.scheduler.call_later(
                step.delay_sec,
                self._fire_step,
                alert,
                step_no,
                name=f"escalate:{alert.alert_id}:{step_no}",
                key=alert.alert_id,
            )
        with self.state.lock:
            tracker.dispatched()

    def _fire_step(self, alert: Alert, step_no: int) -> None:
        with self.state.lock:
            tracker = self._trackers.get(alert.alert_id)
            still_open = self.state.is_alert_open(alert.alert_id)
            if not still_open:
                if tracker is not None and alert.status is AlertStatus.ACKNOWLEDGED:
                    tracker.acknowledge()
                return
            policy = tracker.policy if tracker else self.cfg.escalation[alert.severity]
            step = policy.steps[step_no]

        fired = self._send(alert, step.channels)
        with self.state.lock:
            if tracker is not None:
                tracker.escalate(step_no)
        log.warning("Alert %s escalated to level %d via %s", alert.alert_id, step_no + 1,
                    ", ".join(k.value for k in fired) or "no enabled channel")
        self.state.secure_log(
            "warn", "Alert escalated",
            alertId=alert.alert_id, escalationLevel=step_no + 1,
            channels=",".join(k.value for k in step.channels),
        )

    def handle_escalation(self, alert: Alert) -> None:
        """SLA breach on a critical alert: console + push."""
        self._send(alert, ESCALATION_CHANNELS)
        self.state.secure_log(
            "error", "Alert escalation triggered",
            alertId=alert.alert_id, type=alert.type, severity=alert.severity.value,
        )

    def _send(self, alert: Alert, kinds: tuple[ChannelKind, ...]) -> list[ChannelKind]:
        with self.state.lock:
            enabled = [k for k in kinds if self.state.preferences.get(k.value, False)]
        fired: list[ChannelKind] = []
        for kind in enabled:
            channel = self.channels.get(kind)
            if channel is None:
                continue
            try:
                channel.notify(alert)
                fired.append(kind)
            except Exception as exc:  # noqa: BLE001
                log.warning("Channel %s failed for %s: %s", kind.value, alert.alert_id, exc)
                self.state.secure_log(
                    "error", "Notification channel failed",
                    channel=kind.value, alertId=alert.alert_id,
                )
        return fired

    # ------------------------------------------------------------------
    # Escalation state
    # ------------------------------------------------------------------

    def get_escalation_state(self, alert_id: str) -> EscalationState | None:
        with self.state.lock:
            tracker = self._trackers.get(alert_id)
            if tracker is not None:
                return tracker.state
            # acknowledged trackers are pruned by cleanup; the alert still says so
            alert = self.state.find_alert(alert_id)
            if alert is not None and alert.status is AlertStatus.ACKNOWLEDGED:
                return EscalationState.ACKNOWLEDGED
            return None

    def clear_alert(self, alert_id: str) -> bool:
        """Manual clearance of a terminal alert's escalation record."""
        with self.state.lock:
            tracker = self._trackers.get(alert_id)
            if tracker is None or not tracker.terminal:
                return False
            del self._trackers[alert_id]
        self.state.secure_log("info", "Alert cleared", alertId=alert_id)
        return True

    # ------------------------------------------------------------------
    # Preferences
    # ------------------------------------------------------------------

    def update_preferences(self, partial: dict[Any, Any]) -> None:
        if partial is None:
            return
        if not isinstance(partial, dict):
            log.warning("Ignoring non-mapping preferences update %r", type(partial).__name__)
            return
        applied: list[str] = []
        with self.state.lock:
            for key, enabled in partial.items():
                name = key.value if isinstance(key, ChannelKind) else str(key)
                if name not in self.state.preferences:
                    log.warning("Unknown channel preference '%s' ignored", name)
                    continue
                self.state.preferences[name] = bool(enabled)
                applied.append(name)
        self.state.secure_log("info", "Alert preferences updated", preferences=",".join(applied))

    def get_preferences(self) -> dict[str, bool]:
        with self.state.lock:
            return dict(self.state.preferences)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_alert_statistics(self) -> dict[str, Any]:
        with self.state.lock:
            now = self.state.now()
            history = list(self.state.history)
            n_corr = len(self.state.correlations)

        last_24h = [e.alert for e in history if now - e.alert.created_at < 86400]
        by_severity: dict[str, int] = {}
        by_type: dict[str, int] = {}
        for a in last_24h:
            by_severity[a.severity.value] = by_severity.get(a.severity.value, 0) + 1
            by_type[a.type] = by_type.get(a.type, 0) + 1
        return {
            "total": len(history),
            "last_24h": len(last_24h),
            "by_severity": by_severity,
            "by_type": by_type,
            "correlations": n_corr,
            "acknowledged": sum(1 for e in history if e.alert.status is AlertStatus.ACKNOWLEDGED),
        }

    # ------------------------------------------------------------------
    # Periodic work
    # ------------------------------------------------------------------

    def detect_patterns(self) -> list[Alert]:
        """Raise a medium ``alertPattern`` alert per steady slow-burn type."""
        with self.state.lock:
            now = self.state.now()
            snapshot = {k: list(v) for k, v in self.state.buffers.items()}
            already_open = {
                a.details.get("original_type")
                for a in self.state.alerts
                if a.type == PATTERN_ALERT and a.is_open
            }

        findings = find_patterns(
            snapshot,
            now,
            min_events=self.cfg.pattern_min_events,
            min_intervals=self.cfg.pattern_min_intervals,
            max_avg_interval_sec=self.cfg.pattern_max_avg_interval_sec,
            exclude=SYNTHETIC_TYPES,
        )
        raised: list[Alert] = []
        for f in findings:
            if f.event_type in already_open:
                continue
            with self.state.lock:
                alert = Alert(
                    alert_id=self.state.next_alert_id(),
                    type=PATTERN_ALERT,
                    severity=Severity.MEDIUM,
                    count=f.count,
                    threshold=self.cfg.pattern_min_events,
                    window_sec=3600.0,
                    created_at=now,
                    response_deadline=now + self.cfg.sla_for(Severity.MEDIUM),
                    details={
                        "original_type": f.event_type,
                        "avg_interval_sec": round(f.avg_interval_sec),
                        "pattern_detected": True,
                    },
                )
                self.state.alerts.append(alert)
            self.process_alert(alert)
            self.state.secure_log(
                "warn", "Alert pattern detected",
                alertType=f.event_type, count=f.count, avgInterval=round(f.avg_interval_sec),
            )
            raised.append(alert)
        return raised

    def cleanup_correlation_data(self) -> int:
        """Drop history and correlations older than the history retention.

        Alerts still escalating, and acknowledged alerts (audit), are kept.
        Returns the number of history entries removed.
        """
        with self.state.lock:
            cutoff = self.state.now() - self.cfg.history_retention_sec

            def _keep(alert: Alert) -> bool:
                tracker = self._trackers.get(alert.alert_id)
                return (
                    alert.created_at > cutoff
                    or alert.status is AlertStatus.ACKNOWLEDGED
                    or (tracker is not None and tracker.escalating)
                )

            before = len(self.state.history)
            self.state.history = [e for e in self.state.history if _keep(e.alert)]
            removed = before - len(self.state.history)

            for cid, group in list(self.state.correlations.items()):
                if group.original_alert.created_at < cutoff:
                    tracker = self._trackers.get(group.original_alert.alert_id)
                    if tracker is None or not tracker.escalating:
                        del self.state.correlations[cid]

            # max_escalations_reached trackers wait for clear_alert
            alerts = {a.alert_id: a for a in self.state.alerts}
            for alert_id, tracker in list(self._trackers.items()):
                if tracker.state is not EscalationState.ACKNOWLEDGED:
                    continue
                alert = alerts.get(alert_id)
                if alert is None or alert.created_at < cutoff:
                    del self._trackers[alert_id]

        if removed:
            log.info("Correlation cleanup removed %d history entries", removed)
        return removed
