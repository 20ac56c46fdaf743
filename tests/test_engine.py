"""Tests for src.monitor.engine — EventMonitor."""

from __future__ import annotations

import itertools

from src.contracts.enums import AlertStatus, HealthStatus, Severity
from src.monitor.engine import ANOMALY_EVENT, PERFORMANCE_EVENT, EventMonitor
from src.monitor.state import MonitorState
from tests.conftest import DAY, MINUTE, record_n

# ═══════════════════════════════════════════════════════════════════════════
#  record_event — sanitisation and storage
# ═══════════════════════════════════════════════════════════════════════════


class TestRecordEvent:
    def test_event_stored_in_type_buffer(self, monitor, state):
        ev = monitor.record_event("customProbe", {"path": "/admin"})
        assert ev is not None
        assert ev.event_id == "EVT-000001"
        assert state.buffers["customProbe"] == [ev]
        assert ev.details == {"path": "/admin"}

    def test_event_type_sanitized(self, monitor):
        ev = monitor.record_event("bad<script>type!", {})
        assert ev.type == "badscripttype"

    def test_empty_type_becomes_unknown(self, monitor):
        assert monitor.record_event("", {}).type == "unknown"
        assert monitor.record_event("<<>>", {}).type == "unknown"

    def test_details_sanitized(self, monitor):
        ev = monitor.record_event("customProbe", {
            "msg": "<img src=x onerror='x'>",
            "n": float("nan"),
            "ok": True,
            "nested": {"a": 1},
        })
        assert ev.details == {"msg": "img src=x onerror=x", "n": 0, "ok": True}

    def test_garbage_input_never_raises(self, monitor):
        ev = monitor.record_event(None, object())
        assert ev is not None
        assert ev.details == {}

    def test_ids_are_sequential(self, monitor):
        ids = [monitor.record_event("customProbe").event_id for _ in range(3)]
        assert ids == ["EVT-000001", "EVT-000002", "EVT-000003"]


# ═══════════════════════════════════════════════════════════════════════════
#  Threshold rules over the sliding window
# ═══════════════════════════════════════════════════════════════════════════


class TestThresholds:
    def test_three_failed_auth_in_five_minutes_one_high_alert(self, monitor, state):
        record_n(monitor, "failedAuthAttempts", 3, spacing=MINUTE)
        assert len(state.alerts) == 1
        alert = state.alerts[0]
        assert alert.severity is Severity.HIGH
        assert alert.count == 3
        assert alert.threshold == 3
        assert alert.status is AlertStatus.ACTIVE

    def test_below_threshold_no_alert(self, monitor, state):
        record_n(monitor, "failedAuthAttempts", 2, spacing=MINUTE)
        assert state.alerts == []

    def test_events_outside_window_do_not_count(self, monitor, state, clock):
        record_n(monitor, "failedAuthAttempts", 2)
        clock.advance(301)
        monitor.record_event("failedAuthAttempts")
        assert state.alerts == []

    def test_window_boundary_is_exclusive(self, monitor, state, clock):
        record_n(monitor, "failedAuthAttempts", 2)
        clock.advance(300)
        monitor.record_event("failedAuthAttempts")
        assert state.alerts == []

    def test_single_event_critical_rule(self, monitor, state):
        monitor.record_event("xssAttempts", {"field": "comment"})
        assert len(state.alerts) == 1
        alert = state.alerts[0]
        assert alert.severity is Severity.CRITICAL
        assert alert.response_deadline - alert.created_at == 15 * MINUTE

    def test_unlisted_type_metrics_only(self, monitor, state):
        record_n(monitor, "customProbe", 50)
        assert state.alerts == []
        assert monitor.get_metrics()["customProbe"].total == 50

    def test_each_event_above_threshold_raises_alert(self, monitor, state):
        record_n(monitor, "failedAuthAttempts", 5, spacing=10)
        assert [a.count for a in state.alerts] == [3, 4, 5]
        assert len({a.alert_id for a in state.alerts}) == 3


# ═══════════════════════════════════════════════════════════════════════════
#  Subscriptions
# ═══════════════════════════════════════════════════════════════════════════


class TestSubscriptions:
    def test_alert_notified_before_event(self, monitor):
        seen = []
        monitor.subscribe(lambda m: seen.append(m["type"]))
        monitor.record_event("xssAttempts")
        assert seen == ["alert", "event"]

    def test_message_shape(self, monitor, clock):
        seen = []
        monitor.subscribe(seen.append)
        ev = monitor.record_event("customProbe")
        assert seen[0]["type"] == "event"
        assert seen[0]["data"] is ev
        assert seen[0]["timestamp"] == clock.now()

    def test_non_callable_rejected(self, monitor, state):
        unsubscribe = monitor.subscribe("not a function")
        assert callable(unsubscribe)
        assert unsubscribe() is None
        assert state.subscribers == []

    def test_unsubscribe_function(self, monitor):
        seen = []
        unsubscribe = monitor.subscribe(seen.append)
        unsubscribe()
        monitor.record_event("customProbe")
        assert seen == []
        assert monitor.unsubscribe(seen.append) is False

    def test_failing_subscriber_isolated(self, monitor, sink):
        seen = []

        def broken(_msg):
            raise ValueError("boom")

        monitor.subscribe(broken)
        monitor.subscribe(seen.append)
        assert monitor.record_event("customProbe") is not None
        assert len(seen) == 1
        assert "Subscriber notification failed" in sink.messages("error")


# ═══════════════════════════════════════════════════════════════════════════
#  Acknowledgement and active alerts
# ═══════════════════════════════════════════════════════════════════════════


class TestAcknowledge:
    def test_unknown_id_returns_false(self, monitor, state):
        monitor.record_event("xssAttempts")
        assert monitor.acknowledge_alert("ALR-999999") is False
        assert state.alerts[0].status is AlertStatus.ACTIVE

    def test_acknowledge_known_alert(self, monitor, state, clock):
        monitor.record_event("xssAttempts")
        clock.advance(42)
        assert monitor.acknowledge_alert("ALR-000001", "analyst") is True
        alert = state.alerts[0]
        assert alert.status is AlertStatus.ACKNOWLEDGED
        assert alert.acknowledged_by == "analyst"
        assert alert.acknowledged_at == clock.now()

    def test_acknowledge_twice_returns_false(self, monitor):
        monitor.record_event("xssAttempts")
        assert monitor.acknowledge_alert("ALR-000001") is True
        assert monitor.acknowledge_alert("ALR-000001") is False

    def test_actor_truncated(self, monitor, state):
        monitor.record_event("xssAttempts")
        monitor.acknowledge_alert("ALR-000001", "a" * 80)
        assert state.alerts[0].acknowledged_by == "a" * 50

    def test_default_actor_is_system(self, monitor, state):
        monitor.record_event("xssAttempts")
        monitor.acknowledge_alert("ALR-000001")
        assert state.alerts[0].acknowledged_by == "system"

    def test_acknowledgment_notification(self, monitor):
        seen = []
        monitor.record_event("xssAttempts")
        monitor.subscribe(seen.append)
        monitor.acknowledge_alert("ALR-000001")
        assert [m["type"] for m in seen] == ["acknowledgment"]

    def test_overdue_alert_can_be_acknowledged(self, monitor, state, clock):
        monitor.record_event("xssAttempts")
        clock.advance(16 * MINUTE)
        monitor.review_alert_status()
        assert state.alerts[0].status is AlertStatus.OVERDUE
        assert monitor.acknowledge_alert("ALR-000001") is True

    def test_active_alerts_annotated(self, monitor, clock):
        record_n(monitor, "failedAuthAttempts", 3)
        clock.advance(100)
        active = monitor.get_active_alerts()
        assert len(active) == 1
        assert active[0]["elapsed"] == 100
        assert active[0]["time_to_response"] == 3600 - 100

    def test_acknowledged_alert_not_active(self, monitor):
        monitor.record_event("xssAttempts")
        monitor.acknowledge_alert("ALR-000001")
        assert monitor.get_active_alerts() == []

    def test_time_to_response_never_negative(self, monitor, clock):
        monitor.record_event("xssAttempts")
        clock.advance(2 * 3600)
        assert monitor.get_active_alerts()[0]["time_to_response"] == 0


# ═══════════════════════════════════════════════════════════════════════════
#  Periodic work
# ═══════════════════════════════════════════════════════════════════════════


class TestReviewAlertStatus:
    def test_overdue_critical_escalated(self, monitor, state, clock, sink):
        seen = []
        monitor.record_event("xssAttempts")
        monitor.subscribe(seen.append)
        clock.advance(15 * MINUTE + 1)
        overdue = monitor.review_alert_status()
        assert [a.alert_id for a in overdue] == ["ALR-000001"]
        assert state.alerts[0].status is AlertStatus.OVERDUE
        assert [m["type"] for m in seen] == ["escalation"]
        assert "Alert response time exceeded" in sink.messages("error")

    def test_overdue_high_not_escalated(self, monitor, clock):
        seen = []
        record_n(monitor, "failedAuthAttempts", 3)
        monitor.subscribe(seen.append)
        clock.advance(3601)
        assert len(monitor.review_alert_status()) == 1
        assert seen == []

    def test_overdue_marked_once(self, monitor, clock):
        monitor.record_event("xssAttempts")
        clock.advance(16 * MINUTE)
        assert len(monitor.review_alert_status()) == 1
        assert monitor.review_alert_status() == []

    def test_within_sla_untouched(self, monitor, state, clock):
        monitor.record_event("xssAttempts")
        clock.advance(10 * MINUTE)
        assert monitor.review_alert_status() == []
        assert state.alerts[0].status is AlertStatus.ACTIVE


class TestCleanup:
    def test_old_events_removed_from_metrics(self, monitor, clock):
        monitor.record_event("customProbe")
        clock.advance(8 * DAY)
        removed_events, _ = monitor.cleanup_expired_data()
        assert removed_events == 1
        assert "customProbe" not in monitor.get_metrics()

    def test_recent_events_kept(self, monitor, clock):
        monitor.record_event("customProbe")
        clock.advance(6 * DAY)
        monitor.record_event("customProbe")
        clock.advance(2 * DAY)
        assert monitor.cleanup_expired_data() == (1, 0)
        assert monitor.get_metrics()["customProbe"].total == 1

    def test_acknowledged_alert_kept_for_audit(self, monitor, state, clock):
        monitor.record_event("xssAttempts")
        monitor.record_event("unauthorizedAccess")
        monitor.acknowledge_alert("ALR-000001")
        clock.advance(8 * DAY)
        _, removed_alerts = monitor.cleanup_expired_data()
        assert removed_alerts == 1
        assert [a.alert_id for a in state.alerts] == ["ALR-000001"]


class TestSpikes:
    def test_spike_records_anomaly(self, monitor, state):
        record_n(monitor, "customProbe", 24)
        assert monitor.check_metric_spikes() == 1
        anomaly = state.buffers[ANOMALY_EVENT][0]
        assert anomaly.details["eventType"] == "customProbe"
        assert anomaly.details["currentHour"] == 24
        assert anomaly.details["average"] == 1.0
        assert anomaly.details["spike"] == 24.0

    def test_single_event_no_spike(self, monitor):
        monitor.record_event("customProbe")
        assert monitor.check_metric_spikes() == 0

    def test_anomaly_type_excluded_from_scan(self, monitor, state):
        record_n(monitor, ANOMALY_EVENT, 24)
        assert monitor.check_metric_spikes() == 0


# ═══════════════════════════════════════════════════════════════════════════
#  Performance and health
# ═══════════════════════════════════════════════════════════════════════════


class TestPerformance:
    def test_slow_processing_records_degradation_once(self, config, clock, sink):
        ticks = itertools.count(0.0, 0.1)  # every timer read is 100 ms later
        state = MonitorState(config, clock, log_sink=sink, perf_timer=lambda: next(ticks))
        monitor = EventMonitor(state)
        monitor.record_event("customProbe")
        assert len(state.buffers[PERFORMANCE_EVENT]) == 1
        assert state.buffers[PERFORMANCE_EVENT][0].details["avgProcessingTime"] == 100
        assert state.alerts[0].type == PERFORMANCE_EVENT

    def test_fast_processing_no_degradation(self, monitor, state):
        record_n(monitor, "customProbe", 5)
        assert PERFORMANCE_EVENT not in state.buffers
        assert monitor.check_performance_health() is True

    def test_event_count_tracked(self, monitor, state):
        record_n(monitor, "customProbe", 4)
        assert state.perf.event_count == 4


class TestHealthCheck:
    def test_missing_dispatcher_module_unhealthy(self, monitor):
        report = monitor.perform_health_check()
        assert report["status"] == HealthStatus.UNHEALTHY.value
        assert report["checks"]["modules"]["modules"] == {
            "EventMonitor": True,
            "AlertDispatcher": False,
        }

    def test_healthy_with_both_modules(self, monitor, dispatcher):
        report = monitor.perform_health_check()
        assert report["status"] == "healthy"
        assert set(report["checks"]) == {"modules", "alerts", "metrics", "performance"}
        assert report["performance"]["event_count"] == 0

    def test_active_critical_alert_unhealthy(self, monitor, dispatcher):
        monitor.record_event("xssAttempts")
        report = monitor.perform_health_check()
        assert report["status"] == "unhealthy"
        assert report["checks"]["alerts"]["critical_alerts"] == 1

    def test_register_module(self, monitor, config):
        config.required_modules = ["EventMonitor", "InputSanitizer"]
        monitor.register_module("InputSanitizer")
        assert monitor.perform_health_check()["checks"]["modules"]["healthy"] is True

    def test_internal_failure_reports_error(self, monitor, monkeypatch):
        def boom(**_kwargs):
            raise RuntimeError("metrics store unavailable")

        monkeypatch.setattr("src.monitor.health.run_health_check", boom)
        report = monitor.perform_health_check()
        assert report["status"] == "error"
        assert report["error"] == "metrics store unavailable"


class TestLifecycle:
    def test_start_registers_periodic_tasks(self, monitor, state):
        monitor.start()
        names = {t.name for t in state.scheduler.pending()}
        assert names == {"metrics_check", "health_check", "alert_review", "retention_cleanup"}

    def test_stop_cancels_tasks(self, monitor, state):
        monitor.start()
        monitor.stop()
        assert state.scheduler.pending() == []

    def test_periodic_review_runs_on_schedule(self, monitor, state):
        monitor.start()
        monitor.record_event("xssAttempts")
        state.scheduler.advance(16 * MINUTE)
        assert state.alerts[0].status is AlertStatus.OVERDUE
