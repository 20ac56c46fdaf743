"""Shared fixtures for security event monitor tests."""

from __future__ import annotations

from typing import Any

import pytest

from src.alerting.channels import NotificationChannel
from src.alerting.dispatcher import AlertDispatcher
from src.contracts.alert import Alert
from src.contracts.enums import AlertStatus, ChannelKind, Severity
from src.monitor.config import MonitorConfig
from src.monitor.engine import EventMonitor
from src.monitor.state import MonitorState
from src.shared.clock import ManualClock

T0 = 1_767_225_600.0  # 2026-01-01T00:00:00Z
MINUTE = 60.0
HOUR = 3600.0
DAY = 86400.0


# ── Helper: create Alert with sensible defaults ─────────────────────────


def make_alert(
    *,
    alert_id: str = "ALR-000001",
    type: str = "failedAuthAttempts",
    severity: Severity = Severity.HIGH,
    count: int = 3,
    threshold: int = 3,
    window_sec: float = 300.0,
    created_at: float = T0,
    sla: float = HOUR,
    status: AlertStatus = AlertStatus.ACTIVE,
    details: dict[str, Any] | None = None,
) -> Alert:
    return Alert(
        alert_id=alert_id,
        type=type,
        severity=severity,
        count=count,
        threshold=threshold,
        window_sec=window_sec,
        created_at=created_at,
        response_deadline=created_at + sla,
        status=status,
        details=details or {},
    )


# ── Recording doubles ───────────────────────────────────────────────────


class RecordingSink:
    """Stands in for ``secure_log``; keeps every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def __call__(self, level: str, message: str, details: dict[str, Any]) -> None:
        self.calls.append((level, message, details))

    def messages(self, level: str | None = None) -> list[str]:
        return [m for lv, m, _ in self.calls if level is None or lv == level]


class RecordingChannel(NotificationChannel):
    title = "Recording"

    def __init__(self, kind: ChannelKind) -> None:
        self.kind = kind
        self.received: list[Alert] = []
        self.fail = False

    def notify(self, alert: Alert) -> None:
        if self.fail:
            raise RuntimeError(f"{self.kind.value} backend down")
        self.received.append(alert)


class FakePushHandle:
    def __init__(self) -> None:
        self.closed = False

    def close(self) -> None:
        self.closed = True


class FakePushBackend:
    def __init__(self, permission: str = "granted", on_request: str = "granted") -> None:
        self._permission = permission
        self._on_request = on_request
        self.requests = 0
        self.shown: list[dict[str, Any]] = []

    def permission(self) -> str:
        return self._permission

    def request_permission(self) -> str:
        self.requests += 1
        self._permission = self._on_request
        return self._permission

    def show(self, title: str, **kwargs: Any) -> FakePushHandle:
        handle = FakePushHandle()
        self.shown.append({"title": title, "handle": handle, **kwargs})
        return handle


class RecordingTonePlayer:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.played: list[tuple[float, float]] = []

    def play(self, frequency_hz: float, duration_sec: float) -> None:
        if self.fail:
            raise OSError("no audio device")
        self.played.append((frequency_hz, duration_sec))


# ── Fixtures ────────────────────────────────────────────────────────────


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(T0)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def config() -> MonitorConfig:
    return MonitorConfig()


@pytest.fixture
def state(config, clock, sink) -> MonitorState:
    # constant perf timer: processing time is always 0 ms
    return MonitorState(config, clock, log_sink=sink, perf_timer=lambda: 0.0)


@pytest.fixture
def monitor(state) -> EventMonitor:
    return EventMonitor(state)


@pytest.fixture
def channels() -> dict[ChannelKind, RecordingChannel]:
    kinds = (ChannelKind.CONSOLE, ChannelKind.PUSH, ChannelKind.DASHBOARD, ChannelKind.SOUND)
    return {k: RecordingChannel(k) for k in kinds}


@pytest.fixture
def dispatcher(state, monitor, channels) -> AlertDispatcher:
    d = AlertDispatcher(state, channels)
    d.attach(monitor)
    return d


def record_n(monitor: EventMonitor, event_type: str, n: int, spacing: float = 0.0, details=None) -> None:
    """Record *n* events of one type, advancing the manual clock between them."""
    for i in range(n):
        if i and spacing:
            monitor.state.clock.advance(spacing)
        monitor.record_event(event_type, details or {})
