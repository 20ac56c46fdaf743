"""Notification channels — the closed set of sinks an alert can go to.

Each channel implements ``notify(alert)``.  The dispatcher looks channels
up by :class:`ChannelKind`, never by free-form string.

  console    leveled log line (error / warning / info by severity)
  push       OS/browser-style notification through a PushBackend
  dashboard  structured signal for the external dashboard UI
  sound      tone sequence through a TonePlayer

Push and sound depend on optional platform backends.  When a backend is
absent (or permission is not granted) the channel is a silent no-op.
"""

from __future__ import annotations

import abc
import json
import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar, Protocol

from src.contracts.alert import Alert
from src.contracts.enums import ChannelKind, Severity
from src.contracts.event import iso
from src.shared.clock import Clock
from src.shared.scheduler import Scheduler

log = logging.getLogger(__name__)
console_log = logging.getLogger("security.alerts")


class NotificationChannel(abc.ABC):
    kind: ClassVar[ChannelKind]
    title: ClassVar[str]

    @abc.abstractmethod
    def notify(self, alert: Alert) -> None:
        """Deliver *alert*.  May raise; the dispatcher catches per channel."""


# ═══════════════════════════════════════════════════════════════════════════
#  Console
# ═══════════════════════════════════════════════════════════════════════════


class ConsoleChannel(NotificationChannel):
    kind = ChannelKind.CONSOLE
    title = "Console Alerts"

    _LEVELS = {Severity.CRITICAL: logging.ERROR, Severity.HIGH: logging.WARNING}

    def notify(self, alert: Alert) -> None:
        level = self._LEVELS.get(alert.severity, logging.INFO)
        console_log.log(
            level,
            "[SECURITY-ALERT] %s: %d/%d events (%s) id=%s deadline=%s",
            alert.type,
            alert.count,
            alert.threshold,
            alert.severity.value,
            alert.alert_id,
            iso(alert.response_deadline),
        )


# ═══════════════════════════════════════════════════════════════════════════
#  Push
# ═══════════════════════════════════════════════════════════════════════════


class PushHandle(Protocol):
    def close(self) -> None: ...


class PushBackend(Protocol):
    """Platform notification API (desktop notifier, browser bridge, ...)."""

    def permission(self) -> str:
        """``granted``, ``denied`` or ``default``."""
        ...

    def request_permission(self) -> str: ...

    def show(
        self,
        title: str,
        *,
        body: str,
        tag: str,
        require_interaction: bool,
        data: dict[str, Any],
        actions: list[dict[str, str]],
        on_click: Callable[[], None],
    ) -> PushHandle: ...


class PushChannel(NotificationChannel):
    kind = ChannelKind.PUSH
    title = "Push Notifications"

    def __init__(
        self,
        backend: PushBackend | None,
        scheduler: Scheduler,
        *,
        auto_close_sec: float = 10.0,
        on_click: Callable[[Alert], None] | None = None,
    ) -> None:
        self.backend = backend
        self.scheduler = scheduler
        self.auto_close_sec = auto_close_sec
        self.on_click = on_click

    @property
    def available(self) -> bool:
        return self.backend is not None and self.backend.permission() == "granted"

    def request_permission(self) -> str:
        if self.backend is None:
            return "unavailable"
        current = self.backend.permission()
        if current != "default":
            return current
        return self.backend.request_permission()

    def notify(self, alert: Alert) -> None:
        if not self.available:
            return
        critical = alert.severity is Severity.CRITICAL
        handle: PushHandle | None = None

        def _clicked() -> None:
            if self.on_click is not None:
                self.on_click(alert)
            if handle is not None:
                handle.close()

        handle = self.backend.show(
            f"Security Alert: {alert.type}",
            body=f"{alert.count} events detected ({alert.severity.value} severity)",
            tag=f"alert-{alert.alert_id}",
            require_interaction=critical,
            data={"alertId": alert.alert_id, "severity": alert.severity.value},
            actions=(
                [{"action": "acknowledge", "title": "Acknowledge"},
                 {"action": "view", "title": "View Details"}]
                if critical else []
            ),
            on_click=_clicked,
        )
        if not critical:
            self.scheduler.call_later(
                self.auto_close_sec, handle.close, name="push_auto_close", key=alert.alert_id
            )


# ═══════════════════════════════════════════════════════════════════════════
#  Dashboard
# ═══════════════════════════════════════════════════════════════════════════


class DashboardChannel(NotificationChannel):
    """Emit ``{"type", "alert", "timestamp"}`` signals.

    Signals go to in-process listeners, a bounded ``recent`` buffer, and,
    when *sink_path* is set, one JSON object per line in that file (the
    Streamlit dashboard tails it).
    """

    kind = ChannelKind.DASHBOARD
    title = "Dashboard Alerts"

    def __init__(self, clock: Clock, sink_path: str | Path | None = None, history: int = 200) -> None:
        self.clock = clock
        self.sink_path = Path(sink_path) if sink_path else None
        self.listeners: list[Callable[[dict[str, Any]], None]] = []
        self.recent: deque[dict[str, Any]] = deque(maxlen=history)
        self._write_lock = threading.Lock()

    def add_listener(self, callback: Callable[[dict[str, Any]], None]) -> Callable[[], None]:
        self.listeners.append(callback)

        def _remove() -> None:
            if callback in self.listeners:
                self.listeners.remove(callback)

        return _remove

    def notify(self, alert: Alert) -> None:
        self.emit({"type": "alert", "alert": alert.to_dict(), "timestamp": iso(self.clock.now())})

    def show(self, alert: Alert | None = None) -> None:
        """Ask the UI to bring the dashboard forward."""
        self.emit({
            "type": "show",
            "alert": alert.to_dict() if alert is not None else None,
            "timestamp": iso(self.clock.now()),
        })

    def emit(self, signal: dict[str, Any]) -> None:
        self.recent.append(signal)
        if self.sink_path is not None:
            line = json.dumps(signal, ensure_ascii=False, separators=(",", ":"))
            with self._write_lock:
                self.sink_path.parent.mkdir(parents=True, exist_ok=True)
                with self.sink_path.open("a", encoding="utf-8") as fh:
                    fh.write(line + "\n")
        for listener in list(self.listeners):
            try:
                listener(signal)
            except Exception:  # noqa: BLE001
                log.exception("Dashboard listener failed")


# ═══════════════════════════════════════════════════════════════════════════
#  Sound
# ═══════════════════════════════════════════════════════════════════════════


class TonePlayer(Protocol):
    def play(self, frequency_hz: float, duration_sec: float) -> None: ...


TONE_PATTERNS: dict[Severity, tuple[int, ...]] = {
    Severity.CRITICAL: (800, 1000, 800),  # urgent
    Severity.HIGH: (600, 800),
    Severity.MEDIUM: (400,),
    Severity.LOW: (300,),
}
TONE_DURATION_SEC = 0.3


class SoundChannel(NotificationChannel):
    kind = ChannelKind.SOUND
    title = "Sound Alerts"

    def __init__(self, player: TonePlayer | None, scheduler: Scheduler, *, spacing_sec: float = 0.4) -> None:
        self.player = player
        self.scheduler = scheduler
        self.spacing_sec = spacing_sec

    def notify(self, alert: Alert) -> None:
        if self.player is None:
            return
        pattern = TONE_PATTERNS.get(alert.severity, TONE_PATTERNS[Severity.LOW])
        self._play(pattern[0])
        for i, freq in enumerate(pattern[1:], start=1):
            self.scheduler.call_later(
                i * self.spacing_sec, self._play, freq, name="tone", key=alert.alert_id
            )

    def _play(self, frequency: float) -> None:
        try:
            self.player.play(frequency, TONE_DURATION_SEC)
        except Exception as exc:  # noqa: BLE001
            # audio failures are never surfaced
            log.debug("Tone %.0f Hz failed: %s", frequency, exc)


# ═══════════════════════════════════════════════════════════════════════════
#  Registry
# ═══════════════════════════════════════════════════════════════════════════


@dataclass
class ChannelBackends:
    """Optional platform backends for the channels that need one."""

    push: PushBackend | None = None
    tones: TonePlayer | None = None
    signals_path: str | Path | None = None


def build_channels(
    scheduler: Scheduler,
    clock: Clock,
    backends: ChannelBackends | None = None,
    *,
    push_auto_close_sec: float = 10.0,
    sound_spacing_sec: float = 0.4,
    on_push_click: Callable[[Alert], None] | None = None,
) -> dict[ChannelKind, NotificationChannel]:
    b = backends or ChannelBackends()
    channels: list[NotificationChannel] = [
        ConsoleChannel(),
        PushChannel(b.push, scheduler, auto_close_sec=push_auto_close_sec, on_click=on_push_click),
        DashboardChannel(clock, sink_path=b.signals_path),
        SoundChannel(b.tones, scheduler, spacing_sec=sound_spacing_sec),
    ]
    return {ch.kind: ch for ch in channels}
