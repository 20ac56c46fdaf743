"""Monitor configuration — defaults plus optional ``config/monitoring.yaml``.

Every key is optional in YAML; missing keys fall back to the defaults
below.  Durations in YAML are seconds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from src.contracts.enums import ChannelKind, Severity
from src.contracts.rules import EscalationPolicy, EscalationStep, ThresholdRule
from src.shared.config_loader import load_yaml

log = logging.getLogger(__name__)

MINUTE = 60.0
HOUR = 60 * MINUTE
DAY = 24 * HOUR

DEFAULT_THRESHOLDS: dict[str, tuple[int, float, Severity]] = {
    "failedAuthAttempts": (3, 5 * MINUTE, Severity.HIGH),
    "xssAttempts": (1, MINUTE, Severity.CRITICAL),
    "codeInjectionAttempts": (1, MINUTE, Severity.CRITICAL),
    "logInjectionAttempts": (1, MINUTE, Severity.HIGH),
    "unauthorizedAccess": (1, MINUTE, Severity.CRITICAL),
    "suspiciousInputs": (10, HOUR, Severity.MEDIUM),
    "tabnabbingAttempts": (5, 10 * MINUTE, Severity.MEDIUM),
    "performanceDegradation": (1, 5 * MINUTE, Severity.HIGH),
}

DEFAULT_RESPONSE_SLA: dict[Severity, float] = {
    Severity.CRITICAL: 15 * MINUTE,
    Severity.HIGH: HOUR,
    Severity.MEDIUM: 4 * HOUR,
    Severity.LOW: DAY,
}

_C, _P, _D, _S = ChannelKind.CONSOLE, ChannelKind.PUSH, ChannelKind.DASHBOARD, ChannelKind.SOUND

DEFAULT_ESCALATION: dict[Severity, tuple[list[tuple[float, tuple[ChannelKind, ...]]], int]] = {
    Severity.CRITICAL: ([(0, (_C, _P, _D, _S)), (5 * MINUTE, (_C, _P)), (15 * MINUTE, (_C,))], 3),
    Severity.HIGH: ([(0, (_C, _D)), (30 * MINUTE, (_C, _P)), (HOUR, (_C,))], 2),
    Severity.MEDIUM: ([(0, (_D,)), (2 * HOUR, (_C,))], 1),
    Severity.LOW: ([(0, (_D,))], 0),
}

DEFAULT_PREFERENCES: dict[str, bool] = {
    ChannelKind.CONSOLE.value: True,
    ChannelKind.PUSH.value: True,
    ChannelKind.DASHBOARD.value: True,
    ChannelKind.SOUND.value: False,
    ChannelKind.EMAIL.value: False,
}

DEFAULT_INTERVALS: dict[str, float] = {
    "metrics_check": 30.0,
    "health_check": MINUTE,
    "alert_review": 2 * MINUTE,
    "retention_cleanup": 5 * MINUTE,
    "pattern_detection": 2 * MINUTE,
    "correlation_cleanup": 10 * MINUTE,
}


@dataclass
class MonitorConfig:
    """Resolved configuration for one MonitorState."""

    rules: dict[str, ThresholdRule] = field(default_factory=dict)
    response_sla: dict[Severity, float] = field(default_factory=lambda: dict(DEFAULT_RESPONSE_SLA))
    escalation: dict[Severity, EscalationPolicy] = field(default_factory=dict)
    preferences: dict[str, bool] = field(default_factory=lambda: dict(DEFAULT_PREFERENCES))
    intervals: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_INTERVALS))
    retention_sec: float = 7 * DAY
    history_retention_sec: float = DAY
    correlation_window_sec: float = 5 * MINUTE
    correlation_notify_every: int = 3
    pattern_min_events: int = 5
    pattern_min_intervals: int = 3
    pattern_max_avg_interval_sec: float = 10 * MINUTE
    spike_factor: float = 3.0
    max_avg_processing_ms: float = 50.0
    max_events_per_sec: float = 10.0
    required_modules: list[str] = field(
        default_factory=lambda: ["EventMonitor", "AlertDispatcher"]
    )
    push_auto_close_sec: float = 10.0
    sound_spacing_sec: float = 0.4
    signals_path: str | None = None

    def __post_init__(self) -> None:
        if not self.rules:
            self.rules = _rules_from_table(DEFAULT_THRESHOLDS)
        if not self.escalation:
            self.escalation = _policies_from_table(DEFAULT_ESCALATION)

    def sla_for(self, severity: Severity) -> float:
        return self.response_sla.get(severity, self.response_sla.get(Severity.LOW, DAY))

    @classmethod
    def from_dict(cls, cfg: dict[str, Any]) -> MonitorConfig:
        """Build from a parsed ``monitoring.yaml`` mapping."""
        out = cls()

        thresholds = cfg.get("thresholds") or {}
        for etype, spec in thresholds.items():
            if not isinstance(spec, dict):
                log.warning("Threshold '%s' ignored: expected a mapping", etype)
                continue
            if spec.get("enabled", True) is False:
                out.rules.pop(etype, None)
                continue
            base = out.rules.get(etype)
            out.rules[etype] = ThresholdRule(
                event_type=etype,
                threshold=max(1, int(spec.get("threshold", base.threshold if base else 1))),
                window_sec=float(spec.get("window_sec", base.window_sec if base else MINUTE)),
                severity=Severity(spec.get("severity", base.severity if base else "medium")),
            )

        for sev, seconds in (cfg.get("response_sla") or {}).items():
            out.response_sla[Severity(sev)] = float(seconds)

        for sev, spec in (cfg.get("escalation") or {}).items():
            severity = Severity(sev)
            steps = tuple(
                EscalationStep(
                    delay_sec=float(step.get("delay_sec", 0)),
                    channels=tuple(ChannelKind(c) for c in step.get("channels", [])),
                )
                for step in spec.get("steps", [])
            )
            out.escalation[severity] = EscalationPolicy(
                severity=severity,
                steps=steps,
                max_escalations=int(spec.get("max_escalations", max(0, len(steps) - 1))),
            )

        for name, enabled in (cfg.get("preferences") or {}).items():
            if name in out.preferences:
                out.preferences[name] = bool(enabled)
            else:
                log.warning("Unknown channel preference '%s' ignored", name)

        out.intervals.update({k: float(v) for k, v in (cfg.get("intervals") or {}).items()})

        retention = cfg.get("retention") or {}
        out.retention_sec = float(retention.get("events_sec", out.retention_sec))
        out.history_retention_sec = float(retention.get("history_sec", out.history_retention_sec))

        corr = cfg.get("correlation") or {}
        out.correlation_window_sec = float(corr.get("window_sec", out.correlation_window_sec))
        out.correlation_notify_every = max(1, int(corr.get("notify_every", out.correlation_notify_every)))

        pattern = cfg.get("pattern") or {}
        out.pattern_min_events = int(pattern.get("min_events", out.pattern_min_events))
        out.pattern_min_intervals = int(pattern.get("min_intervals", out.pattern_min_intervals))
        out.pattern_max_avg_interval_sec = float(
            pattern.get("max_avg_interval_sec", out.pattern_max_avg_interval_sec)
        )

        health = cfg.get("health") or {}
        out.spike_factor = float(health.get("spike_factor", out.spike_factor))
        out.max_avg_processing_ms = float(health.get("max_avg_processing_ms", out.max_avg_processing_ms))
        out.max_events_per_sec = float(health.get("max_events_per_sec", out.max_events_per_sec))
        if "required_modules" in health:
            out.required_modules = [str(m) for m in health["required_modules"]]

        channels = cfg.get("channels") or {}
        out.push_auto_close_sec = float(channels.get("push_auto_close_sec", out.push_auto_close_sec))
        out.sound_spacing_sec = float(channels.get("sound_spacing_sec", out.sound_spacing_sec))
        out.signals_path = channels.get("signals_path", out.signals_path)

        log.info(
            "Monitor config: %d threshold rules, %d escalation policies",
            len(out.rules), len(out.escalation),
        )
        return out


def load_config(path: str | Path | None = None) -> MonitorConfig:
    """Load ``monitoring.yaml`` from *path*, or return defaults when None."""
    if path is None:
        return MonitorConfig()
    return MonitorConfig.from_dict(load_yaml(path))


def _rules_from_table(table: dict[str, tuple[int, float, Severity]]) -> dict[str, ThresholdRule]:
    return {
        etype: ThresholdRule(event_type=etype, threshold=t, window_sec=w, severity=s)
        for etype, (t, w, s) in table.items()
    }


def _policies_from_table(table: dict) -> dict[Severity, EscalationPolicy]:
    return {
        sev: EscalationPolicy(
            severity=sev,
            steps=tuple(EscalationStep(delay_sec=float(d), channels=ch) for d, ch in steps),
            max_escalations=max_esc,
        )
        for sev, (steps, max_esc) in table.items()
    }
