"""Static rule tables: threshold rules and escalation policies."""

from __future__ import annotations

from dataclasses import dataclass

from src.contracts.enums import ChannelKind, Severity


@dataclass(frozen=True, slots=True)
class ThresholdRule:
    event_type: str
    threshold: int
    window_sec: float
    severity: Severity


@dataclass(frozen=True, slots=True)
class EscalationStep:
    delay_sec: float
    channels: tuple[ChannelKind, ...]


@dataclass(frozen=True, slots=True)
class EscalationPolicy:
    """Ordered steps for one severity.

    Step 0 fires immediately; steps ``1..max_escalations`` are scheduled
    at their delays.  Steps past ``max_escalations`` are never fired.
    """

    severity: Severity
    steps: tuple[EscalationStep, ...]
    max_escalations: int

    @property
    def initial(self) -> EscalationStep | None:
        return self.steps[0] if self.steps else None

    @property
    def scheduled(self) -> tuple[EscalationStep, ...]:
        return self.steps[1 : 1 + max(0, self.max_escalations)]
