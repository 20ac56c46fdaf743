"""Per-alert escalation state machine (dispatcher view).

    dispatched ──step fires──▶ escalating(step N) ──last step──▶ max_escalations_reached
        │                              │
        └──────── acknowledgement ─────┴──▶ acknowledged

``acknowledged`` and ``max_escalations_reached`` are terminal.  A policy
with no scheduled steps goes straight to ``max_escalations_reached``
after dispatch.  Terminal trackers stay visible until cleared manually.
"""

from __future__ import annotations

from dataclasses import dataclass

from src.contracts.enums import EscalationState
from src.contracts.rules import EscalationPolicy


@dataclass
class EscalationTracker:
    alert_id: str
    policy: EscalationPolicy
    dispatched_at: float
    state: EscalationState = EscalationState.DISPATCHED
    step: int = 0

    @property
    def terminal(self) -> bool:
        return self.state in (
            EscalationState.ACKNOWLEDGED,
            EscalationState.MAX_ESCALATIONS_REACHED,
        )

    @property
    def total_steps(self) -> int:
        return len(self.policy.scheduled)

    @property
    def escalating(self) -> bool:
        """Steps are still pending for this alert."""
        return not self.terminal

    def dispatched(self) -> None:
        if self.total_steps == 0:
            self.state = EscalationState.MAX_ESCALATIONS_REACHED

    def escalate(self, step: int) -> None:
        if self.terminal:
            return
        self.step = step
        self.state = (
            EscalationState.MAX_ESCALATIONS_REACHED
            if step >= self.total_steps
            else EscalationState.ESCALATING
        )

    def acknowledge(self) -> None:
        if self.state is not EscalationState.MAX_ESCALATIONS_REACHED:
            self.state = EscalationState.ACKNOWLEDGED
