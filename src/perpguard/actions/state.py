"""Per-position action state for the coordinator.

State machine (UI-observable, not persisted):

    IDLE <-> SELECTED -> ACTION_PENDING -> CONFIRMED -> IDLE (on refresh)
                              |
                              +-> failure: back to SELECTED (or IDLE if it
                                  was never selected) with last_error set

The state is derived from the tracker's fields so the selection and the
in-flight marker cannot disagree.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from perpguard.contracts import ActionRequest


class ActionState(str, Enum):
    """UI-observable state of a position."""

    IDLE = "IDLE"
    SELECTED = "SELECTED"
    ACTION_PENDING = "ACTION_PENDING"
    CONFIRMED = "CONFIRMED"  # Awaiting a refreshed snapshot


@dataclass
class PositionActionTracker:
    """Transient action state for one position.

    Attributes:
        position_id: Tracked position.
        selected: Part of the user's selection.
        in_flight: Request awaiting a terminal report, if any.
        awaiting_refresh: Last action confirmed, fresh snapshot not yet seen.
        settlement_ref: Settlement reference of the last confirmed action.
        last_error: Reason of the last failed action.
        state_entered_ts: Timestamp when the current state was entered.
    """

    position_id: str
    selected: bool = False
    in_flight: ActionRequest | None = None
    awaiting_refresh: bool = False
    settlement_ref: str | None = None
    last_error: str | None = None
    state_entered_ts: int = 0

    @property
    def state(self) -> ActionState:
        """Current state derived from the tracker fields."""
        if self.in_flight is not None:
            return ActionState.ACTION_PENDING
        if self.awaiting_refresh:
            return ActionState.CONFIRMED
        if self.selected:
            return ActionState.SELECTED
        return ActionState.IDLE

    def set_selected(self, selected: bool, ts: int) -> None:
        """Select or deselect the position."""
        before = self.state
        self.selected = selected
        self._touch(before, ts)

    def begin(self, request: ActionRequest, ts: int) -> None:
        """Mark a request as in flight."""
        before = self.state
        self.in_flight = request
        self.last_error = None
        self._touch(before, ts)

    def confirm(self, settlement_ref: str | None, ts: int) -> None:
        """Terminal success: clear in-flight and selection, await refresh."""
        before = self.state
        self.in_flight = None
        self.selected = False
        self.awaiting_refresh = True
        self.settlement_ref = settlement_ref
        self.last_error = None
        self._touch(before, ts)

    def fail(self, reason: str, ts: int) -> None:
        """Terminal failure: clear in-flight, keep selection."""
        before = self.state
        self.in_flight = None
        self.last_error = reason
        self._touch(before, ts)

    def abandon(self, ts: int) -> None:
        """Drop the in-flight marker without an outcome."""
        before = self.state
        self.in_flight = None
        self._touch(before, ts)

    def refreshed(self, ts: int) -> None:
        """A fresh snapshot arrived after confirmation."""
        before = self.state
        self.awaiting_refresh = False
        self._touch(before, ts)

    def dwell_time_ms(self, ts: int) -> int:
        """Milliseconds spent in the current state."""
        return ts - self.state_entered_ts

    def _touch(self, before: ActionState, ts: int) -> None:
        if self.state != before:
            self.state_entered_ts = ts
