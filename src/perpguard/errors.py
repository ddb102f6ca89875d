"""Error taxonomy for the risk engine.

Calculator errors (InvalidInput, InvalidPosition) are local and recoverable:
the caller decides whether to show stale data. Coordinator validation errors
(InvalidAmount, InvalidTrigger) block an action before any request is
emitted. ExecutionFailed carries a failure reported by the execution layer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from perpguard.contracts.action import ActionOutcome


class RiskEngineError(Exception):
    """Base exception for perpguard."""


class InvalidInput(RiskEngineError):
    """Malformed or non-positive numeric input (mark price, trigger, tick)."""


class InvalidPosition(RiskEngineError):
    """A Position snapshot violates its invariants.

    The caller must request a fresh snapshot.
    """

    def __init__(self, position_id: str, field: str, message: str) -> None:
        super().__init__(f"position {position_id}: {message}")
        self.position_id = position_id
        self.field = field


class InvalidAmount(RiskEngineError):
    """Requested reduce/close/margin amount or percentage is out of range."""

    def __init__(self, message: str, *, position_id: str | None = None) -> None:
        super().__init__(f"position {position_id}: {message}" if position_id else message)
        self.position_id = position_id


class InvalidTrigger(RiskEngineError):
    """TP/SL trigger price on the wrong side of mark for the position."""

    def __init__(self, message: str, *, position_id: str) -> None:
        super().__init__(f"position {position_id}: {message}")
        self.position_id = position_id


class UnknownPosition(RiskEngineError, KeyError):
    """Position id is not part of the current snapshot."""

    def __init__(self, position_id: str) -> None:
        super().__init__(f"unknown position: {position_id}")
        self.position_id = position_id

    def __str__(self) -> str:
        return str(self.args[0])


class ActionInFlight(RiskEngineError):
    """An action is already pending for the position."""

    def __init__(self, position_id: str, request_id: str) -> None:
        super().__init__(f"position {position_id} already has request {request_id} in flight")
        self.position_id = position_id
        self.request_id = request_id


class AwaitingRefresh(RiskEngineError):
    """The position's last action was confirmed but no fresh snapshot arrived yet."""

    def __init__(self, position_id: str) -> None:
        super().__init__(f"position {position_id} is awaiting a refreshed snapshot")
        self.position_id = position_id


class ExecutionFailed(RiskEngineError):
    """Failure reported by the external execution collaborator."""

    def __init__(self, outcome: ActionOutcome) -> None:
        super().__init__(
            f"request {outcome.request_id} for {outcome.position_id} failed: "
            f"{outcome.reason or 'unknown reason'}"
        )
        self.outcome = outcome
