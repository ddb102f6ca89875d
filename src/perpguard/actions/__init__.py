"""Position action coordination: intents to requests, outcomes to state."""

from perpguard.actions.coordinator import BatchResult, PositionActionCoordinator
from perpguard.actions.state import ActionState, PositionActionTracker

__all__ = [
    "ActionState",
    "BatchResult",
    "PositionActionCoordinator",
    "PositionActionTracker",
]
