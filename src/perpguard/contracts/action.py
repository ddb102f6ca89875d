"""ActionRequest and ActionOutcome contracts.

ActionRequest: produced by the coordinator, handed to the execution layer.
ActionOutcome: terminal status reported back by the execution layer.
Neither is stored by the core.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated

from pydantic import Field, field_validator, model_validator

from perpguard.contracts.base import ContractBase, parse_optional_decimal
from perpguard.contracts.types import ActionType, OutcomeStatus, PositionSide
from perpguard.errors import ExecutionFailed


class ActionRequest(ContractBase):
    """Request for the execution layer.

    Dedupe key: request_id.
    """

    request_id: str = Field(description="Coordinator-assigned request ID")
    type: ActionType = Field(description="Requested action")
    position_id: str = Field(description="Target position")
    market: str = Field(description="Traded instrument symbol")
    side: PositionSide | None = Field(
        default=None,
        description="Side of the position to open (HEDGE only)",
    )
    amount: Annotated[Decimal | None, Field(description="Quantity or margin amount")] = None
    price: Annotated[Decimal | None, Field(description="Trigger price (TP/SL)")] = None
    batch_id: str | None = Field(default=None, description="Shared by batch fan-out requests")
    ts: int = Field(description="Emission timestamp (ms)")

    @field_validator("amount", "price", mode="before")
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal | None:
        """Parse optional Decimal fields."""
        return parse_optional_decimal(v)

    @model_validator(mode="after")
    def check_payload(self) -> ActionRequest:
        """Ensure each action type carries the fields it needs."""
        if self.type in (ActionType.REDUCE_BY, ActionType.ADD_MARGIN, ActionType.HEDGE):
            if self.amount is None:
                raise ValueError(f"{self.type.value} requires amount")
        if self.type in (ActionType.SET_TP, ActionType.SET_SL) and self.price is None:
            raise ValueError(f"{self.type.value} requires price")
        if self.type == ActionType.HEDGE and self.side is None:
            raise ValueError("HEDGE requires side")
        return self


class ActionOutcome(ContractBase):
    """Terminal status of an ActionRequest."""

    request_id: str = Field(description="From ActionRequest")
    position_id: str = Field(description="From ActionRequest")
    status: OutcomeStatus = Field(description="CONFIRMED or FAILED")
    reason: str | None = Field(default=None, description="Failure reason (rejection, revert)")
    settlement_ref: str | None = Field(
        default=None,
        description="Settlement reference (e.g. block number) for confirmed actions",
    )
    ts: int = Field(default=0, description="Report timestamp (ms)")

    @property
    def is_confirmed(self) -> bool:
        """Check if the action was confirmed."""
        return self.status == OutcomeStatus.CONFIRMED

    def raise_for_status(self) -> None:
        """Raise ExecutionFailed if the outcome is FAILED."""
        if self.status == OutcomeStatus.FAILED:
            raise ExecutionFailed(self)
