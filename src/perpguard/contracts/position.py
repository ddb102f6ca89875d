"""Position contract.

Immutable-per-tick snapshot of a leveraged position.
Producer: account/session collaborator (external)
Consumer: RiskCalculator, PositionActionCoordinator

Invariants (size > 0, entry_price > 0, leverage >= 1, margin > 0) are
checked by the calculator, not here: snapshots arrive from outside and a
malformed one must be reported as InvalidPosition rather than rejected at
parse time.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated

from pydantic import Field, field_validator

from perpguard.contracts.base import ContractBase, parse_decimal, parse_optional_decimal
from perpguard.contracts.types import MarginMode, PositionSide


class Position(ContractBase):
    """Snapshot of a leveraged directional exposure."""

    id: str = Field(description="Stable identifier (market + side + open sequence)")
    market: str = Field(description="Traded instrument symbol")
    side: PositionSide = Field(description="LONG or SHORT")
    size: Annotated[Decimal, Field(description="Quantity of the underlying")] = Field()
    entry_price: Annotated[Decimal, Field(description="Average fill price")] = Field()
    leverage: Annotated[Decimal, Field(description="Leverage multiplier")] = Field()
    margin_mode: MarginMode = Field(default=MarginMode.CROSS, description="CROSS or ISOLATED")
    margin: Annotated[Decimal, Field(description="Allocated collateral (USD)")] = Field()
    take_profit: Annotated[Decimal | None, Field(description="Take-profit trigger")] = None
    stop_loss: Annotated[Decimal | None, Field(description="Stop-loss trigger")] = None
    opened_at: int = Field(default=0, description="Creation timestamp (ms)")
    adl_rank: int | None = Field(
        default=None,
        ge=1,
        le=5,
        description="Venue-supplied auto-deleveraging queue rank (1-5)",
    )

    @field_validator("size", "entry_price", "leverage", "margin", mode="before")
    @classmethod
    def parse_decimal_fields(cls, v: object) -> Decimal:
        """Parse Decimal fields."""
        return parse_decimal(v)

    @field_validator("take_profit", "stop_loss", mode="before")
    @classmethod
    def parse_trigger_fields(cls, v: object) -> Decimal | None:
        """Parse optional trigger prices."""
        return parse_optional_decimal(v)

    @property
    def is_long(self) -> bool:
        """Check if position is long."""
        return self.side == PositionSide.LONG

    @property
    def opposite_side(self) -> PositionSide:
        """Side of a position that would hedge this one."""
        return PositionSide.SHORT if self.is_long else PositionSide.LONG

    @property
    def entry_notional(self) -> Decimal:
        """Notional value at entry price."""
        return self.size * self.entry_price
