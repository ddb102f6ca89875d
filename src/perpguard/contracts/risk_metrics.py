"""RiskMetrics contract.

Derived risk fields for one Position at one mark price. Never persisted.
Producer: RiskCalculator
Consumer: Aggregator, PositionRiskMonitor, presentation layer
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal
from typing import Annotated

from pydantic import Field

from perpguard.contracts.base import ContractBase
from perpguard.contracts.types import AT_RISK_TIERS, PositionSide, RiskTier

_DISPLAY_FIELDS = (
    "mark_price",
    "unrealized_pnl",
    "roe",
    "liquidation_price",
    "liquidation_distance",
    "margin_ratio",
    "position_value",
)


class RiskMetrics(ContractBase):
    """Output of the calculator for one position at one tick.

    Full Decimal precision; use rounded() for display.
    """

    position_id: str = Field(description="Position the metrics belong to")
    market: str = Field(description="Traded instrument symbol")
    side: PositionSide = Field(description="LONG or SHORT")
    mark_price: Annotated[Decimal, Field(description="Mark price used")] = Field()
    unrealized_pnl: Annotated[Decimal, Field(description="Unrealized PnL (USD)")] = Field()
    roe: Annotated[Decimal, Field(description="Return on equity (percent)")] = Field()
    liquidation_price: Annotated[Decimal, Field(description="Estimated liquidation price")] = (
        Field()
    )
    liquidation_distance: Annotated[
        Decimal,
        Field(description="Distance from entry to liquidation price (clamped >= 0)"),
    ] = Field()
    liquidation_clamped: bool = Field(
        default=False,
        description="True if the position cannot reach maintenance margin under the model",
    )
    margin_ratio: Annotated[Decimal, Field(description="Margin ratio (percent, >= 0)")] = Field()
    risk_tier: RiskTier = Field(description="LOW, MEDIUM, HIGH or EXTREME")
    position_value: Annotated[Decimal, Field(description="Notional at mark (USD)")] = Field()
    adl_rank: int = Field(ge=1, le=5, description="Auto-deleveraging queue rank")
    estimated_funding: Annotated[
        Decimal | None,
        Field(description="PnL impact of the next funding payment (USD)"),
    ] = None

    @property
    def is_at_risk(self) -> bool:
        """Check if position is in the HIGH or EXTREME tier."""
        return self.risk_tier in AT_RISK_TIERS

    def rounded(self, places: int = 2) -> RiskMetrics:
        """Return a copy with monetary and percent fields quantized for display."""
        quantum = Decimal(1).scaleb(-places)
        update: dict[str, Decimal | None] = {
            name: getattr(self, name).quantize(quantum, rounding=ROUND_HALF_EVEN)
            for name in _DISPLAY_FIELDS
        }
        if self.estimated_funding is not None:
            update["estimated_funding"] = self.estimated_funding.quantize(
                quantum, rounding=ROUND_HALF_EVEN
            )
        return self.model_copy(update=update)
