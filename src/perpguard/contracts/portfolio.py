"""PortfolioSummary contract.

Aggregate of RiskMetrics over a set of positions.
Producer: Aggregator
Consumer: presentation layer
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated

from pydantic import Field

from perpguard.contracts.base import ZERO, ContractBase


class PortfolioSummary(ContractBase):
    """Portfolio-level totals.

    risk_exposure_ratio is a fraction (0.0-1.0) of positions in the HIGH
    or EXTREME tier.
    """

    total_pnl: Annotated[Decimal, Field(description="Sum of unrealized PnL")] = Field()
    total_margin: Annotated[Decimal, Field(description="Sum of allocated margin")] = Field()
    total_notional: Annotated[Decimal, Field(description="Sum of notional at mark")] = Field()
    long_count: int = Field(ge=0)
    short_count: int = Field(ge=0)
    risk_exposure_ratio: Annotated[Decimal, Field(description="Share of at-risk positions")] = (
        Field()
    )
    position_count: int = Field(default=0, ge=0, description="Positions included")
    skipped_count: int = Field(default=0, ge=0, description="Positions excluded as invalid")
    high_risk_count: int = Field(default=0, ge=0)
    long_pnl: Annotated[Decimal, Field(description="Unrealized PnL of longs")] = ZERO
    short_pnl: Annotated[Decimal, Field(description="Unrealized PnL of shorts")] = ZERO
    average_leverage: Annotated[
        Decimal,
        Field(description="Total notional / total margin (0 if no margin)"),
    ] = ZERO
    total_pnl_pct: Annotated[
        Decimal,
        Field(description="Total PnL / total margin (percent)"),
    ] = ZERO
    margin_utilization: Annotated[
        Decimal | None,
        Field(description="Total margin / account balance (percent)"),
    ] = None
    max_adl_rank: int = Field(default=0, ge=0, le=5)

    @classmethod
    def empty(cls, *, skipped: int = 0) -> PortfolioSummary:
        """All-zero summary."""
        return cls(
            total_pnl=ZERO,
            total_margin=ZERO,
            total_notional=ZERO,
            long_count=0,
            short_count=0,
            risk_exposure_ratio=ZERO,
            skipped_count=skipped,
        )
