"""MarkPriceTick contract.

Externally supplied, read-only mark price for one market.
Producer: market-data collaborator (feed or polling)
Consumer: MarkPriceBook, RiskCalculator
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated

from pydantic import Field, field_validator

from perpguard.contracts.base import ContractBase, parse_decimal, parse_optional_decimal


class MarkPriceTick(ContractBase):
    """Mark price (and optional funding rate) for a market at a point in time."""

    market: str = Field(description="Traded instrument symbol")
    price: Annotated[Decimal, Field(description="Mark price")] = Field()
    funding_rate: Annotated[
        Decimal | None,
        Field(description="Funding rate per interval (fraction)"),
    ] = None
    ts: int = Field(description="Tick timestamp (ms)")

    @field_validator("price", mode="before")
    @classmethod
    def parse_price(cls, v: object) -> Decimal:
        """Parse price to Decimal."""
        return parse_decimal(v)

    @field_validator("funding_rate", mode="before")
    @classmethod
    def parse_funding_rate(cls, v: object) -> Decimal | None:
        """Parse funding rate to Decimal if provided."""
        return parse_optional_decimal(v)
