"""Base configuration for perpguard contracts.

All contracts inherit from ContractBase which enforces:
- Extra fields are forbidden
- Immutability (snapshots are borrowed, never mutated)
- Decimal serialization as strings in JSON mode
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict

ZERO = Decimal("0")
HUNDRED = Decimal("100")


class ContractBase(BaseModel):
    """Base class for all perpguard contracts."""

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        str_strip_whitespace=True,
        validate_default=True,
    )


def parse_decimal(v: Any) -> Decimal:
    """Parse value to Decimal safely.

    Accepts:
    - Decimal (passthrough)
    - str (parsed to Decimal)
    - int (converted via string to avoid precision loss)
    - float (NOT recommended, but converted via string)

    Raises:
        ValueError: If the value cannot be represented as a Decimal.
    """
    if isinstance(v, Decimal):
        return v
    if isinstance(v, bool):
        raise ValueError("Cannot convert bool to Decimal")
    if isinstance(v, (str, int)):
        try:
            return Decimal(str(v).strip())
        except InvalidOperation as e:
            raise ValueError(f"Not a decimal number: {v!r}") from e
    if isinstance(v, float):
        return Decimal(str(v))
    raise ValueError(f"Cannot convert {type(v).__name__} to Decimal")


def parse_optional_decimal(v: Any) -> Decimal | None:
    """Parse value to Decimal, passing None through."""
    if v is None:
        return None
    return parse_decimal(v)
