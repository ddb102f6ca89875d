"""Ordering of position rows for display."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from decimal import Decimal

    from perpguard.contracts import Position, RiskMetrics

Row = tuple["Position", "RiskMetrics"]


class SortKey(str, Enum):
    """Column to sort position rows by."""

    PNL = "PNL"  # Unrealized PnL
    SIZE = "SIZE"  # Notional at mark
    TIME = "TIME"  # Open time
    RISK = "RISK"  # Margin ratio


_KEY_FUNCS: dict[SortKey, Callable[[Row], Decimal | int]] = {
    SortKey.PNL: lambda row: row[1].unrealized_pnl,
    SortKey.SIZE: lambda row: row[1].position_value,
    SortKey.TIME: lambda row: row[0].opened_at,
    SortKey.RISK: lambda row: row[1].margin_ratio,
}


def sort_positions(
    rows: Iterable[Row],
    key: SortKey = SortKey.PNL,
    *,
    descending: bool = True,
) -> list[Row]:
    """Sort (Position, RiskMetrics) rows.

    Ties are broken by position id ascending in both directions, so the
    order is deterministic for any input order.
    """
    ordered = sorted(rows, key=lambda row: row[0].id)
    ordered.sort(key=_KEY_FUNCS[SortKey(key)], reverse=descending)
    return ordered
