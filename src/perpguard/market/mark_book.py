"""Latest mark price per market.

Ticks for a market are applied in arrival order; a tick older than the one
already stored is dropped. The book never replays history.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from perpguard.contracts import MarkPriceTick, PriceDirection
from perpguard.logging_config import get_logger
from perpguard.metrics import EngineMetrics
from perpguard.risk.calculator import parse_mark_price
from perpguard.risk.params import DEFAULT_RISK_PARAMS, RiskParams

logger = get_logger(__name__)


@dataclass(frozen=True)
class TickUpdate:
    """Result of applying a tick to the book.

    Attributes:
        tick: The tick now stored for the market.
        previous_price: Price of the replaced tick (None for the first tick).
        direction: UP/DOWN if the relative move reaches the threshold, else FLAT.
    """

    tick: MarkPriceTick
    previous_price: Decimal | None
    direction: PriceDirection

    @property
    def market(self) -> str:
        """Market of the tick."""
        return self.tick.market


def classify_move(
    previous: Decimal | None,
    current: Decimal,
    threshold: Decimal,
) -> PriceDirection:
    """Direction of a price move, FLAT below the relative threshold."""
    if previous is None or previous <= 0:
        return PriceDirection.FLAT
    change = (current - previous) / previous
    if abs(change) < threshold or change == 0:
        return PriceDirection.FLAT
    return PriceDirection.UP if change > 0 else PriceDirection.DOWN


class MarkPriceBook:
    """Holds the latest MarkPriceTick per market."""

    def __init__(
        self,
        params: RiskParams | None = None,
        metrics: EngineMetrics | None = None,
    ) -> None:
        """Initialize an empty book.

        Args:
            params: Provides price_change_threshold.
            metrics: Shared counters. A private instance is created if None.
        """
        self._params = params or DEFAULT_RISK_PARAMS
        self.metrics = metrics or EngineMetrics()
        self._ticks: dict[str, MarkPriceTick] = {}

    def apply(self, tick: MarkPriceTick) -> TickUpdate | None:
        """Apply a tick.

        Returns:
            TickUpdate, or None if the tick is older than the stored one.

        Raises:
            InvalidInput: If the tick price is not a positive finite number.
        """
        parse_mark_price(tick.price)

        current = self._ticks.get(tick.market)
        if current is not None and tick.ts < current.ts:
            self.metrics.ticks_stale += 1
            logger.warning(
                "stale mark tick dropped",
                extra={"market": tick.market, "tick_ts": tick.ts, "stored_ts": current.ts},
            )
            return None

        previous_price = current.price if current is not None else None
        self._ticks[tick.market] = tick
        self.metrics.ticks_applied += 1

        return TickUpdate(
            tick=tick,
            previous_price=previous_price,
            direction=classify_move(
                previous_price, tick.price, self._params.price_change_threshold
            ),
        )

    def latest(self, market: str) -> MarkPriceTick | None:
        """Latest tick for a market."""
        return self._ticks.get(market)

    def price(self, market: str) -> Decimal | None:
        """Latest mark price for a market."""
        tick = self._ticks.get(market)
        return tick.price if tick is not None else None

    def markets(self) -> list[str]:
        """Markets with at least one tick, sorted."""
        return sorted(self._ticks)

    def snapshot(self) -> dict[str, MarkPriceTick]:
        """Copy of the latest tick per market."""
        return dict(self._ticks)

    def __contains__(self, market: object) -> bool:
        return market in self._ticks

    def __len__(self) -> int:
        return len(self._ticks)
