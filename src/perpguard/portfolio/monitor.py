"""Live risk monitor.

Keeps the latest RiskMetrics per position and reports risk tier transitions
as mark price ticks arrive. Ticks go through a MarkPriceBook, so they are
applied in arrival order and stale ones are ignored.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from perpguard.errors import InvalidInput, InvalidPosition
from perpguard.logging_config import get_logger
from perpguard.market.mark_book import MarkPriceBook
from perpguard.portfolio.aggregator import aggregate
from perpguard.risk.calculator import RiskCalculator

if TYPE_CHECKING:
    from collections.abc import Iterable
    from decimal import Decimal

    from perpguard.contracts import (
        MarkPriceTick,
        PortfolioSummary,
        Position,
        RiskMetrics,
        RiskTier,
    )

logger = get_logger(__name__)


@dataclass(frozen=True)
class RiskTierChange:
    """A position moved from one risk tier to another."""

    position_id: str
    market: str
    previous: RiskTier
    current: RiskTier
    margin_ratio: Decimal
    ts: int


class PositionRiskMonitor:
    """Per-session view of positions and their current risk.

    Not safe for concurrent writers.
    """

    def __init__(
        self,
        calculator: RiskCalculator | None = None,
        book: MarkPriceBook | None = None,
    ) -> None:
        """Initialize monitor.

        Args:
            calculator: Calculator to use. A default one is created if None.
            book: Mark price book. Shares the calculator's params and
                counters if None.
        """
        self.calculator = calculator or RiskCalculator()
        self.book = book or MarkPriceBook(self.calculator.params, self.calculator.metrics)
        self._positions: dict[str, Position] = {}
        self._metrics: dict[str, RiskMetrics] = {}
        self._last_tier: dict[str, RiskTier] = {}  # survives failed evaluations
        self._errors: dict[str, str] = {}

    @property
    def positions(self) -> list[Position]:
        """Current position snapshots."""
        return list(self._positions.values())

    @property
    def errors(self) -> dict[str, str]:
        """position_id -> reason for positions without current metrics."""
        return dict(self._errors)

    def metrics_for(self, position_id: str) -> RiskMetrics | None:
        """Latest metrics for a position."""
        return self._metrics.get(position_id)

    def set_positions(self, positions: Iterable[Position]) -> list[RiskTierChange]:
        """Install a fresh position snapshot and re-evaluate everything.

        Returns:
            Tier changes for positions that were already tracked.
        """
        self._positions = {p.id: p for p in positions}
        for stale_id in set(self._metrics) - set(self._positions):
            del self._metrics[stale_id]
        for stale_id in set(self._last_tier) - set(self._positions):
            del self._last_tier[stale_id]
        self._errors = {}

        changes: list[RiskTierChange] = []
        for position in self._positions.values():
            change = self._reevaluate(position)
            if change is not None:
                changes.append(change)
        return changes

    def on_tick(self, tick: MarkPriceTick) -> list[RiskTierChange]:
        """Apply a tick and re-evaluate positions in its market.

        Returns:
            Tier changes caused by the tick, empty if the tick was stale.
        """
        if self.book.apply(tick) is None:
            return []

        changes: list[RiskTierChange] = []
        for position in self._positions.values():
            if position.market != tick.market:
                continue
            change = self._reevaluate(position)
            if change is not None:
                changes.append(change)
        return changes

    def summary(self, account_balance: object = None) -> PortfolioSummary:
        """Aggregate current metrics; positions without metrics count as skipped."""
        pairs = [(p, self._metrics[p.id]) for p in self._positions.values() if p.id in self._metrics]
        return aggregate(
            pairs,
            skipped=len(self._positions) - len(pairs),
            account_balance=account_balance,
        )

    def _reevaluate(self, position: Position) -> RiskTierChange | None:
        tick = self.book.latest(position.market)
        if tick is None:
            self._errors[position.id] = f"no mark price for {position.market}"
            return None

        previous = self._last_tier.get(position.id)
        try:
            metrics = self.calculator.evaluate(position, tick)
        except (InvalidInput, InvalidPosition) as e:
            # Keep showing nothing rather than stale numbers for a bad snapshot
            self._metrics.pop(position.id, None)
            self._errors[position.id] = str(e)
            logger.warning(
                "position evaluation failed",
                extra={"position_id": position.id, "reason": str(e)},
            )
            return None

        self._metrics[position.id] = metrics
        self._last_tier[position.id] = metrics.risk_tier
        self._errors.pop(position.id, None)

        if previous is None or previous == metrics.risk_tier:
            return None

        logger.info(
            "risk tier changed",
            extra={
                "position_id": position.id,
                "from_tier": previous.value,
                "to_tier": metrics.risk_tier.value,
            },
        )
        return RiskTierChange(
            position_id=position.id,
            market=position.market,
            previous=previous,
            current=metrics.risk_tier,
            margin_ratio=metrics.margin_ratio,
            ts=tick.ts,
        )
