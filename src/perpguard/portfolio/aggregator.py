"""
Position aggregator.

Folds (Position, RiskMetrics) pairs into a PortfolioSummary. The fold never
raises for a bad entry: invalid positions are excluded and counted, so one
malformed snapshot cannot blank the whole summary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from perpguard.contracts import (
    AT_RISK_TIERS,
    MarkPriceTick,
    PortfolioSummary,
    Position,
    PositionSide,
    RiskMetrics,
)
from perpguard.contracts.base import HUNDRED, ZERO, parse_optional_decimal
from perpguard.errors import InvalidInput, InvalidPosition
from perpguard.logging_config import get_logger
from perpguard.risk.calculator import RiskCalculator

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger = get_logger(__name__)


@dataclass
class PortfolioEvaluation:
    """Metrics for every valid position plus the summary over them.

    Attributes:
        metrics: position_id -> RiskMetrics, in input order.
        summary: Aggregate over the valid positions.
        skipped: position_id -> reason for every excluded position.
    """

    metrics: dict[str, RiskMetrics] = field(default_factory=dict)
    summary: PortfolioSummary = field(default_factory=PortfolioSummary.empty)
    skipped: dict[str, str] = field(default_factory=dict)


def aggregate(
    pairs: Iterable[tuple[Position, RiskMetrics]],
    *,
    skipped: int = 0,
    account_balance: object = None,
) -> PortfolioSummary:
    """Reduce (Position, RiskMetrics) pairs into a PortfolioSummary.

    Args:
        pairs: Positions with their metrics at the current tick.
        skipped: Positions already excluded upstream, carried into
            skipped_count.
        account_balance: Optional balance for margin_utilization.

    Returns:
        PortfolioSummary. Empty input yields the all-zero summary.
        Sums are exact Decimal additions, so the result does not depend on
        input order.
    """
    total_pnl = ZERO
    total_margin = ZERO
    total_notional = ZERO
    long_pnl = ZERO
    short_pnl = ZERO
    long_count = 0
    short_count = 0
    high_risk_count = 0
    max_adl_rank = 0

    for position, metrics in pairs:
        if metrics.position_id != position.id:
            skipped += 1
            logger.warning(
                "metrics do not match position, excluded",
                extra={"position_id": position.id, "metrics_position_id": metrics.position_id},
            )
            continue

        total_pnl += metrics.unrealized_pnl
        total_margin += position.margin
        total_notional += metrics.position_value

        if position.side == PositionSide.LONG:
            long_count += 1
            long_pnl += metrics.unrealized_pnl
        else:
            short_count += 1
            short_pnl += metrics.unrealized_pnl

        if metrics.risk_tier in AT_RISK_TIERS:
            high_risk_count += 1
        max_adl_rank = max(max_adl_rank, metrics.adl_rank)

    count = long_count + short_count
    margin_utilization = _margin_utilization(total_margin, account_balance)

    if count == 0:
        summary = PortfolioSummary.empty(skipped=skipped)
        if margin_utilization is not None:
            summary = summary.model_copy(update={"margin_utilization": margin_utilization})
        return summary

    return PortfolioSummary(
        total_pnl=total_pnl,
        total_margin=total_margin,
        total_notional=total_notional,
        long_count=long_count,
        short_count=short_count,
        risk_exposure_ratio=Decimal(high_risk_count) / Decimal(count),
        position_count=count,
        skipped_count=skipped,
        high_risk_count=high_risk_count,
        long_pnl=long_pnl,
        short_pnl=short_pnl,
        average_leverage=total_notional / total_margin if total_margin > 0 else ZERO,
        total_pnl_pct=total_pnl / total_margin * HUNDRED if total_margin > 0 else ZERO,
        margin_utilization=margin_utilization,
        max_adl_rank=max_adl_rank,
    )


def _margin_utilization(total_margin: Decimal, account_balance: object) -> Decimal | None:
    try:
        balance = parse_optional_decimal(account_balance)
    except ValueError as e:
        raise InvalidInput(f"malformed account balance: {account_balance!r}") from e
    if balance is None:
        return None
    if not balance.is_finite() or balance <= 0:
        return ZERO
    return total_margin / balance * HUNDRED


def summarize_positions(
    positions: Iterable[Position],
    marks: Mapping[str, MarkPriceTick],
    calculator: RiskCalculator | None = None,
    *,
    account_balance: object = None,
) -> PortfolioEvaluation:
    """Evaluate every position at its market's mark and aggregate.

    Positions that fail validation, have no mark price, or repeat an id
    already seen are excluded and reported in PortfolioEvaluation.skipped.

    Args:
        positions: Position snapshots.
        marks: market -> latest MarkPriceTick.
        calculator: Calculator to use. A default one is created if None.
        account_balance: Optional balance for margin_utilization.
    """
    calculator = calculator or RiskCalculator()
    evaluation = PortfolioEvaluation()
    pairs: list[tuple[Position, RiskMetrics]] = []
    excluded = 0

    for position in positions:
        if position.id in evaluation.metrics or position.id in evaluation.skipped:
            reason = "duplicate position id"
        else:
            tick = marks.get(position.market)
            if tick is None:
                reason = f"no mark price for {position.market}"
            else:
                try:
                    metrics = calculator.evaluate(position, tick)
                except (InvalidInput, InvalidPosition) as e:
                    reason = str(e)
                else:
                    evaluation.metrics[position.id] = metrics
                    pairs.append((position, metrics))
                    continue

        evaluation.skipped.setdefault(position.id, reason)
        excluded += 1
        calculator.metrics.positions_skipped += 1
        logger.warning(
            "position excluded from summary",
            extra={"position_id": position.id, "reason": reason},
        )

    evaluation.summary = aggregate(
        pairs,
        skipped=excluded,
        account_balance=account_balance,
    )
    return evaluation
