"""
Risk/PnL calculator for leveraged positions.

Implements, for one position at one mark price:
- unrealized_pnl = price_diff * size
- roe = unrealized_pnl / margin * 100
- liquidation_price = entry -/+ entry * (1/leverage - maintenance_margin_rate)
- margin_ratio = distance from mark to liquidation price, percent of mark
- risk_tier from margin_ratio thresholds

All arithmetic is Decimal. Functions are pure; RiskCalculator only adds
counters and market matching on top.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal
from typing import TYPE_CHECKING

from perpguard.contracts.base import HUNDRED, ZERO, parse_decimal, parse_optional_decimal
from perpguard.contracts.risk_metrics import RiskMetrics
from perpguard.contracts.types import PositionSide, RiskTier
from perpguard.errors import InvalidInput, InvalidPosition
from perpguard.logging_config import get_logger
from perpguard.metrics import EngineMetrics
from perpguard.risk.params import DEFAULT_RISK_PARAMS, RiskParams

if TYPE_CHECKING:
    from perpguard.contracts import MarkPriceTick, Position

logger = get_logger(__name__)

ONE = Decimal("1")


def _require_positive(position: Position, field: str, value: Decimal) -> None:
    if not value.is_finite() or value <= 0:
        raise InvalidPosition(position.id, field, f"{field} must be > 0, got {value}")


def validate_position(position: Position, params: RiskParams = DEFAULT_RISK_PARAMS) -> None:
    """Check Position invariants.

    Raises:
        InvalidPosition: If size, entry_price or margin is not positive, or
            leverage is outside [1, params.max_leverage].
    """
    _require_positive(position, "size", position.size)
    _require_positive(position, "entry_price", position.entry_price)
    _require_positive(position, "margin", position.margin)

    leverage = position.leverage
    if not leverage.is_finite() or leverage < ONE:
        raise InvalidPosition(position.id, "leverage", f"leverage must be >= 1, got {leverage}")
    if leverage > params.max_leverage:
        raise InvalidPosition(
            position.id,
            "leverage",
            f"leverage {leverage} exceeds platform maximum {params.max_leverage}",
        )

    for field in ("take_profit", "stop_loss"):
        trigger = getattr(position, field)
        if trigger is not None:
            _require_positive(position, field, trigger)


def parse_mark_price(mark_price: object) -> Decimal:
    """Parse and validate a mark price.

    Raises:
        InvalidInput: If the value is not a finite positive number.
    """
    try:
        price = parse_decimal(mark_price)
    except ValueError as e:
        raise InvalidInput(f"malformed mark price: {mark_price!r}") from e
    if not price.is_finite() or price <= 0:
        raise InvalidInput(f"mark price must be > 0, got {price}")
    return price


def classify_risk_tier(
    margin_ratio: Decimal,
    params: RiskParams = DEFAULT_RISK_PARAMS,
) -> RiskTier:
    """Map margin ratio (percent) to a risk tier.

    Thresholds are strict: a ratio exactly at a threshold falls into the
    lower tier (15 -> MEDIUM, 8 -> HIGH, 3 -> EXTREME with defaults).
    """
    if margin_ratio > params.low_threshold:
        return RiskTier.LOW
    if margin_ratio > params.medium_threshold:
        return RiskTier.MEDIUM
    if margin_ratio > params.high_threshold:
        return RiskTier.HIGH
    return RiskTier.EXTREME


def estimate_adl_rank(roe: Decimal, params: RiskParams = DEFAULT_RISK_PARAMS) -> int:
    """Estimate the auto-deleveraging queue rank (1 = back of queue).

    One rank per params.adl_roe_step percent of |ROE|, capped at
    params.adl_max_rank.
    """
    steps = int((abs(roe) / params.adl_roe_step).to_integral_value(rounding=ROUND_FLOOR))
    return min(params.adl_max_rank, max(1, steps + 1))


def compute_liquidation_distance(
    entry_price: Decimal,
    leverage: Decimal,
    params: RiskParams = DEFAULT_RISK_PARAMS,
) -> tuple[Decimal, bool]:
    """Distance from entry to the modeled liquidation price.

    Returns:
        (distance, clamped). When 1/leverage <= maintenance_margin_rate the
        raw distance is <= 0; it is clamped to 0 and clamped is True.
    """
    distance = entry_price * (ONE / leverage - params.maintenance_margin_rate)
    if distance <= 0:
        return ZERO, True
    return distance, False


def compute_risk_metrics(
    position: Position,
    mark_price: object,
    params: RiskParams | None = None,
    *,
    funding_rate: object = None,
) -> RiskMetrics:
    """Compute RiskMetrics for one position at one mark price.

    Args:
        position: Position snapshot (not mutated).
        mark_price: Current mark price (Decimal, str or int).
        params: Risk model parameters. Defaults to DEFAULT_RISK_PARAMS.
        funding_rate: Optional funding rate per interval; enables
            estimated_funding.

    Returns:
        RiskMetrics with full Decimal precision.

    Raises:
        InvalidInput: Malformed or non-positive mark price, or malformed
            funding rate.
        InvalidPosition: Position violates its invariants.

    Example:
        Long 1 BTC @ 42500, 10x, margin 4250, mark 43000:
        unrealized_pnl=500, liquidation_price=40375, risk_tier=HIGH.
    """
    params = params or DEFAULT_RISK_PARAMS
    mark = parse_mark_price(mark_price)
    validate_position(position, params)

    try:
        rate = parse_optional_decimal(funding_rate)
    except ValueError as e:
        raise InvalidInput(f"malformed funding rate: {funding_rate!r}") from e
    if rate is not None and not rate.is_finite():
        raise InvalidInput(f"funding rate must be finite, got {rate}")

    entry = position.entry_price
    is_long = position.side == PositionSide.LONG

    price_diff = mark - entry if is_long else entry - mark
    unrealized_pnl = price_diff * position.size
    roe = unrealized_pnl / position.margin * HUNDRED
    position_value = position.size * mark

    distance, clamped = compute_liquidation_distance(entry, position.leverage, params)
    liquidation_price = entry - distance if is_long else entry + distance

    if is_long:
        margin_ratio = (mark - liquidation_price) / mark * HUNDRED
    else:
        margin_ratio = (liquidation_price - mark) / mark * HUNDRED
    margin_ratio = max(margin_ratio, ZERO)

    # A position that can never reach maintenance margin is never at risk
    risk_tier = RiskTier.LOW if clamped else classify_risk_tier(margin_ratio, params)

    estimated_funding: Decimal | None = None
    if rate is not None:
        payment = position_value * rate
        estimated_funding = -payment if is_long else payment

    return RiskMetrics(
        position_id=position.id,
        market=position.market,
        side=position.side,
        mark_price=mark,
        unrealized_pnl=unrealized_pnl,
        roe=roe,
        liquidation_price=liquidation_price,
        liquidation_distance=distance,
        liquidation_clamped=clamped,
        margin_ratio=margin_ratio,
        risk_tier=risk_tier,
        position_value=position_value,
        adl_rank=position.adl_rank or estimate_adl_rank(roe, params),
        estimated_funding=estimated_funding,
    )


class RiskCalculator:
    """Risk calculator bound to one set of RiskParams.

    Evaluates positions against MarkPriceTicks and counts successes and
    rejections. Stateless apart from the counters.
    """

    def __init__(
        self,
        params: RiskParams | None = None,
        metrics: EngineMetrics | None = None,
    ) -> None:
        """Initialize calculator.

        Args:
            params: Risk model parameters. Uses defaults if not provided.
            metrics: Shared counters. A private instance is created if None.
        """
        self._params = params or DEFAULT_RISK_PARAMS
        self.metrics = metrics or EngineMetrics()

    @property
    def params(self) -> RiskParams:
        """Risk model parameters in use."""
        return self._params

    def compute(self, position: Position, mark_price: object) -> RiskMetrics:
        """Compute metrics at a bare mark price (no funding)."""
        try:
            result = compute_risk_metrics(position, mark_price, self._params)
        except (InvalidInput, InvalidPosition):
            self.metrics.evaluation_failures += 1
            raise
        self.metrics.evaluations += 1
        return result

    def evaluate(self, position: Position, tick: MarkPriceTick) -> RiskMetrics:
        """Compute metrics for a position at a tick of the same market.

        Raises:
            InvalidInput: Tick market differs from position market, or the
                tick price is not positive.
            InvalidPosition: Position violates its invariants.
        """
        try:
            if tick.market != position.market:
                raise InvalidInput(
                    f"tick market {tick.market} does not match position market {position.market}"
                )
            result = compute_risk_metrics(
                position,
                tick.price,
                self._params,
                funding_rate=tick.funding_rate,
            )
        except (InvalidInput, InvalidPosition):
            self.metrics.evaluation_failures += 1
            raise

        self.metrics.evaluations += 1
        logger.debug(
            "risk evaluated",
            extra={
                "position_id": position.id,
                "risk_tier": result.risk_tier.value,
                "margin_ratio": str(result.margin_ratio),
            },
        )
        return result
