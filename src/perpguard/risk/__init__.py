"""Risk/PnL calculator for leveraged positions.

One canonical set of formulas for unrealized PnL, ROE, liquidation price,
margin ratio and risk tier.
"""

from perpguard.risk.calculator import (
    RiskCalculator,
    classify_risk_tier,
    compute_liquidation_distance,
    compute_risk_metrics,
    estimate_adl_rank,
    parse_mark_price,
    validate_position,
)
from perpguard.risk.params import DEFAULT_RISK_PARAMS, RiskParams, load_risk_params

__all__ = [
    "DEFAULT_RISK_PARAMS",
    "RiskCalculator",
    "RiskParams",
    "classify_risk_tier",
    "compute_liquidation_distance",
    "compute_risk_metrics",
    "estimate_adl_rank",
    "load_risk_params",
    "parse_mark_price",
    "validate_position",
]
