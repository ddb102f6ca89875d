"""perpguard data contracts.

All contracts follow these invariants:
- Money/price/qty fields use Decimal (not float)
- Strict enums for side/tier/action
- No extra fields allowed (extra='forbid')
- Frozen: the core borrows snapshots and never mutates them
"""

from perpguard.contracts.action import ActionOutcome, ActionRequest
from perpguard.contracts.base import ContractBase, parse_decimal
from perpguard.contracts.mark_price import MarkPriceTick
from perpguard.contracts.portfolio import PortfolioSummary
from perpguard.contracts.position import Position
from perpguard.contracts.risk_metrics import RiskMetrics
from perpguard.contracts.types import (
    AT_RISK_TIERS,
    ActionType,
    MarginMode,
    OutcomeStatus,
    PositionSide,
    PriceDirection,
    RiskTier,
)

__all__ = [
    "AT_RISK_TIERS",
    "ActionOutcome",
    "ActionRequest",
    "ActionType",
    "ContractBase",
    "MarginMode",
    "MarkPriceTick",
    "OutcomeStatus",
    "PortfolioSummary",
    "Position",
    "PositionSide",
    "PriceDirection",
    "RiskMetrics",
    "RiskTier",
    "parse_decimal",
]
