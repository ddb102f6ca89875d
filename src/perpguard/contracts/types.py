"""perpguard contract enums.

All enums are strict string enums.
"""

from enum import Enum


class PositionSide(str, Enum):
    """Direction of a leveraged position."""

    LONG = "LONG"
    SHORT = "SHORT"


class MarginMode(str, Enum):
    """Whether collateral is shared (CROSS) or ring-fenced (ISOLATED)."""

    CROSS = "CROSS"
    ISOLATED = "ISOLATED"


class RiskTier(str, Enum):
    """Risk tier derived from margin ratio."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EXTREME = "EXTREME"


AT_RISK_TIERS = frozenset({RiskTier.HIGH, RiskTier.EXTREME})


class ActionType(str, Enum):
    """Action requested from the execution layer."""

    CLOSE = "CLOSE"
    REDUCE_BY = "REDUCE_BY"
    SET_TP = "SET_TP"
    SET_SL = "SET_SL"
    ADD_MARGIN = "ADD_MARGIN"
    HEDGE = "HEDGE"  # Open an opposite position of equal size


class OutcomeStatus(str, Enum):
    """Terminal status reported by the execution layer."""

    CONFIRMED = "CONFIRMED"
    FAILED = "FAILED"


class PriceDirection(str, Enum):
    """Direction of a mark price move between two ticks."""

    UP = "UP"
    DOWN = "DOWN"
    FLAT = "FLAT"
