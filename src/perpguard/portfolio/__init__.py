"""Portfolio-level views over position risk metrics."""

from perpguard.portfolio.aggregator import PortfolioEvaluation, aggregate, summarize_positions
from perpguard.portfolio.monitor import PositionRiskMonitor, RiskTierChange
from perpguard.portfolio.sorting import SortKey, sort_positions

__all__ = [
    "PortfolioEvaluation",
    "PositionRiskMonitor",
    "RiskTierChange",
    "SortKey",
    "aggregate",
    "sort_positions",
    "summarize_positions",
]
