"""Mark price handling: latest tick per market, in arrival order."""

from perpguard.market.mark_book import MarkPriceBook, TickUpdate, classify_move

__all__ = [
    "MarkPriceBook",
    "TickUpdate",
    "classify_move",
]
