"""
Tests for MarkPriceBook: arrival-order application and stale tick drops.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from perpguard.contracts import MarkPriceTick, PriceDirection
from perpguard.errors import InvalidInput
from perpguard.market import MarkPriceBook, classify_move
from perpguard.risk import RiskParams


def _tick(price: str, ts: int, market: str = "BTC-USD") -> MarkPriceTick:
    return MarkPriceTick(market=market, price=price, ts=ts)


class TestApply:
    """MarkPriceBook.apply."""

    def test_first_tick(self) -> None:
        book = MarkPriceBook()
        update = book.apply(_tick("43000", 1))
        assert update is not None
        assert update.market == "BTC-USD"
        assert update.previous_price is None
        assert update.direction == PriceDirection.FLAT
        assert book.price("BTC-USD") == Decimal("43000")
        assert "BTC-USD" in book
        assert len(book) == 1

    def test_newer_tick_replaces(self) -> None:
        book = MarkPriceBook()
        book.apply(_tick("43000", 1))
        update = book.apply(_tick("43500", 2))
        assert update is not None
        assert update.previous_price == Decimal("43000")
        assert update.direction == PriceDirection.UP
        assert book.price("BTC-USD") == Decimal("43500")

    def test_stale_tick_dropped(self) -> None:
        book = MarkPriceBook()
        book.apply(_tick("43000", 10))
        assert book.apply(_tick("40000", 9)) is None
        assert book.price("BTC-USD") == Decimal("43000")
        assert book.metrics.ticks_stale == 1
        assert book.metrics.ticks_applied == 1

    def test_equal_timestamp_accepted(self) -> None:
        book = MarkPriceBook()
        book.apply(_tick("43000", 10))
        assert book.apply(_tick("42900", 10)) is not None
        assert book.price("BTC-USD") == Decimal("42900")

    def test_markets_independent(self) -> None:
        book = MarkPriceBook()
        book.apply(_tick("43000", 10))
        assert book.apply(_tick("2700", 1, market="ETH-USD")) is not None
        assert book.markets() == ["BTC-USD", "ETH-USD"]
        assert set(book.snapshot()) == {"BTC-USD", "ETH-USD"}

    @pytest.mark.parametrize("price", ["0", "-1"])
    def test_non_positive_price_rejected(self, price: str) -> None:
        book = MarkPriceBook()
        with pytest.raises(InvalidInput):
            book.apply(_tick(price, 1))
        assert len(book) == 0

    def test_unknown_market(self) -> None:
        book = MarkPriceBook()
        assert book.latest("BTC-USD") is None
        assert book.price("BTC-USD") is None
        assert "BTC-USD" not in book

    def test_snapshot_is_copy(self) -> None:
        book = MarkPriceBook()
        book.apply(_tick("43000", 1))
        snapshot = book.snapshot()
        book.apply(_tick("44000", 2))
        assert snapshot["BTC-USD"].price == Decimal("43000")


class TestClassifyMove:
    """Direction with the relative FLAT threshold (default 0.01%)."""

    @pytest.mark.parametrize(
        "previous,current,direction",
        [
            (None, "100", PriceDirection.FLAT),
            ("100", "100", PriceDirection.FLAT),
            ("100", "100.005", PriceDirection.FLAT),
            ("100", "100.01", PriceDirection.UP),
            ("100", "99.99", PriceDirection.DOWN),
            ("100", "105", PriceDirection.UP),
        ],
    )
    def test_classify(self, previous: str | None, current: str, direction: PriceDirection) -> None:
        prev = Decimal(previous) if previous is not None else None
        threshold = RiskParams().price_change_threshold
        assert classify_move(prev, Decimal(current), threshold) == direction

    def test_zero_threshold_reports_any_move(self) -> None:
        assert classify_move(Decimal("100"), Decimal("100.0001"), Decimal("0")) == PriceDirection.UP
