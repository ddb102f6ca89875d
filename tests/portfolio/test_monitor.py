"""
Tests for the live risk monitor: tick-driven re-evaluation and tier changes.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from perpguard.contracts import MarkPriceTick, Position, PositionSide, RiskTier
from perpguard.portfolio import PositionRiskMonitor, RiskTierChange


def _btc_long(**overrides: Any) -> Position:
    """Liquidation price 40375 at 10x."""
    base: dict[str, Any] = {
        "id": "BTC-LONG-1",
        "market": "BTC-USD",
        "side": PositionSide.LONG,
        "size": "1",
        "entry_price": "42500",
        "leverage": "10",
        "margin": "4250",
    }
    base.update(overrides)
    return Position(**base)


def _tick(price: str, ts: int, market: str = "BTC-USD") -> MarkPriceTick:
    return MarkPriceTick(market=market, price=price, ts=ts)


class TestMonitorTicks:
    """Tick handling."""

    def test_no_metrics_before_first_tick(self) -> None:
        monitor = PositionRiskMonitor()
        assert monitor.set_positions([_btc_long()]) == []
        assert monitor.metrics_for("BTC-LONG-1") is None
        assert monitor.errors == {"BTC-LONG-1": "no mark price for BTC-USD"}

    def test_first_tick_evaluates_without_change(self) -> None:
        monitor = PositionRiskMonitor()
        monitor.set_positions([_btc_long()])
        assert monitor.on_tick(_tick("43000", 1)) == []
        metrics = monitor.metrics_for("BTC-LONG-1")
        assert metrics is not None
        assert metrics.risk_tier == RiskTier.HIGH
        assert monitor.errors == {}

    def test_tier_change_reported(self) -> None:
        monitor = PositionRiskMonitor()
        monitor.set_positions([_btc_long()])
        monitor.on_tick(_tick("43000", 1))

        changes = monitor.on_tick(_tick("41500", 2))
        assert changes == [
            RiskTierChange(
                position_id="BTC-LONG-1",
                market="BTC-USD",
                previous=RiskTier.HIGH,
                current=RiskTier.EXTREME,
                margin_ratio=changes[0].margin_ratio,
                ts=2,
            )
        ]
        assert changes[0].margin_ratio < Decimal("3")

    def test_same_tier_no_change(self) -> None:
        monitor = PositionRiskMonitor()
        monitor.set_positions([_btc_long()])
        monitor.on_tick(_tick("43000", 1))
        assert monitor.on_tick(_tick("42000", 2)) == []

    def test_stale_tick_ignored(self) -> None:
        monitor = PositionRiskMonitor()
        monitor.set_positions([_btc_long()])
        monitor.on_tick(_tick("43000", 5))
        assert monitor.on_tick(_tick("41000", 4)) == []
        metrics = monitor.metrics_for("BTC-LONG-1")
        assert metrics is not None
        assert metrics.mark_price == Decimal("43000")
        assert monitor.calculator.metrics.ticks_stale == 1

    def test_other_market_untouched(self) -> None:
        monitor = PositionRiskMonitor()
        monitor.set_positions([_btc_long()])
        monitor.on_tick(_tick("43000", 1))
        evaluations = monitor.calculator.metrics.evaluations
        monitor.on_tick(_tick("2700", 2, market="ETH-USD"))
        assert monitor.calculator.metrics.evaluations == evaluations


class TestMonitorSnapshots:
    """Position snapshot replacement."""

    def test_new_snapshot_reports_tier_change(self) -> None:
        monitor = PositionRiskMonitor()
        monitor.set_positions([_btc_long()])
        monitor.on_tick(_tick("41500", 1))

        changes = monitor.set_positions([_btc_long(leverage="5")])
        assert len(changes) == 1
        assert changes[0].previous == RiskTier.EXTREME
        assert changes[0].current == RiskTier.MEDIUM

    def test_removed_position_forgotten(self) -> None:
        monitor = PositionRiskMonitor()
        monitor.set_positions([_btc_long()])
        monitor.on_tick(_tick("43000", 1))
        monitor.set_positions([])
        assert monitor.metrics_for("BTC-LONG-1") is None
        assert monitor.positions == []

    def test_invalid_snapshot_drops_metrics(self) -> None:
        monitor = PositionRiskMonitor()
        monitor.set_positions([_btc_long()])
        monitor.on_tick(_tick("43000", 1))

        assert monitor.set_positions([_btc_long(size="0")]) == []
        assert monitor.metrics_for("BTC-LONG-1") is None
        assert "size" in monitor.errors["BTC-LONG-1"]

    def test_tier_change_reported_across_invalid_snapshot(self) -> None:
        monitor = PositionRiskMonitor()
        monitor.set_positions([_btc_long()])
        monitor.on_tick(_tick("43000", 1))

        monitor.set_positions([_btc_long(size="0")])
        assert monitor.on_tick(_tick("41500", 2)) == []

        changes = monitor.set_positions([_btc_long()])
        assert [(c.previous, c.current, c.ts) for c in changes] == [
            (RiskTier.HIGH, RiskTier.EXTREME, 2)
        ]

    def test_summary_counts_unevaluated_as_skipped(self) -> None:
        monitor = PositionRiskMonitor()
        eth = Position(
            id="ETH-SHORT-1",
            market="ETH-USD",
            side=PositionSide.SHORT,
            size="2",
            entry_price="2650",
            leverage="5",
            margin="1060",
        )
        monitor.set_positions([_btc_long(), eth])
        monitor.on_tick(_tick("43000", 1))

        summary = monitor.summary(account_balance="10000")
        assert summary.position_count == 1
        assert summary.skipped_count == 1
        assert summary.total_pnl == Decimal("500")
        assert summary.margin_utilization == Decimal("42.5")
