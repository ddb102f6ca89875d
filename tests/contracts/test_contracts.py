"""
Tests for perpguard data contracts.

Contracts are frozen, reject unknown fields, keep Decimal precision and
serialize Decimals as strings in JSON mode.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

import pytest
from pydantic import ValidationError

from perpguard.contracts import (
    ActionOutcome,
    ActionRequest,
    ActionType,
    MarkPriceTick,
    OutcomeStatus,
    PortfolioSummary,
    Position,
    PositionSide,
    RiskMetrics,
    RiskTier,
    parse_decimal,
)
from perpguard.errors import ExecutionFailed
from perpguard.risk import compute_risk_metrics


def _position_data(**overrides: Any) -> dict[str, Any]:
    data: dict[str, Any] = {
        "id": "BTC-LONG-1",
        "market": "BTC-USD",
        "side": "LONG",
        "size": "1",
        "entry_price": "42500",
        "leverage": "10",
        "margin": "4250",
    }
    data.update(overrides)
    return data


class TestParseDecimal:
    """parse_decimal accepted and rejected inputs."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("42500.5", Decimal("42500.5")),
            (" 1.25 ", Decimal("1.25")),
            (10, Decimal("10")),
            (0.1, Decimal("0.1")),
            (Decimal("3"), Decimal("3")),
        ],
    )
    def test_accepted(self, value: object, expected: Decimal) -> None:
        assert parse_decimal(value) == expected

    @pytest.mark.parametrize("value", [True, "abc", None, [1]])
    def test_rejected(self, value: object) -> None:
        with pytest.raises(ValueError):
            parse_decimal(value)


class TestPosition:
    """Position contract."""

    def test_parse_from_strings(self) -> None:
        position = Position.model_validate(_position_data())
        assert position.side == PositionSide.LONG
        assert position.size == Decimal("1")
        assert position.is_long
        assert position.opposite_side == PositionSide.SHORT
        assert position.entry_notional == Decimal("42500")

    def test_float_input_keeps_short_repr(self) -> None:
        position = Position.model_validate(_position_data(entry_price=0.1))
        assert position.entry_price == Decimal("0.1")

    def test_extra_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Position.model_validate(_position_data(pnl="100"))

    def test_frozen(self) -> None:
        position = Position.model_validate(_position_data())
        with pytest.raises(ValidationError):
            position.size = Decimal("2")  # type: ignore[misc]

    def test_unknown_side_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Position.model_validate(_position_data(side="FLAT"))

    @pytest.mark.parametrize("rank", [0, 6])
    def test_adl_rank_bounds(self, rank: int) -> None:
        with pytest.raises(ValidationError):
            Position.model_validate(_position_data(adl_rank=rank))

    def test_json_roundtrip_keeps_precision(self) -> None:
        position = Position.model_validate(_position_data(entry_price="42500.123456789"))
        dumped = position.model_dump(mode="json")
        assert dumped["entry_price"] == "42500.123456789"
        assert Position.model_validate(dumped) == position


class TestRiskMetrics:
    """RiskMetrics display rounding."""

    def test_rounded_half_even(self) -> None:
        metrics = compute_risk_metrics(Position.model_validate(_position_data()), "43000")
        rounded = metrics.rounded()
        assert rounded.roe == Decimal("11.76")
        assert rounded.margin_ratio == Decimal("6.10")
        assert rounded.risk_tier == RiskTier.HIGH
        assert metrics.roe != rounded.roe

    def test_rounded_funding(self) -> None:
        metrics = compute_risk_metrics(
            Position.model_validate(_position_data()), "43000", funding_rate="0.000125"
        )
        assert metrics.rounded().estimated_funding == Decimal("-5.38")

    def test_adl_rank_required_in_range(self) -> None:
        metrics = compute_risk_metrics(Position.model_validate(_position_data()), "43000")
        data = metrics.model_dump()
        data["adl_rank"] = 0
        with pytest.raises(ValidationError):
            RiskMetrics.model_validate(data)


class TestPortfolioSummary:
    """PortfolioSummary.empty."""

    def test_empty(self) -> None:
        summary = PortfolioSummary.empty(skipped=3)
        assert summary.position_count == 0
        assert summary.skipped_count == 3
        assert summary.total_pnl == Decimal("0")
        assert summary.margin_utilization is None


class TestMarkPriceTick:
    """MarkPriceTick contract."""

    def test_parse(self) -> None:
        tick = MarkPriceTick.model_validate(
            {"market": "BTC-USD", "price": "43000", "funding_rate": "0.0001", "ts": 1}
        )
        assert tick.price == Decimal("43000")
        assert tick.funding_rate == Decimal("0.0001")

    def test_ts_required(self) -> None:
        with pytest.raises(ValidationError):
            MarkPriceTick.model_validate({"market": "BTC-USD", "price": "43000"})


class TestActionRequest:
    """Per-type payload requirements."""

    def _data(self, **overrides: Any) -> dict[str, Any]:
        data: dict[str, Any] = {
            "request_id": "req_1",
            "type": "CLOSE",
            "position_id": "BTC-LONG-1",
            "market": "BTC-USD",
            "ts": 1,
        }
        data.update(overrides)
        return data

    def test_close_needs_nothing_else(self) -> None:
        request = ActionRequest.model_validate(self._data())
        assert request.type == ActionType.CLOSE

    @pytest.mark.parametrize("action", ["REDUCE_BY", "ADD_MARGIN"])
    def test_amount_required(self, action: str) -> None:
        with pytest.raises(ValidationError, match="requires amount"):
            ActionRequest.model_validate(self._data(type=action))

    @pytest.mark.parametrize("action", ["SET_TP", "SET_SL"])
    def test_price_required(self, action: str) -> None:
        with pytest.raises(ValidationError, match="requires price"):
            ActionRequest.model_validate(self._data(type=action))

    def test_hedge_requires_side(self) -> None:
        with pytest.raises(ValidationError, match="HEDGE requires side"):
            ActionRequest.model_validate(self._data(type="HEDGE", amount="1"))


class TestActionOutcome:
    """ActionOutcome status helpers."""

    def test_confirmed(self) -> None:
        outcome = ActionOutcome(
            request_id="req_1",
            position_id="BTC-LONG-1",
            status=OutcomeStatus.CONFIRMED,
            settlement_ref="block-1",
        )
        assert outcome.is_confirmed
        outcome.raise_for_status()

    def test_failed_raises(self) -> None:
        outcome = ActionOutcome(
            request_id="req_1",
            position_id="BTC-LONG-1",
            status=OutcomeStatus.FAILED,
            reason="reverted",
        )
        assert not outcome.is_confirmed
        with pytest.raises(ExecutionFailed, match="reverted") as exc_info:
            outcome.raise_for_status()
        assert exc_info.value.outcome is outcome
