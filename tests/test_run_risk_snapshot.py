"""
Tests for scripts/run_risk_snapshot.py snapshot evaluation.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import orjson
import pytest
from scripts.run_risk_snapshot import build_report, load_snapshot, main

SNAPSHOT: dict[str, Any] = {
    "positions": [
        {
            "id": "BTC-LONG-1",
            "market": "BTC-USD",
            "side": "LONG",
            "size": "1",
            "entry_price": "42500",
            "leverage": "10",
            "margin": "4250",
            "opened_at": 1,
        },
        {
            "id": "ETH-SHORT-1",
            "market": "ETH-USD",
            "side": "SHORT",
            "size": "2",
            "entry_price": "2650",
            "leverage": "5",
            "margin": "1060",
            "opened_at": 2,
        },
        {
            "id": "DOGE-LONG-1",
            "market": "DOGE-USD",
            "side": "LONG",
            "size": "1000",
            "entry_price": "0.08",
            "leverage": "2",
            "margin": "40",
        },
    ],
    "ticks": [
        {"market": "BTC-USD", "price": "43000", "ts": 2},
        {"market": "BTC-USD", "price": "10000", "ts": 1},
        {"market": "ETH-USD", "price": "2700", "ts": 2},
    ],
    "account_balance": "10000",
}


def _write(tmp_path: Path, data: Any) -> Path:
    path = tmp_path / "snapshot.json"
    path.write_bytes(orjson.dumps(data))
    return path


class TestBuildReport:
    """build_report output."""

    def test_report(self) -> None:
        report = build_report(SNAPSHOT)

        assert [p["position_id"] for p in report["positions"]] == ["BTC-LONG-1", "ETH-SHORT-1"]
        btc = report["positions"][0]
        assert btc["unrealized_pnl"] == "500.00"
        assert btc["liquidation_price"] == "40375.00"
        assert btc["risk_tier"] == "HIGH"

        assert report["summary"]["total_pnl"] == "400"
        assert report["summary"]["skipped_count"] == 1
        assert report["skipped"] == {"DOGE-LONG-1": "no mark price for DOGE-USD"}
        assert report["counters"]["ticks_stale"] == 1

    def test_sort_by_time(self) -> None:
        report = build_report(SNAPSHOT, sort_key="TIME")
        assert [p["position_id"] for p in report["positions"]] == ["ETH-SHORT-1", "BTC-LONG-1"]


class TestLoadSnapshot:
    """Snapshot file shape checks."""

    def test_not_an_object(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="JSON object"):
            load_snapshot(_write(tmp_path, [1, 2]))

    def test_positions_not_a_list(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="positions"):
            load_snapshot(_write(tmp_path, {"positions": {}}))


class TestMain:
    """CLI entry point."""

    def test_writes_report(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        out = tmp_path / "report.json"
        argv = ["run_risk_snapshot.py", "--snapshot", str(_write(tmp_path, SNAPSHOT))]
        monkeypatch.setattr(sys, "argv", [*argv, "--out", str(out)])

        assert main() == 0
        report = orjson.loads(out.read_bytes())
        assert report["summary"]["position_count"] == 2

    def test_params_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        params = tmp_path / "risk.yaml"
        params.write_text('maintenance_margin_rate: "0.02"\n')
        out = tmp_path / "report.json"
        monkeypatch.setattr(
            sys,
            "argv",
            [
                "run_risk_snapshot.py",
                "--snapshot",
                str(_write(tmp_path, SNAPSHOT)),
                "--params",
                str(params),
                "--out",
                str(out),
            ],
        )

        assert main() == 0
        btc = orjson.loads(out.read_bytes())["positions"][0]
        assert btc["liquidation_price"] == "39100.00"

    def test_missing_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            sys, "argv", ["run_risk_snapshot.py", "--snapshot", str(tmp_path / "nope.json")]
        )
        assert main() == 1

    def test_invalid_tick_reported(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        data = {"positions": [], "ticks": [{"market": "BTC-USD", "price": "0", "ts": 1}]}
        monkeypatch.setattr(
            sys, "argv", ["run_risk_snapshot.py", "--snapshot", str(_write(tmp_path, data))]
        )
        assert main() == 1
