#!/usr/bin/env python3
"""Evaluate a position snapshot against mark prices.

Usage:
    python scripts/run_risk_snapshot.py --snapshot snapshot.json
    python scripts/run_risk_snapshot.py --snapshot snapshot.json --params risk.yaml --sort RISK

Snapshot format (JSON):
    {
      "positions": [{"id": "BTC-LONG-1", "market": "BTC-USD", "side": "LONG", ...}],
      "ticks": [{"market": "BTC-USD", "price": "43000", "ts": 1700000000000}],
      "account_balance": "10000"
    }

Ticks are applied in file order; stale ticks are dropped.

Outputs:
    Report JSON (metrics per position, summary, skipped) to --out or stdout.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

import orjson


def load_snapshot(path: Path) -> dict[str, Any]:
    """Read and shape-check a snapshot file."""
    with open(path, "rb") as f:
        data = orjson.loads(f.read())
    if not isinstance(data, dict):
        raise ValueError(f"Snapshot must be a JSON object: {path}")
    for key in ("positions", "ticks"):
        if not isinstance(data.get(key, []), list):
            raise ValueError(f"Snapshot field '{key}' must be a list")
    return data


def build_report(
    data: dict[str, Any],
    params: Any = None,
    sort_key: str = "PNL",
) -> dict[str, Any]:
    """Evaluate a loaded snapshot and return a JSON-ready report."""
    from perpguard.contracts import MarkPriceTick, Position
    from perpguard.market import MarkPriceBook
    from perpguard.portfolio import SortKey, sort_positions, summarize_positions
    from perpguard.risk import RiskCalculator

    calculator = RiskCalculator(params)
    book = MarkPriceBook(calculator.params, calculator.metrics)
    for raw in data.get("ticks", []):
        book.apply(MarkPriceTick.model_validate(raw))

    positions = [Position.model_validate(raw) for raw in data.get("positions", [])]
    evaluation = summarize_positions(
        positions,
        book.snapshot(),
        calculator,
        account_balance=data.get("account_balance"),
    )

    by_id: dict[str, Position] = {}
    for position in positions:
        by_id.setdefault(position.id, position)
    rows = sort_positions(
        [(by_id[pid], m) for pid, m in evaluation.metrics.items()],
        SortKey(sort_key),
    )

    return {
        "positions": [m.rounded().model_dump(mode="json") for _, m in rows],
        "summary": evaluation.summary.model_dump(mode="json"),
        "skipped": evaluation.skipped,
        "counters": calculator.metrics.to_dict(),
    }


def main() -> int:
    """Run snapshot evaluation."""
    parser = argparse.ArgumentParser(description="Evaluate position risk for a snapshot")
    parser.add_argument(
        "--snapshot",
        type=Path,
        required=True,
        help="Path to snapshot JSON file",
    )
    parser.add_argument(
        "--params",
        type=Path,
        default=None,
        help="Risk params YAML (default: PERPGUARD_* env vars, then built-in defaults)",
    )
    parser.add_argument(
        "--sort",
        type=str,
        default="PNL",
        choices=["PNL", "SIZE", "TIME", "RISK"],
        help="Sort key for position rows (default: PNL)",
    )
    parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Output file (default: stdout)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        help="Log level (default: WARNING)",
    )

    args = parser.parse_args()

    if not args.snapshot.exists():
        print(f"ERROR: Snapshot file not found: {args.snapshot}", file=sys.stderr)
        return 1

    # Import after arg parsing to fail fast on bad args
    from perpguard.errors import RiskEngineError
    from perpguard.logging_config import setup_logging
    from perpguard.risk import RiskParams, load_risk_params

    setup_logging(level=getattr(logging, args.log_level.upper(), logging.WARNING))

    try:
        params = load_risk_params(args.params) if args.params else RiskParams.from_env()
        report = build_report(load_snapshot(args.snapshot), params, args.sort)
    except (ValueError, RiskEngineError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    output = orjson.dumps(report, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS)
    if args.out:
        args.out.write_bytes(output + b"\n")
        print(f"Report written to {args.out}", file=sys.stderr)
    else:
        sys.stdout.write(output.decode() + "\n")

    summary = report["summary"]
    print(
        f"positions={summary['position_count']} skipped={summary['skipped_count']} "
        f"total_pnl={summary['total_pnl']} high_risk={summary['high_risk_count']}",
        file=sys.stderr,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
