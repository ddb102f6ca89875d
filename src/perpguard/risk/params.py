"""RiskParams - named risk model parameters.

All numeric thresholds are defined here, not hardcoded in calculator logic.
The defaults mirror the dashboard's display model (5% maintenance margin,
15/8/3% tier thresholds). They are not derived from the on-chain
liquidation engine and may differ from it.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]

from perpguard.contracts.base import parse_decimal

ENV_PREFIX = "PERPGUARD_"


@dataclass(frozen=True)
class RiskParams:
    """Named risk model parameters.

    Tier rule: margin_ratio > low_threshold -> LOW, > medium_threshold ->
    MEDIUM, > high_threshold -> HIGH, else EXTREME.
    """

    # Liquidation model
    maintenance_margin_rate: Decimal = Decimal("0.05")
    max_leverage: Decimal = Decimal("100")

    # Risk tier thresholds (margin ratio, percent)
    low_threshold: Decimal = Decimal("15")
    medium_threshold: Decimal = Decimal("8")
    high_threshold: Decimal = Decimal("3")

    # ADL rank estimate: one rank per adl_roe_step percent of |ROE|
    adl_roe_step: Decimal = Decimal("20")
    adl_max_rank: int = 5

    # Relative move below which a tick counts as FLAT (0.0001 = 0.01%)
    price_change_threshold: Decimal = Decimal("0.0001")

    def __post_init__(self) -> None:
        """Validate parameter ranges and relationships."""
        if not (Decimal("0") < self.maintenance_margin_rate < Decimal("1")):
            raise ValueError(
                f"maintenance_margin_rate must be in (0, 1), got {self.maintenance_margin_rate}"
            )
        if self.max_leverage < 1:
            raise ValueError(f"max_leverage must be >= 1, got {self.max_leverage}")
        if not (self.low_threshold > self.medium_threshold > self.high_threshold >= 0):
            raise ValueError(
                "thresholds must satisfy low > medium > high >= 0, got "
                f"{self.low_threshold}/{self.medium_threshold}/{self.high_threshold}"
            )
        if self.adl_roe_step <= 0:
            raise ValueError(f"adl_roe_step must be > 0, got {self.adl_roe_step}")
        if not (1 <= self.adl_max_rank <= 5):
            raise ValueError(f"adl_max_rank must be 1-5, got {self.adl_max_rank}")
        if self.price_change_threshold < 0:
            raise ValueError(
                f"price_change_threshold must be >= 0, got {self.price_change_threshold}"
            )

    @classmethod
    def from_mapping(cls, data: dict[str, Any]) -> RiskParams:
        """Build params from a mapping, rejecting unknown keys.

        Decimal fields accept str/int/float values.
        """
        known = {f.name: f for f in fields(cls)}
        unknown = set(data) - set(known)
        if unknown:
            raise ValueError(f"Unknown risk params: {sorted(unknown)}")

        kwargs: dict[str, Any] = {}
        for name, value in data.items():
            if known[name].type in ("int", int):
                kwargs[name] = int(value)
            else:
                kwargs[name] = parse_decimal(value)
        return cls(**kwargs)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> RiskParams:
        """Build params from PERPGUARD_* environment variables.

        E.g. PERPGUARD_MAINTENANCE_MARGIN_RATE=0.04. Unset variables keep
        their defaults.
        """
        env = os.environ if environ is None else environ
        data: dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is not None and raw.strip():
                data[f.name] = raw.strip()
        return cls.from_mapping(data)


DEFAULT_RISK_PARAMS = RiskParams()


def load_risk_params(path: Path) -> RiskParams:
    """Load risk params from a YAML file.

    The file holds a flat mapping of parameter names to values. Values
    should be quoted strings to keep Decimal precision.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return RiskParams()
    if not isinstance(data, dict):
        raise ValueError(f"Risk params file must contain a mapping: {path}")
    return RiskParams.from_mapping(data)
