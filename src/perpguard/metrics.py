"""Engine counters.

Plain counters updated by the calculator, aggregator, mark book and
coordinator. MetricsExporter mirrors them to Prometheus.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any


@dataclass
class EngineMetrics:
    """Counters for risk evaluation and action coordination."""

    # Calculator
    evaluations: int = 0
    evaluation_failures: int = 0

    # Aggregator
    positions_skipped: int = 0

    # Mark price book
    ticks_applied: int = 0
    ticks_stale: int = 0

    # Coordinator
    actions_emitted: int = 0
    actions_confirmed: int = 0
    actions_failed: int = 0
    outcomes_ignored: int = 0  # Reports for abandoned/unknown requests
    validation_rejections: int = 0

    @property
    def failure_rate(self) -> float:
        """Fraction of evaluations that raised (0.0 to 1.0)."""
        total = self.evaluations + self.evaluation_failures
        if total == 0:
            return 0.0
        return self.evaluation_failures / total

    @property
    def in_flight(self) -> int:
        """Actions emitted without a terminal report yet (includes abandoned)."""
        return self.actions_emitted - self.actions_confirmed - self.actions_failed

    def reset(self) -> None:
        """Reset all counters to zero."""
        for f in fields(self):
            setattr(self, f.name, 0)

    def to_dict(self) -> dict[str, Any]:
        """Convert metrics to dictionary for logging/export."""
        data: dict[str, Any] = {f.name: getattr(self, f.name) for f in fields(self)}
        data["failure_rate"] = round(self.failure_rate, 4)
        return data
