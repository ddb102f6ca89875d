"""
Prometheus metrics exporter for perpguard.

Exports low-cardinality metrics only: no market, position or request labels.
Counters are mirrored from EngineMetrics by delta, so update() can be called
on every scrape.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry

if TYPE_CHECKING:
    from perpguard.contracts import PortfolioSummary
    from perpguard.metrics import EngineMetrics

# Labels that would explode cardinality
FORBIDDEN_LABELS = frozenset(
    {
        "market",
        "position_id",
        "request_id",
        "batch_id",
        "wallet",
        "address",
    }
)

# EngineMetrics field -> (counter name, help)
_COUNTERS: dict[str, tuple[str, str]] = {
    "evaluations": (
        "perpguard_risk_evaluations",
        "Risk metric computations that succeeded",
    ),
    "evaluation_failures": (
        "perpguard_risk_evaluation_failures",
        "Risk metric computations rejected (InvalidInput/InvalidPosition)",
    ),
    "positions_skipped": (
        "perpguard_portfolio_positions_skipped",
        "Positions excluded from portfolio summaries",
    ),
    "ticks_applied": (
        "perpguard_mark_ticks_applied",
        "Mark price ticks applied to the book",
    ),
    "ticks_stale": (
        "perpguard_mark_ticks_stale",
        "Mark price ticks dropped as older than the stored tick",
    ),
    "actions_emitted": (
        "perpguard_actions_emitted",
        "Action requests handed to the execution layer",
    ),
    "actions_confirmed": (
        "perpguard_actions_confirmed",
        "Action requests confirmed by the execution layer",
    ),
    "actions_failed": (
        "perpguard_actions_failed",
        "Action requests reported failed by the execution layer",
    ),
    "outcomes_ignored": (
        "perpguard_action_outcomes_ignored",
        "Outcome reports for abandoned or unknown requests",
    ),
    "validation_rejections": (
        "perpguard_action_validation_rejections",
        "Action intents rejected before emission",
    ),
}

# Counter names as exposed by prometheus_client (adds _total)
REQUIRED_METRIC_NAMES = frozenset(
    {f"{name}_total" for name, _ in _COUNTERS.values()}
    | {
        "perpguard_actions_in_flight",
        "perpguard_portfolio_positions",
        "perpguard_portfolio_risk_exposure_ratio",
    }
)


class MetricsExporter:
    """
    Prometheus exporter for EngineMetrics and the latest PortfolioSummary.

    Usage:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        exporter.update(engine_metrics=metrics, summary=summary)
        # generate_latest(registry) -> bytes for /metrics endpoint
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """
        Initialize metrics exporter.

        Args:
            registry: Prometheus CollectorRegistry. A private one is created if None.
        """
        self._registry = registry or CollectorRegistry()

        self._counters: dict[str, Counter] = {
            field: Counter(name, help_text, registry=self._registry)
            for field, (name, help_text) in _COUNTERS.items()
        }
        self._last_values: dict[str, int] = dict.fromkeys(_COUNTERS, 0)

        self._actions_in_flight = Gauge(
            "perpguard_actions_in_flight",
            "Action requests without a terminal report",
            registry=self._registry,
        )
        self._portfolio_positions = Gauge(
            "perpguard_portfolio_positions",
            "Positions included in the latest portfolio summary",
            registry=self._registry,
        )
        self._portfolio_risk_exposure = Gauge(
            "perpguard_portfolio_risk_exposure_ratio",
            "Share of positions in HIGH or EXTREME tier (0-1)",
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        """Get the Prometheus CollectorRegistry."""
        return self._registry

    def update(
        self,
        engine_metrics: EngineMetrics | None = None,
        summary: PortfolioSummary | None = None,
    ) -> None:
        """
        Sync Prometheus metrics from engine state.

        Args:
            engine_metrics: Counters to mirror (delta since last update).
            summary: Latest portfolio summary for gauges.
        """
        if engine_metrics is not None:
            for field, counter in self._counters.items():
                current = getattr(engine_metrics, field)
                delta = current - self._last_values[field]
                if delta > 0:
                    counter.inc(delta)
                self._last_values[field] = current
            self._actions_in_flight.set(max(engine_metrics.in_flight, 0))

        if summary is not None:
            self._portfolio_positions.set(summary.position_count)
            self._portfolio_risk_exposure.set(float(summary.risk_exposure_ratio))

    def reset_counter_tracking(self) -> None:
        """
        Reset last-seen values used for delta computation.

        Call after the source EngineMetrics has been reset, otherwise counters
        would stop increasing until the old values are exceeded.
        """
        self._last_values = dict.fromkeys(_COUNTERS, 0)
