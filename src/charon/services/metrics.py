"""
Prometheus metrics emission for Charon.

Provides observability through standardized metrics collection.
All metrics use the 'charon_' prefix.
"""
from decimal import Decimal
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)

from charon import __version__


class MetricsEmitter:
    """Prometheus metrics emission (emit only, no reading).

    Usage:
        emitter = MetricsEmitter()
        emitter.record_decision("quick_win", "SELL")
        emitter.record_redemption_error("DURABLE")
        metrics_output = emitter.get_metrics()
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        """Initialize MetricsEmitter.

        Args:
            registry: Optional custom registry (a fresh one if not provided)
        """
        self._registry = registry or CollectorRegistry()

        self._info = Info(
            "charon",
            "Charon exit engine information",
            registry=self._registry,
        )
        self._info.info({
            "version": __version__,
            "component": "charon",
        })

        # Decision metrics
        self._decisions_total = Counter(
            "charon_exit_decisions_total",
            "Exit decisions produced by the ladder",
            ["strategy", "action"],
            registry=self._registry,
        )

        self._sell_orders_total = Counter(
            "charon_sell_orders_total",
            "Sell orders submitted by exit strategy",
            ["strategy", "status"],
            registry=self._registry,
        )

        # Redemption metrics
        self._redemptions_total = Counter(
            "charon_redemptions_total",
            "Redemption attempts by result",
            ["status"],
            registry=self._registry,
        )

        self._redemption_errors = Counter(
            "charon_redemption_errors_total",
            "Redemption errors by classified kind",
            ["kind"],
            registry=self._registry,
        )

        self._redemption_skips = Counter(
            "charon_redemption_skips_total",
            "Redemptions skipped before submission",
            ["reason"],
            registry=self._registry,
        )

        self._redeemed_value = Counter(
            "charon_redeemed_value_usd_total",
            "Position value redeemed in USD",
            registry=self._registry,
        )

        self._tripped_markets = Gauge(
            "charon_tripped_markets",
            "Markets blocked after too many redemption failures",
            registry=self._registry,
        )

        # Cycle metrics
        self._positions_evaluated = Gauge(
            "charon_positions_evaluated",
            "Positions evaluated in the last cycle",
            registry=self._registry,
        )

        self._cycle_duration = Histogram(
            "charon_cycle_duration_seconds",
            "Duration of one evaluate-and-act cycle",
            buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
            registry=self._registry,
        )

    def record_decision(self, strategy: str, action: str) -> None:
        """Record an exit decision.

        Args:
            strategy: Exit strategy name
            action: NONE, SELL or REDEEM
        """
        self._decisions_total.labels(strategy=strategy, action=action).inc()

    def record_sell_order(self, strategy: str, status: str) -> None:
        """Record a sell-order submission (submitted, failed, error, dry_run)."""
        self._sell_orders_total.labels(strategy=strategy, status=status).inc()

    def record_redemption(self, status: str, value_usd: Optional[Decimal] = None) -> None:
        """Record a redemption result.

        Args:
            status: success, failed or skipped
            value_usd: Position value, counted only on success
        """
        self._redemptions_total.labels(status=status).inc()
        if status == "success" and value_usd is not None:
            self._redeemed_value.inc(float(value_usd))

    def record_redemption_error(self, kind: str) -> None:
        self._redemption_errors.labels(kind=kind).inc()

    def record_redemption_skip(self, reason: str) -> None:
        self._redemption_skips.labels(reason=reason).inc()

    def update_tripped_markets(self, count: int) -> None:
        self._tripped_markets.set(count)

    def update_positions_evaluated(self, count: int) -> None:
        self._positions_evaluated.set(count)

    def record_cycle_duration(self, seconds: float) -> None:
        self._cycle_duration.observe(seconds)

    def get_metrics(self) -> str:
        """Get Prometheus metrics output.

        Returns:
            Metrics in Prometheus text format
        """
        return generate_latest(self._registry).decode("utf-8")

    @property
    def registry(self) -> CollectorRegistry:
        """Get the underlying registry."""
        return self._registry
