"""Unit tests for MetricsEmitter."""
from decimal import Decimal

import pytest
from prometheus_client import CollectorRegistry

from charon import __version__
from charon.services.metrics import MetricsEmitter


@pytest.fixture
def metrics_emitter():
    """Create a MetricsEmitter with isolated registry."""
    registry = CollectorRegistry()
    return MetricsEmitter(registry=registry)


class TestMetricsEmitter:
    """Test MetricsEmitter functionality."""

    def test_init_creates_metrics(self, metrics_emitter):
        """Verify all expected metrics are created."""
        output = metrics_emitter.get_metrics()

        assert "charon_exit_decisions_total" in output
        assert "charon_sell_orders_total" in output
        assert "charon_redemptions_total" in output
        assert "charon_tripped_markets" in output
        assert "charon_cycle_duration_seconds" in output
        assert f'version="{__version__}"' in output

    def test_separate_registries_do_not_collide(self):
        first = MetricsEmitter()
        second = MetricsEmitter()

        first.record_decision("quick_win", "SELL")

        assert second.registry.get_sample_value(
            "charon_exit_decisions_total", {"strategy": "quick_win", "action": "SELL"}
        ) is None

    def test_record_decision(self, metrics_emitter):
        metrics_emitter.record_decision(strategy="quick_win", action="SELL")

        assert metrics_emitter.registry.get_sample_value(
            "charon_exit_decisions_total", {"strategy": "quick_win", "action": "SELL"}
        ) == 1.0

    def test_record_sell_order(self, metrics_emitter):
        metrics_emitter.record_sell_order("oversized_exit", "failed")

        assert metrics_emitter.registry.get_sample_value(
            "charon_sell_orders_total", {"strategy": "oversized_exit", "status": "failed"}
        ) == 1.0


class TestRedemptionMetrics:
    """Redemption counters and the tripped-market gauge."""

    def test_value_counted_only_on_success(self, metrics_emitter):
        metrics_emitter.record_redemption("success", Decimal("12.50"))
        metrics_emitter.record_redemption("failed", Decimal("3"))

        registry = metrics_emitter.registry
        assert registry.get_sample_value("charon_redeemed_value_usd_total") == 12.5
        assert registry.get_sample_value("charon_redemptions_total", {"status": "failed"}) == 1.0

    def test_record_error_and_skip(self, metrics_emitter):
        metrics_emitter.record_redemption_error("DURABLE")
        metrics_emitter.record_redemption_skip("IN_COOLDOWN")

        registry = metrics_emitter.registry
        assert registry.get_sample_value(
            "charon_redemption_errors_total", {"kind": "DURABLE"}
        ) == 1.0
        assert registry.get_sample_value(
            "charon_redemption_skips_total", {"reason": "IN_COOLDOWN"}
        ) == 1.0

    def test_gauges(self, metrics_emitter):
        metrics_emitter.update_tripped_markets(2)
        metrics_emitter.update_positions_evaluated(7)
        metrics_emitter.record_cycle_duration(0.4)

        registry = metrics_emitter.registry
        assert registry.get_sample_value("charon_tripped_markets") == 2.0
        assert registry.get_sample_value("charon_positions_evaluated") == 7.0
        assert registry.get_sample_value("charon_cycle_duration_seconds_sum") == 0.4
