"""
Unit tests for the ExitScheduler polling loop.
"""
import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from charon.core.config import ConfigManager
from charon.core.lifecycle import HealthStatus
from charon.domain.position import ExitAction, ExitDecision, ExitStrategy
from charon.domain.redemption import RedemptionErrorKind
from charon.exits.config import ExitConfig
from charon.redemption.ledger import AttemptLedger
from charon.services.metrics import MetricsEmitter
from charon.services.scheduler import ExitScheduler
from tests.factories import MARKET_ID, make_position


def sell_decision() -> ExitDecision:
    return ExitDecision(
        action=ExitAction.SELL,
        strategy=ExitStrategy.AUTO_SELL_THRESHOLD,
        market_id=MARKET_ID,
        token_id="token-yes",
        limit_price=Decimal("0.999"),
        reason="bid 0.999 >= 0.999",
    )


@pytest.fixture
def engine():
    engine = MagicMock()
    engine.config = ExitConfig()
    engine.evaluate_and_act = AsyncMock(return_value=[sell_decision()])
    return engine


@pytest.fixture
def provider():
    provider = MagicMock()
    provider.get_positions = AsyncMock(return_value=[make_position()])
    return provider


@pytest.fixture
def ledger(clock):
    return AttemptLedger(clock=clock, max_failures=1)


class TestRunCycle:
    """Tests for a single cycle."""

    @pytest.mark.asyncio
    async def test_cycle_evaluates_snapshot(self, engine, provider, ledger):
        metrics = MetricsEmitter()
        scheduler = ExitScheduler(engine, provider, ledger, metrics=metrics)

        decisions = await scheduler.run_cycle()

        assert decisions == [sell_decision()]
        engine.evaluate_and_act.assert_awaited_once_with([make_position()])
        assert scheduler.cycles_completed == 1
        assert metrics.registry.get_sample_value("charon_cycle_duration_seconds_count") == 1.0

    @pytest.mark.asyncio
    async def test_snapshot_failure_skips_cycle(self, engine, provider, ledger):
        provider.get_positions.side_effect = RuntimeError("data api timeout")
        scheduler = ExitScheduler(engine, provider, ledger)

        result = await scheduler.run_cycle()

        assert result is None
        engine.evaluate_and_act.assert_not_awaited()
        assert scheduler.cycles_skipped == 1
        assert scheduler.cycles_completed == 0

    @pytest.mark.asyncio
    async def test_config_reloaded_each_cycle(self, engine, provider, ledger, tmp_path):
        path = tmp_path / "charon.toml"
        path.write_text("[exits.quick_win]\nenabled = true\n")
        scheduler = ExitScheduler(engine, provider, ledger, config=ConfigManager(path))

        await scheduler.run_cycle()
        path.write_text("[exits.quick_win]\nenabled = false\n")
        await scheduler.run_cycle()

        first, second = engine.update_config.call_args_list
        assert first.args[0].ladder.quick_win_enabled is True
        assert second.args[0].ladder.quick_win_enabled is False

    @pytest.mark.asyncio
    async def test_bad_config_keeps_last_good(self, engine, provider, ledger, tmp_path):
        path = tmp_path / "charon.toml"
        path.write_text("[exits.auto_sell]\nmin_hold_seconds = \"soon\"\n")
        scheduler = ExitScheduler(engine, provider, ledger, config=ConfigManager(path))

        decisions = await scheduler.run_cycle()

        engine.update_config.assert_not_called()
        assert decisions == [sell_decision()]


class TestLoop:
    """Tests for start/stop and health."""

    @pytest.mark.asyncio
    async def test_loop_sleeps_poll_interval(self, engine, provider, ledger):
        intervals = []

        async def fake_sleep(seconds):
            intervals.append(seconds)
            await asyncio.sleep(0)

        scheduler = ExitScheduler(engine, provider, ledger, sleep=fake_sleep)
        await scheduler.start()
        for _ in range(10):
            if scheduler.cycles_completed >= 2:
                break
            await asyncio.sleep(0)
        await scheduler.stop()

        assert scheduler.cycles_completed >= 2
        assert set(intervals) == {30.0}
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_cycle_exception_does_not_stop_loop(self, engine, provider, ledger):
        calls = 0

        async def evaluate(positions):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")
            return [sell_decision()]

        engine.evaluate_and_act.side_effect = evaluate

        async def fake_sleep(seconds):
            await asyncio.sleep(0)

        scheduler = ExitScheduler(engine, provider, ledger, sleep=fake_sleep)
        await scheduler.start()
        for _ in range(10):
            if scheduler.cycles_completed >= 1:
                break
            await asyncio.sleep(0)
        await scheduler.stop()

        assert scheduler.cycles_skipped == 1
        assert scheduler.cycles_completed == 1

    @pytest.mark.asyncio
    async def test_health_unhealthy_when_stopped(self, engine, provider, ledger):
        scheduler = ExitScheduler(engine, provider, ledger)

        result = await scheduler.health_check()

        assert result.status == HealthStatus.UNHEALTHY

    @pytest.mark.asyncio
    async def test_health_degraded_with_tripped_market(self, engine, provider, ledger):
        ledger.record(MARKET_ID, RedemptionErrorKind.DURABLE)
        scheduler = ExitScheduler(engine, provider, ledger)
        scheduler._running = True

        result = await scheduler.health_check()

        assert result.status == HealthStatus.DEGRADED
        assert result.details["tripped_markets"] == [MARKET_ID]

    @pytest.mark.asyncio
    async def test_health_healthy(self, engine, provider, ledger):
        scheduler = ExitScheduler(engine, provider, ledger)
        scheduler._running = True

        result = await scheduler.health_check()

        assert result.status == HealthStatus.HEALTHY
        assert result.details["cycles_completed"] == 0
