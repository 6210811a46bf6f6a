"""Exit Scheduler - the periodic polling loop around the exit engine.

Each cycle:
- reloads configuration, so enabled flags and thresholds are read fresh
- fetches the position snapshot from the provider
- runs ExitEngine.evaluate_and_act
- records cycle metrics, then sleeps for the poll interval

The loop never waits on a backoff timer: cooldowns are consulted inside
the cycle and simply skip positions until a later cycle.
"""

import asyncio
import time
from typing import Awaitable, Callable, Optional, Protocol, Sequence

from charon.core.config import ConfigManager
from charon.core.lifecycle import BaseComponent, HealthCheckResult
from charon.domain.position import ExitDecision, Position
from charon.exits.config import ExitConfig
from charon.redemption.ledger import AttemptLedger
from charon.services.exit_engine import ExitEngine
from charon.services.metrics import MetricsEmitter


class PositionProvider(Protocol):
    async def get_positions(self) -> Sequence[Position]:
        ...


class ExitScheduler(BaseComponent):
    """Runs exit evaluation cycles until stopped.

    Args:
        engine: ExitEngine for the wallet.
        provider: Position snapshot provider.
        ledger: Attempt ledger (for health reporting).
        config: Optional ConfigManager reloaded at the start of each cycle.
        metrics: Optional MetricsEmitter.
        sleep: Awaitable sleep between cycles.
    """

    def __init__(
        self,
        engine: ExitEngine,
        provider: PositionProvider,
        ledger: AttemptLedger,
        config: Optional[ConfigManager] = None,
        metrics: Optional[MetricsEmitter] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        super().__init__(name="exit_scheduler")
        self._engine = engine
        self._provider = provider
        self._ledger = ledger
        self._config = config
        self._metrics = metrics
        self._sleep = sleep

        self._task: Optional[asyncio.Task] = None
        self._cycles_completed = 0
        self._cycles_skipped = 0
        self._last_cycle_error: Optional[str] = None

    @property
    def cycles_completed(self) -> int:
        return self._cycles_completed

    @property
    def cycles_skipped(self) -> int:
        return self._cycles_skipped

    def _reload_config(self) -> None:
        if self._config is None:
            return
        try:
            self._config.reload()
            self._engine.update_config(ExitConfig.from_config_manager(self._config))
        except Exception as e:
            # Keep running on the last good config.
            self._log.error("config_reload_failed", error=str(e))

    async def run_cycle(self) -> Optional[list[ExitDecision]]:
        """Run one cycle. Returns None when the snapshot could not be fetched."""
        self._reload_config()
        started = time.monotonic()

        try:
            positions = list(await self._provider.get_positions())
        except Exception as e:
            self._cycles_skipped += 1
            self._last_cycle_error = str(e)
            self._log.error("position_snapshot_failed", error=str(e))
            return None

        decisions = await self._engine.evaluate_and_act(positions)

        duration = time.monotonic() - started
        self._cycles_completed += 1
        self._last_cycle_error = None
        if self._metrics is not None:
            self._metrics.record_cycle_duration(duration)

        actionable = sum(1 for d in decisions if d.is_actionable)
        self._log.info(
            "exit_cycle_complete",
            positions=len(positions),
            actionable=actionable,
            duration_seconds=round(duration, 3),
        )
        return decisions

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.run_cycle()
            except Exception as e:
                self._cycles_skipped += 1
                self._last_cycle_error = str(e)
                self._log.error("exit_cycle_error", error=str(e), exc_info=True)

            await self._sleep(self._engine.config.engine.poll_interval_seconds)

    async def _do_start(self) -> None:
        self._log.info(
            "starting_exit_scheduler",
            poll_interval=self._engine.config.engine.poll_interval_seconds,
            dry_run=self._engine.config.engine.dry_run,
        )
        # BaseComponent flips _running after _do_start returns.
        self._running = True
        self._task = asyncio.create_task(self._loop())

    async def _do_stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        self._log.info(
            "exit_scheduler_stopped",
            cycles_completed=self._cycles_completed,
            cycles_skipped=self._cycles_skipped,
        )

    async def wait(self) -> None:
        """Block until the loop task ends."""
        if self._task:
            await self._task

    async def _do_health_check(self) -> HealthCheckResult:
        tripped = self._ledger.tripped_markets()
        details = {
            "cycles_completed": self._cycles_completed,
            "cycles_skipped": self._cycles_skipped,
            "tripped_markets": tripped,
            "last_cycle_error": self._last_cycle_error,
        }
        if tripped:
            return HealthCheckResult.degraded(
                f"{len(tripped)} market(s) blocked after repeated redemption failures",
                **details,
            )
        return HealthCheckResult.healthy("Exit scheduler running", **details)
