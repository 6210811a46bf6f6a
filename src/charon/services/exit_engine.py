"""Exit Engine - per-cycle entry point that turns a position snapshot into actions.

One cycle:
1. Attach redeemable proofs (denominator reads run concurrently)
2. Evaluate the exit ladder for every position (pure)
3. Submit SELL / REDEEM actions strictly one at a time under the wallet
   lock, recording each outcome before the next submission starts
4. Return every decision, including holds

Mutable run state (sold tokens, dispute-exit failures, the wallet lock)
lives in an EngineState built once at process start and passed in.
"""

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Protocol, Sequence

import structlog

from charon.core.clock import Clock, MS_PER_SECOND, epoch_ms
from charon.domain.position import (
    ExitAction,
    ExitDecision,
    ExitStrategy,
    Position,
)
from charon.domain.redemption import RedemptionOutcome, SubmitResult
from charon.exits.config import ExitConfig
from charon.exits.ladder import ExitLadder
from charon.exits.proof import ProofResolver
from charon.redemption.ledger import AttemptLedger, LedgerFile
from charon.redemption.redeemer import Redeemer
from charon.services.metrics import MetricsEmitter

log = structlog.get_logger()


class SellSubmitter(Protocol):
    async def submit_sell_order(
        self, token_id: str, size: Decimal, limit_price: Decimal
    ) -> SubmitResult:
        ...


@dataclass
class EngineState:
    """Process-run state shared by every cycle for one wallet."""

    wallet_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    sold_tokens: set[str] = field(default_factory=set)
    dispute_exit_failed_at: dict[str, int] = field(default_factory=dict)

    def forget_missing(self, live_tokens: set[str]) -> None:
        """Drop state for tokens no longer in the snapshot."""
        self.sold_tokens &= live_tokens
        for token_id in list(self.dispute_exit_failed_at):
            if token_id not in live_tokens:
                del self.dispute_exit_failed_at[token_id]


@dataclass
class ActionResult:
    """What happened to one actionable decision this cycle."""

    decision: ExitDecision
    submitted: bool = False
    success: bool = False
    skipped_reason: Optional[str] = None
    error: Optional[str] = None
    redemption: Optional[RedemptionOutcome] = None


class ExitEngine:
    """Evaluate exits for a wallet's positions and act on them.

    Usage:
        engine = ExitEngine(config, resolver, clob, redeemer, ledger, metrics)
        decisions = await engine.evaluate_and_act(positions)
    """

    def __init__(
        self,
        config: ExitConfig,
        proof_resolver: ProofResolver,
        sell_submitter: SellSubmitter,
        redeemer: Redeemer,
        ledger: AttemptLedger,
        metrics: Optional[MetricsEmitter] = None,
        state: Optional[EngineState] = None,
        ledger_file: Optional[LedgerFile] = None,
        clock: Clock = epoch_ms,
    ):
        self._proof_resolver = proof_resolver
        self._sell_submitter = sell_submitter
        self._redeemer = redeemer
        self._ledger = ledger
        self._metrics = metrics
        self._state = state or EngineState()
        self._ledger_file = ledger_file
        self._clock = clock
        self._log = log.bind(component="exit_engine")
        self._config = config
        self._ladder = ExitLadder(config.ladder, config.redemption.enabled, clock)
        self.last_results: list[ActionResult] = []

    @property
    def config(self) -> ExitConfig:
        return self._config

    @property
    def state(self) -> EngineState:
        return self._state

    def update_config(self, config: ExitConfig) -> None:
        """Swap in a freshly loaded config; takes effect on the next cycle."""
        if config == self._config:
            return
        self._config = config
        self._ladder = ExitLadder(config.ladder, config.redemption.enabled, self._clock)
        self._redeemer.update_config(config.redemption)
        set_min_order = getattr(self._sell_submitter, "set_min_order_usd", None)
        if set_min_order is not None:
            set_min_order(config.engine.min_order_usd)
        self._log.info("exit_config_updated")

    async def evaluate_and_act(self, positions: Sequence[Position]) -> list[ExitDecision]:
        """Run one evaluation cycle over a position snapshot.

        Args:
            positions: Current snapshot from the position tracker.

        Returns:
            One decision per position, in snapshot order.
        """
        resolved = await self._proof_resolver.resolve(positions)
        now = self._clock()
        decisions = [self._ladder.evaluate(p, now) for p in resolved]

        self._state.forget_missing({p.token_id for p in resolved})

        for decision in decisions:
            if self._metrics is not None:
                self._metrics.record_decision(decision.strategy.value, decision.action.value)
            if decision.is_actionable:
                self._log.info(
                    "exit_decision",
                    market_id=decision.market_id,
                    token_id=decision.token_id,
                    action=decision.action.value,
                    strategy=decision.strategy.value,
                    limit_price=str(decision.limit_price) if decision.limit_price else None,
                    reason=decision.reason,
                )

        results: list[ActionResult] = []
        async with self._state.wallet_lock:
            for position, decision in zip(resolved, decisions):
                if decision.action == ExitAction.SELL:
                    results.append(await self._sell(position, decision))
                elif decision.action == ExitAction.REDEEM:
                    results.append(await self._redeem(position, decision))

        self.last_results = results
        self._after_cycle(len(resolved))
        return decisions

    async def _sell(self, position: Position, decision: ExitDecision) -> ActionResult:
        result = ActionResult(decision=decision)
        token_id = position.token_id
        strategy = decision.strategy.value

        if token_id in self._state.sold_tokens:
            result.skipped_reason = "already_sold"
            self._log.debug("sell_skipped_already_sold", token_id=token_id)
            return result

        now = self._clock()
        if decision.strategy == ExitStrategy.DISPUTE_WINDOW_EXIT:
            failed_at = self._state.dispute_exit_failed_at.get(token_id)
            cooldown_ms = self._config.engine.dispute_exit_cooldown_seconds * MS_PER_SECOND
            if failed_at is not None and now - failed_at < cooldown_ms:
                result.skipped_reason = "dispute_exit_cooldown"
                self._log.debug(
                    "dispute_exit_in_cooldown",
                    token_id=token_id,
                    remaining_seconds=(cooldown_ms - (now - failed_at)) // MS_PER_SECOND,
                )
                return result

        if self._config.engine.dry_run:
            result.skipped_reason = "dry_run"
            self._log.info(
                "dry_run_sell",
                token_id=token_id,
                size=str(position.size),
                limit_price=str(decision.limit_price),
                strategy=strategy,
            )
            if self._metrics is not None:
                self._metrics.record_sell_order(strategy, "dry_run")
            return result

        result.submitted = True
        try:
            submit = await self._sell_submitter.submit_sell_order(
                token_id, position.size, decision.limit_price
            )
        except Exception as e:
            self._log.error(
                "sell_order_exception",
                token_id=token_id,
                strategy=strategy,
                error=str(e),
                exc_info=True,
            )
            submit = SubmitResult(success=False, error=str(e) or type(e).__name__)

        result.success = submit.success
        result.error = submit.error

        if submit.success:
            self._state.sold_tokens.add(token_id)
            self._state.dispute_exit_failed_at.pop(token_id, None)
            self._log.info(
                "exit_sell_submitted",
                token_id=token_id,
                strategy=strategy,
                order_id=submit.order_id,
            )
        else:
            if decision.strategy == ExitStrategy.DISPUTE_WINDOW_EXIT:
                self._state.dispute_exit_failed_at[token_id] = now
            self._log.warning(
                "exit_sell_failed",
                token_id=token_id,
                strategy=strategy,
                error=submit.error,
            )

        if self._metrics is not None:
            self._metrics.record_sell_order(strategy, "submitted" if submit.success else "failed")
        return result

    async def _redeem(self, position: Position, decision: ExitDecision) -> ActionResult:
        result = ActionResult(decision=decision)

        if self._config.engine.dry_run:
            result.skipped_reason = "dry_run"
            self._log.info(
                "dry_run_redeem",
                market_id=position.market_id,
                value_usd=str(position.value_usd),
            )
            return result

        outcome = await self._redeemer.redeem(position)
        result.redemption = outcome
        result.submitted = not outcome.skipped
        result.success = outcome.success
        result.error = outcome.error
        if outcome.skipped_reason is not None:
            result.skipped_reason = outcome.skipped_reason.value
        return result

    def _after_cycle(self, evaluated: int) -> None:
        tripped = self._ledger.tripped_markets()
        if self._metrics is not None:
            self._metrics.update_positions_evaluated(evaluated)
            self._metrics.update_tripped_markets(len(tripped))
        if self._ledger_file is not None:
            try:
                self._ledger_file.save(self._ledger)
            except OSError as e:
                self._log.warning(
                    "ledger_save_failed", path=str(self._ledger_file.path), error=str(e)
                )
