"""
Redemption execution with preflight, classification and ledger updates.

One redeem() call:
1. preflight via RedemptionEligibility (skips are not failures)
2. submit through the wallet's redemption submitter
3. classify any error once into a RedemptionErrorKind
4. retry in-call with exponential backoff for RATE_LIMITED / NONCE_CONFLICT
5. record the final result in the AttemptLedger
"""
import asyncio
from collections import Counter
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, Protocol, Sequence

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from charon.core.clock import Clock, epoch_ms
from charon.core.logging import get_logger
from charon.domain.position import Position
from charon.domain.redemption import (
    RedemptionErrorKind,
    RedemptionOutcome,
    SubmitResult,
)
from charon.exits.config import RedemptionConfig
from charon.redemption.classifier import classify_redemption_error
from charon.redemption.eligibility import RedemptionEligibility
from charon.redemption.ledger import AttemptLedger

if TYPE_CHECKING:
    from charon.services.metrics import MetricsEmitter

log = get_logger("redemption.redeemer")

Sleep = Callable[[float], Awaitable[None]]
_Attempt = tuple[SubmitResult, Optional[RedemptionErrorKind]]


class RedemptionSubmitter(Protocol):
    async def submit_redemption(self, market_id: str) -> SubmitResult:
        ...


class Redeemer:
    """Redeem resolved positions one at a time.

    Usage:
        redeemer = Redeemer(ctf_client, ledger, eligibility, config.redemption)
        outcome = await redeemer.redeem(position)
    """

    def __init__(
        self,
        submitter: RedemptionSubmitter,
        ledger: AttemptLedger,
        eligibility: RedemptionEligibility,
        config: RedemptionConfig,
        metrics: Optional["MetricsEmitter"] = None,
        sleep: Sleep = asyncio.sleep,
        clock: Clock = epoch_ms,
    ) -> None:
        self._submitter = submitter
        self._ledger = ledger
        self._eligibility = eligibility
        self._config = config
        self._metrics = metrics
        self._sleep = sleep
        self._clock = clock
        self._log = log.bind(component="redeemer")

    def update_config(self, config: RedemptionConfig) -> None:
        self._config = config
        self._eligibility.update_config(config)
        self._ledger.configure(config.cooldown_seconds, config.max_failures)

    async def redeem(self, position: Position, include_losses: bool = False) -> RedemptionOutcome:
        """Redeem one position, returning a skip, success or classified failure."""
        outcome = RedemptionOutcome(
            market_id=position.market_id,
            token_id=position.token_id,
            position_value_usd=position.value_usd,
        )

        skip = await self._eligibility.check(position, include_losses, self._clock())
        if skip is not None:
            outcome.skipped_reason = skip
            self._log.debug("redemption_skipped", market_id=position.market_id, reason=skip.value)
            if self._metrics is not None:
                self._metrics.record_redemption_skip(skip.value)
            return outcome

        result, kind, attempts = await self._submit_with_retry(position.market_id)
        outcome.attempts = attempts
        outcome.transaction_hash = result.transaction_hash

        if kind is None:
            outcome.success = True
            self._ledger.record(position.market_id, True, self._clock())
            self._log.info(
                "redemption_succeeded",
                market_id=position.market_id,
                tx_hash=result.transaction_hash,
                value_usd=str(position.value_usd),
                attempts=attempts,
            )
            if self._metrics is not None:
                self._metrics.record_redemption("success", position.value_usd)
            return outcome

        outcome.error = result.error
        outcome.error_kind = kind
        attempt = self._ledger.record(position.market_id, kind, self._clock())

        log_method = self._log.warning if kind.counts_as_failure else self._log.info
        log_method(
            "redemption_failed",
            market_id=position.market_id,
            error=result.error,
            error_kind=kind.value,
            attempts=attempts,
            consecutive_failures=attempt.consecutive_failures if attempt else None,
        )
        if self._metrics is not None:
            self._metrics.record_redemption("failed")
            self._metrics.record_redemption_error(kind.value)
        return outcome

    async def _submit_once(self, market_id: str) -> _Attempt:
        try:
            result = await self._submitter.submit_redemption(market_id)
        except Exception as e:
            result = SubmitResult(success=False, error=str(e) or type(e).__name__)
        if result.success:
            return result, None
        return result, classify_redemption_error(result.error or "unknown redemption error")

    def _log_retry(self, state: RetryCallState) -> None:
        _, kind = state.outcome.result() if state.outcome else (None, None)
        self._log.info(
            "redemption_retry_scheduled",
            attempt=state.attempt_number,
            error_kind=kind.value if kind else None,
            wait_seconds=state.next_action.sleep if state.next_action else 0,
        )

    async def _submit_with_retry(
        self, market_id: str
    ) -> tuple[SubmitResult, Optional[RedemptionErrorKind], int]:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._config.max_retries + 1),
            wait=wait_exponential(multiplier=self._config.retry_base_seconds),
            retry=retry_if_result(lambda r: r[1] is not None and r[1].is_transient),
            before_sleep=self._log_retry,
            retry_error_callback=lambda state: state.outcome.result(),
            sleep=self._sleep,
        )
        attempts = 0

        async def submit() -> _Attempt:
            nonlocal attempts
            attempts += 1
            return await self._submit_once(market_id)

        result, kind = await retrying(submit)
        return result, kind, attempts

    async def redeem_all(
        self,
        positions: Sequence[Position],
        include_losses: bool = True,
    ) -> list[RedemptionOutcome]:
        """Redeem every given position sequentially and log a summary.

        A delay is inserted between submitted redemptions; skipped
        positions do not wait.
        """
        outcomes: list[RedemptionOutcome] = []
        previous_submitted = False

        for position in positions:
            if previous_submitted and self._config.batch_delay_seconds > 0:
                await self._sleep(self._config.batch_delay_seconds)
            outcome = await self.redeem(position, include_losses=include_losses)
            outcomes.append(outcome)
            previous_submitted = not outcome.skipped

        skipped = Counter(o.skipped_reason.value for o in outcomes if o.skipped_reason)
        errors = Counter(o.error_kind.value for o in outcomes if o.error_kind)
        self._log.info(
            "redeem_all_complete",
            total=len(outcomes),
            redeemed=sum(1 for o in outcomes if o.success),
            skipped=dict(skipped),
            failed=dict(errors),
            tripped_markets=self._ledger.tripped_markets(),
        )
        return outcomes
