"""
Redemption preflight.

Runs before any on-chain redemption call. Every skip reason returned here
is an expected wait, never a failure: nothing is recorded in the ledger.
"""
from typing import Optional, Protocol

from charon.core.logging import get_logger
from charon.domain.position import Position
from charon.domain.redemption import SkipReason
from charon.exits.config import RedemptionConfig
from charon.redemption.ledger import AttemptLedger

log = get_logger("redemption.eligibility")


class DenominatorSource(Protocol):
    async def read_denominator(self, market_id: str) -> Optional[int]:
        ...


class RedemptionEligibility:
    """Decide whether a position may be redeemed this cycle.

    Order: ledger (breaker, then cooldown), value filter, on-chain
    resolution. The denominator source is normally the shared
    ProofResolver so that reads are cached across the cycle.
    """

    def __init__(
        self,
        config: RedemptionConfig,
        ledger: AttemptLedger,
        denominators: DenominatorSource,
    ) -> None:
        self._config = config
        self._ledger = ledger
        self._denominators = denominators

    def update_config(self, config: RedemptionConfig) -> None:
        self._config = config

    def check_value(self, position: Position, include_losses: bool = False) -> Optional[SkipReason]:
        value = position.value_usd
        if value < self._config.zero_value_usd:
            # Worthless losing outcome; redeeming only burns the tokens.
            return None if include_losses else SkipReason.BELOW_MIN_VALUE
        if value < self._config.min_position_usd:
            return SkipReason.BELOW_MIN_VALUE
        return None

    async def check(
        self,
        position: Position,
        include_losses: bool = False,
        now_ms: Optional[int] = None,
    ) -> Optional[SkipReason]:
        """Return the reason to skip redemption, or None if eligible."""
        reason = self._ledger.check(position.market_id, now_ms)
        if reason is not None:
            return reason

        reason = self.check_value(position, include_losses)
        if reason is not None:
            return reason

        denominator = await self._denominators.read_denominator(position.market_id)
        if denominator is None or denominator <= 0:
            log.debug(
                "redemption_not_resolved_onchain",
                market_id=position.market_id,
                denominator=denominator,
            )
            return SkipReason.NOT_RESOLVED_ONCHAIN
        return None
