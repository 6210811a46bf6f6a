"""
Proof resolution: reconcile the off-chain redeemable flag with the
on-chain payout denominator.

The on-chain read is authoritative for blocking redemption. A position the
index calls redeemable but whose denominator reads zero is marked
DATA_API_UNCONFIRMED and stays open for selling.
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Sequence

from charon.core.logging import get_logger
from charon.domain.position import Position, ProofSource

log = get_logger("exits.proof")


@dataclass(frozen=True)
class ProofResolution:
    redeemable: bool
    source: ProofSource


def resolve_proof(
    redeemable_flag: Optional[bool],
    payout_denominator: Optional[int],
) -> ProofResolution:
    """Rank the redeemable claim for one position.

    Args:
        redeemable_flag: Off-chain index flag, None if the index read failed.
        payout_denominator: On-chain denominator, None if the read failed.

    Returns:
        The trust-ranked proof and the redeemable value to use.
    """
    if payout_denominator is not None and payout_denominator > 0:
        return ProofResolution(True, ProofSource.ONCHAIN_DENOM)
    if redeemable_flag:
        if payout_denominator is None:
            return ProofResolution(True, ProofSource.DATA_API_FLAG)
        return ProofResolution(False, ProofSource.DATA_API_UNCONFIRMED)
    return ProofResolution(False, ProofSource.NONE)


def attach_proof(position: Position, payout_denominator: Optional[int]) -> Position:
    """Return a copy of position with redeemable and proof source resolved."""
    resolution = resolve_proof(position.redeemable, payout_denominator)
    return position.with_proof(resolution.redeemable, resolution.source)


class DenominatorReader(Protocol):
    """On-chain resolution reader (see CTFClient)."""

    async def get_payout_denominator(self, condition_id: str) -> int:
        ...


class ProofResolver:
    """Attach proofs to a snapshot using concurrent denominator reads.

    Reads are issued once per distinct market and are read-only, so they
    run concurrently. Resolved and zero results are cached for the TTL;
    failed reads are never cached and resolve as "unavailable".
    """

    def __init__(
        self,
        reader: DenominatorReader,
        cache_ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._reader = reader
        self._ttl = cache_ttl_seconds
        self._clock = clock
        self._cache: dict[str, tuple[int, float]] = {}

    async def read_denominator(self, market_id: str) -> Optional[int]:
        """Read one denominator, returning None when the read fails."""
        cached = self._cache.get(market_id)
        if cached is not None:
            value, stored_at = cached
            if self._clock() - stored_at < self._ttl:
                return value
            del self._cache[market_id]

        try:
            value = int(await self._reader.get_payout_denominator(market_id))
        except Exception as e:
            log.debug("payout_denominator_read_failed", market_id=market_id, error=str(e))
            return None

        self._cache[market_id] = (value, self._clock())
        return value

    async def resolve(self, positions: Sequence[Position]) -> list[Position]:
        """Return the positions with proof attached, in the same order."""
        market_ids = list(dict.fromkeys(p.market_id for p in positions))
        if not market_ids:
            return []

        results = await asyncio.gather(*(self.read_denominator(m) for m in market_ids))
        denominators = dict(zip(market_ids, results))

        resolved = [attach_proof(p, denominators[p.market_id]) for p in positions]
        unconfirmed = [
            p.key for p in resolved
            if p.redeemable_proof_source == ProofSource.DATA_API_UNCONFIRMED
        ]
        if unconfirmed:
            log.info("redeemable_flag_unconfirmed_onchain", positions=unconfirmed)
        return resolved

    def invalidate(self, market_id: Optional[str] = None) -> None:
        """Drop one cached denominator, or all of them."""
        if market_id is None:
            self._cache.clear()
        else:
            self._cache.pop(market_id, None)

    @property
    def cache_size(self) -> int:
        return len(self._cache)
