"""Entry metadata reconstructed from the wallet's trade history.

The Data API /positions endpoint reports an average price but no
acquisition time. Hold-time exits need one that survives restarts, so it
is rebuilt from /trades on every lookup (with a short in-memory cache):

1. Fetch the BUY/SELL fills for the wallet and token, oldest first
2. Replay them with weighted-average cost; a full close resets the lot
3. first_acquired_at is the first BUY of the lot still open
4. Compare the replayed share count with the live position size; a
   material mismatch marks the metadata untrusted
"""

import asyncio
from dataclasses import dataclass, replace
from decimal import Decimal, InvalidOperation
from typing import Callable, Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from charon.core.clock import Clock, MS_PER_SECOND, epoch_ms

log = structlog.get_logger()

TRADES_PAGE_LIMIT = 500
MAX_TRADE_PAGES = 10
DUST_SHARES = Decimal("0.0001")
MAX_SHARE_DIFF_PCT = Decimal("2")
MAX_SHARE_DIFF_ABS = Decimal("0.5")
ERROR_COOLDOWN_MS = 60 * MS_PER_SECOND
LOOKUP_CONCURRENCY = 5


class EntryMetaError(Exception):
    """Trade history could not be read or parsed."""

    pass


@dataclass(frozen=True)
class EntryMeta:
    """Cost basis and acquisition times of the open lot for one token."""

    avg_entry_price: Decimal
    first_acquired_at: int
    last_acquired_at: int
    remaining_shares: Decimal
    trusted: bool = True
    untrusted_reason: Optional[str] = None

    def held_seconds(self, now_ms: int) -> float:
        return max(0, now_ms - self.first_acquired_at) / 1000.0


def _to_decimal(value: object) -> Optional[Decimal]:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return result if result.is_finite() else None


def reconstruct_entry_meta(trades: list[dict]) -> Optional[EntryMeta]:
    """Replay fills (any order) into the currently open lot.

    Returns None when nothing is left open after the replay.
    """
    shares = Decimal("0")
    cost = Decimal("0")
    first_at: Optional[int] = None
    last_at: Optional[int] = None

    def timestamp(trade: dict) -> int:
        try:
            return int(trade.get("timestamp") or 0)
        except (TypeError, ValueError):
            return 0

    for trade in sorted(trades, key=timestamp):
        side = str(trade.get("side") or "").upper()
        size = _to_decimal(trade.get("size"))
        price = _to_decimal(trade.get("price"))
        at_ms = timestamp(trade) * MS_PER_SECOND
        if size is None or size <= 0 or price is None or price < 0 or at_ms <= 0:
            continue

        if side == "BUY":
            shares += size
            cost += size * price
            if first_at is None:
                first_at = at_ms
            last_at = at_ms
        elif side == "SELL" and shares > 0:
            sold = min(size, shares)
            cost -= sold * (cost / shares)
            shares -= sold
            if shares <= DUST_SHARES:
                shares = Decimal("0")
                cost = Decimal("0")
                first_at = None
                last_at = None

    if shares <= DUST_SHARES or first_at is None or last_at is None:
        return None
    return EntryMeta(
        avg_entry_price=cost / shares,
        first_acquired_at=first_at,
        last_acquired_at=last_at,
        remaining_shares=shares,
    )


def check_against_live_shares(meta: EntryMeta, live_shares: Optional[Decimal]) -> EntryMeta:
    """Mark the metadata untrusted when the replay disagrees with the live size."""
    if live_shares is None or live_shares <= 0:
        return meta
    diff = abs(meta.remaining_shares - live_shares)
    diff_pct = diff / live_shares * 100
    if diff_pct > MAX_SHARE_DIFF_PCT or diff > MAX_SHARE_DIFF_ABS:
        return replace(
            meta,
            trusted=False,
            untrusted_reason=(
                f"shares mismatch: replayed {meta.remaining_shares:.2f} "
                f"vs live {live_shares:.2f} ({diff_pct:.1f}%)"
            ),
        )
    return meta


class EntryMetaResolver:
    """Per-token entry metadata lookups against the Data API /trades endpoint.

    Args:
        client_source: Returns the connected httpx client (owned by the provider).
        wallet: Address whose fills are replayed.
        cache_ttl_seconds: How long a resolved lookup is reused.
        max_pages: Page cap per token.
        clock: Epoch-ms clock.
    """

    def __init__(
        self,
        client_source: Callable[[], httpx.AsyncClient],
        wallet: str,
        cache_ttl_seconds: float = 90.0,
        max_pages: int = MAX_TRADE_PAGES,
        clock: Clock = epoch_ms,
    ):
        self._client_source = client_source
        self._wallet = wallet
        self._cache_ttl_ms = int(cache_ttl_seconds * MS_PER_SECOND)
        self._max_pages = max_pages
        self._clock = clock
        self._cache: dict[str, tuple[int, EntryMeta]] = {}
        self._errors: dict[str, int] = {}
        self._log = log.bind(component="entry_meta_resolver")

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((httpx.TransportError, httpx.TimeoutException)),
        reraise=True,
    )
    async def _fetch_page(self, token_id: str, offset: int) -> list[dict]:
        response = await self._client_source().get(
            "/trades",
            params={
                "user": self._wallet,
                "asset": token_id,
                "limit": TRADES_PAGE_LIMIT,
                "offset": offset,
            },
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, list):
            raise EntryMetaError(f"Unexpected /trades payload: {type(data).__name__}")
        return data

    async def fetch_trades(self, token_id: str) -> list[dict]:
        trades: list[dict] = []
        for page_number in range(self._max_pages):
            page = await self._fetch_page(token_id, page_number * TRADES_PAGE_LIMIT)
            trades.extend(page)
            if len(page) < TRADES_PAGE_LIMIT:
                break
        return trades

    async def resolve(
        self, token_id: str, live_shares: Optional[Decimal] = None
    ) -> Optional[EntryMeta]:
        """Entry metadata for one token, or None when it cannot be rebuilt."""
        now = self._clock()
        cached = self._cache.get(token_id)
        if cached is not None and now - cached[0] < self._cache_ttl_ms:
            return cached[1]

        failed_at = self._errors.get(token_id)
        if failed_at is not None and now - failed_at < ERROR_COOLDOWN_MS:
            return None

        try:
            trades = await self.fetch_trades(token_id)
        except (httpx.HTTPError, EntryMetaError, ValueError) as e:
            self._errors[token_id] = now
            self._log.warning("entry_meta_fetch_failed", token_id=token_id, error=str(e))
            return None

        self._errors.pop(token_id, None)
        meta = reconstruct_entry_meta(trades)
        if meta is None:
            self._log.debug("entry_meta_no_open_lot", token_id=token_id, trades=len(trades))
            return None

        meta = check_against_live_shares(meta, live_shares)
        if not meta.trusted:
            self._log.warning(
                "entry_meta_untrusted", token_id=token_id, reason=meta.untrusted_reason
            )
        self._cache[token_id] = (now, meta)
        return meta

    async def resolve_many(
        self, holdings: list[tuple[str, Decimal]]
    ) -> dict[str, Optional[EntryMeta]]:
        """Resolve (token_id, live_shares) pairs with bounded concurrency."""
        semaphore = asyncio.Semaphore(LOOKUP_CONCURRENCY)

        async def one(token_id: str, shares: Decimal) -> Optional[EntryMeta]:
            async with semaphore:
                return await self.resolve(token_id, shares)

        results = await asyncio.gather(*(one(t, s) for t, s in holdings))
        return {token_id: meta for (token_id, _), meta in zip(holdings, results)}

    def forget_missing(self, live_tokens: set[str]) -> None:
        for store in (self._cache, self._errors):
            for token_id in list(store):
                if token_id not in live_tokens:
                    del store[token_id]
