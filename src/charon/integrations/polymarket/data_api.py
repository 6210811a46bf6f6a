"""Polymarket Data API position provider.

Fetches the wallet's current positions from the public Data API and maps
each row to a Position. The endpoint does not report acquisition times;
those come from the wallet's trade history (see entry_meta). A position
whose history cannot be rebuilt carries no acquisition time and is
marked entry_meta_trusted=False, so time-based exits skip it.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from charon.core.clock import Clock, epoch_ms
from charon.domain.position import ExecutionStatus, Position
from charon.integrations.polymarket.entry_meta import EntryMeta, EntryMetaResolver
from charon.integrations.polymarket.types import PolymarketSettings

log = structlog.get_logger()

RETRY_ATTEMPTS = 3
RETRY_WAIT_MIN = 1
RETRY_WAIT_MAX = 10

PAGE_LIMIT = 500
MIN_POSITION_SIZE = Decimal("0.01")

BidSource = Callable[[str], Awaitable[Optional[Decimal]]]


class DataApiError(Exception):
    """Error from the Data API client."""

    pass


def _decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


def parse_end_date(value: Any) -> Optional[int]:
    """Parse the endDate field (ISO date or datetime) to epoch ms."""
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp() * 1000)


class DataApiPositionProvider:
    """Async position snapshot provider for one wallet.

    Args:
        settings: Polymarket settings (data_api_url, timeout).
        wallet: Address whose positions are fetched.
        bid_source: Optional async callable returning the best bid per token;
            lookups run concurrently and a failure leaves the bid unset.
        clock: Epoch-ms clock used for hold-time computation.
        entry_meta: Trade-history resolver; built from the settings when omitted.
    """

    def __init__(
        self,
        settings: PolymarketSettings,
        wallet: str,
        bid_source: Optional[BidSource] = None,
        clock: Clock = epoch_ms,
        entry_meta: Optional[EntryMetaResolver] = None,
    ):
        self._base_url = settings.data_api_url.rstrip("/")
        self._timeout = settings.http_timeout_seconds
        self._wallet = wallet
        self._bid_source = bid_source
        self._clock = clock
        self._client: Optional[httpx.AsyncClient] = None
        self._entry_meta = entry_meta or EntryMetaResolver(
            self._ensure_connected,
            wallet,
            cache_ttl_seconds=settings.entry_meta_cache_ttl_seconds,
            clock=clock,
        )
        self._log = log.bind(component="data_api_provider")

    async def connect(self) -> None:
        if self._client is not None:
            return
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers={"Accept": "application/json"},
        )
        self._log.info("data_api_connected", base_url=self._base_url)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            self._log.info("data_api_closed")

    async def __aenter__(self) -> "DataApiPositionProvider":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def _ensure_connected(self) -> httpx.AsyncClient:
        if self._client is None:
            raise DataApiError("Client not connected. Call connect() first.")
        return self._client

    @retry(
        stop=stop_after_attempt(RETRY_ATTEMPTS),
        wait=wait_exponential(multiplier=1, min=RETRY_WAIT_MIN, max=RETRY_WAIT_MAX),
        retry=retry_if_exception_type((httpx.TransportError, httpx.TimeoutException)),
        reraise=True,
    )
    async def _fetch_page(self, offset: int) -> list[dict]:
        client = self._ensure_connected()
        response = await client.get(
            "/positions",
            params={
                "user": self._wallet,
                "sizeThreshold": str(MIN_POSITION_SIZE),
                "limit": PAGE_LIMIT,
                "offset": offset,
            },
        )
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, list):
            raise DataApiError(f"Unexpected /positions payload: {type(data).__name__}")
        return data

    async def fetch_raw_positions(self) -> list[dict]:
        """Fetch every position row for the wallet, following pagination."""
        rows: list[dict] = []
        offset = 0
        while True:
            page = await self._fetch_page(offset)
            rows.extend(page)
            if len(page) < PAGE_LIMIT:
                return rows
            offset += PAGE_LIMIT

    def to_position(
        self, row: dict, meta: Optional[EntryMeta], now_ms: int
    ) -> Optional[Position]:
        """Map one Data API row to a Position, or None for unusable rows.

        Without entry metadata the position has no acquisition time and is
        reported untrusted; a first-seen time would restart the hold clock
        on every process restart.
        """
        token_id = str(row.get("asset") or "")
        market_id = str(row.get("conditionId") or "")
        size = _decimal(row.get("size"))
        if not token_id or not market_id or size < MIN_POSITION_SIZE:
            return None

        entry_price = _decimal(row.get("avgPrice"))
        if meta is not None:
            first_acquired_at: Optional[int] = meta.first_acquired_at
            time_held_sec: Optional[float] = meta.held_seconds(now_ms)
            entry_meta_trusted = meta.trusted
        else:
            first_acquired_at = None
            time_held_sec = None
            entry_meta_trusted = False

        return Position(
            market_id=market_id,
            token_id=token_id,
            side=str(row.get("outcome") or ""),
            size=size,
            entry_price=entry_price,
            current_price=_decimal(row.get("curPrice")),
            pnl_pct=_decimal(row.get("percentPnl")),
            pnl_usd=_decimal(row.get("cashPnl")),
            pnl_trusted=entry_price > 0,
            entry_meta_trusted=entry_meta_trusted,
            first_acquired_at=first_acquired_at,
            time_held_sec=time_held_sec,
            redeemable=bool(row.get("redeemable", False)),
            execution_status=ExecutionStatus.TRADABLE,
            market_end_time=parse_end_date(row.get("endDate")),
        )

    async def _attach_bids(self, positions: list[Position]) -> list[Position]:
        if self._bid_source is None or not positions:
            return positions

        async def lookup(position: Position) -> Optional[Decimal]:
            try:
                return await self._bid_source(position.token_id)
            except Exception as e:
                self._log.debug("bid_lookup_failed", token_id=position.token_id, error=str(e))
                return None

        bids = await asyncio.gather(*(lookup(p) for p in positions))
        return [p.with_bid(bid) for p, bid in zip(positions, bids)]

    async def get_positions(self) -> list[Position]:
        """Return the current position snapshot.

        Raises:
            httpx.HTTPError or DataApiError if the snapshot cannot be fetched.
            Trade-history failures only mark the affected positions untrusted.
        """
        rows = await self.fetch_raw_positions()
        holdings = [
            (str(row.get("asset")), _decimal(row.get("size")))
            for row in rows
            if row.get("asset") and _decimal(row.get("size")) >= MIN_POSITION_SIZE
        ]
        metas = await self._entry_meta.resolve_many(holdings)
        self._entry_meta.forget_missing({token_id for token_id, _ in holdings})
        now = self._clock()

        positions = []
        for row in rows:
            position = self.to_position(row, metas.get(str(row.get("asset") or "")), now)
            if position is not None:
                positions.append(position)

        positions = await self._attach_bids(positions)
        self._log.debug(
            "positions_fetched",
            count=len(positions),
            rows=len(rows),
            untrusted=sum(1 for p in positions if p.entry_meta_trusted is False),
        )
        return positions
