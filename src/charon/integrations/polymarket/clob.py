"""Polymarket CLOB sell-order submitter.

Wraps the synchronous py-clob-client library with asyncio support using
a thread pool executor. Only the pieces the exit engine needs are exposed:
best-bid lookup (read-only) and limit sell submission.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from decimal import ROUND_DOWN, Decimal
from typing import Any, Optional

import structlog
from py_clob_client.client import ClobClient
from py_clob_client.clob_types import ApiCreds, OrderArgs, OrderType
from py_clob_client.order_builder.constants import SELL
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from charon.domain.redemption import SubmitResult
from charon.integrations.polymarket.types import MIN_TICK, PolymarketSettings

log = structlog.get_logger()

POLYGON_CHAIN_ID = 137
SHARE_PRECISION = Decimal("0.01")


class CLOBClientError(Exception):
    """Base error from CLOB API client."""

    pass


class BookUnavailableError(CLOBClientError):
    """Order book request failed; may succeed on retry."""

    pass


class ClobSellSubmitter:
    """Sell-order submitter and bid source backed by py-clob-client.

    Usage:
        async with ClobSellSubmitter(settings) as clob:
            bid = await clob.get_best_bid(token_id)
            result = await clob.submit_sell_order(token_id, size, bid)
    """

    def __init__(
        self,
        settings: PolymarketSettings,
        min_order_usd: Decimal = Decimal("1"),
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        """Initialize the submitter.

        Args:
            settings: Polymarket connection settings including credentials.
            min_order_usd: Orders with a smaller notional are rejected locally.
            executor: Optional thread pool for async execution.
        """
        self._settings = settings
        self._min_order_usd = min_order_usd
        self._executor = executor or ThreadPoolExecutor(max_workers=4)
        self._client: Any = None
        self._log = log.bind(component="clob_sell_submitter")
        self._connected = False

    async def connect(self) -> None:
        """Create the underlying CLOB client and API credentials."""
        if self._connected:
            return

        settings = self._settings
        creds = (
            ApiCreds(
                api_key=settings.api_key,
                api_secret=settings.api_secret,
                api_passphrase=settings.api_passphrase,
            )
            if settings.api_key
            else None
        )

        def create_client() -> ClobClient:
            client = ClobClient(
                host=settings.clob_url.rstrip("/"),
                key=settings.private_key,
                chain_id=POLYGON_CHAIN_ID,
                signature_type=settings.signature_type,
                funder=settings.proxy_wallet,
                creds=creds,
            )
            if creds is None:
                client.set_api_creds(client.create_or_derive_api_creds())
            return client

        self._client = await self._run_sync(create_client)
        self._connected = True
        self._log.info("clob_client_connected", url=settings.clob_url)

    async def close(self) -> None:
        self._client = None
        self._connected = False
        self._log.info("clob_client_closed")

    async def __aenter__(self) -> "ClobSellSubmitter":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def set_min_order_usd(self, value: Decimal) -> None:
        self._min_order_usd = value

    def _ensure_connected(self) -> Any:
        if not self._connected or self._client is None:
            raise CLOBClientError("Client not connected. Call connect() first.")
        return self._client

    async def _run_sync(self, func, *args, **kwargs):
        """Run a synchronous function in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, lambda: func(*args, **kwargs))

    # =========================================================================
    # Read-only
    # =========================================================================

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(BookUnavailableError),
        reraise=True,
    )
    async def get_best_bid(self, token_id: str) -> Optional[Decimal]:
        """Highest bid for a token, or None when the book has no bids."""
        client = self._ensure_connected()
        try:
            book = await self._run_sync(client.get_order_book, token_id)
        except Exception as e:
            raise BookUnavailableError(f"order book fetch failed for {token_id}: {e}") from e

        levels = book.get("bids") if isinstance(book, dict) else getattr(book, "bids", None)
        best: Optional[Decimal] = None
        for level in levels or []:
            if isinstance(level, dict):
                price, size = level.get("price", 0), level.get("size", 0)
            else:
                price, size = getattr(level, "price", 0), getattr(level, "size", 0)
            price_d = Decimal(str(price))
            if Decimal(str(size)) > 0 and (best is None or price_d > best):
                best = price_d
        return best

    async def _tick_size(self, token_id: str) -> Decimal:
        client = self._ensure_connected()
        try:
            return Decimal(str(await self._run_sync(client.get_tick_size, token_id)))
        except Exception as e:
            self._log.debug("tick_size_lookup_failed", token_id=token_id, error=str(e))
            return MIN_TICK

    # =========================================================================
    # Submission
    # =========================================================================

    async def submit_sell_order(
        self,
        token_id: str,
        size: Decimal,
        limit_price: Decimal,
    ) -> SubmitResult:
        """Submit a limit sell for a position.

        Args:
            token_id: Outcome token to sell.
            size: Shares to sell (rounded down to 0.01).
            limit_price: Minimum acceptable price (rounded down to the tick).

        Returns:
            SubmitResult; exchange rejections are returned, not raised.
        """
        client = self._ensure_connected()

        shares = size.quantize(SHARE_PRECISION, rounding=ROUND_DOWN)
        tick = await self._tick_size(token_id)
        price = limit_price.quantize(tick, rounding=ROUND_DOWN)

        notional = shares * price
        if shares <= 0 or price <= 0 or notional < self._min_order_usd:
            self._log.info(
                "sell_order_below_minimum",
                token_id=token_id,
                shares=str(shares),
                price=str(price),
                min_order_usd=str(self._min_order_usd),
            )
            return SubmitResult(
                success=False,
                error=f"order value ${notional} below minimum ${self._min_order_usd}",
            )

        order_type = OrderType.GTC if self._settings.sell_order_type == "GTC" else OrderType.FOK
        self._log.info(
            "submitting_sell_order",
            token_id=token_id,
            shares=str(shares),
            price=str(price),
            order_type=self._settings.sell_order_type,
        )

        try:
            order = await self._run_sync(
                client.create_order,
                OrderArgs(
                    token_id=token_id,
                    price=float(price),
                    size=float(shares),
                    side=SELL,
                ),
            )
            response = await self._run_sync(client.post_order, order, order_type)
        except Exception as e:
            self._log.error("sell_order_failed", token_id=token_id, error=str(e))
            return SubmitResult(success=False, error=str(e) or type(e).__name__)

        if isinstance(response, dict):
            ok = response.get("success", True)
            order_id = response.get("orderID") or response.get("id")
            error = response.get("errorMsg") or None
        else:
            ok = getattr(response, "success", True)
            order_id = getattr(response, "orderID", None)
            error = getattr(response, "errorMsg", None)

        if not ok:
            self._log.warning("sell_order_rejected", token_id=token_id, error=error)
            return SubmitResult(success=False, error=error or "order rejected", order_id=order_id)

        self._log.info("sell_order_submitted", token_id=token_id, order_id=order_id)
        return SubmitResult(success=True, order_id=order_id)
