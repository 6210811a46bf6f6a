"""
Unit tests for the CLOB sell-order submitter and Polymarket settings.

The py-clob-client instance is replaced by a mock; no network calls.
"""
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from charon.core.config import ConfigManager
from charon.core.retry import ConfigurationError
from charon.integrations.polymarket.clob import CLOBClientError, ClobSellSubmitter
from charon.integrations.polymarket.types import PolymarketSettings


@pytest.fixture
def settings():
    return PolymarketSettings(private_key="0x" + "a" * 64)


@pytest.fixture
def clob(settings):
    """Submitter with a mocked py-clob-client."""
    submitter = ClobSellSubmitter(settings)
    client = MagicMock()
    client.get_tick_size.return_value = "0.01"
    client.create_order.return_value = {"signed": True}
    client.post_order.return_value = {"success": True, "orderID": "order-123"}
    client.get_order_book.return_value = {
        "bids": [
            {"price": "0.52", "size": "100"},
            {"price": "0.54", "size": "20"},
            {"price": "0.60", "size": "0"},
        ],
        "asks": [{"price": "0.56", "size": "50"}],
    }
    submitter._client = client
    submitter._connected = True
    return submitter


class TestSettings:
    """PolymarketSettings from ConfigManager."""

    def test_private_key_required(self):
        with pytest.raises(ConfigurationError):
            PolymarketSettings.from_config_manager(ConfigManager())

    def test_from_config(self, tmp_path):
        path = tmp_path / "charon.toml"
        path.write_text(
            "[polymarket]\n"
            'private_key = "0xkey"\n'
            'proxy_wallet = "0xproxy"\n'
            'sell_order_type = "gtc"\n'
        )

        settings = PolymarketSettings.from_config_manager(ConfigManager(path))

        assert settings.private_key == "0xkey"
        assert settings.position_wallet == "0xproxy"
        assert settings.sell_order_type == "GTC"
        assert settings.clob_url == "https://clob.polymarket.com/"


class TestBestBid:
    """Order book reads."""

    @pytest.mark.asyncio
    async def test_highest_bid_with_size(self, clob):
        assert await clob.get_best_bid("token-yes") == Decimal("0.54")

    @pytest.mark.asyncio
    async def test_empty_book(self, clob):
        clob._client.get_order_book.return_value = {"bids": [], "asks": []}

        assert await clob.get_best_bid("token-yes") is None

    @pytest.mark.asyncio
    async def test_object_book(self, clob):
        level = MagicMock(price="0.41", size="5")
        clob._client.get_order_book.return_value = MagicMock(bids=[level])

        assert await clob.get_best_bid("token-yes") == Decimal("0.41")

    @pytest.mark.asyncio
    async def test_retries_book_failure(self, clob):
        clob._client.get_order_book.side_effect = [
            ConnectionError("reset"),
            {"bids": [{"price": "0.50", "size": "1"}]},
        ]

        assert await clob.get_best_bid("token-yes") == Decimal("0.50")
        assert clob._client.get_order_book.call_count == 2

    @pytest.mark.asyncio
    async def test_not_connected(self, settings):
        with pytest.raises(CLOBClientError):
            await ClobSellSubmitter(settings).get_best_bid("token-yes")


class TestSubmitSellOrder:
    """Limit sell submission."""

    @pytest.mark.asyncio
    async def test_success(self, clob):
        result = await clob.submit_sell_order("token-yes", Decimal("10.567"), Decimal("0.999"))

        assert result.success is True
        assert result.order_id == "order-123"
        order_args = clob._client.create_order.call_args.args[0]
        assert order_args.token_id == "token-yes"
        assert order_args.size == 10.56
        assert order_args.price == 0.99
        assert order_args.side == "SELL"

    @pytest.mark.asyncio
    async def test_below_minimum_not_submitted(self, clob):
        result = await clob.submit_sell_order("token-yes", Decimal("1"), Decimal("0.50"))

        assert result.success is False
        assert "below minimum" in result.error
        clob._client.create_order.assert_not_called()

    @pytest.mark.asyncio
    async def test_min_order_updated(self, clob):
        clob.set_min_order_usd(Decimal("0.25"))

        result = await clob.submit_sell_order("token-yes", Decimal("1"), Decimal("0.50"))

        assert result.success is True

    @pytest.mark.asyncio
    async def test_rejection_returned(self, clob):
        clob._client.post_order.return_value = {
            "success": False,
            "errorMsg": "not enough balance / allowance",
        }

        result = await clob.submit_sell_order("token-yes", Decimal("10"), Decimal("0.55"))

        assert result.success is False
        assert result.error == "not enough balance / allowance"

    @pytest.mark.asyncio
    async def test_client_exception_returned(self, clob):
        clob._client.post_order.side_effect = RuntimeError("PolyApiException 500")

        result = await clob.submit_sell_order("token-yes", Decimal("10"), Decimal("0.55"))

        assert result.success is False
        assert result.error == "PolyApiException 500"

    @pytest.mark.asyncio
    async def test_tick_size_fallback(self, clob):
        clob._client.get_tick_size.side_effect = RuntimeError("unknown token")

        await clob.submit_sell_order("token-yes", Decimal("10"), Decimal("0.5555"))

        assert clob._client.create_order.call_args.args[0].price == 0.555
