"""
Unit tests for CTF (Conditional Tokens Framework) client.

Tests the CTF contract interaction functionality using mocks.
"""

from unittest.mock import MagicMock

import pytest

from charon.core.retry import InvalidConditionIdError, NetworkError, PermanentError
from charon.integrations.chain.ctf import (
    BINARY_INDEX_SETS,
    CTF_ADDRESS,
    USDC_ADDRESS,
    CTFClient,
    CTFError,
    validate_condition_id,
)

# Test condition ID (64 hex chars = 32 bytes)
VALID_CONDITION_ID = "0x" + "a" * 64
VALID_CONDITION_ID_NO_PREFIX = "a" * 64
TX_HASH = "0x" + "f" * 64
EOA = "0x1234567890abcdef1234567890abcdef12345678"
PROXY = "0x" + "9" * 40


def make_client(**kwargs) -> CTFClient:
    return CTFClient(rpc_url="https://polygon-rpc.com", private_key="0x" + "a" * 64, **kwargs)


@pytest.fixture
def connected_client():
    """CTFClient with web3, account and contract replaced by mocks."""
    client = make_client()
    client._w3 = MagicMock()
    client._account = MagicMock()
    client._account.address = EOA
    client._ctf_contract = MagicMock()
    client._connected = True

    client._w3.eth.get_transaction_count.return_value = 1
    client._w3.eth.gas_price = 30_000_000_000
    client._w3.eth.estimate_gas.return_value = 150000
    client._ctf_contract.functions.redeemPositions.return_value.build_transaction.return_value = {
        "from": EOA,
        "nonce": 1,
        "gasPrice": 39_000_000_000,
        "gas": 300000,
        "data": "0xredeem",
    }

    tx_hash = MagicMock()
    tx_hash.hex.return_value = TX_HASH
    client._w3.eth.send_raw_transaction.return_value = tx_hash
    client._w3.eth.wait_for_transaction_receipt.return_value = {
        "status": 1,
        "blockNumber": 12345678,
        "gasUsed": 150000,
    }
    return client


class TestValidateConditionId:
    """Condition id parsing."""

    def test_with_prefix(self):
        assert validate_condition_id(VALID_CONDITION_ID) == bytes.fromhex("a" * 64)

    def test_without_prefix(self):
        assert validate_condition_id(VALID_CONDITION_ID_NO_PREFIX) == bytes.fromhex("a" * 64)

    def test_bad_hex(self):
        with pytest.raises(InvalidConditionIdError, match="hex"):
            validate_condition_id("0x" + "z" * 64)

    def test_wrong_length(self):
        with pytest.raises(InvalidConditionIdError, match="length"):
            validate_condition_id("0x" + "a" * 40)


class TestCTFClientBasics:
    """Basic tests for CTFClient instantiation and properties."""

    def test_client_instantiates(self):
        """Verify CTFClient can be instantiated."""
        client = make_client()

        assert client.is_connected is False
        assert client.address is None
        assert client._ctf_address == CTF_ADDRESS
        assert client._usdc_address == USDC_ADDRESS

    def test_client_gas_settings(self):
        """Verify client accepts gas configuration."""
        client = make_client(gas_price_multiplier=1.5, default_gas_limit=500000)

        assert client._gas_price_multiplier == 1.5
        assert client._default_gas_limit == 500000

    def test_uses_proxy(self, connected_client):
        assert connected_client.uses_proxy is False

        connected_client._proxy_address = PROXY
        assert connected_client.uses_proxy is True

        connected_client._proxy_address = EOA.upper().replace("0X", "0x")
        assert connected_client.uses_proxy is False

    @pytest.mark.asyncio
    async def test_not_connected_raises(self):
        client = make_client()

        with pytest.raises(CTFError, match="not connected"):
            await client.get_payout_denominator(VALID_CONDITION_ID)
        with pytest.raises(CTFError, match="not connected"):
            await client.submit_redemption(VALID_CONDITION_ID)

    @pytest.mark.asyncio
    async def test_close_resets_state(self, connected_client):
        await connected_client.close()

        assert connected_client.is_connected is False
        assert connected_client._w3 is None


class TestPayoutDenominator:
    """Resolution reads."""

    @pytest.mark.asyncio
    async def test_returns_int(self, connected_client):
        connected_client._ctf_contract.functions.payoutDenominator.return_value.call.return_value = 1

        assert await connected_client.get_payout_denominator(VALID_CONDITION_ID) == 1
        connected_client._ctf_contract.functions.payoutDenominator.assert_called_with(
            bytes.fromhex("a" * 64)
        )

    @pytest.mark.asyncio
    async def test_unresolved_is_zero(self, connected_client):
        connected_client._ctf_contract.functions.payoutDenominator.return_value.call.return_value = 0

        assert await connected_client.get_payout_denominator(VALID_CONDITION_ID) == 0

    @pytest.mark.asyncio
    async def test_invalid_id_not_retried(self, connected_client):
        with pytest.raises(InvalidConditionIdError):
            await connected_client.get_payout_denominator("0x1234")

        connected_client._ctf_contract.functions.payoutDenominator.assert_not_called()

    @pytest.mark.asyncio
    async def test_rpc_failure_raises_network_error(self, connected_client):
        call = connected_client._ctf_contract.functions.payoutDenominator.return_value.call
        call.side_effect = ConnectionError("rpc down")

        with pytest.raises(NetworkError):
            await connected_client.get_payout_denominator(VALID_CONDITION_ID)
        assert call.call_count == 2

    @pytest.mark.asyncio
    async def test_decode_failure_is_permanent(self, connected_client):
        """A non-transport failure is raised once, without a retry."""
        call = connected_client._ctf_contract.functions.payoutDenominator.return_value.call
        call.side_effect = ValueError("Could not decode contract function call")

        with pytest.raises(PermanentError) as exc_info:
            await connected_client.get_payout_denominator(VALID_CONDITION_ID)
        assert call.call_count == 1
        assert isinstance(exc_info.value.cause, ValueError)


class TestRedeemPositions:
    """Redemption transactions."""

    @pytest.mark.asyncio
    async def test_success(self, connected_client):
        result = await connected_client.submit_redemption(VALID_CONDITION_ID)

        assert result.success is True
        assert result.transaction_hash == TX_HASH
        args = connected_client._ctf_contract.functions.redeemPositions.call_args.args
        assert args[1] == bytes(32)
        assert args[2] == bytes.fromhex("a" * 64)
        assert args[3] == BINARY_INDEX_SETS
        signed_tx = connected_client._account.sign_transaction.call_args.args[0]
        assert signed_tx["gas"] == 180000

    @pytest.mark.asyncio
    async def test_reverted_receipt(self, connected_client):
        connected_client._w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 0,
            "blockNumber": 12345678,
            "gasUsed": 21000,
        }

        result = await connected_client.redeem_positions(VALID_CONDITION_ID)

        assert result.success is False
        assert result.error == "Transaction reverted"
        assert result.transaction_hash == TX_HASH

    @pytest.mark.asyncio
    async def test_send_error_returns_raw_text(self, connected_client):
        connected_client._w3.eth.send_raw_transaction.side_effect = ValueError(
            "nonce too low"
        )

        result = await connected_client.redeem_positions(VALID_CONDITION_ID)

        assert result.success is False
        assert result.error == "nonce too low"
        assert result.transaction_hash is None

    @pytest.mark.asyncio
    async def test_estimate_revert_is_surfaced(self, connected_client):
        connected_client._w3.eth.estimate_gas.side_effect = ValueError(
            "execution reverted: result for condition not received yet"
        )

        result = await connected_client.redeem_positions(VALID_CONDITION_ID)

        assert result.success is False
        assert "not received yet" in result.error
        connected_client._w3.eth.send_raw_transaction.assert_not_called()

    @pytest.mark.asyncio
    async def test_estimate_failure_uses_default_gas(self, connected_client):
        connected_client._w3.eth.estimate_gas.side_effect = ValueError("gas required exceeds")

        result = await connected_client.redeem_positions(VALID_CONDITION_ID)

        assert result.success is True
        signed_tx = connected_client._account.sign_transaction.call_args.args[0]
        assert signed_tx["gas"] == 300000

    @pytest.mark.asyncio
    async def test_invalid_condition_id(self, connected_client):
        result = await connected_client.redeem_positions("not-a-condition")

        assert result.success is False
        assert "Invalid condition_id" in result.error

    @pytest.mark.asyncio
    async def test_forwards_through_proxy(self, connected_client):
        connected_client._proxy_address = PROXY
        proxy = MagicMock()
        proxy.functions.proxy.return_value.build_transaction.return_value = {
            "from": EOA,
            "nonce": 1,
            "gasPrice": 39_000_000_000,
            "gas": 300000,
            "data": "0xproxy",
        }
        connected_client._proxy_contract = proxy

        result = await connected_client.redeem_positions(VALID_CONDITION_ID)

        assert result.success is True
        dest, calldata = proxy.functions.proxy.call_args.args
        assert dest.lower() == CTF_ADDRESS.lower()
        assert calldata == "0xredeem"
