"""CTF (Conditional Tokens Framework) client for resolution reads and redemption.

This module handles the on-chain side of exits:
- Read the payout denominator of a condition (0 = unresolved)
- Redeem positions after market resolution, directly from the EOA or
  forwarded through the wallet's proxy contract

The CTF contract is the Gnosis Conditional Tokens contract deployed on
Polygon. After a market resolves, outcome tokens are redeemed for the USDC
collateral via redeemPositions().

Redemption never raises for chain-side failures: reverts and provider
errors come back as SubmitResult(success=False, error=<raw text>) so the
redemption classifier sees the raw message.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

import structlog
from eth_account import Account
from web3 import Web3

from charon.core.retry import InvalidConditionIdError, retry_transient, wrap_external_error
from charon.domain.redemption import SubmitResult

log = structlog.get_logger()


# Polygon mainnet addresses
CTF_ADDRESS = "0x4D97DCd97eC945f40cF65F87097ACe5EA0476045"  # Conditional Tokens Framework
USDC_ADDRESS = "0x2791Bca1f2de4661ED88A30C99A7a9449Aa84174"  # USDC.e on Polygon

BINARY_INDEX_SETS = [1, 2]

CTF_ABI = [
    {
        "inputs": [
            {"name": "collateralToken", "type": "address"},
            {"name": "parentCollectionId", "type": "bytes32"},
            {"name": "conditionId", "type": "bytes32"},
            {"name": "indexSets", "type": "uint256[]"},
        ],
        "name": "redeemPositions",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"name": "conditionId", "type": "bytes32"}],
        "name": "payoutDenominator",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

# Polymarket proxy wallet: forwards an arbitrary call from the owner EOA.
PROXY_ABI = [
    {
        "inputs": [
            {"name": "dest", "type": "address"},
            {"name": "data", "type": "bytes"},
        ],
        "name": "proxy",
        "outputs": [{"name": "", "type": "bytes"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


class CTFError(Exception):
    """Client misuse (not connected, RPC unreachable at connect time)."""

    pass


def validate_condition_id(condition_id: str) -> bytes:
    """Validate and convert a condition ID to bytes32.

    Args:
        condition_id: Condition ID as hex string (with or without 0x prefix).

    Returns:
        Condition ID as bytes32.

    Raises:
        InvalidConditionIdError: If condition_id is not 32 bytes of hex.
    """
    raw = condition_id[2:] if condition_id.startswith("0x") else condition_id

    try:
        condition_bytes = bytes.fromhex(raw)
    except ValueError:
        raise InvalidConditionIdError(f"Invalid condition_id hex: {raw[:20]}...")

    if len(condition_bytes) != 32:
        raise InvalidConditionIdError(
            f"Invalid condition_id length: {len(condition_bytes)}, expected 32"
        )

    return condition_bytes


class CTFClient:
    """Client for the Conditional Tokens Framework contract.

    Implements both collaborators the exit engine needs from the chain:
    the resolution reader (get_payout_denominator) and the redemption
    submitter (submit_redemption). Synchronous web3 calls run in a thread
    pool.
    """

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        proxy_address: Optional[str] = None,
        ctf_address: str = CTF_ADDRESS,
        usdc_address: str = USDC_ADDRESS,
        executor: Optional[ThreadPoolExecutor] = None,
        gas_price_multiplier: float = 1.3,
        default_gas_limit: int = 300000,
        receipt_timeout_seconds: int = 120,
    ):
        """Initialize the CTF client.

        Args:
            rpc_url: Polygon RPC endpoint URL.
            private_key: Private key for signing transactions (hex string).
            proxy_address: Proxy wallet holding the positions, if not the EOA.
            ctf_address: CTF contract address.
            usdc_address: Collateral token address.
            executor: Optional thread pool for async execution.
            gas_price_multiplier: Multiplier applied to the current gas price.
            default_gas_limit: Gas limit used when estimation fails.
            receipt_timeout_seconds: How long to wait for the receipt.
        """
        self._rpc_url = rpc_url
        self._private_key = private_key
        self._proxy_address = proxy_address
        self._ctf_address = ctf_address
        self._usdc_address = usdc_address
        self._executor = executor or ThreadPoolExecutor(max_workers=4)
        self._gas_price_multiplier = gas_price_multiplier
        self._default_gas_limit = default_gas_limit
        self._receipt_timeout = receipt_timeout_seconds
        self._log = log.bind(component="ctf_client")

        self._w3: Any = None
        self._account: Any = None
        self._ctf_contract: Any = None
        self._proxy_contract: Any = None
        self._connected = False

    @property
    def address(self) -> Optional[str]:
        """Signing wallet address."""
        return self._account.address if self._account else None

    @property
    def uses_proxy(self) -> bool:
        return bool(self._proxy_address) and (
            self.address is None
            or self._proxy_address.lower() != self.address.lower()
        )

    @property
    def is_connected(self) -> bool:
        return self._connected and self._w3 is not None

    async def connect(self) -> None:
        """Connect to the Polygon RPC and initialize contracts."""
        if self._connected:
            return

        self._w3 = Web3(Web3.HTTPProvider(self._rpc_url))
        if not await self._run_sync(self._w3.is_connected):
            raise CTFError(f"Failed to connect to RPC: {self._rpc_url}")

        self._account = Account.from_key(self._private_key)
        ctf_checksum = Web3.to_checksum_address(self._ctf_address)
        self._ctf_contract = self._w3.eth.contract(address=ctf_checksum, abi=CTF_ABI)

        if self.uses_proxy:
            self._proxy_contract = self._w3.eth.contract(
                address=Web3.to_checksum_address(self._proxy_address),
                abi=PROXY_ABI,
            )

        self._connected = True
        self._log.info(
            "ctf_client_connected",
            rpc=self._rpc_url,
            address=self._account.address,
            proxy=self._proxy_address if self.uses_proxy else None,
        )

    async def close(self) -> None:
        self._w3 = None
        self._account = None
        self._ctf_contract = None
        self._proxy_contract = None
        self._connected = False
        self._log.debug("ctf_client_closed")

    async def __aenter__(self) -> "CTFClient":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _run_sync(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        """Run a synchronous function in the thread pool."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, lambda: func(*args, **kwargs))

    def _ensure_connected(self) -> None:
        if not self._connected:
            raise CTFError("Client not connected. Call connect() first.")

    @retry_transient(max_attempts=2, min_wait=0.5, max_wait=2.0)
    async def get_payout_denominator(self, condition_id: str) -> int:
        """Read the payout denominator of a condition.

        Returns:
            0 while unresolved, > 0 once the outcome is final.

        Raises:
            InvalidConditionIdError: For malformed condition ids.
            NetworkError: When the RPC read fails transiently (retried once).
            PermanentError: When the read fails for any other reason.
        """
        self._ensure_connected()
        condition_bytes = validate_condition_id(condition_id)
        try:
            value = await self._run_sync(
                lambda: self._ctf_contract.functions.payoutDenominator(condition_bytes).call()
            )
        except Exception as e:
            raise wrap_external_error(
                e, f"payoutDenominator read failed for {condition_id[:16]}"
            ) from e
        return int(value)

    async def submit_redemption(self, market_id: str) -> SubmitResult:
        """Redemption submitter entry point: redeem both binary outcomes."""
        return await self.redeem_positions(market_id)

    async def redeem_positions(
        self,
        condition_id: str,
        index_sets: Optional[list[int]] = None,
    ) -> SubmitResult:
        """Redeem CTF positions after market resolution.

        For binary markets index_sets=[1, 2] redeems both outcomes; the
        contract only pays out for the winning one.

        Args:
            condition_id: Market condition ID (hex string, 32 bytes).
            index_sets: Outcome index sets to redeem.

        Returns:
            SubmitResult with the transaction hash or the raw error text.
        """
        self._ensure_connected()
        try:
            condition_bytes = validate_condition_id(condition_id)
        except InvalidConditionIdError as e:
            return SubmitResult(success=False, error=str(e))

        if index_sets is None:
            index_sets = list(BINARY_INDEX_SETS)

        self._log.info(
            "redeeming_positions",
            condition_id=condition_id[:16] + "...",
            index_sets=index_sets,
            wallet=self._account.address,
            via_proxy=self.uses_proxy,
        )

        tx_hash_hex: Optional[str] = None
        try:
            call = self._ctf_contract.functions.redeemPositions(
                Web3.to_checksum_address(self._usdc_address),
                bytes(32),  # parentCollectionId, zero for root collection
                condition_bytes,
                index_sets,
            )
            if self.uses_proxy:
                calldata = (await self._build_tx(call))["data"]
                call = self._proxy_contract.functions.proxy(
                    Web3.to_checksum_address(self._ctf_address), calldata
                )

            tx = await self._build_tx(call)
            tx = await self._with_gas_estimate(tx)

            signed = self._account.sign_transaction(tx)
            raw = getattr(signed, "raw_transaction", None) or signed.rawTransaction
            tx_hash = await self._run_sync(self._w3.eth.send_raw_transaction, raw)
            tx_hash_hex = tx_hash.hex()
            self._log.info("redemption_tx_submitted", tx_hash=tx_hash_hex, gas_limit=tx["gas"])

            receipt = await self._run_sync(
                self._w3.eth.wait_for_transaction_receipt,
                tx_hash,
                timeout=self._receipt_timeout,
            )
        except Exception as e:
            self._log.error(
                "redemption_error",
                condition_id=condition_id[:16] + "...",
                error=str(e),
            )
            return SubmitResult(
                success=False,
                error=str(e) or type(e).__name__,
                transaction_hash=tx_hash_hex,
            )

        if receipt["status"] != 1:
            self._log.error(
                "redemption_tx_reverted",
                tx_hash=tx_hash_hex,
                block=receipt["blockNumber"],
            )
            return SubmitResult(
                success=False,
                error="Transaction reverted",
                transaction_hash=tx_hash_hex,
            )

        self._log.info(
            "redemption_confirmed",
            tx_hash=tx_hash_hex,
            block=receipt["blockNumber"],
            gas_used=receipt["gasUsed"],
        )
        return SubmitResult(success=True, transaction_hash=tx_hash_hex)

    async def _build_tx(self, call: Any) -> dict[str, Any]:
        nonce = await self._run_sync(
            self._w3.eth.get_transaction_count, self._account.address, "pending"
        )
        gas_price = await self._run_sync(lambda: self._w3.eth.gas_price)
        return await self._run_sync(
            call.build_transaction,
            {
                "from": self._account.address,
                "nonce": nonce,
                "gasPrice": int(gas_price * self._gas_price_multiplier),
                "gas": self._default_gas_limit,
            },
        )

    async def _with_gas_estimate(self, tx: dict[str, Any]) -> dict[str, Any]:
        try:
            estimate = await self._run_sync(self._w3.eth.estimate_gas, tx)
        except Exception as e:
            # Estimation reverts carry the useful error text; surface it.
            if "revert" in str(e).lower():
                raise
            self._log.warning(
                "gas_estimate_failed",
                error=str(e),
                using_default=self._default_gas_limit,
            )
            return tx
        tx["gas"] = int(estimate * 1.2)
        return tx
