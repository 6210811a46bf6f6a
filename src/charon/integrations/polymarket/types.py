"""Connection settings for the Polymarket integrations."""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from charon.core.config import ConfigManager
from charon.core.retry import ConfigurationError


@dataclass(frozen=True)
class PolymarketSettings:
    """Configuration settings for Polymarket connections.

    Attributes:
        private_key: Polygon wallet private key for signing.
        proxy_wallet: Optional Polymarket proxy wallet that holds the positions.
        signature_type: Signature type (0=EOA, 1=Magic, 2=Browser).
        api_key: CLOB API key; derived from the private key when empty.
        api_secret: CLOB API secret.
        api_passphrase: CLOB API passphrase.
        clob_url: CLOB HTTP API base URL.
        data_api_url: Data API base URL for position snapshots.
        polygon_rpc_url: Polygon RPC URL for chain interactions.
        sell_order_type: Order type for exit sells (FOK or GTC).
        http_timeout_seconds: Timeout for Data API requests.
        entry_meta_cache_ttl_seconds: How long trade-history lookups are reused.
    """

    private_key: str
    proxy_wallet: Optional[str] = None
    signature_type: int = 0

    api_key: str = ""
    api_secret: str = ""
    api_passphrase: str = ""

    clob_url: str = "https://clob.polymarket.com/"
    data_api_url: str = "https://data-api.polymarket.com"
    polygon_rpc_url: str = "https://polygon-rpc.com"

    sell_order_type: str = "FOK"
    http_timeout_seconds: float = 10.0
    entry_meta_cache_ttl_seconds: float = 90.0

    @property
    def position_wallet(self) -> Optional[str]:
        """Address whose positions are managed (proxy if configured)."""
        return self.proxy_wallet

    @classmethod
    def from_config_manager(
        cls,
        config: ConfigManager,
        prefix: str = "polymarket",
    ) -> "PolymarketSettings":
        """Create PolymarketSettings from ConfigManager.

        Raises:
            ConfigurationError: If no private key is configured.
        """
        private_key = config.get(f"{prefix}.private_key") or ""
        if not private_key:
            raise ConfigurationError(
                f"{prefix}.private_key is required (or set CHARON_POLYMARKET_PRIVATE_KEY)"
            )
        return cls(
            private_key=str(private_key),
            proxy_wallet=config.get(f"{prefix}.proxy_wallet") or None,
            signature_type=config.get_int(f"{prefix}.signature_type", default=0),
            api_key=str(config.get(f"{prefix}.api_key", default="") or ""),
            api_secret=str(config.get(f"{prefix}.api_secret", default="") or ""),
            api_passphrase=str(config.get(f"{prefix}.api_passphrase", default="") or ""),
            clob_url=config.get(f"{prefix}.clob_url", default=cls.clob_url),
            data_api_url=config.get(f"{prefix}.data_api_url", default=cls.data_api_url),
            polygon_rpc_url=config.get(f"{prefix}.polygon_rpc_url", default=cls.polygon_rpc_url),
            sell_order_type=str(
                config.get(f"{prefix}.sell_order_type", default=cls.sell_order_type)
            ).upper(),
            http_timeout_seconds=config.get_float(
                f"{prefix}.http_timeout_seconds", default=cls.http_timeout_seconds
            ),
            entry_meta_cache_ttl_seconds=config.get_float(
                f"{prefix}.entry_meta_cache_ttl_seconds",
                default=cls.entry_meta_cache_ttl_seconds,
            ),
        )


MIN_TICK = Decimal("0.001")
