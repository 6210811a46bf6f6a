"""Polymarket integrations - CLOB sells and Data API positions."""

from charon.integrations.polymarket.clob import ClobSellSubmitter, CLOBClientError
from charon.integrations.polymarket.data_api import DataApiError, DataApiPositionProvider
from charon.integrations.polymarket.types import PolymarketSettings

__all__ = [
    "PolymarketSettings",
    "ClobSellSubmitter",
    "CLOBClientError",
    "DataApiPositionProvider",
    "DataApiError",
]
