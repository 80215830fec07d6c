"""Upstream market-data provider clients."""

from .base import ProviderClient, parse_retry_after
from .coingecko import CoinGeckoClient, create_coingecko_client
from .polygon import PolygonClient, create_polygon_client

__all__ = [
    "CoinGeckoClient",
    "PolygonClient",
    "ProviderClient",
    "create_coingecko_client",
    "create_polygon_client",
    "parse_retry_after",
]
