"""PolyQuote — Feed modules."""
from .market_stream import MarketStream, StreamConfig
from .market_discovery import (
    DiscoveryConfig,
    MarketDiscovery,
    MarketNotFoundError,
    candidate_slugs,
    parse_gamma_market,
)

__all__ = [
    "MarketStream",
    "StreamConfig",
    "DiscoveryConfig",
    "MarketDiscovery",
    "MarketNotFoundError",
    "candidate_slugs",
    "parse_gamma_market",
]
