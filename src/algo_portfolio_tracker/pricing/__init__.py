"""Pricing services for spot and historical USD values."""

from algo_portfolio_tracker.core.days import historical_price_key
from algo_portfolio_tracker.pricing.cache import CacheEntry, InMemoryPriceCache, PriceCache
from algo_portfolio_tracker.pricing.historical import CoinGeckoHistoricalClient
from algo_portfolio_tracker.pricing.resolvers import (
    CoinGeckoSimplePriceResolver,
    DefiLlamaContractPriceResolver,
    DefiLlamaPriceResolver,
    DexScreenerPriceResolver,
    PriceTarget,
    SpotPriceResolver,
)
from algo_portfolio_tracker.pricing.service import PriceService, build_default_resolvers

__all__ = [
    "CacheEntry",
    "CoinGeckoHistoricalClient",
    "CoinGeckoSimplePriceResolver",
    "DefiLlamaContractPriceResolver",
    "DefiLlamaPriceResolver",
    "DexScreenerPriceResolver",
    "InMemoryPriceCache",
    "PriceCache",
    "PriceService",
    "PriceTarget",
    "SpotPriceResolver",
    "build_default_resolvers",
    "historical_price_key",
]
