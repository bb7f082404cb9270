"""Spot-price lookup with an explicit TTL cache."""

from networth_tracker.pricing.cache import CacheEntry, PriceCache
from networth_tracker.pricing.coingecko import CoinGeckoPricing
from networth_tracker.pricing.refresher import PriceRefresher, PriceSource

__all__ = [
    "CacheEntry",
    "CoinGeckoPricing",
    "PriceCache",
    "PriceRefresher",
    "PriceSource",
]
