from currency_calculator.rates.base import (
    CacheCorrupt,
    CacheRecord,
    FetchFailed,
    RateServiceError,
    RateTable,
    UnsupportedCurrency,
)
from currency_calculator.rates.fetcher import FetchStatus, RateFetcher, RateFetchResult
from currency_calculator.rates.store import (
    RateCacheStore,
    RedisRateCacheStore,
    SqlRateCacheStore,
    build_cache_store,
)

__all__ = [
    "CacheCorrupt",
    "CacheRecord",
    "FetchFailed",
    "FetchStatus",
    "RateCacheStore",
    "RateFetchResult",
    "RateFetcher",
    "RateServiceError",
    "RateTable",
    "RedisRateCacheStore",
    "SqlRateCacheStore",
    "UnsupportedCurrency",
    "build_cache_store",
]
