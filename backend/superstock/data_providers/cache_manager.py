"""
Cache Manager

In-memory quote cache backed by cachetools.TTLCache. Entries expire a fixed
TTL after insertion; the cache is bounded so symbols that are never asked
for again do not accumulate. A TTL of zero disables caching entirely.
"""
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from cachetools import TTLCache
from loguru import logger

from superstock.data_providers.adapters.base import Quote
from superstock.data_providers.data_normalizer import clean_symbol


DEFAULT_MAX_ENTRIES = 10_000

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_TICK = timedelta(microseconds=1)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class QuoteCache:
    """
    Symbol -> Quote cache.

    get/set/invalidate never await, so concurrent tasks on the event loop
    never block one another. Quotes are copied in and out; callers cannot
    mutate a cached entry.

    Usage:
        cache = QuoteCache(ttl_seconds=300)
        cache.set(quote)
        cached = cache.get("AAPL")
    """

    prefix = "stock_price"

    def __init__(
        self,
        ttl_seconds: float = 300,
        clock: Callable[[], datetime] = _utc_now,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ):
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds must not be negative")
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        # Integer microsecond ticks; the extra tick keeps an entry until its age exceeds the TTL
        self._store: TTLCache = TTLCache(
            maxsize=max_entries,
            ttl=self.ttl // _TICK + 1,
            timer=self._ticks,
        )
        self._hits = 0
        self._misses = 0

    def _ticks(self) -> int:
        return (self._clock() - _EPOCH) // _TICK

    @property
    def enabled(self) -> bool:
        return self.ttl > timedelta(0)

    @property
    def max_entries(self) -> int:
        return int(self._store.maxsize)

    def _key(self, symbol: str) -> str:
        return f"{self.prefix}_{clean_symbol(symbol)}"

    def get(self, symbol: str) -> Optional[Quote]:
        """Return a copy of the cached quote if still fresh."""
        key = self._key(symbol)
        cached = self._store.get(key)
        if cached is None:
            self._misses += 1
            return None

        quote = replace(cached)
        # Stale by quote age even when the entry itself has not expired
        if quote.refresh_staleness(self.ttl, self._clock()):
            self._store.pop(key, None)
            self._misses += 1
            logger.debug(f"Cached data for {symbol} is stale, evicted")
            return None

        self._hits += 1
        logger.debug(f"Cache hit for quote: {symbol}")
        return quote

    def set(self, quote: Quote) -> None:
        if not self.enabled:
            return
        self._store[self._key(quote.symbol)] = replace(quote)
        logger.debug(
            f"Cached stock data for {quote.symbol} with {self.ttl.total_seconds() / 60:.1f} minute expiration"
        )

    def set_many(self, quotes: list[Quote]) -> None:
        for quote in quotes:
            self.set(quote)

    def invalidate(self, symbol: str) -> bool:
        return self._store.pop(self._key(symbol), None) is not None

    def clear(self) -> int:
        """Drop every live entry. Returns the number removed."""
        count = len(self)
        self._store.clear()
        logger.info(f"Quote cache cleared ({count} entries)")
        return count

    def __len__(self) -> int:
        self._store.expire()
        return len(self._store)

    def get_stats(self) -> dict:
        total = self._hits + self._misses
        return {
            "enabled": self.enabled,
            "ttl_seconds": self.ttl.total_seconds(),
            "size": len(self),
            "max_entries": self.max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 3) if total else 0.0,
        }
