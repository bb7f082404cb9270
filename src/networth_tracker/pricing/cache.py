"""TTL-based cache for spot prices."""

import threading
import time
from collections.abc import Callable
from decimal import Decimal


class CacheEntry:
    """
    Cached price with the time it was stored.

    Parameters
    ----------
    price : Decimal
        Cached USD price
    created_at : float
        Clock reading when the entry was stored

    """

    def __init__(self, price: Decimal, created_at: float) -> None:
        self.price = price
        self.created_at = created_at

    def is_expired(self, now: float, ttl: float) -> bool:
        """
        Check if the entry is older than the TTL.

        Parameters
        ----------
        now : float
            Current clock reading
        ttl : float
            Time-to-live in seconds

        Returns
        -------
        bool
            True if expired, False otherwise

        """
        return (now - self.created_at) >= ttl


class PriceCache:
    """
    In-memory symbol -> price cache with a bounded TTL.

    Owned by a price client and passed explicitly to whoever needs it;
    there is no process-wide instance.

    Parameters
    ----------
    ttl : float
        Time-to-live in seconds for every entry
    clock : Callable[[], float] | None
        Monotonic clock, injectable for tests. Uses time.monotonic if None.

    """

    def __init__(self, ttl: float = 60.0, clock: Callable[[], float] | None = None) -> None:
        if ttl <= 0:
            msg = "ttl must be positive"
            raise ValueError(msg)
        self.ttl = ttl
        self._clock = clock or time.monotonic
        self._lock = threading.Lock()
        self._entries: dict[str, CacheEntry] = {}

    @staticmethod
    def _key(symbol: str) -> str:
        return symbol.strip().upper()

    def get(self, symbol: str) -> Decimal | None:
        """
        Get a cached price if present and not expired.

        Parameters
        ----------
        symbol : str
            Ticker or token symbol, case-insensitive

        Returns
        -------
        Decimal | None
            Cached price, or None on miss or expiry

        """
        key = self._key(symbol)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(self._clock(), self.ttl):
                del self._entries[key]
                return None
            return entry.price

    def set(self, symbol: str, price: Decimal) -> None:
        """Store a price for a symbol."""
        with self._lock:
            self._entries[self._key(symbol)] = CacheEntry(price, self._clock())

    def invalidate(self, symbol: str) -> bool:
        """
        Drop one symbol from the cache.

        Returns
        -------
        bool
            True if an entry was removed

        """
        with self._lock:
            return self._entries.pop(self._key(symbol), None) is not None

    def clear(self) -> None:
        """Clear all cached entries."""
        with self._lock:
            self._entries.clear()

    def cleanup_expired(self) -> int:
        """
        Remove all expired entries from the cache.

        Returns
        -------
        int
            Number of entries removed

        """
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now, self.ttl)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
