"""Process-lifetime price caches."""

import threading
import time
from decimal import Decimal
from typing import Protocol


class CacheEntry:
    """
    Cached price with the time it was stored.

    Parameters
    ----------
    value : Decimal
        Cached USD price
    created_at : float | None
        Creation timestamp. Uses current time if None.

    """

    def __init__(self, value: Decimal, created_at: float | None = None) -> None:
        self.value = value
        self.created_at = created_at or time.time()


class PriceCache(Protocol):
    """Interface for price caches keyed by provider-internal id."""

    def get(self, key: str) -> CacheEntry | None:
        """Return the entry for `key`, or None."""
        ...

    def set(self, key: str, value: Decimal) -> None:
        """Store `value` under `key`, replacing any previous entry."""
        ...

    def has(self, key: str) -> bool:
        """Return True if `key` has an entry."""
        ...


class InMemoryPriceCache:
    """
    In-memory price cache without eviction.

    Entries live until the process exits or `clear` is called. Writes for the
    same key always carry the same or a fresher value, so concurrent writers
    only cause redundant fetches.

    """

    def __init__(self) -> None:
        self._cache: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> CacheEntry | None:
        """
        Get the cached entry.

        Parameters
        ----------
        key : str
            Provider-internal id (e.g., 'algorand', 'algorand:31566704')

        Returns
        -------
        CacheEntry | None
            Cached entry if present, None otherwise

        """
        return self._cache.get(key)

    def set(self, key: str, value: Decimal) -> None:
        """
        Store value in cache.

        Parameters
        ----------
        key : str
            Provider-internal id
        value : Decimal
            USD price

        """
        with self._lock:
            self._cache[key] = CacheEntry(value)

    def has(self, key: str) -> bool:
        """Return True if `key` is cached."""
        return key in self._cache

    def clear(self) -> None:
        """Clear all cached entries."""
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
