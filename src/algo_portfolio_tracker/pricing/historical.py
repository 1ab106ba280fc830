"""CoinGecko historical day prices."""

import logging
from collections.abc import Iterable
from decimal import Decimal
from typing import Any

import httpx

from algo_portfolio_tracker.core.days import (
    SECONDS_PER_DAY,
    day_key_to_coingecko_date,
    day_start_unix,
    utc_day_key,
)
from algo_portfolio_tracker.core.numbers import is_price, to_decimal
from algo_portfolio_tracker.pricing.cache import InMemoryPriceCache, PriceCache
from algo_portfolio_tracker.pricing.resolvers import UPSTREAM_ERRORS

logger = logging.getLogger(__name__)

HALF_DAY_SECONDS = SECONDS_PER_DAY // 2


class CoinGeckoHistoricalClient:
    """
    Resolves one USD price per UTC day for CoinGecko ids.

    A single ranged ``market_chart/range`` query covers all requested days
    (padded by half a day on each side); the last sample inside a day is the
    price of that day. Days the range leaves unresolved are queried one by one
    through ``/coins/{id}/history``. Resolved ``(id, day)`` pairs are cached
    for the lifetime of the cache.

    Parameters
    ----------
    client : httpx.Client
        Shared HTTP client
    base_url : str
        CoinGecko API base (e.g., 'https://api.coingecko.com/api/v3')
    cache : PriceCache | None
        Day price cache. A private in-memory cache is used if None.

    """

    def __init__(self, client: httpx.Client, base_url: str, cache: PriceCache | None = None) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.cache = cache if cache is not None else InMemoryPriceCache()

    @staticmethod
    def cache_key(provider_id: str, day_key: str) -> str:
        """Cache key of a resolved day price."""
        return f"{provider_id}:{day_key}"

    def get_prices_by_day(self, provider_id: str, day_keys: Iterable[str]) -> dict[str, Decimal | None]:
        """
        Get USD prices for `provider_id` on each day.

        Parameters
        ----------
        provider_id : str
            CoinGecko id (e.g., 'algorand')
        day_keys : Iterable[str]
            UTC day keys (``YYYY-MM-DD``)

        Returns
        -------
        dict[str, Decimal | None]
            Price by day key, None where no source had a price

        """
        days = sorted(set(day_keys))
        result: dict[str, Decimal | None] = {}
        missing = []
        for day in days:
            entry = self.cache.get(self.cache_key(provider_id, day))
            if entry is not None:
                result[day] = entry.value
            else:
                missing.append(day)

        if not missing:
            return result

        ranged = self._fetch_range(provider_id, missing[0], missing[-1])
        for day in missing:
            price = ranged.get(day)
            if price is None:
                price = self._fetch_single_day(provider_id, day)
            if price is not None:
                self.cache.set(self.cache_key(provider_id, day), price)
            result[day] = price

        return result

    def _fetch_range(self, provider_id: str, first_day: str, last_day: str) -> dict[str, Decimal]:
        start = day_start_unix(first_day) - HALF_DAY_SECONDS
        end = day_start_unix(last_day) + SECONDS_PER_DAY + HALF_DAY_SECONDS
        try:
            response = self.client.get(
                f"{self.base_url}/coins/{provider_id}/market_chart/range",
                params={"vs_currency": "usd", "from": str(start), "to": str(end)},
            )
            response.raise_for_status()
            return self.extract_daily_closes(response.json().get("prices") or [])
        except UPSTREAM_ERRORS as e:
            logger.warning("CoinGecko range request for %s failed: %s", provider_id, e)
            return {}

    @staticmethod
    def extract_daily_closes(samples: list[Any]) -> dict[str, Decimal]:
        """
        Reduce ``[[ms, price], ...]`` samples to the last price of each UTC day.

        Parameters
        ----------
        samples : list
            Price samples as returned by ``market_chart/range``

        Returns
        -------
        dict[str, Decimal]
            Price by day key

        """
        latest: dict[str, tuple[float, Decimal]] = {}
        for sample in samples:
            if not isinstance(sample, list | tuple) or len(sample) < 2:
                continue
            ms, raw_price = sample[0], sample[1]
            price = to_decimal(raw_price)
            if not isinstance(ms, int | float) or not is_price(price):
                continue
            day = utc_day_key(ms / 1000)
            if day not in latest or ms >= latest[day][0]:
                latest[day] = (ms, price)
        return {day: price for day, (_, price) in latest.items()}

    def _fetch_single_day(self, provider_id: str, day_key: str) -> Decimal | None:
        try:
            response = self.client.get(
                f"{self.base_url}/coins/{provider_id}/history",
                params={"date": day_key_to_coingecko_date(day_key), "localization": "false"},
            )
            response.raise_for_status()
            data = response.json()
            price = to_decimal(((data.get("market_data") or {}).get("current_price") or {}).get("usd"))
            return price if is_price(price) else None
        except UPSTREAM_ERRORS as e:
            logger.debug("CoinGecko history request for %s on %s failed: %s", provider_id, day_key, e)
            return None
