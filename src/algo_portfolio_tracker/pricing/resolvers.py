"""Spot price resolvers forming the price waterfall.

Each resolver answers for the subset of targets it can price and returns
nothing for the rest. Upstream failures are logged and treated as "no result".
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

import httpx

from algo_portfolio_tracker.core.models import NATIVE_ASSET_KEY, PriceSource
from algo_portfolio_tracker.core.numbers import is_price, to_decimal

logger = logging.getLogger(__name__)

# Errors that mean "this tier produced nothing": transport/status failures,
# undecodable JSON and unexpected payload shapes.
UPSTREAM_ERRORS = (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError)


@dataclass(frozen=True)
class PriceTarget:
    """
    Asset to price, with its provider identifiers.

    Attributes
    ----------
    asset_key : str
        Canonical asset key
    provider_id : str | None
        CoinGecko id, None when the asset has no mapping
    cache_key : str
        Provider-internal id used as the cache key

    """

    asset_key: str
    provider_id: str | None
    cache_key: str


class SpotPriceResolver(ABC):
    """
    One tier of the spot price waterfall.

    Attributes
    ----------
    name : str
        Human-readable tier name used in logs
    source : PriceSource
        Source tag attached to quotes produced by this tier

    """

    name: str = ""
    source: PriceSource = PriceSource.MISSING

    @abstractmethod
    def resolve(self, targets: list[PriceTarget]) -> dict[str, Decimal]:
        """
        Price as many targets as possible.

        Parameters
        ----------
        targets : list[PriceTarget]
            Targets still unresolved by earlier tiers

        Returns
        -------
        dict[str, Decimal]
            Mapping of asset key to USD price for resolved targets only

        """
        ...

    def _get_json(self, client: httpx.Client, url: str, params: dict[str, str] | None = None) -> Any:
        response = client.get(url, params=params)
        response.raise_for_status()
        return response.json()


class CoinGeckoSimplePriceResolver(SpotPriceResolver):
    """
    Resolves mapped assets through a CoinGecko-style ``simple/price`` endpoint.

    Parameters
    ----------
    client : httpx.Client
        Shared HTTP client
    url : str
        Endpoint URL accepting ``ids`` and ``vs_currencies`` query params
    source : PriceSource
        CONFIGURED for the operator endpoint, PROVIDER_DEFAULT for the
        hardcoded endpoint

    """

    def __init__(self, client: httpx.Client, url: str, source: PriceSource) -> None:
        self.client = client
        self.url = url
        self.source = source
        self.name = f"coingecko[{source}]"

    def resolve(self, targets: list[PriceTarget]) -> dict[str, Decimal]:
        mapped = [t for t in targets if t.provider_id]
        if not mapped:
            return {}

        ids = sorted({t.provider_id for t in mapped if t.provider_id})
        try:
            data = self._get_json(self.client, self.url, {"ids": ",".join(ids), "vs_currencies": "usd"})
            result = {}
            for target in mapped:
                entry = data.get(target.provider_id) or {}
                price = to_decimal(entry.get("usd"))
                if is_price(price):
                    result[target.asset_key] = price
            return result
        except UPSTREAM_ERRORS as e:
            logger.warning("%s price request failed: %s", self.name, e)
            return {}


class DefiLlamaPriceResolver(SpotPriceResolver):
    """
    Resolves mapped assets through DefiLlama using ``coingecko:<id>`` coins.

    Parameters
    ----------
    client : httpx.Client
        Shared HTTP client
    base_url : str
        DefiLlama current prices endpoint (``.../prices/current``)

    """

    name = "defillama"
    source = PriceSource.ALT_PROVIDER

    def __init__(self, client: httpx.Client, base_url: str) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")

    def accepts(self, target: PriceTarget) -> bool:
        """Return True if this resolver can query `target`."""
        return bool(target.provider_id)

    def format_coin_id(self, target: PriceTarget) -> str:
        """Format the DefiLlama coin identifier for `target`."""
        return f"coingecko:{target.provider_id}"

    def resolve(self, targets: list[PriceTarget]) -> dict[str, Decimal]:
        accepted = [t for t in targets if self.accepts(t)]
        if not accepted:
            return {}

        coin_ids = {t.asset_key: self.format_coin_id(t) for t in accepted}
        coins = self._fetch_batch_prices(sorted(set(coin_ids.values())))

        result = {}
        for key, coin_id in coin_ids.items():
            price_info = coins.get(coin_id)
            if not isinstance(price_info, dict):
                continue
            price = to_decimal(price_info.get("price"))
            if is_price(price):
                result[key] = price
        return result

    def _fetch_batch_prices(self, coin_ids: list[str]) -> dict[str, Any]:
        """
        Fetch prices from DefiLlama API.

        Parameters
        ----------
        coin_ids : list[str]
            Coin identifiers in "<namespace>:<id>" format

        Returns
        -------
        dict[str, Any]
            The ``coins`` object of the response, empty on failure

        """
        try:
            url = f"{self.base_url}/{','.join(coin_ids)}"
            data = self._get_json(self.client, url)
            coins = data.get("coins", {})
            return coins if isinstance(coins, dict) else {}
        except UPSTREAM_ERRORS as e:
            logger.warning("%s price request failed: %s", self.name, e)
            return {}


class DefiLlamaContractPriceResolver(DefiLlamaPriceResolver):
    """
    Resolves unmapped ASAs through DefiLlama contract-style coins.

    Coins are addressed as ``<chain prefix>:<asa id>``.

    """

    name = "defillama-contract"

    def __init__(self, client: httpx.Client, base_url: str, chain_prefix: str = "algorand") -> None:
        super().__init__(client, base_url)
        self.chain_prefix = chain_prefix

    def accepts(self, target: PriceTarget) -> bool:
        return target.provider_id is None and target.asset_key != NATIVE_ASSET_KEY

    def format_coin_id(self, target: PriceTarget) -> str:
        return f"{self.chain_prefix}:{target.asset_key}"


class DexScreenerPriceResolver(SpotPriceResolver):
    """
    Resolves ASAs from DEX liquidity pools found by a DexScreener search.

    The pool chosen for an asset has the asset as base token on the
    configured chain, the preferred quote symbol, and the highest USD
    liquidity. When no pool matches the quote symbol, the highest-liquidity
    pool with the asset as base token is used.

    Parameters
    ----------
    client : httpx.Client
        Shared HTTP client
    url : str
        Search endpoint accepting a ``q`` query param
    chain_id : str
        DexScreener chain identifier
    quote_symbol : str
        Preferred quote token symbol
    max_workers : int
        Maximum concurrent searches

    """

    name = "dexscreener"
    source = PriceSource.DEX

    def __init__(
        self,
        client: httpx.Client,
        url: str,
        chain_id: str = "algorand",
        quote_symbol: str = "ALGO",
        max_workers: int = 4,
    ) -> None:
        self.client = client
        self.url = url
        self.chain_id = chain_id.lower()
        self.quote_symbol = quote_symbol.upper()
        self.max_workers = max_workers

    def resolve(self, targets: list[PriceTarget]) -> dict[str, Decimal]:
        asset_keys = sorted({t.asset_key for t in targets if t.asset_key != NATIVE_ASSET_KEY})
        if not asset_keys:
            return {}

        with ThreadPoolExecutor(max_workers=min(len(asset_keys), self.max_workers)) as executor:
            prices = list(executor.map(self._search_price, asset_keys))

        return {key: price for key, price in zip(asset_keys, prices, strict=True) if price is not None}

    def _search_price(self, key: str) -> Decimal | None:
        try:
            data = self._get_json(self.client, self.url, {"q": key})
            pairs = data.get("pairs") or []
            return self.select_pair_price(key, pairs)
        except UPSTREAM_ERRORS as e:
            logger.warning("%s search for %s failed: %s", self.name, key, e)
            return None

    def select_pair_price(self, key: str, pairs: list[dict[str, Any]]) -> Decimal | None:
        """
        Pick the USD price of the best pool for `key`.

        Parameters
        ----------
        key : str
            ASA id as string
        pairs : list[dict[str, Any]]
            Pairs returned by the search

        Returns
        -------
        Decimal | None
            Price of the selected pool, or None

        """
        candidates = []
        for pair in pairs:
            if not isinstance(pair, dict):
                continue
            if str(pair.get("chainId", "")).lower() != self.chain_id:
                continue
            base = pair.get("baseToken") or {}
            if str(base.get("address", "")) != key:
                continue
            price = to_decimal(pair.get("priceUsd"))
            if not is_price(price):
                continue
            liquidity = to_decimal((pair.get("liquidity") or {}).get("usd"))
            quote = str((pair.get("quoteToken") or {}).get("symbol", "")).upper()
            candidates.append((quote, liquidity if is_price(liquidity) else Decimal("0"), price))

        if not candidates:
            return None

        preferred = [c for c in candidates if c[0] == self.quote_symbol]
        pool = max(preferred or candidates, key=lambda c: c[1])
        return pool[2]
