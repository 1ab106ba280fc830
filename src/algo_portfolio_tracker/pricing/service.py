"""Spot and historical USD price resolution."""

import logging
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from decimal import Decimal

import httpx

from algo_portfolio_tracker.config import DEFAULT_COINGECKO_PRICE_URL, Settings, get_settings
from algo_portfolio_tracker.core.days import day_key_to_coingecko_date, utc_day_key
from algo_portfolio_tracker.core.models import (
    NATIVE_ASSET_KEY,
    DailyPriceEntry,
    PriceQuote,
    PriceSource,
    make_asset_key,
)
from algo_portfolio_tracker.data import (
    build_asa_price_map,
    get_defillama_chain_prefix,
    get_dex_config,
    get_native_price_id,
)
from algo_portfolio_tracker.pricing.cache import InMemoryPriceCache, PriceCache
from algo_portfolio_tracker.pricing.historical import CoinGeckoHistoricalClient
from algo_portfolio_tracker.pricing.resolvers import (
    CoinGeckoSimplePriceResolver,
    DefiLlamaContractPriceResolver,
    DefiLlamaPriceResolver,
    DexScreenerPriceResolver,
    PriceTarget,
    SpotPriceResolver,
)

logger = logging.getLogger(__name__)


def build_default_resolvers(settings: Settings, client: httpx.Client) -> list[SpotPriceResolver]:
    """
    Build the spot waterfall in resolution order.

    Parameters
    ----------
    settings : Settings
        Endpoint configuration
    client : httpx.Client
        Shared HTTP client

    Returns
    -------
    list[SpotPriceResolver]
        Ordered resolvers

    """
    resolvers: list[SpotPriceResolver] = [
        CoinGeckoSimplePriceResolver(client, settings.price_api_url, PriceSource.CONFIGURED),
    ]
    if settings.price_api_url.rstrip("/") != DEFAULT_COINGECKO_PRICE_URL:
        resolvers.append(
            CoinGeckoSimplePriceResolver(client, DEFAULT_COINGECKO_PRICE_URL, PriceSource.PROVIDER_DEFAULT)
        )

    dex = get_dex_config()
    resolvers.extend(
        [
            DefiLlamaPriceResolver(client, settings.defi_llama_price_api_url),
            DefiLlamaContractPriceResolver(
                client, settings.defi_llama_price_api_url, chain_prefix=get_defillama_chain_prefix()
            ),
            DexScreenerPriceResolver(
                client,
                settings.dexscreener_price_api_url,
                chain_id=dex["chain_id"],
                quote_symbol=dex["quote_symbol"],
            ),
        ]
    )
    return resolvers


class PriceService:
    """
    Resolves USD prices for asset keys, now and per UTC day.

    Spot prices go through an ordered list of resolvers; each tier only sees
    the assets earlier tiers left unresolved. Live results are written to the
    spot cache, which answers (tagged ``cache``) when every tier fails.

    Parameters
    ----------
    settings : Settings | None
        Configuration. Loaded from the environment if None.
    client : httpx.Client | None
        HTTP client shared by all providers. Created (and owned) if None.
    resolvers : Sequence[SpotPriceResolver] | None
        Spot waterfall. Built from `settings` if None.
    spot_cache : PriceCache | None
        Cache of live spot results keyed by provider-internal id
    historical : CoinGeckoHistoricalClient | None
        Historical day price client
    asa_price_map : dict[int, str] | None
        ASA id to CoinGecko id mapping. Built from `settings` if None.

    Examples
    --------
    >>> with PriceService() as prices:
    ...     quotes = prices.get_spot_price_quotes([None, 31566704])

    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.Client | None = None,
        resolvers: Sequence[SpotPriceResolver] | None = None,
        spot_cache: PriceCache | None = None,
        historical: CoinGeckoHistoricalClient | None = None,
        asa_price_map: dict[int, str] | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=self.settings.http_timeout_seconds)
        self.native_price_id = get_native_price_id()
        self.asa_price_map = (
            asa_price_map if asa_price_map is not None else build_asa_price_map(self.settings.asa_price_map_json)
        )
        self.resolvers = (
            list(resolvers) if resolvers is not None else build_default_resolvers(self.settings, self.client)
        )
        self.spot_cache = spot_cache if spot_cache is not None else InMemoryPriceCache()
        self.historical = historical or CoinGeckoHistoricalClient(self.client, self.settings.coingecko_api_url)

    def provider_id(self, asset_key: str) -> str | None:
        """Return the CoinGecko id mapped to `asset_key`, or None."""
        if asset_key == NATIVE_ASSET_KEY:
            return self.native_price_id
        try:
            return self.asa_price_map.get(int(asset_key))
        except ValueError:
            return None

    def target_for(self, asset_key: str) -> PriceTarget:
        """Build the waterfall target for `asset_key`."""
        provider_id = self.provider_id(asset_key)
        cache_key = provider_id or f"{get_defillama_chain_prefix()}:{asset_key}"
        return PriceTarget(asset_key=asset_key, provider_id=provider_id, cache_key=cache_key)

    def get_spot_price_quotes(self, asset_ids: Iterable[int | str | None]) -> dict[str, PriceQuote]:
        """
        Resolve spot quotes with provenance.

        Parameters
        ----------
        asset_ids : Iterable[int | str | None]
            ASA ids; None or "ALGO" for the native currency

        Returns
        -------
        dict[str, PriceQuote]
            Quote for every requested asset key

        """
        keys = list(dict.fromkeys(make_asset_key(asset_id) for asset_id in asset_ids))
        if not keys:
            return {}

        now = datetime.now(UTC)
        pending = {key: self.target_for(key) for key in keys}
        quotes: dict[str, PriceQuote] = {}

        for resolver in self.resolvers:
            if not pending:
                break
            resolved = resolver.resolve(list(pending.values()))
            for key, price in resolved.items():
                target = pending.pop(key, None)
                if target is None:
                    continue
                self.spot_cache.set(target.cache_key, price)
                quotes[key] = PriceQuote.from_source(price, resolver.source, as_of=now)
            if resolved:
                logger.debug("%s resolved %d asset(s)", resolver.name, len(resolved))

        for key, target in pending.items():
            entry = self.spot_cache.get(target.cache_key)
            if entry is not None:
                as_of = datetime.fromtimestamp(entry.created_at, tz=UTC)
                quotes[key] = PriceQuote.from_source(entry.value, PriceSource.CACHE, as_of=as_of)
            else:
                quotes[key] = PriceQuote.from_source(None, PriceSource.MISSING)

        stale = [key for key, quote in quotes.items() if quote.source in (PriceSource.CACHE, PriceSource.MISSING)]
        if stale:
            logger.info("No live price for %s", ", ".join(stale))

        return {key: quotes[key] for key in keys}

    def get_spot_prices_usd(self, asset_ids: Iterable[int | str | None]) -> dict[str, Decimal | None]:
        """Resolve spot USD prices, None where no price is known."""
        return {key: quote.usd for key, quote in self.get_spot_price_quotes(asset_ids).items()}

    def _prices_by_provider_day(
        self, asset_keys: Iterable[str], day_keys: Iterable[str]
    ) -> dict[str, dict[str, Decimal | None]]:
        days = sorted(set(day_keys))
        by_provider: dict[str, dict[str, Decimal | None]] = {}
        if not days:
            return by_provider
        for key in asset_keys:
            provider_id = self.provider_id(key)
            if provider_id and provider_id not in by_provider:
                by_provider[provider_id] = self.historical.get_prices_by_day(provider_id, days)
        return by_provider

    def get_historical_prices_usd_by_day(
        self, asset_keys: Iterable[str], timestamps: Iterable[int]
    ) -> dict[str, Decimal | None]:
        """
        Resolve USD prices of assets on the UTC days of the given timestamps.

        Parameters
        ----------
        asset_keys : Iterable[str]
            Canonical asset keys
        timestamps : Iterable[int]
            Unix seconds

        Returns
        -------
        dict[str, Decimal | None]
            Price keyed by `historical_price_key`; None for unmapped assets
            and unresolved days

        """
        keys = list(dict.fromkeys(asset_keys))
        days = sorted({utc_day_key(ts) for ts in timestamps if ts > 0})
        by_provider = self._prices_by_provider_day(keys, days)

        result: dict[str, Decimal | None] = {}
        for key in keys:
            provider_id = self.provider_id(key)
            prices = by_provider.get(provider_id, {}) if provider_id else {}
            for day in days:
                result[f"{key}:{day_key_to_coingecko_date(day)}"] = prices.get(day)
        return result

    def get_daily_prices(self, asset_keys: Iterable[str], day_keys: Iterable[str]) -> list[DailyPriceEntry]:
        """
        Resolve one price per asset and UTC day.

        Parameters
        ----------
        asset_keys : Iterable[str]
            Canonical asset keys
        day_keys : Iterable[str]
            UTC day keys (``YYYY-MM-DD``)

        Returns
        -------
        list[DailyPriceEntry]
            Entries sorted by asset then day

        """
        keys = sorted(set(asset_keys))
        days = sorted(set(day_keys))
        by_provider = self._prices_by_provider_day(keys, days)

        entries = []
        for key in keys:
            provider_id = self.provider_id(key)
            prices = by_provider.get(provider_id, {}) if provider_id else {}
            entries.extend(DailyPriceEntry(asset_key=key, day_key=day, price_usd=prices.get(day)) for day in days)
        return entries

    def close(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "PriceService":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
