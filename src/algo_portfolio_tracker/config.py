"""Runtime configuration loaded from environment variables and `.env`."""

from decimal import Decimal
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_COINGECKO_PRICE_URL = "https://api.coingecko.com/api/v3/simple/price"


class Settings(BaseSettings):
    """Settings for ledger access, price providers and DeFi detection."""

    algorand_indexer_url: str = Field("https://mainnet-idx.algonode.cloud", description="Algorand indexer base URL")
    algorand_indexer_token: str | None = Field(None, description="Indexer API key sent as X-API-Key")
    indexer_tx_limit: int = Field(500, gt=0, description="Max transactions fetched per wallet and type")
    price_api_url: str = Field(DEFAULT_COINGECKO_PRICE_URL, description="Operator-configured simple price endpoint")
    coingecko_api_url: str = Field("https://api.coingecko.com/api/v3", description="CoinGecko API base for history")
    defi_llama_price_api_url: str = Field(
        "https://coins.llama.fi/prices/current", description="DefiLlama current prices endpoint"
    )
    dexscreener_price_api_url: str = Field(
        "https://api.dexscreener.com/latest/dex/search", description="DexScreener pair search endpoint"
    )
    asa_price_map_json: str = Field("{}", description="JSON object mapping ASA ids to CoinGecko ids")
    tinyman_app_ids: str | None = Field(None, description="Comma-separated Tinyman application ids")
    http_timeout_seconds: float = Field(30.0, gt=0, description="Timeout for every upstream HTTP call")
    defi_estimated_apr_pct: Decimal = Field(Decimal("4.2"), description="APR reported when DeFi positions exist")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("algorand_indexer_token", "tinyman_app_ids", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @property
    def tinyman_app_id_list(self) -> list[int]:
        """Tinyman application ids parsed from `tinyman_app_ids`."""
        return parse_app_ids(self.tinyman_app_ids)


def parse_app_ids(raw: str | None) -> list[int]:
    """
    Parse a comma-separated list of application ids.

    Entries that are not positive integers are dropped.

    Parameters
    ----------
    raw : str | None
        Raw value, e.g. "552635992, 1002541853"

    Returns
    -------
    list[int]
        Parsed ids

    """
    if not raw:
        return []

    ids = []
    for part in raw.split(","):
        part = part.strip()
        if part.isdigit() and int(part) > 0:
            ids.append(int(part))
    return ids


@lru_cache
def get_settings() -> Settings:
    """Return cached settings."""
    return Settings()
