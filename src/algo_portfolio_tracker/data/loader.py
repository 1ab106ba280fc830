"""Price identifier loader."""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


@lru_cache
def load_price_ids() -> dict[str, Any]:
    """
    Load provider identifiers from price_ids.yaml.

    Returns
    -------
    dict[str, Any]
        Native currency ids, DEX selection rules and the default ASA map

    """
    path = Path(__file__).parent / "price_ids.yaml"
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


def get_native_price_id() -> str:
    """
    Get the CoinGecko id of the native currency.

    Returns
    -------
    str
        CoinGecko id (e.g., 'algorand')

    """
    return load_price_ids()["native"]["coingecko_id"]


def get_dex_config() -> dict[str, str]:
    """Get the DexScreener chain id and preferred quote symbol."""
    return dict(load_price_ids()["dex"])


def get_defillama_chain_prefix() -> str:
    """Get the DefiLlama contract-style coin prefix."""
    return load_price_ids()["defillama"]["chain_prefix"]


def get_default_asa_price_ids() -> dict[int, str]:
    """
    Get the shipped ASA id to CoinGecko id mapping.

    Returns
    -------
    dict[int, str]
        Mapping of ASA id to CoinGecko id

    """
    return {int(asset_id): str(cg_id) for asset_id, cg_id in (load_price_ids().get("asa") or {}).items()}


def build_asa_price_map(override_json: str | None = None) -> dict[int, str]:
    """
    Merge the shipped ASA mapping with an operator override.

    Parameters
    ----------
    override_json : str | None
        JSON object of ASA id to CoinGecko id. Invalid JSON is ignored;
        entries with non-integer keys or empty ids are skipped.

    Returns
    -------
    dict[int, str]
        Effective mapping

    """
    mapping = get_default_asa_price_ids()
    if not override_json:
        return mapping

    try:
        parsed = json.loads(override_json)
    except json.JSONDecodeError:
        logger.warning("Ignoring invalid ASA price map JSON")
        return mapping

    if not isinstance(parsed, dict):
        return mapping

    for raw_id, cg_id in parsed.items():
        try:
            asset_id = int(raw_id)
        except (TypeError, ValueError):
            continue
        if cg_id:
            mapping[asset_id] = str(cg_id)
    return mapping
