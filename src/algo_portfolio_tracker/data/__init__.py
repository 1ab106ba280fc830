"""Provider identifier data and loaders."""

from algo_portfolio_tracker.data.loader import (
    build_asa_price_map,
    get_default_asa_price_ids,
    get_defillama_chain_prefix,
    get_dex_config,
    get_native_price_id,
    load_price_ids,
)

__all__ = [
    "build_asa_price_map",
    "get_default_asa_price_ids",
    "get_defillama_chain_prefix",
    "get_dex_config",
    "get_native_price_id",
    "load_price_ids",
]
