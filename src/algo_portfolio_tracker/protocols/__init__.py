"""DeFi adapters for Algorand protocols."""

# Import all adapters to trigger auto-registration
from algo_portfolio_tracker.protocols.base import BaseDefiAdapter
from algo_portfolio_tracker.protocols.tinyman import TinymanAdapter, is_tinyman_lp_asset

__all__ = [
    "BaseDefiAdapter",
    "TinymanAdapter",
    "is_tinyman_lp_asset",
]
