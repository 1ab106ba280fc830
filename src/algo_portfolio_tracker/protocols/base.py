"""Base DeFi adapter class with common functionality."""

import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, ClassVar

from algo_portfolio_tracker.config import Settings, get_settings
from algo_portfolio_tracker.core.models import AssetInfo, DefiPosition

if TYPE_CHECKING:
    from algo_portfolio_tracker.ledger.base import LedgerSource
    from algo_portfolio_tracker.pricing.service import PriceService

logger = logging.getLogger(__name__)


class BaseDefiAdapter(ABC):
    """
    Abstract base class for DeFi adapters.

    All adapters should inherit from this class, set `name` and `protocol`,
    and implement `get_positions`.

    Attributes
    ----------
    name : str
        Unique adapter identifier (must be set in subclass)
    protocol : str
        Protocol display name (must be set in subclass)

    Parameters
    ----------
    ledger : LedgerSource
        Ledger used to read account state and asset metadata
    prices : PriceService
        Spot price source used to value positions
    settings : Settings | None
        Application settings. Loaded from the environment if None.

    """

    name: ClassVar[str] = ""
    protocol: ClassVar[str] = ""

    def __init__(self, ledger: "LedgerSource", prices: "PriceService", settings: Settings | None = None) -> None:
        if not self.name:
            msg = f"{self.__class__.__name__} must define 'name' attribute"
            raise ValueError(msg)
        if not self.protocol:
            msg = f"{self.__class__.__name__} must define 'protocol' attribute"
            raise ValueError(msg)
        self.ledger = ledger
        self.prices = prices
        self.settings = settings or get_settings()

    @abstractmethod
    def get_positions(self, wallets: list[str]) -> list[DefiPosition]:
        """
        Fetch all positions held by the wallets on this protocol.

        Must be implemented by subclasses.

        Parameters
        ----------
        wallets : list[str]
            Wallet addresses

        Returns
        -------
        list[DefiPosition]
            List of positions found

        """
        ...

    def _asset_info(self, asset_id: int) -> AssetInfo | None:
        """Look up ASA metadata, returning None when the ledger call fails."""
        try:
            return self.ledger.get_asset_info(asset_id)
        except Exception as e:
            logger.warning("%s: asset info lookup failed for %s: %s", self.name, asset_id, e)
            return None

    def _spot_prices(self, asset_ids: list[int]) -> dict[str, Decimal | None]:
        if not asset_ids:
            return {}
        return self.prices.get_spot_prices_usd(asset_ids)
