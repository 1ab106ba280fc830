"""Tinyman AMM liquidity position adapter."""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from algo_portfolio_tracker.config import Settings
from algo_portfolio_tracker.core.models import AssetHolding, DefiPosition, PositionType
from algo_portfolio_tracker.core.numbers import ZERO, is_finite
from algo_portfolio_tracker.core.registry import AdapterRegistry
from algo_portfolio_tracker.protocols.base import BaseDefiAdapter

if TYPE_CHECKING:
    from algo_portfolio_tracker.ledger.base import LedgerSource
    from algo_portfolio_tracker.pricing.service import PriceService

logger = logging.getLogger(__name__)

LP_HOLDINGS_SOURCE = "tinyman-lp-holdings"
APP_STATE_ONLY_NOTE = "Detected Tinyman app local state. LP composition not detected from holdings."


def is_tinyman_lp_asset(name: str | None, unit_name: str | None) -> bool:
    """
    Check whether an ASA looks like a Tinyman pool token.

    Parameters
    ----------
    name : str | None
        Asset name
    unit_name : str | None
        Asset unit name

    Returns
    -------
    bool
        True for unit names starting with "TMPOOL" or names mentioning
        "tinyman" or "pool token" (case-insensitive)

    """
    n = (name or "").lower()
    u = (unit_name or "").lower()
    return u.startswith("tmpool") or "tinyman" in n or "pool token" in n


@AdapterRegistry.register
class TinymanAdapter(BaseDefiAdapter):
    """
    Detects Tinyman liquidity positions from pool token holdings.

    Pool tokens are valued at spot. Wallets that only opted into a configured
    Tinyman application get an unvalued placeholder position.

    """

    name = "tinyman"
    protocol = "Tinyman"

    def __init__(
        self,
        ledger: "LedgerSource",
        prices: "PriceService",
        settings: Settings | None = None,
        app_ids: list[int] | None = None,
    ) -> None:
        super().__init__(ledger, prices, settings)
        self.app_ids = set(app_ids if app_ids is not None else self.settings.tinyman_app_id_list)

    def get_positions(self, wallets: list[str]) -> list[DefiPosition]:
        positions = []
        for wallet in wallets:
            account = self.ledger.get_account_state(wallet)
            has_app_state = any(app_id in self.app_ids for app_id in account.apps_local_state)
            components = self._lp_components(account.assets)

            if components:
                positions.append(self._lp_position(wallet, components))
            elif has_app_state:
                positions.append(
                    DefiPosition(
                        protocol=self.protocol,
                        wallet=wallet,
                        position_type=PositionType.LP,
                        estimated=True,
                        value_usd=None,
                        meta={"note": APP_STATE_ONLY_NOTE},
                    )
                )

        logger.debug("%s: %d position(s) across %d wallet(s)", self.name, len(positions), len(wallets))
        return positions

    def _lp_components(self, holdings: list[AssetHolding]) -> list[dict]:
        components = []
        for holding in holdings:
            if not is_finite(holding.amount) or holding.amount <= 0:
                continue
            info = self._asset_info(holding.asset_id)
            if info is None or not is_tinyman_lp_asset(info.name, info.unit_name):
                continue
            components.append(
                {
                    "asset_id": holding.asset_id,
                    "label": info.unit_name or info.name or f"ASA {holding.asset_id}",
                    "amount": holding.amount,
                    "value_usd": None,
                }
            )
        return components

    def _lp_position(self, wallet: str, components: list[dict]) -> DefiPosition:
        prices = self._spot_prices([c["asset_id"] for c in components])
        total = ZERO
        for component in components:
            price = prices.get(str(component["asset_id"]))
            if is_finite(price):
                component["value_usd"] = component["amount"] * price
                total += component["value_usd"]

        value_usd: Decimal | None = total if total > 0 else None
        return DefiPosition(
            protocol=self.protocol,
            wallet=wallet,
            position_type=PositionType.LP,
            estimated=True,
            value_usd=value_usd,
            meta={"source": LP_HOLDINGS_SOURCE, "components": components},
        )
