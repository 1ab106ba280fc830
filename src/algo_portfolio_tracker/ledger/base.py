"""Ledger data source interface."""

from typing import Protocol

from algo_portfolio_tracker.core.models import AccountState, AssetInfo, LedgerTransaction


class LedgerSource(Protocol):
    """Read access to account state, transactions and asset metadata."""

    def get_account_state(self, address: str) -> AccountState:
        """Return the current balances and app memberships of `address`."""
        ...

    def get_transactions_for_address(self, address: str, limit: int | None = None) -> list[LedgerTransaction]:
        """Return value-moving transactions of `address`, inner transactions flattened."""
        ...

    def get_asset_info(self, asset_id: int) -> AssetInfo:
        """Return decimals, name and unit name of an ASA."""
        ...
