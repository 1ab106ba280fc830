"""Pytest configuration for algo-portfolio-tracker tests."""

from decimal import Decimal

import pytest

from algo_portfolio_tracker.config import Settings
from algo_portfolio_tracker.core.days import historical_price_key
from algo_portfolio_tracker.core.models import (
    AccountState,
    AssetInfo,
    AssetTransfer,
    LedgerTransaction,
    PaymentTransfer,
)

WALLET_A = "WALLETAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"
WALLET_B = "WALLETBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBB"
EXTERNAL = "EXTERNALXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXXX"


def pay(tx_id: str, sender: str, receiver: str, micro_algos: int, ts: int, fee: int = 0) -> LedgerTransaction:
    """Build a payment transaction."""
    return LedgerTransaction(
        id=tx_id,
        sender=sender,
        fee=Decimal(fee),
        confirmed_round_time=ts,
        payment=PaymentTransfer(receiver=receiver, amount=micro_algos),
    )


def axfer(
    tx_id: str, sender: str, receiver: str, base_units: int, asset_id: int, ts: int, fee: int = 0
) -> LedgerTransaction:
    """Build an asset transfer transaction."""
    return LedgerTransaction(
        id=tx_id,
        sender=sender,
        fee=Decimal(fee),
        confirmed_round_time=ts,
        asset_transfer=AssetTransfer(receiver=receiver, amount=base_units, asset_id=asset_id),
    )


class FakeLedger:
    """In-memory ledger source."""

    def __init__(
        self,
        accounts: dict[str, AccountState] | None = None,
        transactions: dict[str, list[LedgerTransaction]] | None = None,
        assets: dict[int, AssetInfo] | None = None,
        failing: set[str] | None = None,
    ):
        self.accounts = accounts or {}
        self.transactions = transactions or {}
        self.assets = assets or {}
        self.failing = failing or set()

    def get_account_state(self, address):
        if address in self.failing:
            raise RuntimeError("indexer down")
        return self.accounts.get(address, AccountState(address=address))

    def get_transactions_for_address(self, address, limit=None):
        if address in self.failing:
            raise RuntimeError("indexer down")
        return list(self.transactions.get(address, []))

    def get_asset_info(self, asset_id):
        if asset_id not in self.assets:
            raise KeyError(asset_id)
        return self.assets[asset_id]


class FakePrices:
    """Price service returning fixed spot and per-day historical prices."""

    def __init__(self, spot: dict[str, Decimal] | None = None, historical: dict[str, Decimal] | None = None):
        self.spot = spot or {}
        self.historical = historical or {}

    def get_spot_prices_usd(self, asset_ids):
        return {str(a): self.spot.get(str(a)) for a in asset_ids}

    def get_historical_prices_usd_by_day(self, asset_keys, timestamps):
        return {
            historical_price_key(key, ts): self.historical.get(historical_price_key(key, ts))
            for key in asset_keys
            for ts in timestamps
        }


@pytest.fixture
def settings():
    """Settings isolated from the environment."""
    return Settings(
        _env_file=None,
        algorand_indexer_url="https://indexer.test",
        price_api_url="https://api.coingecko.com/api/v3/simple/price",
        coingecko_api_url="https://cg.test/api/v3",
        defi_llama_price_api_url="https://llama.test/prices/current",
        dexscreener_price_api_url="https://dex.test/latest/dex/search",
        tinyman_app_ids="552635992,1002541853",
    )
