"""Portfolio aggregator for orchestrating ledger reads, lot accounting and pricing across wallets."""

import logging
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from algo_portfolio_tracker.config import Settings, get_settings
from algo_portfolio_tracker.core.classifier import ClassifierScope, classify_transactions
from algo_portfolio_tracker.core.days import historical_price_key
from algo_portfolio_tracker.core.lots import run_fifo
from algo_portfolio_tracker.core.models import (
    MICROALGOS_PER_ALGO,
    NATIVE_ASSET_KEY,
    AccountState,
    AssetInfo,
    AssetLotSummary,
    DefiPosition,
    Direction,
    LedgerTransaction,
    LotEvent,
    PortfolioSnapshot,
    PortfolioTotals,
    SnapshotAssetRow,
    SnapshotTransactionRow,
    TransactionType,
    ValueSource,
    WalletBalance,
    WalletBreakdown,
    YieldEstimate,
    make_asset_key,
)
from algo_portfolio_tracker.core.numbers import ZERO, finite_or, is_finite
from algo_portfolio_tracker.core.registry import AdapterRegistry, DefiAdapterInterface

if TYPE_CHECKING:
    from algo_portfolio_tracker.ledger.base import LedgerSource
    from algo_portfolio_tracker.pricing.service import PriceService

logger = logging.getLogger(__name__)

YIELD_NOTE = "Estimated yield from detected staking/DeFi activity. Historical decomposition is partial."


class PortfolioAggregator:
    """
    Orchestrates snapshot computation across wallets.

    Workflow:
    1. Fetch account state and transactions per wallet (in parallel)
    2. Sum balances per asset and per (asset, wallet)
    3. Resolve spot prices for held assets and historical prices for transaction days
    4. Classify transactions into lot events and run FIFO globally and per wallet
    5. Build asset rows, transaction rows, totals and wallet rollups
    6. Merge positions from DeFi adapters

    Parameters
    ----------
    ledger : LedgerSource
        Source of account state, transactions and asset metadata
    prices : PriceService
        Spot and historical price service
    adapters : list[DefiAdapterInterface] | None
        DeFi adapters. Every registered adapter is instantiated if None.
    settings : Settings | None
        Application settings. Loaded from the environment if None.
    max_workers : int
        Maximum concurrent wallet fetches

    """

    def __init__(
        self,
        ledger: "LedgerSource",
        prices: "PriceService",
        adapters: list[DefiAdapterInterface] | None = None,
        settings: Settings | None = None,
        max_workers: int = 4,
    ) -> None:
        self.ledger = ledger
        self.prices = prices
        self.settings = settings or get_settings()
        self.adapters = (
            adapters
            if adapters is not None
            else AdapterRegistry.create_all(ledger=ledger, prices=prices, settings=self.settings)
        )
        self.max_workers = max_workers

    def compute_portfolio_snapshot(
        self,
        wallets: Iterable[str],
        progress: Any | None = None,
        task_id: Any | None = None,
    ) -> PortfolioSnapshot:
        """
        Compute a point-in-time portfolio snapshot.

        Parameters
        ----------
        wallets : Iterable[str]
            Wallet addresses. Duplicates are ignored.
        progress : Any | None
            Rich progress bar instance (optional)
        task_id : Any | None
            Task ID for progress updates (optional)

        Returns
        -------
        PortfolioSnapshot
            A new snapshot; zero-valued when no wallets are given

        """
        wallet_list = list(dict.fromkeys(w for w in wallets if w))
        if not wallet_list:
            now = datetime.now(UTC)
            return PortfolioSnapshot(computed_at=now, price_as_of=now)

        self._update(progress, task_id, "Fetching wallets...", 10)
        accounts, txns = self._fetch_wallets(wallet_list)
        owned = frozenset(wallet_list)

        balances: dict[str, Decimal] = {NATIVE_ASSET_KEY: ZERO}
        balances_by_wallet: dict[str, dict[str, Decimal]] = {NATIVE_ASSET_KEY: {}}
        decimals: dict[str, int] = {}
        for account in accounts:
            self._add_balance(balances, balances_by_wallet, NATIVE_ASSET_KEY, account.address, account.algo_amount)
            for holding in account.assets:
                key = make_asset_key(holding.asset_id)
                self._add_balance(balances, balances_by_wallet, key, account.address, holding.amount)
                decimals[key] = holding.decimals

        infos: dict[str, AssetInfo | None] = {}
        tx_asset_keys = [make_asset_key(t.asset_transfer.asset_id) for t in txns if t.asset_transfer is not None]
        for key in dict.fromkeys(tx_asset_keys):
            if key not in decimals:
                info = self._asset_info(key, infos)
                decimals[key] = info.decimals if info else 0

        self._update(progress, task_id, "Resolving prices...", 40)
        spot = self.prices.get_spot_prices_usd(list(balances))
        history_keys = list(dict.fromkeys([*balances, *tx_asset_keys]))
        historical = (
            self.prices.get_historical_prices_usd_by_day(history_keys, [t.confirmed_round_time for t in txns])
            if txns
            else {}
        )

        def historical_price(key: str, ts: int) -> Decimal | None:
            price = historical.get(historical_price_key(key, ts))
            return price if is_finite(price) else None

        def quote(key: str, ts: int) -> tuple[Decimal | None, ValueSource]:
            price = historical_price(key, ts)
            if price is not None:
                return price, ValueSource.HISTORICAL
            current = spot.get(key)
            if is_finite(current):
                return current, ValueSource.SPOT
            return None, ValueSource.MISSING

        self._update(progress, task_id, "Running FIFO...", 60)
        events = classify_transactions(txns, owned, spot, decimals, historical_price, ClassifierScope.GLOBAL)
        fifo = run_fifo(events)
        wallet_events = classify_transactions(txns, owned, spot, decimals, historical_price, ClassifierScope.PER_WALLET)

        names: dict[str, str] = {NATIVE_ASSET_KEY: NATIVE_ASSET_KEY}
        assets = [
            self._asset_row(key, balance, spot.get(key), balances_by_wallet.get(key, {}), fifo.get(key), names, infos)
            for key, balance in balances.items()
        ]
        assets.sort(key=lambda row: row.value_usd if row.value_usd is not None else Decimal(-1), reverse=True)

        transactions = [
            row for row in (self._transaction_row(txn, owned, decimals, quote, names, infos) for txn in txns) if row
        ]
        transactions.sort(key=lambda row: row.ts, reverse=True)

        totals = PortfolioTotals(
            value_usd=sum((finite_or(row.value_usd) for row in assets), ZERO),
            cost_basis_usd=sum((finite_or(row.cost_basis_usd) for row in assets), ZERO),
            realized_pnl_usd=sum((finite_or(row.realized_pnl_usd) for row in assets), ZERO),
            unrealized_pnl_usd=sum((finite_or(row.unrealized_pnl_usd) for row in assets), ZERO),
        )

        accounts_by_wallet = {account.address: account for account in accounts}
        wallet_rows = [
            self._wallet_row(
                wallet,
                accounts_by_wallet.get(wallet),
                [e for e in wallet_events if e.wallet == wallet],
                spot,
            )
            for wallet in wallet_list
        ]

        self._update(progress, task_id, "Fetching DeFi positions...", 85)
        defi_positions = self._defi_positions(wallet_list)

        self._update(progress, task_id, "✓ Snapshot complete", 100)
        now = datetime.now(UTC)
        return PortfolioSnapshot(
            computed_at=now,
            price_as_of=now,
            totals=totals,
            assets=assets,
            transactions=transactions,
            wallets=wallet_rows,
            defi_positions=defi_positions,
            yield_estimate=YieldEstimate(
                estimated_apr_pct=self.settings.defi_estimated_apr_pct if defi_positions else None,
                estimated=True,
                note=YIELD_NOTE,
            ),
        )

    def _fetch_wallets(self, wallets: list[str]) -> tuple[list[AccountState], list[LedgerTransaction]]:
        """
        Fetch account state and transactions for every wallet in parallel.

        Transactions seen from more than one wallet are kept once.
        """
        with ThreadPoolExecutor(max_workers=min(len(wallets), self.max_workers)) as executor:
            results = list(executor.map(self._fetch_wallet, wallets))

        accounts = [account for account, _ in results]
        deduped: dict[str, LedgerTransaction] = {}
        for _, txns in results:
            for txn in txns:
                deduped[txn.id] = txn
        return accounts, list(deduped.values())

    def _fetch_wallet(self, wallet: str) -> tuple[AccountState, list[LedgerTransaction]]:
        try:
            account = self.ledger.get_account_state(wallet)
        except Exception as e:
            logger.warning("Account state fetch failed for %s: %s", wallet, e)
            account = AccountState(address=wallet)

        try:
            txns = self.ledger.get_transactions_for_address(wallet)
        except Exception as e:
            logger.warning("Transaction fetch failed for %s: %s", wallet, e)
            txns = []

        return account, txns

    @staticmethod
    def _add_balance(
        balances: dict[str, Decimal],
        balances_by_wallet: dict[str, dict[str, Decimal]],
        key: str,
        wallet: str,
        amount: Decimal,
    ) -> None:
        amount = finite_or(amount)
        balances[key] = balances.get(key, ZERO) + amount
        per_wallet = balances_by_wallet.setdefault(key, {})
        per_wallet[wallet] = per_wallet.get(wallet, ZERO) + amount

    def _asset_info(self, key: str, infos: dict[str, AssetInfo | None]) -> AssetInfo | None:
        if key not in infos:
            try:
                infos[key] = self.ledger.get_asset_info(int(key))
            except Exception as e:
                logger.debug("Asset info lookup failed for %s: %s", key, e)
                infos[key] = None
        return infos[key]

    def _asset_name(self, key: str, names: dict[str, str], infos: dict[str, AssetInfo | None]) -> str:
        if key not in names:
            info = self._asset_info(key, infos)
            names[key] = (info.unit_name or info.name or key) if info else key
        return names[key]

    def _asset_row(
        self,
        key: str,
        balance: Decimal,
        price: Decimal | None,
        wallet_balances: dict[str, Decimal],
        summary: AssetLotSummary | None,
        names: dict[str, str],
        infos: dict[str, AssetInfo | None],
    ) -> SnapshotAssetRow:
        price = price if is_finite(price) else None
        value_usd = balance * price if price is not None else None

        breakdown = [
            WalletBalance(wallet=wallet, balance=amount, value_usd=amount * price if price is not None else None)
            for wallet, amount in wallet_balances.items()
            if amount > 0
        ]
        breakdown.sort(key=lambda b: b.balance, reverse=True)

        lot_qty = finite_or(summary.remaining_qty) if summary else ZERO
        lot_cost = finite_or(summary.remaining_cost_usd) if summary else ZERO
        cost_basis = ZERO
        if balance > 0 and lot_qty > 0:
            implied_unit_cost = lot_cost / lot_qty
            if is_finite(implied_unit_cost) and implied_unit_cost >= 0:
                cost_basis = implied_unit_cost * balance

        return SnapshotAssetRow(
            asset_key=key,
            asset_name=self._asset_name(key, names, infos),
            balance=balance,
            wallet_breakdown=breakdown,
            price_usd=price,
            value_usd=value_usd,
            cost_basis_usd=finite_or(cost_basis),
            realized_pnl_usd=finite_or(summary.realized_pnl_usd) if summary else ZERO,
            unrealized_pnl_usd=finite_or(value_usd - cost_basis) if value_usd is not None else None,
            has_price=price is not None,
        )

    def _transaction_row(
        self,
        txn: LedgerTransaction,
        owned: frozenset[str],
        decimals: dict[str, int],
        quote: Callable[[str, int], tuple[Decimal | None, ValueSource]],
        names: dict[str, str],
        infos: dict[str, AssetInfo | None],
    ) -> SnapshotTransactionRow | None:
        if txn.payment is not None:
            key = NATIVE_ASSET_KEY
            tx_type = TransactionType.PAYMENT
            receiver = txn.payment.receiver
            amount = Decimal(txn.payment.amount) / MICROALGOS_PER_ALGO
        elif txn.asset_transfer is not None:
            key = make_asset_key(txn.asset_transfer.asset_id)
            tx_type = TransactionType.ASSET_TRANSFER
            receiver = txn.asset_transfer.receiver
            amount = Decimal(txn.asset_transfer.amount) / (Decimal(10) ** decimals.get(key, 0))
        else:
            return None

        sender_owned = txn.sender in owned
        receiver_owned = receiver in owned
        ts = txn.confirmed_round_time

        fee_algo = finite_or(txn.fee) / MICROALGOS_PER_ALGO if sender_owned else ZERO
        algo_price, _ = quote(NATIVE_ASSET_KEY, ts)
        fee_usd = finite_or(fee_algo * (algo_price if algo_price is not None else ZERO))

        if sender_owned and receiver_owned:
            direction = Direction.SELF
        elif sender_owned:
            direction = Direction.OUT
        else:
            direction = Direction.IN

        unit_price, source = quote(key, ts)
        if amount == 0:
            value_usd: Decimal | None = ZERO
            source = ValueSource.SPOT
        else:
            value_usd = amount * unit_price if unit_price is not None else None

        return SnapshotTransactionRow(
            tx_id=txn.id,
            ts=ts,
            wallet=txn.sender if sender_owned else receiver,
            counterparty=txn.sender if direction == Direction.IN else receiver,
            tx_type=tx_type,
            direction=direction,
            asset_key=key,
            asset_name=self._asset_name(key, names, infos),
            amount=amount,
            unit_price_usd=unit_price,
            value_usd=value_usd,
            value_source=source,
            fee_algo=fee_algo,
            fee_usd=fee_usd,
        )

    def _wallet_row(
        self,
        wallet: str,
        account: AccountState | None,
        events: list[LotEvent],
        spot: dict[str, Decimal | None],
    ) -> WalletBreakdown:
        summaries = run_fifo(events).values()
        cost_basis = finite_or(sum((finite_or(s.remaining_cost_usd) for s in summaries), ZERO))
        realized = finite_or(sum((finite_or(s.realized_pnl_usd) for s in summaries), ZERO))

        value = ZERO
        if account is not None:
            algo_price = spot.get(NATIVE_ASSET_KEY)
            if is_finite(algo_price):
                value += finite_or(account.algo_amount * algo_price)
            for holding in account.assets:
                price = spot.get(make_asset_key(holding.asset_id))
                if is_finite(price):
                    value += finite_or(holding.amount * price)

        return WalletBreakdown(
            wallet=wallet,
            total_value_usd=value,
            total_cost_basis_usd=cost_basis,
            total_realized_pnl_usd=realized,
            total_unrealized_pnl_usd=finite_or(value - cost_basis),
        )

    def _defi_positions(self, wallets: list[str]) -> list[DefiPosition]:
        positions: list[DefiPosition] = []
        for adapter in self.adapters:
            try:
                positions.extend(adapter.get_positions(wallets))
            except Exception as e:
                # Continue with other adapters even if one fails
                logger.warning("DeFi adapter %s failed: %s", getattr(adapter, "name", adapter), e)
        return positions

    @staticmethod
    def _update(progress: Any | None, task_id: Any | None, description: str, completed: int) -> None:
        if progress is not None and task_id is not None:
            progress.update(task_id, description=description, completed=completed)
