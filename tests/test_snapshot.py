"""Tests for portfolio snapshot aggregation."""

from decimal import Decimal

import pytest
from conftest import EXTERNAL, WALLET_A, WALLET_B, FakeLedger, FakePrices, pay

from algo_portfolio_tracker.core.aggregator import YIELD_NOTE, PortfolioAggregator
from algo_portfolio_tracker.core.days import historical_price_key
from algo_portfolio_tracker.core.models import (
    AccountState,
    AssetHolding,
    AssetInfo,
    DefiPosition,
    Direction,
    PositionType,
    ValueSource,
)

T1 = 1739577600 + 3600  # 2025-02-15T01:00:00Z
T2 = T1 + 86400


class StubAdapter:
    name = "stub"
    protocol = "Stub"

    def get_positions(self, wallets):
        return [DefiPosition(protocol=self.protocol, wallet=wallets[0], position_type=PositionType.LP)]


class BrokenAdapter:
    name = "broken"
    protocol = "Broken"

    def get_positions(self, wallets):
        raise RuntimeError("adapter exploded")


class RecordingProgress:
    def __init__(self):
        self.updates = []

    def update(self, task_id, description, completed):
        self.updates.append((task_id, completed))


@pytest.fixture
def two_wallet_ledger():
    t1 = pay("t1", EXTERNAL, WALLET_A, 10_000_000, T1)
    t2 = pay("t2", WALLET_A, WALLET_B, 4_000_000, T2, fee=1000)
    return FakeLedger(
        accounts={
            WALLET_A: AccountState(address=WALLET_A, algo_amount=Decimal("5.999")),
            WALLET_B: AccountState(
                address=WALLET_B,
                algo_amount=Decimal("4"),
                assets=[AssetHolding(asset_id=999, amount=Decimal("3"), decimals=0)],
            ),
        },
        transactions={WALLET_A: [t2, t1], WALLET_B: [t2]},
        assets={999: AssetInfo(decimals=0, name="Mystery", unit_name="MYS")},
    )


@pytest.fixture
def two_wallet_prices():
    return FakePrices(
        spot={"ALGO": Decimal("2")},
        historical={
            historical_price_key("ALGO", T1): Decimal("1"),
            historical_price_key("ALGO", T2): Decimal("1.5"),
        },
    )


def test_single_wallet_without_history(settings):
    """Test a held balance with no transactions has zero cost basis."""
    ledger = FakeLedger(accounts={WALLET_A: AccountState(address=WALLET_A, algo_amount=Decimal("10"))})
    prices = FakePrices(spot={"ALGO": Decimal("2")})
    aggregator = PortfolioAggregator(ledger, prices, adapters=[], settings=settings)

    snapshot = aggregator.compute_portfolio_snapshot([WALLET_A])

    assert snapshot.totals.value_usd == Decimal("20")
    assert snapshot.totals.cost_basis_usd == 0
    assert snapshot.totals.unrealized_pnl_usd == Decimal("20")
    assert snapshot.method == "FIFO"
    assert snapshot.transactions == []


def test_empty_wallet_list_returns_zero_snapshot(settings):
    """Test no wallets produces an empty snapshot without ledger calls."""
    aggregator = PortfolioAggregator(FakeLedger(failing={""}), FakePrices(), adapters=[], settings=settings)

    snapshot = aggregator.compute_portfolio_snapshot([])

    assert snapshot.totals.value_usd == 0
    assert snapshot.assets == []
    assert snapshot.wallets == []


def test_multi_wallet_asset_rows(settings, two_wallet_ledger, two_wallet_prices):
    """Test balances, cost basis and breakdown across wallets."""
    aggregator = PortfolioAggregator(two_wallet_ledger, two_wallet_prices, adapters=[], settings=settings)

    snapshot = aggregator.compute_portfolio_snapshot([WALLET_A, WALLET_B, WALLET_A])

    algo, mystery = snapshot.assets
    assert algo.asset_key == "ALGO"
    assert algo.balance == Decimal("9.999")
    assert algo.value_usd == Decimal("19.998")
    # The internal transfer is ignored globally, so the one lot bought at 1 remains
    assert algo.cost_basis_usd == Decimal("9.999")
    assert algo.unrealized_pnl_usd == Decimal("9.999")
    assert [b.wallet for b in algo.wallet_breakdown] == [WALLET_A, WALLET_B]

    assert mystery.asset_key == "999"
    assert mystery.asset_name == "MYS"
    assert mystery.value_usd is None
    assert mystery.has_price is False
    assert mystery.unrealized_pnl_usd is None

    assert snapshot.totals.value_usd == Decimal("19.998")


def test_transaction_rows(settings, two_wallet_ledger, two_wallet_prices):
    """Test transaction rows carry direction, fees and historical valuation."""
    aggregator = PortfolioAggregator(two_wallet_ledger, two_wallet_prices, adapters=[], settings=settings)

    snapshot = aggregator.compute_portfolio_snapshot([WALLET_A, WALLET_B])

    assert [row.tx_id for row in snapshot.transactions] == ["t2", "t1"]
    internal, incoming = snapshot.transactions

    assert internal.direction == Direction.SELF
    assert internal.wallet == WALLET_A
    assert internal.counterparty == WALLET_B
    assert internal.fee_algo == Decimal("0.001")
    assert internal.fee_usd == Decimal("0.0015")
    assert internal.value_usd == Decimal("6.0")
    assert internal.value_source == ValueSource.HISTORICAL

    assert incoming.direction == Direction.IN
    assert incoming.wallet == WALLET_A
    assert incoming.counterparty == EXTERNAL
    assert incoming.fee_algo == 0
    assert incoming.value_usd == Decimal("10")


def test_wallet_rows_use_per_wallet_lots(settings, two_wallet_ledger, two_wallet_prices):
    """Test wallet rollups treat internal transfers as a sale and a purchase."""
    aggregator = PortfolioAggregator(two_wallet_ledger, two_wallet_prices, adapters=[], settings=settings)

    snapshot = aggregator.compute_portfolio_snapshot([WALLET_A, WALLET_B])

    wallet_a, wallet_b = snapshot.wallets
    assert wallet_a.wallet == WALLET_A
    assert wallet_a.total_value_usd == Decimal("11.998")
    assert wallet_a.total_cost_basis_usd == Decimal("6")
    assert wallet_a.total_realized_pnl_usd == Decimal("1.9985")
    assert wallet_b.total_cost_basis_usd == Decimal("6.0")
    assert wallet_b.total_value_usd == Decimal("8")


def test_spot_used_when_no_historical_price(settings):
    """Test transaction rows fall back to spot and then to missing."""
    ledger = FakeLedger(
        accounts={WALLET_A: AccountState(address=WALLET_A, algo_amount=Decimal("1"))},
        transactions={WALLET_A: [pay("t1", EXTERNAL, WALLET_A, 1_000_000, T1)]},
    )
    aggregator = PortfolioAggregator(ledger, FakePrices(spot={"ALGO": Decimal("3")}), adapters=[], settings=settings)

    row = aggregator.compute_portfolio_snapshot([WALLET_A]).transactions[0]
    assert row.value_source == ValueSource.SPOT
    assert row.value_usd == Decimal("3")

    aggregator = PortfolioAggregator(ledger, FakePrices(), adapters=[], settings=settings)
    row = aggregator.compute_portfolio_snapshot([WALLET_A]).transactions[0]
    assert row.value_source == ValueSource.MISSING
    assert row.value_usd is None


def test_failed_wallet_fetch_is_tolerated(settings):
    """Test a wallet whose ledger calls fail contributes nothing."""
    ledger = FakeLedger(
        accounts={WALLET_A: AccountState(address=WALLET_A, algo_amount=Decimal("1"))},
        failing={WALLET_B},
    )
    aggregator = PortfolioAggregator(ledger, FakePrices(spot={"ALGO": Decimal("2")}), adapters=[], settings=settings)

    snapshot = aggregator.compute_portfolio_snapshot([WALLET_A, WALLET_B])

    assert snapshot.totals.value_usd == Decimal("2")
    assert [w.wallet for w in snapshot.wallets] == [WALLET_A, WALLET_B]
    assert snapshot.wallets[1].total_value_usd == 0


def test_defi_positions_and_yield(settings):
    """Test adapter failures are isolated and positions enable the yield estimate."""
    ledger = FakeLedger(accounts={WALLET_A: AccountState(address=WALLET_A)})
    aggregator = PortfolioAggregator(
        ledger, FakePrices(), adapters=[BrokenAdapter(), StubAdapter()], settings=settings
    )

    snapshot = aggregator.compute_portfolio_snapshot([WALLET_A])

    assert [p.protocol for p in snapshot.defi_positions] == ["Stub"]
    assert snapshot.yield_estimate.estimated_apr_pct == settings.defi_estimated_apr_pct
    assert snapshot.yield_estimate.note == YIELD_NOTE


def test_no_positions_no_yield(settings):
    """Test the yield estimate is empty without DeFi positions."""
    ledger = FakeLedger(accounts={WALLET_A: AccountState(address=WALLET_A)})
    aggregator = PortfolioAggregator(ledger, FakePrices(), adapters=[], settings=settings)

    assert aggregator.compute_portfolio_snapshot([WALLET_A]).yield_estimate.estimated_apr_pct is None


def test_progress_updates(settings):
    """Test progress reaches completion."""
    ledger = FakeLedger(accounts={WALLET_A: AccountState(address=WALLET_A)})
    aggregator = PortfolioAggregator(ledger, FakePrices(), adapters=[], settings=settings)
    progress = RecordingProgress()

    aggregator.compute_portfolio_snapshot([WALLET_A], progress=progress, task_id=7)

    assert progress.updates[-1] == (7, 100)
    assert all(task_id == 7 for task_id, _ in progress.updates)
