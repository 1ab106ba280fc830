"""Tests for the Tinyman DeFi adapter."""

from decimal import Decimal

import pytest
from conftest import WALLET_A, WALLET_B, FakeLedger, FakePrices

from algo_portfolio_tracker.core.models import AccountState, AssetHolding, AssetInfo, PositionType
from algo_portfolio_tracker.protocols.tinyman import (
    APP_STATE_ONLY_NOTE,
    LP_HOLDINGS_SOURCE,
    TinymanAdapter,
    is_tinyman_lp_asset,
)

POOL_ASA = 1002590888
OTHER_ASA = 31566704


@pytest.mark.parametrize(
    ("name", "unit_name", "expected"),
    [
        ("TinymanPool2.0 ALGO-USDC", "TMPOOL2", True),
        ("Some Pool Token", None, True),
        (None, "tmpool11", True),
        ("USDC", "USDC", False),
        (None, None, False),
    ],
)
def test_is_tinyman_lp_asset(name, unit_name, expected):
    """Test pool token detection by name and unit name."""
    assert is_tinyman_lp_asset(name, unit_name) is expected


@pytest.fixture
def ledger():
    return FakeLedger(
        accounts={
            WALLET_A: AccountState(
                address=WALLET_A,
                assets=[
                    AssetHolding(asset_id=POOL_ASA, amount=Decimal("2"), decimals=6),
                    AssetHolding(asset_id=OTHER_ASA, amount=Decimal("100"), decimals=6),
                ],
            ),
            WALLET_B: AccountState(address=WALLET_B, apps_local_state=[552635992]),
        },
        assets={
            POOL_ASA: AssetInfo(decimals=6, name="TinymanPool2.0 ALGO-USDC", unit_name="TMPOOL2"),
            OTHER_ASA: AssetInfo(decimals=6, name="USDC", unit_name="USDC"),
        },
    )


def test_lp_position_from_holdings(settings, ledger):
    """Test pool token holdings become a valued LP position."""
    adapter = TinymanAdapter(ledger, FakePrices(spot={str(POOL_ASA): Decimal("1.5")}), settings=settings)

    positions = adapter.get_positions([WALLET_A])

    assert len(positions) == 1
    position = positions[0]
    assert position.protocol == "Tinyman"
    assert position.position_type == PositionType.LP
    assert position.estimated is True
    assert position.value_usd == Decimal("3.0")
    assert position.meta["source"] == LP_HOLDINGS_SOURCE
    assert [c["asset_id"] for c in position.meta["components"]] == [POOL_ASA]
    assert position.meta["components"][0]["label"] == "TMPOOL2"


def test_unpriced_lp_position_has_no_value(settings, ledger):
    """Test an LP position without a price is reported unvalued."""
    adapter = TinymanAdapter(ledger, FakePrices(), settings=settings)

    position = adapter.get_positions([WALLET_A])[0]

    assert position.value_usd is None
    assert position.meta["components"][0]["value_usd"] is None


def test_app_state_placeholder(settings, ledger):
    """Test app opt-in without pool tokens yields an unvalued placeholder."""
    adapter = TinymanAdapter(ledger, FakePrices(), settings=settings)

    positions = adapter.get_positions([WALLET_B])

    assert len(positions) == 1
    assert positions[0].value_usd is None
    assert positions[0].meta == {"note": APP_STATE_ONLY_NOTE}


def test_no_app_ids_configured(settings, ledger):
    """Test app state is ignored when no Tinyman app ids are known."""
    adapter = TinymanAdapter(ledger, FakePrices(), settings=settings, app_ids=[])

    assert adapter.get_positions([WALLET_B]) == []


def test_asset_info_failure_is_skipped(settings):
    """Test holdings whose metadata lookup fails are not treated as pool tokens."""
    ledger = FakeLedger(
        accounts={WALLET_A: AccountState(address=WALLET_A, assets=[AssetHolding(asset_id=5, amount=Decimal("1"))])}
    )
    adapter = TinymanAdapter(ledger, FakePrices(), settings=settings)

    assert adapter.get_positions([WALLET_A]) == []
