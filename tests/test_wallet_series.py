"""Tests for per-wallet series."""

from decimal import Decimal

from algo_portfolio_tracker.core.models import Direction, SeriesPoint, WalletHistoryTransaction, WalletSeries
from algo_portfolio_tracker.core.wallet_series import (
    align_series_by_timestamp,
    build_per_wallet_asset_balance_series,
    build_per_wallet_value_series,
    normalize_series_to_utc_daily_close,
    sum_aligned_series,
)

DAY1 = 1739577600  # 2025-02-15T00:00:00Z
LATEST = "2025-02-17T00:00:00.000Z"


def wtx(wallet, ts, amount, direction, price=None, asset_key="ALGO", fee="0"):
    return WalletHistoryTransaction(
        wallet=wallet,
        ts=ts,
        asset_key=asset_key,
        amount=Decimal(amount),
        direction=direction,
        unit_price_usd=Decimal(price) if price is not None else None,
        fee_algo=Decimal(fee),
    )


def test_value_series_per_wallet():
    """Test each wallet replays only its own rows and ends at its latest value."""
    txs = [
        wtx("A", DAY1 + 60, "10", Direction.IN, "1"),
        wtx("B", DAY1 + 120, "5", Direction.IN, "2"),
        wtx("A", DAY1 + 180, "4", Direction.OUT, "1.5", fee="0.001"),
        wtx("C", DAY1 + 240, "100", Direction.IN, "1"),
    ]

    series = build_per_wallet_value_series(txs, ["A", "B"], {"A": Decimal("12"), "B": Decimal("11")}, LATEST)

    a, b = series
    assert a.key == "A"
    assert [p.value for p in a.points] == [Decimal("10"), Decimal("8.9985"), Decimal("12")]
    assert a.points[-1].ts == LATEST
    assert [p.value for p in b.points] == [Decimal("10"), Decimal("11")]


def test_value_series_without_latest_value():
    """Test no trailing point is added for wallets without a latest value."""
    series = build_per_wallet_value_series([wtx("A", DAY1, "1", Direction.IN, "1")], ["A"], {}, LATEST)

    assert len(series[0].points) == 1


def test_asset_balance_series_tracks_fees_for_algo():
    """Test ALGO balance series deduct fees and skip unchanged balances."""
    txs = [
        wtx("A", DAY1 + 60, "10", Direction.IN),
        wtx("A", DAY1 + 120, "3", Direction.OUT, asset_key="31566704", fee="0.001"),
        wtx("A", DAY1 + 180, "3", Direction.IN, asset_key="31566704"),
    ]

    algo = build_per_wallet_asset_balance_series(txs, ["A"], "ALGO", {"A": Decimal("9.999")}, LATEST)[0]
    usdc = build_per_wallet_asset_balance_series(txs, ["A"], "31566704", {}, None)[0]

    assert [p.value for p in algo.points] == [Decimal("10"), Decimal("9.999"), Decimal("9.999")]
    # Outflow before any inflow clamps at zero
    assert [p.value for p in usdc.points] == [Decimal("0"), Decimal("3")]


def test_normalize_keeps_last_point_per_day():
    """Test only the UTC daily close of each series survives."""
    series = WalletSeries(
        key="A",
        label="A",
        points=[
            SeriesPoint(ts="2025-02-15T01:00:00.000Z", value=Decimal("1")),
            SeriesPoint(ts="2025-02-15T22:00:00.000Z", value=Decimal("2")),
            SeriesPoint(ts="2025-02-16T05:00:00.000Z", value=Decimal("3")),
        ],
    )
    single = WalletSeries(key="B", label="B", points=[SeriesPoint(ts="bad", value=Decimal("1"))])

    normalized, untouched = normalize_series_to_utc_daily_close([series, single])

    assert [p.value for p in normalized.points] == [Decimal("2"), Decimal("3")]
    assert untouched == single


def test_align_and_sum():
    """Test alignment carries values forward and sums into an aggregate."""
    a = WalletSeries(
        key="A",
        label="A",
        points=[
            SeriesPoint(ts="2025-02-15T00:00:00.000Z", value=Decimal("1")),
            SeriesPoint(ts="2025-02-17T00:00:00.000Z", value=Decimal("3")),
        ],
    )
    b = WalletSeries(key="B", label="B", points=[SeriesPoint(ts="2025-02-16T00:00:00.000Z", value=Decimal("10"))])

    aligned = align_series_by_timestamp([b, a])

    assert aligned.timestamps == [
        "2025-02-15T00:00:00.000Z",
        "2025-02-16T00:00:00.000Z",
        "2025-02-17T00:00:00.000Z",
    ]
    assert aligned.series[0].values == [Decimal("0"), Decimal("10"), Decimal("10")]
    assert aligned.series[1].values == [Decimal("1"), Decimal("1"), Decimal("3")]

    total = sum_aligned_series(aligned)
    assert total.key == "aggregate"
    assert [p.value for p in total.points] == [Decimal("1"), Decimal("11"), Decimal("13")]
