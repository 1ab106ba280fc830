"""Per-wallet value and balance series."""

from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from decimal import Decimal

from algo_portfolio_tracker.core.days import day_key_of, parse_timestamp, to_iso, unix_to_iso
from algo_portfolio_tracker.core.models import (
    NATIVE_ASSET_KEY,
    AlignedSeries,
    AlignedValues,
    Direction,
    PortfolioSnapshot,
    SeriesPoint,
    WalletHistoryTransaction,
    WalletSeries,
)
from algo_portfolio_tracker.core.numbers import ZERO, is_finite, is_price

AGGREGATE_KEY = "aggregate"


def _replayable(transactions: Iterable[WalletHistoryTransaction], wallets: list[str]) -> list[WalletHistoryTransaction]:
    owned = set(wallets)
    return sorted(
        (
            tx
            for tx in transactions
            if tx.wallet in owned and tx.ts > 0 and is_finite(tx.amount) and tx.amount >= 0
        ),
        key=lambda t: t.ts,
    )


def _with_latest(
    points: list[SeriesPoint], latest_ts: str | datetime | None, latest: Decimal | None
) -> list[SeriesPoint]:
    parsed = parse_timestamp(latest_ts)
    if parsed is None or not is_finite(latest):
        return points
    return [*points, SeriesPoint(ts=to_iso(parsed), value=latest)]


def wallet_transactions_from_snapshot(snapshot: PortfolioSnapshot) -> list[WalletHistoryTransaction]:
    """Convert snapshot transaction rows into wallet-attributed replay rows."""
    return [
        WalletHistoryTransaction(
            ts=row.ts,
            wallet=row.wallet,
            asset_key=row.asset_key,
            amount=row.amount,
            direction=row.direction,
            unit_price_usd=row.unit_price_usd,
            fee_algo=row.fee_algo,
        )
        for row in snapshot.transactions
    ]


def build_per_wallet_value_series(
    transactions: Iterable[WalletHistoryTransaction],
    wallets: list[str],
    latest_value_by_wallet: Mapping[str, Decimal],
    latest_ts: str | datetime | None,
) -> list[WalletSeries]:
    """
    Replay each wallet's transactions forward into a USD value series.

    Balances start at zero and never go negative; assets are valued at their
    last seen transaction price. Each series ends with the wallet's known
    latest value when one is given.

    Parameters
    ----------
    transactions : Iterable[WalletHistoryTransaction]
        Rows attributed to wallets
    wallets : list[str]
        Wallets to build series for, in output order
    latest_value_by_wallet : Mapping[str, Decimal]
        Current value per wallet
    latest_ts : str | datetime | None
        Time of the current values

    Returns
    -------
    list[WalletSeries]
        One series per wallet

    """
    balances: dict[str, dict[str, Decimal]] = {w: {} for w in wallets}
    prices: dict[str, dict[str, Decimal]] = {w: {} for w in wallets}
    points: dict[str, list[SeriesPoint]] = {w: [] for w in wallets}

    for tx in _replayable(transactions, wallets):
        wallet_balances = balances[tx.wallet]
        wallet_prices = prices[tx.wallet]

        if is_price(tx.unit_price_usd):
            wallet_prices[tx.asset_key] = tx.unit_price_usd

        previous = wallet_balances.get(tx.asset_key, ZERO)
        if tx.direction == Direction.IN:
            wallet_balances[tx.asset_key] = max(ZERO, previous + tx.amount)
        elif tx.direction == Direction.OUT:
            wallet_balances[tx.asset_key] = max(ZERO, previous - tx.amount)

        if is_finite(tx.fee_algo) and tx.fee_algo > 0:
            wallet_balances[NATIVE_ASSET_KEY] = max(ZERO, wallet_balances.get(NATIVE_ASSET_KEY, ZERO) - tx.fee_algo)

        value = sum(
            (qty * wallet_prices[key] for key, qty in wallet_balances.items() if qty > 0 and key in wallet_prices),
            ZERO,
        )
        points[tx.wallet].append(SeriesPoint(ts=unix_to_iso(tx.ts), value=value))

    return [
        WalletSeries(key=w, label=w, points=_with_latest(points[w], latest_ts, latest_value_by_wallet.get(w)))
        for w in wallets
    ]


def build_per_wallet_asset_balance_series(
    transactions: Iterable[WalletHistoryTransaction],
    wallets: list[str],
    asset_key: str,
    latest_balance_by_wallet: Mapping[str, Decimal],
    latest_ts: str | datetime | None,
) -> list[WalletSeries]:
    """
    Replay each wallet's balance of one asset forward in time.

    A point is emitted only when the balance changes. ALGO series include
    fees paid.

    Parameters
    ----------
    transactions : Iterable[WalletHistoryTransaction]
        Rows attributed to wallets
    wallets : list[str]
        Wallets to build series for
    asset_key : str
        Asset to track
    latest_balance_by_wallet : Mapping[str, Decimal]
        Current balance per wallet
    latest_ts : str | datetime | None
        Time of the current balances

    Returns
    -------
    list[WalletSeries]
        One series per wallet

    """
    balances = {w: ZERO for w in wallets}
    points: dict[str, list[SeriesPoint]] = {w: [] for w in wallets}

    for tx in _replayable(transactions, wallets):
        delta = ZERO
        if tx.asset_key == asset_key:
            if tx.direction == Direction.IN:
                delta += tx.amount
            elif tx.direction == Direction.OUT:
                delta -= tx.amount
        if asset_key == NATIVE_ASSET_KEY and is_finite(tx.fee_algo) and tx.fee_algo > 0:
            delta -= tx.fee_algo

        if delta == 0:
            continue
        balances[tx.wallet] = max(ZERO, balances[tx.wallet] + delta)
        points[tx.wallet].append(SeriesPoint(ts=unix_to_iso(tx.ts), value=balances[tx.wallet]))

    return [
        WalletSeries(key=w, label=w, points=_with_latest(points[w], latest_ts, latest_balance_by_wallet.get(w)))
        for w in wallets
    ]


def normalize_series_to_utc_daily_close(series: list[WalletSeries]) -> list[WalletSeries]:
    """
    Keep only the last point of each UTC day in every series.

    Series with at most one point are returned unchanged.
    """
    normalized = []
    for item in series:
        if len(item.points) <= 1:
            normalized.append(item)
            continue

        closes: dict[str, tuple[datetime, SeriesPoint]] = {}
        for point in item.points:
            moment = parse_timestamp(point.ts)
            if moment is None:
                continue
            day = day_key_of(moment)
            if day not in closes or moment >= closes[day][0]:
                closes[day] = (moment, point)

        points = [point for _, point in sorted(closes.values(), key=lambda c: c[0])]
        normalized.append(item.model_copy(update={"points": points or item.points}))
    return normalized


def align_series_by_timestamp(series: list[WalletSeries]) -> AlignedSeries:
    """
    Sample every series on the union of all timestamps.

    A series keeps its last value between its own points and is zero before
    its first point.

    Parameters
    ----------
    series : list[WalletSeries]
        Series to align

    Returns
    -------
    AlignedSeries
        Shared timestamp axis and carried-forward values

    """
    stamps = {point.ts for s in series for point in s.points}
    timestamps = sorted(stamps, key=lambda ts: parse_timestamp(ts) or datetime.min.replace(tzinfo=UTC))

    aligned = []
    for s in series:
        by_ts = {point.ts: point.value for point in s.points}
        current = ZERO
        values = []
        for ts in timestamps:
            value = by_ts.get(ts)
            if is_finite(value):
                current = value
            values.append(current)
        aligned.append(AlignedValues(key=s.key, label=s.label, values=values))

    return AlignedSeries(timestamps=timestamps, series=aligned)


def sum_aligned_series(aligned: AlignedSeries) -> WalletSeries:
    """Sum aligned series into a single 'aggregate' series."""
    points = [
        SeriesPoint(
            ts=ts,
            value=sum((s.values[i] for s in aligned.series if i < len(s.values) and is_finite(s.values[i])), ZERO),
        )
        for i, ts in enumerate(aligned.timestamps)
    ]
    return WalletSeries(key=AGGREGATE_KEY, label="Aggregate", points=points)
