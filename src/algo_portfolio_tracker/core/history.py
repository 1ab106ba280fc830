"""Daily portfolio value history reconstructed from transactions."""

import math
from collections.abc import Callable, Iterable
from datetime import datetime
from decimal import Decimal

from algo_portfolio_tracker.core.days import (
    day_end_iso,
    day_key_of,
    enumerate_day_keys,
    parse_timestamp,
    to_iso,
    unix_to_iso,
    utc_day_key,
)
from algo_portfolio_tracker.core.models import (
    NATIVE_ASSET_KEY,
    DailyPriceEntry,
    Direction,
    HistoryPoint,
    HistoryTransaction,
    LatestAssetState,
    PortfolioSnapshot,
)
from algo_portfolio_tracker.core.numbers import ZERO, is_finite, is_price


def _valid(tx: HistoryTransaction) -> bool:
    return tx.ts > 0 and is_finite(tx.amount) and tx.amount >= 0


def _dedupe_sorted(points: Iterable[HistoryPoint]) -> list[HistoryPoint]:
    by_ts: dict[str, HistoryPoint] = {}
    for point in points:
        by_ts[point.ts] = point
    return sorted(by_ts.values(), key=lambda p: parse_timestamp(p.ts))


def _value(balances: dict[str, Decimal], price_of: Callable[[str], Decimal | None]) -> Decimal:
    total = ZERO
    for key, balance in balances.items():
        if not is_finite(balance) or balance <= 0:
            continue
        price = price_of(key)
        if is_finite(price):
            total += balance * price
    return total


def _set_balance(balances: dict[str, Decimal], key: str, value: Decimal) -> None:
    if value > 0:
        balances[key] = value
    else:
        balances.pop(key, None)


def build_resolved_price_series(
    day_keys: list[str],
    asset_keys: Iterable[str],
    explicit: dict[tuple[str, str], Decimal],
    tx_prices: dict[tuple[str, str], Decimal],
    spot: dict[str, Decimal],
) -> dict[tuple[str, str], Decimal]:
    """
    Resolve one price per asset and day.

    Explicit day prices win over the last transaction price of the day. Gaps
    are forward-filled, then backward-filled, then set to the current spot
    price (or zero when there is none).

    Parameters
    ----------
    day_keys : list[str]
        Ascending UTC day keys
    asset_keys : Iterable[str]
        Assets to resolve
    explicit : dict[tuple[str, str], Decimal]
        Stored day prices by (asset, day)
    tx_prices : dict[tuple[str, str], Decimal]
        Last transaction unit price by (asset, day)
    spot : dict[str, Decimal]
        Current spot prices

    Returns
    -------
    dict[tuple[str, str], Decimal]
        Price by (asset, day)

    """
    resolved = {}
    for key in asset_keys:
        series: list[Decimal | None] = [explicit.get((key, day), tx_prices.get((key, day))) for day in day_keys]

        for i in range(1, len(series)):
            if series[i] is None and series[i - 1] is not None:
                series[i] = series[i - 1]
        for i in range(len(series) - 2, -1, -1):
            if series[i] is None and series[i + 1] is not None:
                series[i] = series[i + 1]

        fallback = spot.get(key, ZERO)
        for day, price in zip(day_keys, series, strict=True):
            resolved[key, day] = price if price is not None else fallback
    return resolved


def _anchored_history(
    transactions: list[HistoryTransaction],
    latest_value_usd: Decimal | None,
    latest: datetime,
    latest_asset_states: list[LatestAssetState],
    daily_prices: Iterable[DailyPriceEntry],
) -> list[HistoryPoint]:
    balances: dict[str, Decimal] = {}
    spot: dict[str, Decimal] = {}
    for asset in latest_asset_states:
        if not asset.asset_key:
            continue
        if is_finite(asset.balance) and asset.balance > 0:
            balances[asset.asset_key] = asset.balance
        if is_price(asset.price_usd):
            spot[asset.asset_key] = asset.price_usd

    explicit = {
        (row.asset_key, row.day_key): row.price_usd
        for row in daily_prices
        if row.asset_key and row.day_key and is_price(row.price_usd)
    }
    tx_prices = {
        (tx.asset_key, utc_day_key(tx.ts)): tx.unit_price_usd for tx in transactions if is_price(tx.unit_price_usd)
    }

    latest_seconds = math.floor(latest.timestamp())
    latest_day = day_key_of(latest)
    earlier = [tx.ts for tx in transactions if tx.ts < latest_seconds]
    earliest_day = utc_day_key(min(earlier)) if earlier else latest_day
    day_keys = enumerate_day_keys(earliest_day, latest_day)

    asset_keys = dict.fromkeys([*balances, *(tx.asset_key for tx in transactions)])
    prices = build_resolved_price_series(day_keys, asset_keys, explicit, tx_prices, spot)

    by_day: dict[str, list[HistoryTransaction]] = {}
    for tx in sorted((tx for tx in transactions if tx.ts < latest_seconds), key=lambda t: t.ts, reverse=True):
        by_day.setdefault(utc_day_key(tx.ts), []).append(tx)

    points = []
    for day in reversed(day_keys):
        if day == latest_day and is_finite(latest_value_usd):
            value = latest_value_usd
        else:
            value = _value(balances, lambda key, day=day: prices.get((key, day)))
        points.append(HistoryPoint(ts=day_end_iso(day), value_usd=value))

        # Step back to the balances at the start of this day
        for tx in by_day.get(day, []):
            current = balances.get(tx.asset_key, ZERO)
            if tx.direction == Direction.IN:
                _set_balance(balances, tx.asset_key, current - tx.amount)
            elif tx.direction == Direction.OUT:
                _set_balance(balances, tx.asset_key, current + tx.amount)

            if is_finite(tx.fee_algo) and tx.fee_algo > 0:
                _set_balance(balances, NATIVE_ASSET_KEY, balances.get(NATIVE_ASSET_KEY, ZERO) + tx.fee_algo)

    return _dedupe_sorted(points)


def _unanchored_history(
    transactions: list[HistoryTransaction],
    latest_value_usd: Decimal | None,
    latest: datetime | None,
) -> list[HistoryPoint]:
    balances: dict[str, Decimal] = {}
    last_price: dict[str, Decimal] = {}
    points = []

    def apply(key: str, delta: Decimal) -> None:
        balances[key] = max(ZERO, balances.get(key, ZERO) + delta)

    for tx in transactions:
        if is_price(tx.unit_price_usd):
            last_price[tx.asset_key] = tx.unit_price_usd

        if tx.direction == Direction.IN:
            apply(tx.asset_key, tx.amount)
        elif tx.direction == Direction.OUT:
            apply(tx.asset_key, -tx.amount)

        if is_finite(tx.fee_algo) and tx.fee_algo > 0:
            apply(NATIVE_ASSET_KEY, -tx.fee_algo)

        points.append(HistoryPoint(ts=unix_to_iso(tx.ts), value_usd=_value(balances, last_price.get)))

    history = _dedupe_sorted(points)
    if is_finite(latest_value_usd) and latest is not None:
        history.append(HistoryPoint(ts=to_iso(latest), value_usd=latest_value_usd))
    return history


def build_portfolio_history_from_transactions(
    transactions: Iterable[HistoryTransaction],
    latest_value_usd: Decimal | None = None,
    latest_ts: str | datetime | None = None,
    latest_asset_states: list[LatestAssetState] | None = None,
    daily_prices: Iterable[DailyPriceEntry] = (),
) -> list[HistoryPoint]:
    """
    Build the portfolio value-over-time series.

    With a current state anchor (asset balances and a valid `latest_ts`) the
    series is rebuilt backward from the known balances, one point per UTC
    day stamped at day end; the latest day carries `latest_value_usd`
    verbatim. Without an anchor, transactions are replayed forward from zero
    balances, one point per transaction time, and `latest_value_usd` is
    appended at `latest_ts`.

    Parameters
    ----------
    transactions : Iterable[HistoryTransaction]
        Balance-changing rows. Rows with non-positive time or a negative or
        non-finite amount are ignored.
    latest_value_usd : Decimal | None
        Known current portfolio value
    latest_ts : str | datetime | None
        Time of the current value (ISO-8601 string or datetime)
    latest_asset_states : list[LatestAssetState] | None
        Current balances and spot prices
    daily_prices : Iterable[DailyPriceEntry]
        Stored per-day prices, preferred over transaction prices

    Returns
    -------
    list[HistoryPoint]
        Points sorted by time, one per timestamp

    Examples
    --------
    >>> txs = [
    ...     HistoryTransaction(ts=1739606400, asset_key="ALGO", amount=Decimal("10"),
    ...                        direction=Direction.IN, unit_price_usd=Decimal("0.2")),
    ... ]
    >>> [p.value_usd for p in build_portfolio_history_from_transactions(txs)]
    [Decimal('2.0')]

    """
    normalized = sorted((tx for tx in transactions if _valid(tx)), key=lambda t: t.ts)
    latest = parse_timestamp(latest_ts)

    if latest_asset_states and latest is not None and latest.timestamp() > 0:
        return _anchored_history(normalized, latest_value_usd, latest, latest_asset_states, daily_prices)

    if not normalized:
        return []

    return _unanchored_history(normalized, latest_value_usd, latest)


def history_transactions_from_snapshot(snapshot: PortfolioSnapshot) -> list[HistoryTransaction]:
    """Convert snapshot transaction rows into history replay rows."""
    return [
        HistoryTransaction(
            ts=row.ts,
            asset_key=row.asset_key or NATIVE_ASSET_KEY,
            amount=row.amount,
            direction=row.direction,
            unit_price_usd=row.unit_price_usd,
            fee_algo=row.fee_algo,
        )
        for row in snapshot.transactions
    ]


def build_history_for_snapshot(
    snapshot: PortfolioSnapshot,
    daily_prices: Iterable[DailyPriceEntry] = (),
) -> list[HistoryPoint]:
    """
    Build the daily history anchored on a snapshot.

    Parameters
    ----------
    snapshot : PortfolioSnapshot
        Snapshot providing the transactions, current balances and total value
    daily_prices : Iterable[DailyPriceEntry]
        Stored per-day prices

    Returns
    -------
    list[HistoryPoint]
        Daily points ending with the snapshot's total value

    """
    states = [
        LatestAssetState(asset_key=row.asset_key, balance=row.balance, price_usd=row.price_usd)
        for row in snapshot.assets
    ]
    return build_portfolio_history_from_transactions(
        history_transactions_from_snapshot(snapshot),
        latest_value_usd=snapshot.totals.value_usd,
        latest_ts=snapshot.computed_at,
        latest_asset_states=states,
        daily_prices=daily_prices,
    )
