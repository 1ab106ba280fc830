"""Merging stored and freshly fetched daily prices."""

from collections.abc import Iterable

from algo_portfolio_tracker.core.models import DailyPriceEntry, LatestAssetState
from algo_portfolio_tracker.core.numbers import is_finite, is_price

MIN_STORED_COVERAGE = 0.6
COVERAGE_MARGIN = 0.1


def merge_daily_prices(stored: Iterable[DailyPriceEntry], fresh: Iterable[DailyPriceEntry]) -> list[DailyPriceEntry]:
    """
    Merge two sets of daily price rows keyed by (asset, day).

    A fresh row replaces a stored one when it carries a price, or when the
    stored row has none either.

    Parameters
    ----------
    stored : Iterable[DailyPriceEntry]
        Previously stored rows
    fresh : Iterable[DailyPriceEntry]
        Newly fetched rows

    Returns
    -------
    list[DailyPriceEntry]
        Merged rows sorted by asset key, then day

    """
    merged: dict[tuple[str, str], DailyPriceEntry] = {}
    for row in stored:
        merged[row.asset_key, row.day_key] = row

    for row in fresh:
        key = (row.asset_key, row.day_key)
        previous = merged.get(key)
        if previous is None or is_price(row.price_usd) or not is_price(previous.price_usd):
            merged[key] = row

    return sorted(merged.values(), key=lambda r: (r.asset_key, r.day_key))


def calculate_daily_coverage(rows: list[DailyPriceEntry], scoped_assets: Iterable[LatestAssetState]) -> float:
    """
    Fraction of rows for held assets that carry a usable price.

    Parameters
    ----------
    rows : list[DailyPriceEntry]
        Daily price rows
    scoped_assets : Iterable[LatestAssetState]
        Current balances; only assets with a positive balance count

    Returns
    -------
    float
        Coverage between 0 and 1; 0 when nothing is in scope

    """
    if not rows:
        return 0.0

    held = {a.asset_key for a in scoped_assets if a.asset_key and is_finite(a.balance) and a.balance > 0}
    if not held:
        return 0.0

    in_scope = [row for row in rows if row.asset_key in held]
    if not in_scope:
        return 0.0
    return sum(1 for row in in_scope if is_price(row.price_usd)) / len(in_scope)


def choose_best_daily_prices(
    stored: list[DailyPriceEntry],
    fresh: list[DailyPriceEntry],
    scoped_assets: list[LatestAssetState],
) -> list[DailyPriceEntry]:
    """
    Pick the daily price rows used for history valuation.

    Fresh rows are merged over stored ones. If the merge yields nothing, the
    set with better coverage of held assets wins.

    Parameters
    ----------
    stored : list[DailyPriceEntry]
        Previously stored rows
    fresh : list[DailyPriceEntry]
        Newly fetched rows
    scoped_assets : list[LatestAssetState]
        Current balances

    Returns
    -------
    list[DailyPriceEntry]
        Rows to use

    """
    if not fresh:
        return stored

    merged = merge_daily_prices(stored, fresh)
    if merged:
        return merged

    stored_coverage = calculate_daily_coverage(stored, scoped_assets)
    fresh_coverage = calculate_daily_coverage(fresh, scoped_assets)
    if fresh_coverage >= stored_coverage + COVERAGE_MARGIN or stored_coverage < MIN_STORED_COVERAGE:
        return fresh
    return stored or fresh
