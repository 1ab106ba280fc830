"""FIFO lot accounting over buy/sell lot events.

Fee policy:

- Buy: the fee is capitalized into the lot cost.
- Sell: the fee is subtracted from the proceeds.
"""

import logging
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from algo_portfolio_tracker.core.models import AssetLotSummary, LotEvent, Side
from algo_portfolio_tracker.core.numbers import ZERO, is_finite

logger = logging.getLogger(__name__)

# Lots drained below this quantity are dropped to avoid dust from rounding.
DUST_QTY = Decimal("1e-12")


@dataclass
class Lot:
    """Acquisition batch of an asset; only `quantity` is ever decremented."""

    quantity: Decimal
    cost_per_unit_usd: Decimal


def run_fifo(events: Iterable[LotEvent]) -> dict[str, AssetLotSummary]:
    """
    Compute remaining quantity, remaining cost and realized P&L per asset.

    Events are processed in ascending timestamp order regardless of input
    order. Events with a non-positive or non-finite amount are ignored. A buy
    or sell without a unit price marks the asset as having price gaps and is
    skipped. A sell larger than the tracked lots consumes what is available;
    the unmatched quantity carries no cost.

    Parameters
    ----------
    events : Iterable[LotEvent]
        Lot events in any order

    Returns
    -------
    dict[str, AssetLotSummary]
        Mapping of asset key to FIFO summary

    """
    ordered = sorted(events, key=lambda event: event.ts)

    lots_by_asset: dict[str, deque[Lot]] = {}
    summaries: dict[str, AssetLotSummary] = {}

    for event in ordered:
        if not is_finite(event.amount) or event.amount <= 0:
            continue

        key = event.asset_key
        summary = summaries.setdefault(key, AssetLotSummary(asset_key=key))
        lots = lots_by_asset.setdefault(key, deque())

        if event.unit_price_usd is None:
            summary.has_price_gaps = True
            continue

        if event.side == Side.BUY:
            total_cost = event.amount * event.unit_price_usd + event.fee_usd
            if not is_finite(total_cost):
                summary.has_price_gaps = True
                continue
            lots.append(Lot(quantity=event.amount, cost_per_unit_usd=total_cost / event.amount))
            continue

        remaining_to_dispose = event.amount
        disposed_cost = ZERO
        while remaining_to_dispose > 0 and lots:
            head = lots[0]
            consumed = min(remaining_to_dispose, head.quantity)
            disposed_cost += consumed * head.cost_per_unit_usd
            head.quantity -= consumed
            remaining_to_dispose -= consumed
            if head.quantity <= DUST_QTY:
                lots.popleft()

        if remaining_to_dispose > DUST_QTY:
            logger.warning(
                "Sell %s of %s exceeds tracked lots by %s; unmatched quantity has no cost basis",
                event.tx_id,
                key,
                remaining_to_dispose,
            )

        proceeds = event.amount * event.unit_price_usd - event.fee_usd
        if not is_finite(proceeds):
            summary.has_price_gaps = True
            continue
        summary.realized_pnl_usd += proceeds - disposed_cost

    for key, lots in lots_by_asset.items():
        summary = summaries[key]
        summary.remaining_qty = sum((lot.quantity for lot in lots), ZERO)
        summary.remaining_cost_usd = sum((lot.quantity * lot.cost_per_unit_usd for lot in lots), ZERO)

    return summaries
