"""Tests for FIFO lot accounting."""

import logging
from decimal import Decimal

from algo_portfolio_tracker.core.lots import run_fifo
from algo_portfolio_tracker.core.models import LotEvent, Side


def event(tx_id, ts, side, amount, price, fee="0", asset_key="ALGO"):
    return LotEvent(
        tx_id=tx_id,
        ts=ts,
        asset_key=asset_key,
        side=side,
        amount=Decimal(amount),
        unit_price_usd=Decimal(price) if price is not None else None,
        fee_usd=Decimal(fee),
    )


def test_buy_then_partial_sell():
    """Test realized P&L on a partial sell consumes the oldest lot."""
    summaries = run_fifo(
        [
            event("b1", 100, Side.BUY, "10", "1"),
            event("b2", 200, Side.BUY, "10", "2"),
            event("s1", 300, Side.SELL, "15", "3"),
        ]
    )

    algo = summaries["ALGO"]
    # 15 sold at 3 = 45; cost 10*1 + 5*2 = 20
    assert algo.realized_pnl_usd == Decimal("25")
    assert algo.remaining_qty == Decimal("5")
    assert algo.remaining_cost_usd == Decimal("10")
    assert algo.has_price_gaps is False


def test_events_are_sorted_by_time():
    """Test out-of-order input is processed chronologically."""
    summaries = run_fifo(
        [
            event("s1", 300, Side.SELL, "5", "4"),
            event("b1", 100, Side.BUY, "5", "1"),
        ]
    )

    assert summaries["ALGO"].realized_pnl_usd == Decimal("15")
    assert summaries["ALGO"].remaining_qty == 0


def test_fees_capitalized_and_deducted():
    """Test buy fees raise cost and sell fees reduce proceeds."""
    summaries = run_fifo(
        [
            event("b1", 1, Side.BUY, "2", "10", fee="1"),
            event("s1", 2, Side.SELL, "1", "20", fee="0.5"),
        ]
    )

    algo = summaries["ALGO"]
    # Unit cost 10.5; proceeds 19.5
    assert algo.realized_pnl_usd == Decimal("9.0")
    assert algo.remaining_cost_usd == Decimal("10.5")


def test_missing_price_marks_gap():
    """Test events without a price are skipped and flagged."""
    summaries = run_fifo(
        [
            event("b1", 1, Side.BUY, "5", None),
            event("b2", 2, Side.BUY, "5", "1"),
        ]
    )

    algo = summaries["ALGO"]
    assert algo.has_price_gaps is True
    assert algo.remaining_qty == Decimal("5")


def test_oversell_keeps_available_lots_only(caplog):
    """Test selling more than tracked does not go negative and logs a warning."""
    with caplog.at_level(logging.WARNING, logger="algo_portfolio_tracker.core.lots"):
        summaries = run_fifo(
            [
                event("b1", 1, Side.BUY, "2", "1"),
                event("s1", 2, Side.SELL, "5", "2"),
            ]
        )

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "s1" in warnings[0].getMessage()

    algo = summaries["ALGO"]
    assert algo.remaining_qty == 0
    assert algo.remaining_cost_usd == 0
    # Proceeds 10, matched cost 2
    assert algo.realized_pnl_usd == Decimal("8")


def test_ignores_non_positive_and_non_finite_amounts():
    """Test zero, negative and NaN amounts are dropped."""
    summaries = run_fifo(
        [
            event("z", 1, Side.BUY, "0", "1"),
            event("n", 2, Side.BUY, "-3", "1"),
            event("nan", 3, Side.BUY, "NaN", "1"),
        ]
    )

    assert summaries == {}


def test_assets_are_tracked_independently():
    """Test lots of different assets never mix."""
    summaries = run_fifo(
        [
            event("b1", 1, Side.BUY, "1", "100", asset_key="31566704"),
            event("b2", 2, Side.BUY, "1", "5"),
            event("s1", 3, Side.SELL, "1", "6"),
        ]
    )

    assert summaries["31566704"].remaining_cost_usd == Decimal("100")
    assert summaries["ALGO"].realized_pnl_usd == Decimal("1")
