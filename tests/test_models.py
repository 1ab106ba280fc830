"""Tests for Pydantic data models and numeric helpers."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from algo_portfolio_tracker.core.days import (
    day_key_to_coingecko_date,
    enumerate_day_keys,
    historical_price_key,
    parse_timestamp,
    unix_to_iso,
)
from algo_portfolio_tracker.core.models import (
    Confidence,
    PortfolioSnapshot,
    PriceQuote,
    PriceSource,
    make_asset_key,
)
from algo_portfolio_tracker.core.numbers import finite_or, is_finite, is_price, to_decimal


@pytest.mark.parametrize(
    ("asset_id", "expected"),
    [(None, "ALGO"), ("ALGO", "ALGO"), (31566704, "31566704"), ("0042", "42")],
)
def test_make_asset_key(asset_id, expected):
    """Test canonical asset keys."""
    assert make_asset_key(asset_id) == expected


@pytest.mark.parametrize(
    ("source", "confidence"),
    [
        (PriceSource.CONFIGURED, Confidence.HIGH),
        (PriceSource.PROVIDER_DEFAULT, Confidence.HIGH),
        (PriceSource.ALT_PROVIDER, Confidence.MEDIUM),
        (PriceSource.DEX, Confidence.MEDIUM),
        (PriceSource.CACHE, Confidence.LOW),
        (PriceSource.MISSING, Confidence.LOW),
    ],
)
def test_quote_confidence_follows_source(source, confidence):
    """Test confidence is derived from the quote source."""
    assert PriceQuote.from_source(Decimal("1"), source).confidence == confidence


def test_snapshot_defaults_and_json():
    """Test an empty snapshot serializes with zero totals."""
    now = datetime(2025, 2, 17, tzinfo=UTC)
    snapshot = PortfolioSnapshot(computed_at=now, price_as_of=now)

    data = snapshot.model_dump(mode="json")

    assert data["method"] == "FIFO"
    assert data["totals"]["value_usd"] == "0"
    assert data["yield_estimate"]["estimated"] is True


def test_numeric_helpers():
    """Test finiteness and price checks."""
    assert to_decimal("0.5") == Decimal("0.5")
    assert to_decimal(True) is None
    assert to_decimal("abc") is None
    assert is_finite(Decimal("NaN")) is False
    assert is_finite(float("inf")) is False
    assert finite_or(Decimal("Infinity")) == 0
    assert is_price(Decimal("-1")) is False
    assert is_price(Decimal("0")) is True


def test_day_helpers():
    """Test UTC day conversions."""
    assert unix_to_iso(1739577600) == "2025-02-15T00:00:00.000Z"
    assert historical_price_key("ALGO", 1739577600 + 86399) == "ALGO:15-02-2025"
    assert day_key_to_coingecko_date("2025-02-15") == "15-02-2025"
    assert enumerate_day_keys("2025-02-28", "2025-03-01") == ["2025-02-28", "2025-03-01"]
    assert parse_timestamp("garbage") is None
    assert parse_timestamp("2025-02-15T00:00:00Z") == datetime(2025, 2, 15, tzinfo=UTC)
