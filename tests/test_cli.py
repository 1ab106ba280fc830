"""Tests for the command line interface."""

from typer.testing import CliRunner

from algo_portfolio_tracker.cli import main
from algo_portfolio_tracker.cli.main import app

runner = CliRunner()


def test_list_adapters():
    """Test registered adapters are listed."""
    result = runner.invoke(app, ["list-adapters"])

    assert result.exit_code == 0
    assert "tinyman" in result.output
    assert "Tinyman" in result.output


def test_prices_rejects_invalid_asset_id():
    """Test a non-numeric asset id exits with an error before any request."""
    result = runner.invoke(app, ["prices", "not-an-asset"])

    assert result.exit_code == 1
    assert "Invalid asset id" in result.output


def test_snapshot_closes_price_service_on_failure(monkeypatch):
    """Test the price service is closed when snapshot computation raises."""
    closed = []

    class RecordingPriceService:
        def __enter__(self):
            return self

        def __exit__(self, *args):
            closed.append(True)

    class FailingAggregator:
        def __init__(self, **kwargs):
            pass

        def compute_portfolio_snapshot(self, wallets, **kwargs):
            raise RuntimeError("indexer unavailable")

    monkeypatch.setattr(main, "PriceService", RecordingPriceService)
    monkeypatch.setattr(main, "PortfolioAggregator", FailingAggregator)

    result = runner.invoke(app, ["snapshot", "WALLET"])

    assert result.exit_code == 1
    assert "indexer unavailable" in result.output
    assert closed == [True]
