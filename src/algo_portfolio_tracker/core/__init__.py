"""Core functionality including models, lot accounting, history and the snapshot aggregator."""

from algo_portfolio_tracker.core.aggregator import PortfolioAggregator
from algo_portfolio_tracker.core.classifier import ClassifierScope, classify_transactions
from algo_portfolio_tracker.core.history import build_history_for_snapshot, build_portfolio_history_from_transactions
from algo_portfolio_tracker.core.lots import run_fifo
from algo_portfolio_tracker.core.models import (
    AssetLotSummary,
    HistoryPoint,
    LotEvent,
    PortfolioSnapshot,
    PriceQuote,
)
from algo_portfolio_tracker.core.registry import AdapterRegistry

__all__ = [
    "AdapterRegistry",
    "AssetLotSummary",
    "ClassifierScope",
    "HistoryPoint",
    "LotEvent",
    "PortfolioAggregator",
    "PortfolioSnapshot",
    "PriceQuote",
    "build_history_for_snapshot",
    "build_portfolio_history_from_transactions",
    "classify_transactions",
    "run_fifo",
]
