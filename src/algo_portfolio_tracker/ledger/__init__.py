"""Ledger access: the data source interface and its Algorand indexer binding."""

from algo_portfolio_tracker.ledger.base import LedgerSource
from algo_portfolio_tracker.ledger.indexer import IndexerClient, IndexerError, flatten_transaction

__all__ = [
    "IndexerClient",
    "IndexerError",
    "LedgerSource",
    "flatten_transaction",
]
