"""Algorand indexer REST client."""

import logging
import threading
from collections import deque
from decimal import Decimal
from typing import Any

import httpx

from algo_portfolio_tracker.config import Settings, get_settings
from algo_portfolio_tracker.core.models import (
    MICROALGOS_PER_ALGO,
    AccountState,
    AssetHolding,
    AssetInfo,
    AssetTransfer,
    LedgerTransaction,
    PaymentTransfer,
)

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 1000
TX_TYPES = ("pay", "axfer")


class IndexerError(Exception):
    """Exception raised for indexer request failures."""


def _parse_transaction(
    raw: dict[str, Any], fallback_id: str, fallback_sender: str, fallback_time: int
) -> LedgerTransaction:
    payment = raw.get("payment-transaction")
    transfer = raw.get("asset-transfer-transaction")
    return LedgerTransaction(
        id=raw.get("id") or fallback_id,
        sender=raw.get("sender") or fallback_sender,
        fee=raw.get("fee") or 0,
        confirmed_round_time=raw.get("confirmed-round-time") or raw.get("round-time") or fallback_time,
        payment=PaymentTransfer(receiver=payment["receiver"], amount=payment["amount"]) if payment else None,
        asset_transfer=(
            AssetTransfer(receiver=transfer["receiver"], amount=transfer["amount"], asset_id=transfer["asset-id"])
            if transfer
            else None
        ),
    )


def flatten_transaction(raw: dict[str, Any]) -> list[LedgerTransaction]:
    """
    Flatten a top-level indexer transaction and its inner transactions.

    Inner transactions are visited breadth-first. Those without an id get
    ``<parent path>:inner:<index>``; missing sender and time are inherited
    from the top-level transaction.

    Parameters
    ----------
    raw : dict[str, Any]
        Transaction object as returned by ``/v2/transactions``

    Returns
    -------
    list[LedgerTransaction]
        The transaction followed by its inner transactions

    """
    root_id = raw["id"]
    root_sender = raw["sender"]
    root_time = raw.get("confirmed-round-time") or raw.get("round-time") or 0

    out = [_parse_transaction(raw, root_id, root_sender, root_time)]
    queue = deque((inner, f"{root_id}:inner:{idx}") for idx, inner in enumerate(raw.get("inner-txns") or []))
    while queue:
        item, path = queue.popleft()
        out.append(_parse_transaction(item, path, root_sender, root_time))
        queue.extend((nested, f"{path}:inner:{idx}") for idx, nested in enumerate(item.get("inner-txns") or []))
    return out


class IndexerClient:
    """
    Client for the Algorand indexer v2 API.

    Parameters
    ----------
    base_url : str
        Indexer base URL
    api_token : str | None
        API key sent as ``X-API-Key``
    tx_limit : int
        Default max transactions fetched per address and transaction type
    timeout : float
        Request timeout in seconds
    client : httpx.Client | None
        Preconfigured client, mainly for tests

    """

    def __init__(
        self,
        base_url: str,
        api_token: str | None = None,
        tx_limit: int = 500,
        timeout: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.tx_limit = tx_limit
        headers = {"X-API-Key": api_token} if api_token else {}
        self.client = client or httpx.Client(timeout=timeout, headers=headers)
        self._asset_info: dict[int, AssetInfo] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "IndexerClient":
        """Create a client from application settings."""
        settings = settings or get_settings()
        return cls(
            settings.algorand_indexer_url,
            api_token=settings.algorand_indexer_token,
            tx_limit=settings.indexer_tx_limit,
            timeout=settings.http_timeout_seconds,
        )

    def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            response = self.client.get(f"{self.base_url}{path}", params=params)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException as e:
            msg = f"Indexer request timeout: {e}"
            raise IndexerError(msg) from e
        except httpx.HTTPStatusError as e:
            msg = f"Indexer request failed: {e.response.status_code} {e.response.reason_phrase}"
            raise IndexerError(msg) from e
        except httpx.HTTPError as e:
            msg = f"Indexer request failed: {e}"
            raise IndexerError(msg) from e
        except ValueError as e:
            msg = f"Indexer returned invalid JSON: {e}"
            raise IndexerError(msg) from e

    def get_asset_info(self, asset_id: int) -> AssetInfo:
        """
        Get ASA metadata, cached for the lifetime of the client.

        Parameters
        ----------
        asset_id : int
            ASA id

        Returns
        -------
        AssetInfo
            Decimals, name and unit name

        Raises
        ------
        IndexerError
            If the request fails

        """
        cached = self._asset_info.get(asset_id)
        if cached is not None:
            return cached

        data = self._get(f"/v2/assets/{asset_id}")
        params = (data.get("asset") or {}).get("params") or {}
        info = AssetInfo(
            decimals=params.get("decimals") or 0,
            name=params.get("name"),
            unit_name=params.get("unit-name"),
        )
        with self._lock:
            self._asset_info[asset_id] = info
        return info

    def get_account_state(self, address: str) -> AccountState:
        """
        Get balances and app memberships of an account.

        Parameters
        ----------
        address : str
            Wallet address

        Returns
        -------
        AccountState
            ALGO balance and ASA holdings scaled to whole units

        Raises
        ------
        IndexerError
            If a request fails

        """
        account = self._get(f"/v2/accounts/{address}").get("account") or {}

        assets = []
        for row in account.get("assets") or []:
            asset_id = row["asset-id"]
            decimals = self.get_asset_info(asset_id).decimals
            assets.append(
                AssetHolding(
                    asset_id=asset_id,
                    amount=Decimal(row.get("amount", 0)) / (Decimal(10) ** decimals),
                    decimals=decimals,
                )
            )

        return AccountState(
            address=account.get("address", address),
            algo_amount=Decimal(account.get("amount", 0)) / MICROALGOS_PER_ALGO,
            assets=assets,
            apps_local_state=[app["id"] for app in account.get("apps-local-state") or []],
        )

    def get_transactions_for_address(self, address: str, limit: int | None = None) -> list[LedgerTransaction]:
        """
        Get payment and asset transfer transactions involving an address.

        Parameters
        ----------
        address : str
            Wallet address
        limit : int | None
            Max transactions per transaction type. Uses the client default if None.

        Returns
        -------
        list[LedgerTransaction]
            Flattened, de-duplicated transactions, newest first

        Raises
        ------
        IndexerError
            If a request fails

        """
        capped = max(1, limit if limit is not None else self.tx_limit)

        deduped: dict[str, LedgerTransaction] = {}
        for tx_type in TX_TYPES:
            for txn in self._fetch_for_type(address, tx_type, capped):
                deduped[txn.id] = txn

        logger.debug("Fetched %d transactions for %s", len(deduped), address)
        return sorted(deduped.values(), key=lambda t: t.confirmed_round_time, reverse=True)

    def _fetch_for_type(self, address: str, tx_type: str, limit: int) -> list[LedgerTransaction]:
        collected: list[LedgerTransaction] = []
        next_token = None

        while len(collected) < limit:
            params: dict[str, Any] = {
                "address": address,
                "tx-type": tx_type,
                "limit": min(limit - len(collected), MAX_PAGE_SIZE),
            }
            if next_token:
                params["next"] = next_token

            data = self._get("/v2/transactions", params)
            page = data.get("transactions") or []
            for raw in page:
                collected.extend(flatten_transaction(raw))

            next_token = data.get("next-token")
            if not next_token or not page:
                break

        return collected

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> "IndexerClient":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
