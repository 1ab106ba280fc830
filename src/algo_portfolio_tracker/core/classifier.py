"""Turn ledger transactions into buy/sell lot events relative to owned wallets."""

from collections.abc import Callable, Iterable, Mapping
from decimal import Decimal
from enum import StrEnum

from algo_portfolio_tracker.core.models import (
    MICROALGOS_PER_ALGO,
    NATIVE_ASSET_KEY,
    LedgerTransaction,
    LotEvent,
    Side,
    make_asset_key,
)
from algo_portfolio_tracker.core.numbers import ZERO, finite_or, is_finite

UnitPriceLookup = Callable[[str, int], Decimal | None]


class ClassifierScope(StrEnum):
    """
    How transfers between two owned wallets are treated.

    GLOBAL suppresses them (they net to zero for the portfolio). PER_WALLET
    emits a sell on the sending wallet and a buy on the receiving wallet.
    """

    GLOBAL = "global"
    PER_WALLET = "per-wallet"


def classify_transactions(
    transactions: Iterable[LedgerTransaction],
    owned_wallets: set[str] | frozenset[str],
    spot_prices: Mapping[str, Decimal | None],
    decimals_by_asset: Mapping[str, int],
    unit_price_lookup: UnitPriceLookup | None = None,
    scope: ClassifierScope = ClassifierScope.GLOBAL,
) -> list[LotEvent]:
    """
    Classify transactions into lot events.

    Parameters
    ----------
    transactions : Iterable[LedgerTransaction]
        Flattened, de-duplicated ledger transactions
    owned_wallets : set[str]
        Addresses belonging to the user
    spot_prices : Mapping[str, Decimal | None]
        Current USD prices by asset key
    decimals_by_asset : Mapping[str, int]
        ASA decimals by asset key (missing assets default to 0)
    unit_price_lookup : UnitPriceLookup | None
        Historical price for ``(asset_key, unix_ts)``; spot is used when it
        is absent or returns None
    scope : ClassifierScope
        Treatment of transfers between owned wallets

    Returns
    -------
    list[LotEvent]
        Lot events in transaction order

    """
    events: list[LotEvent] = []

    def unit_price(key: str, ts: int) -> Decimal | None:
        if unit_price_lookup is not None:
            historical = unit_price_lookup(key, ts)
            if is_finite(historical):
                return historical
        spot = spot_prices.get(key)
        return spot if is_finite(spot) else None

    # TODO: decode grouped transactions and AMM app calls to detect swaps.
    for txn in transactions:
        if txn.payment is not None:
            key = NATIVE_ASSET_KEY
            receiver = txn.payment.receiver
            amount = Decimal(txn.payment.amount) / MICROALGOS_PER_ALGO
        elif txn.asset_transfer is not None:
            key = make_asset_key(txn.asset_transfer.asset_id)
            receiver = txn.asset_transfer.receiver
            decimals = decimals_by_asset.get(key, 0)
            amount = Decimal(txn.asset_transfer.amount) / (Decimal(10) ** decimals)
        else:
            continue

        sender_owned = txn.sender in owned_wallets
        receiver_owned = receiver in owned_wallets
        ts = txn.confirmed_round_time
        price = unit_price(key, ts)

        if sender_owned and receiver_owned:
            if scope == ClassifierScope.GLOBAL or txn.sender == receiver:
                continue

        if sender_owned:
            algo_price = unit_price(NATIVE_ASSET_KEY, ts)
            fee_algo = finite_or(txn.fee) / MICROALGOS_PER_ALGO
            fee_usd = finite_or(fee_algo * algo_price) if algo_price is not None else ZERO
            events.append(
                LotEvent(
                    tx_id=txn.id,
                    ts=ts,
                    asset_key=key,
                    side=Side.SELL,
                    amount=amount,
                    unit_price_usd=price,
                    fee_usd=fee_usd,
                    wallet=txn.sender,
                )
            )

        if receiver_owned:
            events.append(
                LotEvent(
                    tx_id=txn.id,
                    ts=ts,
                    asset_key=key,
                    side=Side.BUY,
                    amount=amount,
                    unit_price_usd=price,
                    fee_usd=ZERO,
                    wallet=receiver,
                )
            )

    return events
