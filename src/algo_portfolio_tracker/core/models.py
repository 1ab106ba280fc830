"""Data models for ledger data, lot accounting, prices, snapshots and history."""

from datetime import datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

NATIVE_ASSET_KEY = "ALGO"
NATIVE_DECIMALS = 6
MICROALGOS_PER_ALGO = Decimal(10) ** NATIVE_DECIMALS


def make_asset_key(asset_id: int | str | None) -> str:
    """
    Return the canonical asset key for an asset id.

    Parameters
    ----------
    asset_id : int | str | None
        ASA id, or None (or "ALGO") for the native currency

    Returns
    -------
    str
        "ALGO" for the native currency, otherwise the decimal asset id

    """
    if asset_id is None or asset_id == NATIVE_ASSET_KEY:
        return NATIVE_ASSET_KEY
    return str(int(asset_id))


class Side(StrEnum):
    """Direction of a lot event relative to the owned wallets."""

    BUY = "buy"
    SELL = "sell"


class Direction(StrEnum):
    """Direction of a transaction relative to its wallet."""

    IN = "in"
    OUT = "out"
    SELF = "self"


class TransactionType(StrEnum):
    """Ledger transaction kinds that move value."""

    PAYMENT = "payment"
    ASSET_TRANSFER = "asset-transfer"


class ValueSource(StrEnum):
    """Which price valued a transaction row."""

    HISTORICAL = "historical"
    SPOT = "spot"
    MISSING = "missing"


class PriceSource(StrEnum):
    """Tier of the spot waterfall that produced a quote."""

    CONFIGURED = "configured"
    PROVIDER_DEFAULT = "provider-default"
    ALT_PROVIDER = "alt-provider"
    DEX = "dex"
    CACHE = "cache"
    MISSING = "missing"


class Confidence(StrEnum):
    """How much a quote can be trusted."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


SOURCE_CONFIDENCE: dict[PriceSource, Confidence] = {
    PriceSource.CONFIGURED: Confidence.HIGH,
    PriceSource.PROVIDER_DEFAULT: Confidence.HIGH,
    PriceSource.ALT_PROVIDER: Confidence.MEDIUM,
    PriceSource.DEX: Confidence.MEDIUM,
    PriceSource.CACHE: Confidence.LOW,
    PriceSource.MISSING: Confidence.LOW,
}


class PositionType(StrEnum):
    """Type of DeFi position."""

    LP = "lp"
    LENDING = "lending"
    STAKING = "staking"
    FARMING = "farming"


# Ledger


class AssetInfo(BaseModel):
    """
    ASA metadata.

    Attributes
    ----------
    decimals : int
        Number of decimal places of the base unit
    name : str | None
        Full asset name
    unit_name : str | None
        Short ticker (e.g. 'USDC')

    """

    decimals: int = 0
    name: str | None = None
    unit_name: str | None = None


class AssetHolding(BaseModel):
    """ASA holding of an account, already scaled by the asset decimals."""

    asset_id: int
    amount: Decimal
    decimals: int = 0


class AccountState(BaseModel):
    """
    Current state of a wallet.

    Attributes
    ----------
    address : str
        Wallet address
    algo_amount : Decimal
        Native balance in ALGO
    assets : list[AssetHolding]
        ASA holdings
    apps_local_state : list[int]
        Ids of applications the account has opted into

    """

    address: str
    algo_amount: Decimal = Decimal("0")
    assets: list[AssetHolding] = Field(default_factory=list)
    apps_local_state: list[int] = Field(default_factory=list)


class PaymentTransfer(BaseModel):
    """Native currency transfer payload (amount in microAlgos)."""

    receiver: str
    amount: int


class AssetTransfer(BaseModel):
    """ASA transfer payload (amount in base units)."""

    receiver: str
    amount: int
    asset_id: int


class LedgerTransaction(BaseModel):
    """
    Ledger transaction, inner transactions already flattened.

    Attributes
    ----------
    id : str
        Transaction id (synthetic ``<id>:inner:<n>`` for inner transactions)
    sender : str
        Sender address
    fee : Decimal
        Fee in microAlgos (may be non-finite in malformed upstream data)
    confirmed_round_time : int
        Confirmation time in unix seconds
    payment : PaymentTransfer | None
        Native transfer payload
    asset_transfer : AssetTransfer | None
        ASA transfer payload

    """

    id: str
    sender: str
    fee: Decimal = Field(default=Decimal("0"), allow_inf_nan=True)
    confirmed_round_time: int
    payment: PaymentTransfer | None = None
    asset_transfer: AssetTransfer | None = None


# Lot accounting


class LotEvent(BaseModel):
    """
    Directional buy/sell event derived from a ledger transaction.

    Attributes
    ----------
    tx_id : str
        Originating transaction id
    ts : int
        Unix seconds
    asset_key : str
        Canonical asset key
    side : Side
        Buy (entering the owned universe) or sell (leaving it)
    amount : Decimal
        Quantity in whole units
    unit_price_usd : Decimal | None
        USD price per unit, None when unknown
    fee_usd : Decimal
        Fee charged to this event in USD
    wallet : str | None
        Wallet the event belongs to

    """

    model_config = ConfigDict(frozen=True)

    tx_id: str
    ts: int
    asset_key: str
    side: Side
    amount: Decimal = Field(allow_inf_nan=True)
    unit_price_usd: Decimal | None = Field(default=None, allow_inf_nan=True)
    fee_usd: Decimal = Field(default=Decimal("0"), allow_inf_nan=True)
    wallet: str | None = None


class AssetLotSummary(BaseModel):
    """FIFO result for one asset."""

    asset_key: str
    remaining_qty: Decimal = Decimal("0")
    remaining_cost_usd: Decimal = Decimal("0")
    realized_pnl_usd: Decimal = Decimal("0")
    has_price_gaps: bool = False


# Prices


class PriceQuote(BaseModel):
    """
    Spot price answer with provenance.

    Attributes
    ----------
    usd : Decimal | None
        USD price, None when no tier resolved the asset
    source : PriceSource
        Tier that produced the value
    confidence : Confidence
        Derived from the source
    as_of : datetime | None
        When the value was obtained

    """

    usd: Decimal | None
    source: PriceSource
    confidence: Confidence
    as_of: datetime | None = None

    @classmethod
    def from_source(cls, usd: Decimal | None, source: PriceSource, as_of: datetime | None = None) -> "PriceQuote":
        """Build a quote whose confidence follows from its source."""
        return cls(usd=usd, source=source, confidence=SOURCE_CONFIDENCE[source], as_of=as_of)


class DailyPriceEntry(BaseModel):
    """USD price of an asset on a UTC day (``YYYY-MM-DD``)."""

    asset_key: str
    day_key: str
    price_usd: Decimal | None = None


# DeFi


class DefiPosition(BaseModel):
    """
    Valued position reported by a DeFi adapter.

    Attributes
    ----------
    protocol : str
        Protocol name (e.g., 'Tinyman')
    wallet : str
        Wallet holding the position
    position_type : PositionType
        Kind of position
    estimated : bool
        Whether the value is an estimate
    value_usd : Decimal | None
        USD value estimate
    meta : dict
        Adapter-specific details

    """

    protocol: str
    wallet: str
    position_type: PositionType
    estimated: bool = True
    value_usd: Decimal | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


# Snapshot


class WalletBalance(BaseModel):
    """Balance of one asset inside one wallet."""

    wallet: str
    balance: Decimal
    value_usd: Decimal | None = None


class SnapshotAssetRow(BaseModel):
    """Per-asset line of a portfolio snapshot."""

    asset_key: str
    asset_name: str
    balance: Decimal
    wallet_breakdown: list[WalletBalance] = Field(default_factory=list)
    price_usd: Decimal | None = None
    value_usd: Decimal | None = None
    cost_basis_usd: Decimal = Decimal("0")
    realized_pnl_usd: Decimal = Decimal("0")
    unrealized_pnl_usd: Decimal | None = None
    has_price: bool = False


class SnapshotTransactionRow(BaseModel):
    """USD-valued transaction line of a portfolio snapshot."""

    tx_id: str
    ts: int
    wallet: str
    counterparty: str | None = None
    tx_type: TransactionType
    direction: Direction
    asset_key: str
    asset_name: str
    amount: Decimal
    unit_price_usd: Decimal | None = None
    value_usd: Decimal | None = None
    value_source: ValueSource
    fee_algo: Decimal = Decimal("0")
    fee_usd: Decimal = Decimal("0")


class WalletBreakdown(BaseModel):
    """Per-wallet rollup of a portfolio snapshot."""

    wallet: str
    total_value_usd: Decimal = Decimal("0")
    total_cost_basis_usd: Decimal = Decimal("0")
    total_realized_pnl_usd: Decimal = Decimal("0")
    total_unrealized_pnl_usd: Decimal = Decimal("0")


class PortfolioTotals(BaseModel):
    """Portfolio-wide totals."""

    value_usd: Decimal = Decimal("0")
    cost_basis_usd: Decimal = Decimal("0")
    realized_pnl_usd: Decimal = Decimal("0")
    unrealized_pnl_usd: Decimal = Decimal("0")


class YieldEstimate(BaseModel):
    """Rough yield estimate from detected DeFi activity."""

    estimated_apr_pct: Decimal | None = None
    estimated: bool = True
    note: str = ""


class PortfolioSnapshot(BaseModel):
    """
    Point-in-time portfolio view across all wallets.

    Attributes
    ----------
    computed_at : datetime
        When the snapshot was computed
    price_as_of : datetime
        When spot prices were resolved
    method : str
        Cost basis method (always "FIFO")
    totals : PortfolioTotals
        Portfolio totals
    assets : list[SnapshotAssetRow]
        Asset rows sorted by value descending
    transactions : list[SnapshotTransactionRow]
        Transaction rows sorted newest first
    wallets : list[WalletBreakdown]
        Per-wallet rollups
    defi_positions : list[DefiPosition]
        Positions reported by DeFi adapters
    yield_estimate : YieldEstimate
        Yield estimate

    """

    computed_at: datetime
    price_as_of: datetime
    method: str = "FIFO"
    totals: PortfolioTotals = Field(default_factory=PortfolioTotals)
    assets: list[SnapshotAssetRow] = Field(default_factory=list)
    transactions: list[SnapshotTransactionRow] = Field(default_factory=list)
    wallets: list[WalletBreakdown] = Field(default_factory=list)
    defi_positions: list[DefiPosition] = Field(default_factory=list)
    yield_estimate: YieldEstimate = Field(default_factory=YieldEstimate)


# History


class HistoryTransaction(BaseModel):
    """Balance-changing row replayed by history reconstruction."""

    ts: int
    asset_key: str
    amount: Decimal = Field(allow_inf_nan=True)
    direction: Direction
    unit_price_usd: Decimal | None = Field(default=None, allow_inf_nan=True)
    fee_algo: Decimal = Field(default=Decimal("0"), allow_inf_nan=True)


class LatestAssetState(BaseModel):
    """Known-correct current balance and spot price of an asset."""

    asset_key: str
    balance: Decimal
    price_usd: Decimal | None = None


class HistoryPoint(BaseModel):
    """Point of the value-over-time series."""

    ts: str
    value_usd: Decimal


class WalletHistoryTransaction(HistoryTransaction):
    """History replay row attributed to one wallet."""

    wallet: str


class SeriesPoint(BaseModel):
    """Point of a labelled series."""

    ts: str
    value: Decimal


class WalletSeries(BaseModel):
    """
    Labelled time series, usually one per wallet.

    Attributes
    ----------
    key : str
        Series identifier (wallet address, or 'aggregate')
    label : str
        Display label
    points : list[SeriesPoint]
        Points sorted by time

    """

    key: str
    label: str
    points: list[SeriesPoint] = Field(default_factory=list)


class AlignedValues(BaseModel):
    """Values of one series on a shared timestamp axis."""

    key: str
    label: str
    values: list[Decimal] = Field(default_factory=list)


class AlignedSeries(BaseModel):
    """Several series sampled on the union of their timestamps."""

    timestamps: list[str] = Field(default_factory=list)
    series: list[AlignedValues] = Field(default_factory=list)
