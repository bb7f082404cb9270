"""Data models for connections, accounts, holdings, and portfolio summaries."""

from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Provider(StrEnum):
    """Source behind a connection."""

    MANUAL = "manual"
    WALLET = "wallet"
    PLAID = "plaid"


class AccountType(StrEnum):
    """Type of account owned by a connection."""

    MANUAL = "manual"
    CRYPTO_WALLET = "crypto_wallet"
    INVESTMENT = "investment"
    REAL_ESTATE = "real_estate"


class AssetClass(StrEnum):
    """Coarse asset class stored on each holding."""

    CRYPTO = "crypto"
    EQUITY = "equity"
    CASH = "cash"
    FIXED_INCOME = "fixed_income"
    REAL_ESTATE = "real_estate"


class SnapshotSource(StrEnum):
    """Event that caused a snapshot to be written."""

    MANUAL_WRITE = "manual_write"
    WALLET_REFRESH = "wallet_refresh"
    PLAID_SYNC = "plaid_sync"


class Principal(BaseModel):
    """
    Identity every service operation is scoped to.

    Attributes
    ----------
    user_id : str
        Owner of all connections, liabilities, properties and snapshots

    """

    user_id: str


class Connection(BaseModel):
    """
    Link to one external data source.

    Attributes
    ----------
    id : int | None
        Store identifier, assigned on insert
    user_id : str
        Owning user
    provider : Provider
        Manual entry, wallet address or brokerage link
    identifier : str
        Wallet address, Plaid item id or manual label
    chain : str | None
        Chain name for wallet connections (e.g., 'eth', 'base')
    nickname : str | None
        Display name
    access_token : str | None
        Brokerage-link access token, never logged

    """

    id: int | None = None
    user_id: str
    provider: Provider
    identifier: str
    chain: str | None = None
    nickname: str | None = None
    access_token: str | None = Field(default=None, repr=False)


class Account(BaseModel):
    """Account owned by exactly one connection.

    ``external_id`` holds the provider's account id for brokerage links.
    """

    id: int | None = None
    connection_id: int
    name: str
    type: AccountType
    currency: str = "USD"
    external_id: str | None = None


class Holding(BaseModel):
    """
    One position (quantity of a symbol at a venue).

    Attributes
    ----------
    id : int | None
        Store identifier, assigned on insert
    account_id : int
        Owning account
    symbol : str
        Ticker or token symbol
    quantity : Decimal
        Units held
    price_usd : Decimal | None
        Unit price in USD
    value_usd : Decimal | None
        quantity * price_usd at last write
    purchase_price_usd : Decimal | None
        Cost basis per unit, if known
    asset_class : AssetClass
        Coarse asset class
    as_of : datetime
        Time the price was observed
    effective_date : date
        Date from which the holding counts towards snapshots

    """

    id: int | None = None
    account_id: int
    symbol: str
    quantity: Decimal
    price_usd: Decimal | None = None
    value_usd: Decimal | None = None
    purchase_price_usd: Decimal | None = None
    asset_class: AssetClass
    as_of: datetime
    effective_date: date


class Liability(BaseModel):
    """Debt owed by the user; plain CRUD, no replace semantics."""

    id: int | None = None
    user_id: str
    name: str
    type: str
    balance_usd: Decimal = Decimal("0")
    credit_limit_usd: Decimal | None = None
    interest_rate: Decimal | None = None
    min_payment_usd: Decimal | None = None
    notes: str | None = None
    as_of: datetime | None = None


class RealEstateProperty(BaseModel):
    """Directly held property, valued manually."""

    id: int | None = None
    user_id: str
    name: str
    property_type: str | None = None
    city: str | None = None
    state: str | None = None
    current_value_usd: Decimal = Decimal("0")
    purchase_price_usd: Decimal | None = None
    notes: str | None = None
    created_at: datetime | None = None


class Snapshot(BaseModel):
    """
    Immutable, timestamped net-worth aggregate.

    Snapshots are append-only and form the net-worth time series when
    ordered by ``taken_at``.

    """

    model_config = ConfigDict(frozen=True)

    id: int | None = None
    user_id: str
    taken_at: datetime
    total_net_worth_usd: Decimal
    total_crypto_usd: Decimal
    total_tradfi_usd: Decimal
    total_liabilities_usd: Decimal
    total_real_estate_usd: Decimal
    breakdown: dict[str, Decimal] = Field(default_factory=dict)
    source: SnapshotSource


class HoldingContext(BaseModel):
    """Holding joined with its owning account and connection."""

    holding: Holding
    account: Account
    connection: Connection


class Classification(BaseModel):
    """
    Taxonomy leaf assigned to one holding.

    Attributes
    ----------
    bucket : str
        Top-level exposure category (crypto, equity, cash, ...)
    subtype : str
        Finer category within the bucket (spot_on_chain, crypto_etf, ...)
    is_crypto_exposure : bool
        Whether the position moves with crypto prices
    crypto_underlying : str | None
        Underlying coin for single-asset crypto ETFs
    exposure_usd : Decimal
        USD amount attributed to the bucket

    """

    bucket: str = "unknown"
    subtype: str = "unknown"
    is_crypto_exposure: bool = False
    crypto_underlying: str | None = None
    exposure_usd: Decimal = Decimal("0")


class NetWorthSummary(BaseModel):
    """Net worth including real estate, with liabilities subtracted."""

    total_assets_usd: Decimal = Decimal("0")
    total_liabilities_usd: Decimal = Decimal("0")
    total_net_worth_usd: Decimal = Decimal("0")
    total_crypto_usd: Decimal = Decimal("0")
    total_tradfi_usd: Decimal = Decimal("0")
    total_real_estate_usd: Decimal = Decimal("0")


class CryptoBreakdown(BaseModel):
    """Crypto exposure split by subtype."""

    spot_on_chain_usd: Decimal = Decimal("0")
    spot_custodial_usd: Decimal = Decimal("0")
    stablecoin_usd: Decimal = Decimal("0")
    crypto_etf_usd: Decimal = Decimal("0")
    crypto_equity_usd: Decimal = Decimal("0")
    other_crypto_usd: Decimal = Decimal("0")
    total_crypto_exposure_usd: Decimal = Decimal("0")


class BucketExposure(BaseModel):
    """Exposure for one bucket as a share of holdings-only net worth."""

    bucket: str
    exposure_usd: Decimal
    pct_of_net_worth: Decimal


class ExposureSummary(BaseModel):
    """
    Exposure view over positive-value holdings.

    ``total_net_worth_usd`` here is the sum of classified holdings only; it
    excludes real estate properties and does not subtract liabilities.

    """

    total_net_worth_usd: Decimal = Decimal("0")
    total_crypto_exposure_usd: Decimal = Decimal("0")
    total_tradfi_exposure_usd: Decimal = Decimal("0")
    crypto_breakdown: CryptoBreakdown = Field(default_factory=CryptoBreakdown)
    exposures_by_bucket: list[BucketExposure] = Field(default_factory=list)


class TokenBalance(BaseModel):
    """
    Raw token balance as reported by the wallet-data provider.

    Attributes
    ----------
    symbol : str | None
        Token symbol, may be missing for unnamed contracts
    raw_balance : str
        Integer balance in the token's smallest unit
    decimals : int | None
        Token decimals, 18 assumed when missing
    usd_price : Decimal | None
        Provider-reported unit price
    usd_value : Decimal | None
        Provider-reported total value

    """

    symbol: str | None = None
    raw_balance: str = "0"
    decimals: int | None = None
    usd_price: Decimal | None = None
    usd_value: Decimal | None = None


class RefreshResult(BaseModel):
    """Aggregate outcome of a batch wallet refresh."""

    synced: int = 0
    failed: int = 0
    skipped: int = 0
    holdings_written: int = 0
    failed_connection_ids: list[int] = Field(default_factory=list)


class HoldingView(BaseModel):
    """Holding denormalized with account and connection display fields."""

    id: int
    symbol: str
    quantity: Decimal
    price_usd: Decimal | None
    value_usd: Decimal | None
    purchase_price_usd: Decimal | None
    asset_class: AssetClass
    as_of: datetime
    effective_date: date
    account_id: int
    account_name: str
    account_type: AccountType
    connection_id: int
    provider: Provider
    nickname: str | None = None
    identifier: str

    @classmethod
    def from_context(cls, context: HoldingContext) -> "HoldingView":
        """Build a listing row from a joined holding context."""
        h, a, c = context.holding, context.account, context.connection
        data: dict[str, Any] = h.model_dump(exclude={"account_id"})
        return cls(
            **data,
            account_id=h.account_id,
            account_name=a.name,
            account_type=a.type,
            connection_id=c.id,
            provider=c.provider,
            nickname=c.nickname,
            identifier=c.identifier,
        )


def _normalize_symbols(value: Any) -> Any:
    if isinstance(value, (list, tuple, set, frozenset)):
        return frozenset(str(symbol).strip().upper() for symbol in value)
    return value


class EquityRule(BaseModel):
    """
    Membership set mapping equity tickers to a taxonomy leaf.

    Attributes
    ----------
    name : str
        Rule identifier (e.g., 'btc_etf')
    bucket : str
        Bucket assigned on match
    subtype : str
        Subtype assigned on match
    crypto_exposure : bool
        Whether matched tickers count as crypto exposure
    underlying : str | None
        Underlying coin for single-asset crypto funds
    symbols : frozenset[str]
        Upper-cased member tickers

    """

    name: str
    bucket: str
    subtype: str
    crypto_exposure: bool = False
    underlying: str | None = None
    symbols: frozenset[str] = frozenset()

    @field_validator("symbols", mode="before")
    @classmethod
    def upper_symbols(cls, value: Any) -> Any:
        return _normalize_symbols(value)


class StablecoinRule(BaseModel):
    """Stablecoin symbols plus the suffix that also marks a stablecoin."""

    symbol_suffix: str | None = "USD"
    symbols: frozenset[str] = frozenset()

    @field_validator("symbols", mode="before")
    @classmethod
    def upper_symbols(cls, value: Any) -> Any:
        return _normalize_symbols(value)

    def matches(self, symbol: str) -> bool:
        """Check a normalized symbol against the set and suffix."""
        if symbol in self.symbols:
            return True
        return bool(self.symbol_suffix) and symbol.endswith(self.symbol_suffix)


class Taxonomy(BaseModel):
    """Versioned classification data, evaluated in rule order."""

    version: str
    stablecoins: StablecoinRule = Field(default_factory=StablecoinRule)
    equity_rules: list[EquityRule] = Field(default_factory=list)
