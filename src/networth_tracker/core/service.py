"""Portfolio service: user-scoped operations over the store, providers and engine."""

import logging
from collections.abc import Callable
from datetime import UTC, date, datetime
from decimal import Decimal

from networth_tracker.core.aggregator import compute_exposure_summary, compute_holdings_total, compute_net_worth
from networth_tracker.core.classifier import get_default_taxonomy
from networth_tracker.core.errors import NotFoundError, UpstreamProviderError, ValidationError
from networth_tracker.core.ingestion import BrokerageSource, BrokerageSync, WalletBalanceSource, WalletRefresher
from networth_tracker.core.models import (
    Account,
    AccountType,
    AssetClass,
    Connection,
    ExposureSummary,
    Holding,
    HoldingView,
    Liability,
    NetWorthSummary,
    Principal,
    Provider,
    RealEstateProperty,
    RefreshResult,
    Snapshot,
    SnapshotSource,
    Taxonomy,
)
from networth_tracker.core.snapshots import SnapshotRecorder
from networth_tracker.pricing.refresher import PriceRefresher, PriceSource
from networth_tracker.store.base import PortfolioStore

logger = logging.getLogger(__name__)


def _require(**fields: object) -> None:
    missing = [
        name for name, value in fields.items() if value is None or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        msg = f"missing required fields: {', '.join(missing)}"
        raise ValidationError(msg)


def _to_decimal(name: str, value: Decimal | float | str | None) -> Decimal | None:
    if value is None or isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except ArithmeticError as e:
        msg = f"{name} is not a number: {value!r}"
        raise ValidationError(msg) from e


class PortfolioService:
    """
    Entry point for every user-facing operation.

    Each operation takes the :class:`Principal` it acts for. Input is
    validated before the store is touched. Mutations that change net worth
    record a snapshot afterwards; a failed snapshot never fails the
    mutation.

    Parameters
    ----------
    store : PortfolioStore
        Persistence backend
    wallet_source : WalletBalanceSource | None
        Wallet-data provider, required for wallet refreshes
    brokerage_source : BrokerageSource | None
        Brokerage-link provider, required for brokerage operations
    price_source : PriceSource | None
        Spot-price provider used for manual entries and price refreshes
    taxonomy : Taxonomy | None
        Classification data, defaults to the packaged taxonomy
    clock : Callable[[], datetime] | None
        Source of timestamps, timezone-aware UTC by default
    max_workers : int
        Parallel wallet refreshes

    """

    def __init__(
        self,
        store: PortfolioStore,
        wallet_source: WalletBalanceSource | None = None,
        brokerage_source: BrokerageSource | None = None,
        price_source: PriceSource | None = None,
        taxonomy: Taxonomy | None = None,
        clock: Callable[[], datetime] | None = None,
        max_workers: int = 4,
    ) -> None:
        self.store = store
        self.wallet_source = wallet_source
        self.brokerage_source = brokerage_source
        self.price_source = price_source
        self.taxonomy = taxonomy or get_default_taxonomy()
        self._clock = clock or (lambda: datetime.now(UTC))
        self.max_workers = max_workers
        self.recorder = SnapshotRecorder(store, clock=self._clock)

    # Listings and summaries

    def list_holdings(self, principal: Principal) -> list[HoldingView]:
        """List holdings with account and connection fields, highest value first."""
        views = [HoldingView.from_context(ctx) for ctx in self.store.list_holding_contexts(principal.user_id)]
        return sorted(views, key=lambda v: v.value_usd or Decimal("0"), reverse=True)

    def list_liabilities(self, principal: Principal) -> list[Liability]:
        return self.store.list_liabilities(principal.user_id)

    def list_properties(self, principal: Principal) -> list[RealEstateProperty]:
        return self.store.list_properties(principal.user_id)

    def list_wallets(self, principal: Principal) -> list[Connection]:
        return self.store.list_connections(principal.user_id, Provider.WALLET)

    def list_snapshots(self, principal: Principal) -> list[Snapshot]:
        return self.recorder.list_snapshots(principal)

    def net_worth_summary(self, principal: Principal) -> NetWorthSummary:
        """
        Balance-sheet net worth: holdings plus real estate, minus liabilities.

        Parameters
        ----------
        principal : Principal
            User to summarize

        Returns
        -------
        NetWorthSummary
            Totals over every stored holding, liability and property

        """
        return compute_net_worth(
            self.store.list_holdings(principal.user_id),
            self.store.list_liabilities(principal.user_id),
            self.store.list_properties(principal.user_id),
        )

    def exposure_summary(self, principal: Principal) -> ExposureSummary:
        """Exposure view over positive-value holdings only."""
        return compute_exposure_summary(self.store.list_holding_contexts(principal.user_id), self.taxonomy)

    def holdings_total(self, principal: Principal) -> Decimal:
        return compute_holdings_total(self.store.list_holdings(principal.user_id))

    # Mutations

    def add_manual_holding(
        self,
        principal: Principal,
        symbol: str | None,
        quantity: Decimal | float | str | None,
        price_usd: Decimal | float | str | None,
        asset_class: AssetClass | str | None,
        account_name: str | None = None,
        effective_date: date | None = None,
    ) -> Holding:
        """
        Add a manually entered position.

        A live price is preferred when the price source knows the symbol;
        the typed price is kept as the purchase price either way.

        Parameters
        ----------
        principal : Principal
            Owner of the holding
        symbol : str | None
            Ticker or token symbol
        quantity : Decimal | float | str | None
            Units held, must be positive
        price_usd : Decimal | float | str | None
            Typed unit price, must not be negative
        asset_class : AssetClass | str | None
            One of the stored asset classes
        account_name : str | None
            Name for the manual account, 'Manual Account' if None
        effective_date : date | None
            First date the holding counts in snapshots, today if None

        Returns
        -------
        Holding
            The stored holding

        Raises
        ------
        ValidationError
            If a required field is missing or malformed

        """
        _require(symbol=symbol, quantity=quantity, price_usd=price_usd, asset_class=asset_class)
        qty = _to_decimal("quantity", quantity)
        typed_price = _to_decimal("price_usd", price_usd)
        if not qty.is_finite() or qty <= 0:
            msg = "quantity must be positive"
            raise ValidationError(msg)
        if not typed_price.is_finite() or typed_price < 0:
            msg = "price_usd must not be negative"
            raise ValidationError(msg)
        try:
            klass = AssetClass(str(asset_class).strip().lower())
        except ValueError as e:
            msg = f"unknown asset class: {asset_class}"
            raise ValidationError(msg) from e

        symbol = symbol.strip().upper()
        price = self._live_price(symbol, klass) or typed_price
        now = self._clock()

        connection = self.store.add_connection(
            Connection(
                user_id=principal.user_id,
                provider=Provider.MANUAL,
                identifier=account_name or "manual",
                nickname=account_name,
            )
        )
        account = self.store.add_account(
            Account(
                connection_id=connection.id,
                name=account_name or "Manual Account",
                type=AccountType.REAL_ESTATE if klass == AssetClass.REAL_ESTATE else AccountType.MANUAL,
            )
        )
        [holding] = self.store.add_holdings(
            [
                Holding(
                    account_id=account.id,
                    symbol=symbol,
                    quantity=qty,
                    price_usd=price,
                    value_usd=qty * price,
                    purchase_price_usd=typed_price,
                    asset_class=klass,
                    as_of=now,
                    effective_date=effective_date or now.date(),
                )
            ]
        )
        logger.info("Added manual holding %s (%s) for %s", holding.id, symbol, principal.user_id)
        self.recorder.record_quietly(principal, SnapshotSource.MANUAL_WRITE)
        return holding

    def _live_price(self, symbol: str, asset_class: AssetClass) -> Decimal | None:
        if self.price_source is None:
            return None
        try:
            return self.price_source.get_price(symbol, asset_class)
        except UpstreamProviderError as e:
            logger.warning("Live price unavailable for %s, using entered price: %s", symbol, e)
            return None

    def delete_holding(self, principal: Principal, holding_id: int | None) -> None:
        """
        Delete a holding owned by the principal.

        Raises
        ------
        ValidationError
            If no holding id is given
        NotFoundError
            If the holding does not exist or belongs to another user

        """
        _require(holding_id=holding_id)
        if self.store.get_holding_context(principal.user_id, holding_id) is None:
            msg = f"holding {holding_id} not found"
            raise NotFoundError(msg)
        self.store.delete_holding(holding_id)
        logger.info("Deleted holding %s for %s", holding_id, principal.user_id)
        self.recorder.record_quietly(principal, SnapshotSource.MANUAL_WRITE)

    def add_liability(
        self,
        principal: Principal,
        name: str | None,
        type: str | None,
        balance_usd: Decimal | float | str | None = None,
        credit_limit_usd: Decimal | float | str | None = None,
        interest_rate: Decimal | float | str | None = None,
        min_payment_usd: Decimal | float | str | None = None,
        notes: str | None = None,
    ) -> Liability:
        """Add a liability; name and type are required, balance defaults to 0."""
        _require(name=name, type=type)
        liability = self.store.add_liability(
            Liability(
                user_id=principal.user_id,
                name=name,
                type=type,
                balance_usd=_to_decimal("balance_usd", balance_usd) or Decimal("0"),
                credit_limit_usd=_to_decimal("credit_limit_usd", credit_limit_usd),
                interest_rate=_to_decimal("interest_rate", interest_rate),
                min_payment_usd=_to_decimal("min_payment_usd", min_payment_usd),
                notes=notes,
                as_of=self._clock(),
            )
        )
        self.recorder.record_quietly(principal, SnapshotSource.MANUAL_WRITE)
        return liability

    def add_property(
        self,
        principal: Principal,
        name: str | None,
        current_value_usd: Decimal | float | str | None = None,
        property_type: str | None = None,
        city: str | None = None,
        state: str | None = None,
        purchase_price_usd: Decimal | float | str | None = None,
        notes: str | None = None,
    ) -> RealEstateProperty:
        """Add a directly held property; name is required, value defaults to 0."""
        _require(name=name)
        prop = self.store.add_property(
            RealEstateProperty(
                user_id=principal.user_id,
                name=name,
                property_type=property_type,
                city=city,
                state=state,
                current_value_usd=_to_decimal("current_value_usd", current_value_usd) or Decimal("0"),
                purchase_price_usd=_to_decimal("purchase_price_usd", purchase_price_usd),
                notes=notes,
                created_at=self._clock(),
            )
        )
        self.recorder.record_quietly(principal, SnapshotSource.MANUAL_WRITE)
        return prop

    def add_wallet(
        self,
        principal: Principal,
        address: str | None,
        chain: str | None,
        nickname: str | None = None,
    ) -> Connection:
        """
        Register a wallet address and its crypto-wallet account.

        Address and chain are stored lower-cased. Holdings arrive on the
        next wallet refresh.

        Raises
        ------
        ValidationError
            If address or chain is missing

        """
        _require(address=address, chain=chain)
        connection = self.store.add_connection(
            Connection(
                user_id=principal.user_id,
                provider=Provider.WALLET,
                identifier=address.strip().lower(),
                chain=chain.strip().lower(),
                nickname=nickname,
            )
        )
        self.store.add_account(
            Account(
                connection_id=connection.id,
                name=nickname or "Crypto Wallet",
                type=AccountType.CRYPTO_WALLET,
            )
        )
        logger.info("Added wallet connection %s on %s", connection.id, connection.chain)
        return connection

    def refresh_wallets(self, principal: Principal) -> RefreshResult:
        """Rebuild every wallet account from the wallet-data provider."""
        if self.wallet_source is None:
            raise UpstreamProviderError("wallet", "no wallet-data provider configured")
        refresher = WalletRefresher(self.store, self.wallet_source, max_workers=self.max_workers)
        result = refresher.refresh(principal, as_of=self._clock())
        self.recorder.record_quietly(principal, SnapshotSource.WALLET_REFRESH)
        return result

    def refresh_prices(self, principal: Principal) -> int:
        """Re-price holdings from the spot-price provider; returns the count updated."""
        if self.price_source is None:
            raise UpstreamProviderError("pricing", "no price provider configured")
        updated = PriceRefresher(self.store, self.price_source).refresh(principal, as_of=self._clock())
        self.recorder.record_quietly(principal, SnapshotSource.MANUAL_WRITE)
        return updated

    def write_snapshot(self, principal: Principal, source: SnapshotSource = SnapshotSource.MANUAL_WRITE) -> Snapshot:
        """Record a snapshot as the primary operation; store failures propagate."""
        return self.recorder.record(principal, source)

    # Brokerage link

    def _brokerage(self) -> BrokerageSync:
        if self.brokerage_source is None:
            raise UpstreamProviderError("plaid", "no brokerage-link provider configured")
        return BrokerageSync(self.store, self.brokerage_source)

    def create_link_token(self, principal: Principal) -> str:
        """Create a brokerage Link token for the principal."""
        if self.brokerage_source is None:
            raise UpstreamProviderError("plaid", "no brokerage-link provider configured")
        return self.brokerage_source.create_link_token(principal.user_id)

    def exchange_public_token(self, principal: Principal, public_token: str | None) -> Connection:
        """Exchange a Link public token and store the brokerage connection."""
        _require(public_token=public_token)
        return self._brokerage().link(principal, public_token)

    def sync_brokerage(self, principal: Principal, connection_id: int | None) -> list[Holding]:
        """Append holdings read from a brokerage connection."""
        _require(connection_id=connection_id)
        holdings = self._brokerage().sync(principal, connection_id, as_of=self._clock())
        self.recorder.record_quietly(principal, SnapshotSource.PLAID_SYNC)
        return holdings
