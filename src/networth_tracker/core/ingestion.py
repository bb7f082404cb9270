"""Position ingestion: provider rows to holdings, with per-account replace semantics."""

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Protocol

from networth_tracker.core.errors import NotFoundError, UpstreamProviderError, ValidationError
from networth_tracker.core.models import (
    Account,
    AccountType,
    AssetClass,
    Connection,
    Holding,
    Principal,
    Provider,
    RefreshResult,
    TokenBalance,
)
from networth_tracker.core.spam import is_junk
from networth_tracker.integrations.plaid import PlaidHoldingsResponse, TokenExchange
from networth_tracker.store.base import PortfolioStore

logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 18

# Plaid security type -> stored asset class
PLAID_ASSET_CLASSES = {
    "cash": AssetClass.CASH,
    "fixed income": AssetClass.FIXED_INCOME,
    "cryptocurrency": AssetClass.CRYPTO,
}


class WalletBalanceSource(Protocol):
    """Wallet-data provider: (address, chain) -> token balances."""

    def get_token_balances(self, address: str, chain: str) -> list[TokenBalance]: ...


class BrokerageSource(Protocol):
    """Brokerage-link provider: link tokens, token exchange and holdings read."""

    def create_link_token(self, user_id: str) -> str: ...

    def exchange_public_token(self, public_token: str) -> TokenExchange: ...

    def get_investment_holdings(self, access_token: str) -> PlaidHoldingsResponse: ...


def normalize_wallet_balances(
    account_id: int,
    balances: Iterable[TokenBalance],
    as_of: datetime,
) -> list[Holding]:
    """
    Convert raw wallet balances into holdings, dropping spam and dust.

    Quantity is ``raw_balance / 10**decimals``. The provider's USD value is
    preferred; otherwise value is price times quantity.

    Parameters
    ----------
    account_id : int
        Wallet account the holdings belong to
    balances : Iterable[TokenBalance]
        Balances as read from the provider
    as_of : datetime
        Timestamp shared by every holding of this refresh

    Returns
    -------
    list[Holding]
        Holdings that passed the spam/dust filter

    """
    holdings = []

    for balance in balances:
        decimals = DEFAULT_DECIMALS if balance.decimals is None else balance.decimals
        try:
            quantity = Decimal(balance.raw_balance) / (Decimal(10) ** decimals)
        except InvalidOperation:
            logger.debug("Skipping token %s with unparseable balance %r", balance.symbol, balance.raw_balance)
            continue

        price = balance.usd_price or Decimal("0")
        value = balance.usd_value if balance.usd_value is not None else quantity * price
        symbol = balance.symbol or "UNKNOWN"

        if is_junk(symbol, price, value):
            continue

        holdings.append(
            Holding(
                account_id=account_id,
                symbol=symbol,
                quantity=quantity,
                price_usd=price,
                value_usd=value,
                asset_class=AssetClass.CRYPTO,
                as_of=as_of,
                effective_date=as_of.date(),
            )
        )

    return holdings


class WalletRefresher:
    """
    Rebuilds wallet-backed accounts from the wallet-data provider.

    Each wallet is refreshed independently: its holdings are fetched,
    normalized and then swapped in with one atomic ``replace_holdings``
    call. A wallet whose fetch fails keeps its previous holdings and the
    batch continues.

    Parameters
    ----------
    store : PortfolioStore
        Persistence backend
    source : WalletBalanceSource
        Wallet-data provider client
    max_workers : int
        Upper bound on parallel provider calls

    """

    def __init__(self, store: PortfolioStore, source: WalletBalanceSource, max_workers: int = 4) -> None:
        self.store = store
        self.source = source
        self.max_workers = max_workers

    def refresh(self, principal: Principal, as_of: datetime | None = None) -> RefreshResult:
        """
        Refresh every wallet connection of a user.

        Parameters
        ----------
        principal : Principal
            Owner of the wallets
        as_of : datetime | None
            Timestamp for all written holdings. Uses current UTC time if None.

        Returns
        -------
        RefreshResult
            Aggregate synced/failed/skipped counts

        """
        as_of = as_of or datetime.now(UTC)
        result = RefreshResult()

        targets: list[tuple[Connection, Account]] = []
        for connection in self.store.list_connections(principal.user_id, Provider.WALLET):
            accounts = self.store.list_accounts(connection.id)
            if not accounts:
                logger.warning("Wallet connection %s has no account, skipping", connection.id)
                result.skipped += 1
                continue
            targets.append((connection, accounts[0]))

        if not targets:
            return result

        with ThreadPoolExecutor(max_workers=min(len(targets), self.max_workers)) as executor:
            future_to_connection = {
                executor.submit(self._refresh_one, connection, account, as_of): connection
                for connection, account in targets
            }

            for future in as_completed(future_to_connection):
                connection = future_to_connection[future]
                try:
                    written = future.result()
                except Exception as e:
                    # Continue with other wallets even if one fails
                    logger.warning("Wallet refresh failed for connection %s: %s", connection.id, e)
                    result.failed += 1
                    result.failed_connection_ids.append(connection.id)
                    continue
                result.synced += 1
                result.holdings_written += written

        result.failed_connection_ids.sort()
        logger.info(
            "Wallet refresh for %s: %d synced, %d failed, %d skipped",
            principal.user_id,
            result.synced,
            result.failed,
            result.skipped,
        )
        return result

    def _refresh_one(self, connection: Connection, account: Account, as_of: datetime) -> int:
        """
        Fetch, normalize and replace holdings for one wallet.

        The store is only touched after the provider read succeeded.

        Returns
        -------
        int
            Number of holdings written

        """
        chain = (connection.chain or "eth").lower()
        balances = self.source.get_token_balances(connection.identifier, chain)
        holdings = normalize_wallet_balances(account.id, balances, as_of)
        self.store.replace_holdings(account.id, holdings)
        logger.debug("Wallet %s on %s: %d holdings", connection.identifier, chain, len(holdings))
        return len(holdings)


def normalize_plaid_holdings(
    response: PlaidHoldingsResponse,
    account_map: dict[str, int],
    as_of: datetime,
) -> list[Holding]:
    """
    Convert a brokerage holdings response into holdings.

    Parameters
    ----------
    response : PlaidHoldingsResponse
        Accounts, holdings and securities keyed by provider ids
    account_map : dict[str, int]
        Provider account id -> stored account id
    as_of : datetime
        Timestamp for all holdings

    Returns
    -------
    list[Holding]
        One holding per provider holding whose security and account are known

    """
    securities = {sec.security_id: sec for sec in response.securities}
    holdings = []

    for item in response.holdings:
        security = securities.get(item.security_id)
        account_id = account_map.get(item.account_id)
        if security is None or account_id is None:
            logger.debug("Skipping brokerage holding with unknown security %s", item.security_id)
            continue

        price = security.close_price
        if price is None:
            price = item.institution_price if item.institution_price is not None else Decimal("0")
        asset_class = PLAID_ASSET_CLASSES.get((security.type or "").lower(), AssetClass.EQUITY)

        holdings.append(
            Holding(
                account_id=account_id,
                symbol=security.ticker_symbol or security.name or "UNKNOWN",
                quantity=item.quantity,
                price_usd=price,
                value_usd=item.quantity * price,
                purchase_price_usd=(item.cost_basis / item.quantity) if item.cost_basis and item.quantity else None,
                asset_class=asset_class,
                as_of=as_of,
                effective_date=as_of.date(),
            )
        )

    return holdings


class BrokerageSync:
    """
    Links brokerage accounts and appends their holdings.

    Unlike wallets, brokerage accounts use append semantics: each sync
    inserts the holdings read from the provider.

    Parameters
    ----------
    store : PortfolioStore
        Persistence backend
    source : BrokerageSource
        Brokerage-link provider client

    """

    def __init__(self, store: PortfolioStore, source: BrokerageSource) -> None:
        self.store = store
        self.source = source

    def link(self, principal: Principal, public_token: str) -> Connection:
        """
        Exchange a public token and save the resulting connection.

        Raises
        ------
        ValidationError
            If the public token is empty
        UpstreamProviderError
            If the exchange fails

        """
        if not public_token:
            msg = "public_token is required"
            raise ValidationError(msg)
        exchange = self.source.exchange_public_token(public_token)
        return self.store.add_connection(
            Connection(
                user_id=principal.user_id,
                provider=Provider.PLAID,
                identifier=exchange.item_id,
                access_token=exchange.access_token,
            )
        )

    def sync(self, principal: Principal, connection_id: int | None, as_of: datetime | None = None) -> list[Holding]:
        """
        Read holdings for a brokerage connection and append them.

        Parameters
        ----------
        principal : Principal
            Owner of the connection
        connection_id : int | None
            Brokerage connection to sync
        as_of : datetime | None
            Timestamp for written holdings. Uses current UTC time if None.

        Returns
        -------
        list[Holding]
            Holdings written

        Raises
        ------
        ValidationError
            If no connection id is given
        NotFoundError
            If the connection is absent, not owned, or not a brokerage link
        UpstreamProviderError
            If the provider read fails

        """
        if connection_id is None:
            msg = "connection_id is required"
            raise ValidationError(msg)

        connection = self.store.get_connection(principal.user_id, connection_id)
        if connection is None or connection.provider != Provider.PLAID:
            msg = f"brokerage connection {connection_id} not found"
            raise NotFoundError(msg)
        if not connection.access_token:
            raise UpstreamProviderError("plaid", f"connection {connection_id} has no access token")

        as_of = as_of or datetime.now(UTC)
        response = self.source.get_investment_holdings(connection.access_token)

        existing = {a.external_id: a.id for a in self.store.list_accounts(connection.id) if a.external_id}
        account_map: dict[str, int] = {}
        for acct in response.accounts:
            if acct.account_id in existing:
                account_map[acct.account_id] = existing[acct.account_id]
                continue
            stored = self.store.add_account(
                Account(
                    connection_id=connection.id,
                    name=acct.name,
                    type=AccountType.INVESTMENT,
                    currency=acct.iso_currency_code or "USD",
                    external_id=acct.account_id,
                )
            )
            account_map[acct.account_id] = stored.id

        holdings = normalize_plaid_holdings(response, account_map, as_of)
        written = self.store.add_holdings(holdings)
        logger.info("Brokerage sync for connection %s: %d holdings", connection.id, len(written))
        return written
