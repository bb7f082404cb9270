"""Tests for wallet and brokerage ingestion."""

from decimal import Decimal

import pytest

from conftest import NOW, FakeWalletSource, make_holding, wei
from networth_tracker.core.errors import NotFoundError, UpstreamProviderError, ValidationError
from networth_tracker.core.ingestion import (
    BrokerageSync,
    WalletRefresher,
    normalize_plaid_holdings,
    normalize_wallet_balances,
)
from networth_tracker.core.models import (
    Account,
    AccountType,
    AssetClass,
    Connection,
    Provider,
    TokenBalance,
)
from networth_tracker.integrations.plaid import (
    PlaidAccount,
    PlaidHolding,
    PlaidHoldingsResponse,
    PlaidSecurity,
    TokenExchange,
)


class TestNormalizeWalletBalances:
    def test_quantity_from_raw_balance(self):
        balances = [TokenBalance(symbol="USDC", raw_balance=wei("2500", 6), decimals=6, usd_price=Decimal("1"))]

        [holding] = normalize_wallet_balances(5, balances, NOW)

        assert holding.account_id == 5
        assert holding.quantity == Decimal("2500")
        assert holding.price_usd == Decimal("1")
        assert holding.value_usd == Decimal("2500")
        assert holding.asset_class == AssetClass.CRYPTO
        assert holding.as_of == NOW
        assert holding.effective_date == NOW.date()

    def test_default_decimals(self):
        balances = [TokenBalance(symbol="ETH", raw_balance=wei("1.5"), usd_price=Decimal("3000"))]

        [holding] = normalize_wallet_balances(1, balances, NOW)

        assert holding.quantity == Decimal("1.5")
        assert holding.value_usd == holding.quantity * holding.price_usd

    def test_provider_value_preferred(self):
        balances = [
            TokenBalance(symbol="ETH", raw_balance=wei("1"), decimals=18, usd_price=Decimal("3000"), usd_value=Decimal("3001.25"))
        ]

        [holding] = normalize_wallet_balances(1, balances, NOW)

        assert holding.value_usd == Decimal("3001.25")

    def test_missing_symbol(self):
        balances = [TokenBalance(raw_balance=wei("10"), usd_price=Decimal("2"))]

        [holding] = normalize_wallet_balances(1, balances, NOW)

        assert holding.symbol == "UNKNOWN"

    def test_junk_rows_dropped(self):
        balances = [
            TokenBalance(symbol="ETH", raw_balance=wei("1"), usd_price=Decimal("3000")),
            TokenBalance(symbol="CLAIM REWARDS AT SCAM.COM", raw_balance=wei("1000"), usd_price=Decimal("5")),
            TokenBalance(symbol="NOPRICE", raw_balance=wei("1000")),
            TokenBalance(symbol="DUST", raw_balance=wei("0.001"), usd_price=Decimal("1")),
            TokenBalance(symbol="BAD", raw_balance="not-a-number", usd_price=Decimal("1")),
        ]

        holdings = normalize_wallet_balances(1, balances, NOW)

        assert [h.symbol for h in holdings] == ["ETH"]


def _add_wallet(store, address, user_id="alice"):
    connection = store.add_connection(
        Connection(user_id=user_id, provider=Provider.WALLET, identifier=address, chain="eth")
    )
    account = store.add_account(Account(connection_id=connection.id, name="Wallet", type=AccountType.CRYPTO_WALLET))
    return connection, account


class TestWalletRefresher:
    def test_full_replace(self, store, principal):
        _, account = _add_wallet(store, "0x1")
        store.add_holdings(
            [
                make_holding("X", "100", AssetClass.CRYPTO, account_id=account.id),
                make_holding("Y", "200", AssetClass.CRYPTO, account_id=account.id),
            ]
        )
        source = FakeWalletSource({"0x1": [TokenBalance(symbol="Z", raw_balance=wei("3"), usd_price=Decimal("100"))]})

        result = WalletRefresher(store, source).refresh(principal, as_of=NOW)

        assert result.synced == 1
        assert result.failed == 0
        assert result.holdings_written == 1
        assert [h.symbol for h in store.list_holdings_for_account(account.id)] == ["Z"]

    def test_partial_failure(self, store, principal):
        bad_connection, bad_account = _add_wallet(store, "0xbad")
        _, good_account = _add_wallet(store, "0xgood")
        store.add_holdings([make_holding("OLD", "500", AssetClass.CRYPTO, account_id=bad_account.id)])
        source = FakeWalletSource(
            {"0xgood": [TokenBalance(symbol="ETH", raw_balance=wei("2"), usd_price=Decimal("3000"))]},
            failing={"0xbad"},
        )

        result = WalletRefresher(store, source).refresh(principal, as_of=NOW)

        assert result.synced == 1
        assert result.failed == 1
        assert result.failed_connection_ids == [bad_connection.id]
        assert [h.symbol for h in store.list_holdings_for_account(bad_account.id)] == ["OLD"]
        assert [h.symbol for h in store.list_holdings_for_account(good_account.id)] == ["ETH"]

    def test_connection_without_account_skipped(self, store, principal):
        store.add_connection(Connection(user_id="alice", provider=Provider.WALLET, identifier="0xorphan", chain="eth"))
        _add_wallet(store, "0x1")
        source = FakeWalletSource()

        result = WalletRefresher(store, source).refresh(principal, as_of=NOW)

        assert result.skipped == 1
        assert result.synced == 1
        assert source.calls == [("0x1", "eth")]

    def test_only_principal_wallets(self, store, principal):
        _add_wallet(store, "0xalice")
        _add_wallet(store, "0xbob", user_id="bob")
        source = FakeWalletSource()

        WalletRefresher(store, source).refresh(principal)

        assert source.calls == [("0xalice", "eth")]

    def test_no_wallets(self, store, principal):
        result = WalletRefresher(store, FakeWalletSource()).refresh(principal)

        assert result.synced == result.failed == result.skipped == 0

    def test_many_wallets_in_parallel(self, store, principal):
        addresses = [f"0x{i:02x}" for i in range(10)]
        for address in addresses:
            _add_wallet(store, address)
        source = FakeWalletSource(
            {a: [TokenBalance(symbol="ETH", raw_balance=wei("1"), usd_price=Decimal("3000"))] for a in addresses}
        )

        result = WalletRefresher(store, source, max_workers=4).refresh(principal, as_of=NOW)

        assert result.synced == 10
        assert len(store.list_holdings("alice")) == 10


def _holdings_response(security_type="etf", close_price="52.3"):
    return PlaidHoldingsResponse(
        accounts=[PlaidAccount(account_id="acc-1", name="Brokerage")],
        holdings=[
            PlaidHolding(account_id="acc-1", security_id="sec-1", quantity=Decimal("10"), cost_basis=Decimal("400")),
            PlaidHolding(account_id="acc-1", security_id="sec-missing", quantity=Decimal("1")),
        ],
        securities=[
            PlaidSecurity(
                security_id="sec-1",
                ticker_symbol="IBIT",
                type=security_type,
                close_price=Decimal(close_price) if close_price else None,
            )
        ],
    )


class TestNormalizePlaidHoldings:
    def test_maps_security(self):
        [holding] = normalize_plaid_holdings(_holdings_response(), {"acc-1": 7}, NOW)

        assert holding.account_id == 7
        assert holding.symbol == "IBIT"
        assert holding.price_usd == Decimal("52.3")
        assert holding.value_usd == Decimal("523.0")
        assert holding.purchase_price_usd == Decimal("40")
        assert holding.asset_class == AssetClass.EQUITY

    @pytest.mark.parametrize(
        ("security_type", "asset_class"),
        [
            ("cash", AssetClass.CASH),
            ("fixed income", AssetClass.FIXED_INCOME),
            ("cryptocurrency", AssetClass.CRYPTO),
            ("mutual fund", AssetClass.EQUITY),
            (None, AssetClass.EQUITY),
        ],
    )
    def test_asset_class_mapping(self, security_type, asset_class):
        [holding] = normalize_plaid_holdings(_holdings_response(security_type), {"acc-1": 7}, NOW)

        assert holding.asset_class == asset_class

    def test_institution_price_fallback(self):
        response = _holdings_response(close_price=None)
        response.holdings[0].institution_price = Decimal("50")

        [holding] = normalize_plaid_holdings(response, {"acc-1": 7}, NOW)

        assert holding.price_usd == Decimal("50")
        assert holding.value_usd == Decimal("500")


class FakeBrokerage:
    def __init__(self, response=None):
        self.response = response or _holdings_response()
        self.tokens = []

    def create_link_token(self, user_id):
        return f"link-{user_id}"

    def exchange_public_token(self, public_token):
        return TokenExchange(access_token=f"access-{public_token}", item_id="item-1")

    def get_investment_holdings(self, access_token):
        self.tokens.append(access_token)
        return self.response


class TestBrokerageSync:
    def test_link_creates_connection(self, store, principal):
        connection = BrokerageSync(store, FakeBrokerage()).link(principal, "public-1")

        assert connection.provider == Provider.PLAID
        assert connection.identifier == "item-1"
        assert store.get_connection("alice", connection.id).access_token == "access-public-1"

    def test_link_requires_token(self, store, principal):
        with pytest.raises(ValidationError):
            BrokerageSync(store, FakeBrokerage()).link(principal, "")

    def test_sync_appends_holdings(self, store, principal):
        brokerage = FakeBrokerage()
        sync = BrokerageSync(store, brokerage)
        connection = sync.link(principal, "public-1")

        written = sync.sync(principal, connection.id, as_of=NOW)
        sync.sync(principal, connection.id, as_of=NOW)

        assert [h.symbol for h in written] == ["IBIT"]
        assert brokerage.tokens == ["access-public-1", "access-public-1"]
        [account] = store.list_accounts(connection.id)
        assert account.type == AccountType.INVESTMENT
        assert account.external_id == "acc-1"
        assert len(store.list_holdings_for_account(account.id)) == 2

    def test_sync_requires_connection_id(self, store, principal):
        with pytest.raises(ValidationError):
            BrokerageSync(store, FakeBrokerage()).sync(principal, None)

    def test_sync_unknown_connection(self, store, principal):
        with pytest.raises(NotFoundError):
            BrokerageSync(store, FakeBrokerage()).sync(principal, 999)

    def test_sync_wallet_connection_rejected(self, store, principal):
        connection, _ = _add_wallet(store, "0x1")

        with pytest.raises(NotFoundError):
            BrokerageSync(store, FakeBrokerage()).sync(principal, connection.id)

    def test_sync_without_access_token(self, store, principal):
        connection = store.add_connection(Connection(user_id="alice", provider=Provider.PLAID, identifier="item-x"))

        with pytest.raises(UpstreamProviderError):
            BrokerageSync(store, FakeBrokerage()).sync(principal, connection.id)
