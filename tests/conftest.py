"""Pytest configuration and shared fixtures for networth-tracker tests."""

from datetime import UTC, date, datetime
from decimal import Decimal

import pytest

from networth_tracker.core.errors import UpstreamProviderError
from networth_tracker.core.models import (
    Account,
    AccountType,
    AssetClass,
    Connection,
    Holding,
    HoldingContext,
    Principal,
    Provider,
    TokenBalance,
)
from networth_tracker.store import MemoryStore

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)


def make_holding(
    symbol: str,
    value: str | None,
    asset_class: AssetClass = AssetClass.EQUITY,
    quantity: str = "1",
    account_id: int = 1,
    effective_date: date | None = None,
) -> Holding:
    """Build a holding whose price equals value / quantity."""
    qty = Decimal(quantity)
    value_usd = Decimal(value) if value is not None else None
    return Holding(
        account_id=account_id,
        symbol=symbol,
        quantity=qty,
        price_usd=(value_usd / qty) if value_usd is not None else None,
        value_usd=value_usd,
        asset_class=asset_class,
        as_of=NOW,
        effective_date=effective_date or NOW.date(),
    )


def make_context(
    holding: Holding,
    provider: Provider = Provider.MANUAL,
    account_type: AccountType = AccountType.MANUAL,
) -> HoldingContext:
    """Wrap a holding with a minimal account and connection."""
    connection = Connection(id=1, user_id="alice", provider=provider, identifier="test")
    account = Account(id=holding.account_id, connection_id=1, name="Test", type=account_type)
    return HoldingContext(holding=holding, account=account, connection=connection)


def wei(amount: str, decimals: int = 18) -> str:
    """Raw integer balance for a human-readable token amount."""
    return str(int(Decimal(amount) * (Decimal(10) ** decimals)))


class FakeWalletSource:
    """
    Wallet-data provider returning canned balances per address.

    Addresses in ``failing`` raise UpstreamProviderError.

    """

    def __init__(self, balances: dict[str, list[TokenBalance]] | None = None, failing: set[str] | None = None):
        self.balances = balances or {}
        self.failing = failing or set()
        self.calls: list[tuple[str, str]] = []

    def get_token_balances(self, address: str, chain: str) -> list[TokenBalance]:
        self.calls.append((address, chain))
        if address in self.failing:
            raise UpstreamProviderError("moralis", f"HTTP error 502 for {address}")
        return list(self.balances.get(address, []))


class FakePriceSource:
    """Spot-price provider backed by a dict of crypto prices."""

    def __init__(self, prices: dict[str, Decimal] | None = None, error: bool = False):
        self.prices = prices or {}
        self.error = error

    def get_price(self, symbol: str, asset_class: AssetClass | str = AssetClass.CRYPTO) -> Decimal | None:
        if self.error:
            raise UpstreamProviderError("coingecko", "request timeout")
        if asset_class != AssetClass.CRYPTO:
            return None
        return self.prices.get(symbol.upper())


@pytest.fixture
def principal() -> Principal:
    return Principal(user_id="alice")


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def clock():
    """Fixed clock returning NOW."""
    return lambda: NOW
