"""Tests for the price cache, CoinGecko client and price refresher."""

from decimal import Decimal

import httpx
import pytest

from conftest import NOW, FakePriceSource, make_holding
from networth_tracker.core.errors import UpstreamProviderError
from networth_tracker.core.models import Account, AccountType, AssetClass, Connection, Principal, Provider
from networth_tracker.pricing import CoinGeckoPricing, PriceCache, PriceRefresher
from networth_tracker.store import MemoryStore


class ReplacingStore(MemoryStore):
    """Memory store that empties one account right after holdings are listed."""

    def __init__(self):
        super().__init__()
        self.replace_account_id = None

    def list_holdings(self, user_id, effective_on=None):
        holdings = super().list_holdings(user_id, effective_on)
        if self.replace_account_id is not None:
            self.replace_holdings(self.replace_account_id, [])
        return holdings


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestPriceCache:
    def test_set_and_get(self):
        cache = PriceCache(ttl=60, clock=FakeClock())
        cache.set("eth", Decimal("3000"))

        assert cache.get("ETH") == Decimal("3000")
        assert cache.get(" eth ") == Decimal("3000")
        assert cache.get("BTC") is None

    def test_expiry(self):
        clock = FakeClock()
        cache = PriceCache(ttl=60, clock=clock)
        cache.set("ETH", Decimal("3000"))

        clock.now += 59
        assert cache.get("ETH") == Decimal("3000")
        clock.now += 1
        assert cache.get("ETH") is None
        assert len(cache) == 0

    def test_invalidate_and_clear(self):
        cache = PriceCache(clock=FakeClock())
        cache.set("ETH", Decimal("1"))
        cache.set("BTC", Decimal("2"))

        assert cache.invalidate("eth") is True
        assert cache.invalidate("eth") is False
        assert len(cache) == 1
        cache.clear()
        assert len(cache) == 0

    def test_cleanup_expired(self):
        clock = FakeClock()
        cache = PriceCache(ttl=10, clock=clock)
        cache.set("OLD", Decimal("1"))
        clock.now += 5
        cache.set("NEW", Decimal("2"))
        clock.now += 6

        assert cache.cleanup_expired() == 1
        assert cache.get("NEW") == Decimal("2")

    @pytest.mark.parametrize("ttl", [0, -1])
    def test_rejects_non_positive_ttl(self, ttl):
        with pytest.raises(ValueError):
            PriceCache(ttl=ttl)


def _coingecko(handler, cache=None):
    return CoinGeckoPricing(base_url="https://coingecko.test/api/v3", cache=cache, transport=httpx.MockTransport(handler))


class TestCoinGeckoPricing:
    def test_get_price(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ethereum": {"usd": 3012.55}})

        with _coingecko(handler) as pricing:
            price = pricing.get_price("eth")

        assert price == Decimal("3012.55")
        assert requests[0].url.path == "/api/v3/simple/price"
        assert requests[0].url.params["ids"] == "ethereum"
        assert requests[0].url.params["vs_currencies"] == "usd"

    def test_cache_avoids_second_request(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={"bitcoin": {"usd": 60000}})

        pricing = _coingecko(handler, cache=PriceCache(ttl=60, clock=FakeClock()))

        assert pricing.get_price("BTC") == Decimal("60000")
        assert pricing.get_price("btc") == Decimal("60000")
        assert len(calls) == 1

    def test_batch_prices(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["ids"] == "bitcoin,ethereum"
            return httpx.Response(200, json={"bitcoin": {"usd": 60000}, "ethereum": {"usd": 3000}})

        prices = _coingecko(handler).get_prices(["BTC", "eth", "NOTACOIN"])

        assert prices == {"BTC": Decimal("60000"), "ETH": Decimal("3000")}

    def test_unknown_symbol_makes_no_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert _coingecko(handler).get_price("NOTACOIN") is None

    def test_non_crypto_not_priced(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        assert _coingecko(handler).get_price("VTI", AssetClass.EQUITY) is None

    def test_missing_quote(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={})

        assert _coingecko(handler).get_price("SOL") is None

    def test_http_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"status": {"error_code": 429}})

        with pytest.raises(UpstreamProviderError) as exc_info:
            _coingecko(handler).get_price("ETH")

        assert exc_info.value.provider == "coingecko"
        assert "429" in str(exc_info.value)

    def test_timeout(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(UpstreamProviderError, match="timeout"):
            _coingecko(handler).get_price("ETH")


class TestPriceRefresher:
    @pytest.fixture
    def seeded(self, store):
        connection = store.add_connection(Connection(user_id="alice", provider=Provider.MANUAL, identifier="manual"))
        account = store.add_account(Account(connection_id=connection.id, name="Manual", type=AccountType.MANUAL))
        store.add_holdings(
            [
                make_holding("ETH", "2000", AssetClass.CRYPTO, quantity="2", account_id=account.id),
                make_holding("eth", "1000", AssetClass.CRYPTO, quantity="1", account_id=account.id),
                make_holding("VTI", "250", AssetClass.EQUITY, quantity="1", account_id=account.id),
                make_holding("USD", "500", AssetClass.CASH, quantity="500", account_id=account.id),
            ]
        )
        return store

    def test_reprices_crypto(self, seeded, principal):
        later = NOW.replace(hour=13)
        refresher = PriceRefresher(seeded, FakePriceSource({"ETH": Decimal("3000")}))

        updated = refresher.refresh(principal, as_of=later)

        assert updated == 2
        values = {(h.symbol, h.quantity): h for h in seeded.list_holdings("alice")}
        assert values[("ETH", Decimal("2"))].value_usd == Decimal("6000")
        assert values[("eth", Decimal("1"))].price_usd == Decimal("3000")
        assert values[("eth", Decimal("1"))].as_of == later
        assert values[("VTI", Decimal("1"))].value_usd == Decimal("250")
        assert values[("USD", Decimal("500"))].as_of == NOW

    def test_failed_lookup_keeps_price(self, seeded, principal):
        refresher = PriceRefresher(seeded, FakePriceSource(error=True))

        assert refresher.refresh(principal) == 0
        assert sorted(h.value_usd for h in seeded.list_holdings("alice")) == [
            Decimal("250"),
            Decimal("500"),
            Decimal("1000"),
            Decimal("2000"),
        ]

    def test_other_users_untouched(self, seeded):
        refresher = PriceRefresher(seeded, FakePriceSource({"ETH": Decimal("3000")}))

        assert refresher.refresh(Principal(user_id="bob")) == 0

    def test_holding_replaced_mid_refresh_is_skipped(self, principal):
        store = ReplacingStore()
        wallet = store.add_connection(Connection(user_id="alice", provider=Provider.WALLET, identifier="0xabc", chain="eth"))
        wallet_account = store.add_account(Account(connection_id=wallet.id, name="Wallet", type=AccountType.CRYPTO_WALLET))
        manual = store.add_connection(Connection(user_id="alice", provider=Provider.MANUAL, identifier="manual"))
        manual_account = store.add_account(Account(connection_id=manual.id, name="Manual", type=AccountType.MANUAL))
        store.add_holdings([make_holding("ETH", "2000", AssetClass.CRYPTO, quantity="1", account_id=wallet_account.id)])
        store.add_holdings([make_holding("ETH", "2000", AssetClass.CRYPTO, quantity="1", account_id=manual_account.id)])
        store.replace_account_id = wallet_account.id

        updated = PriceRefresher(store, FakePriceSource({"ETH": Decimal("3000")})).refresh(principal)

        assert updated == 1
        store.replace_account_id = None
        [holding] = store.list_holdings("alice")
        assert holding.account_id == manual_account.id
        assert holding.value_usd == Decimal("3000")
