"""CoinGecko pricing service for spot USD prices."""

import logging
from collections.abc import Iterable
from decimal import Decimal

import httpx

from networth_tracker.core.errors import UpstreamProviderError
from networth_tracker.core.models import AssetClass
from networth_tracker.pricing.cache import PriceCache

logger = logging.getLogger(__name__)


class CoinGeckoPricing:
    """
    Fetches spot prices for crypto symbols from the CoinGecko API.

    CoinGecko is keyed by coin id rather than ticker, so only symbols in
    ``COINGECKO_IDS`` can be priced. Prices are cached per symbol for the
    cache's TTL.

    Parameters
    ----------
    base_url : str
        CoinGecko API base URL
    cache : PriceCache | None
        Price cache owned by this client. A 60 second cache is created if None.
    timeout : float
        Request timeout in seconds
    transport : httpx.BaseTransport | None
        Custom transport, used by tests

    """

    BASE_URL = "https://api.coingecko.com/api/v3"

    COINGECKO_IDS = {
        "BTC": "bitcoin",
        "ETH": "ethereum",
        "SOL": "solana",
        "USDC": "usd-coin",
        "USDT": "tether",
        "LINK": "chainlink",
        "UNI": "uniswap",
        "MATIC": "matic-network",
        "AVAX": "avalanche-2",
        "DOGE": "dogecoin",
        "ADA": "cardano",
        "XRP": "ripple",
        "DOT": "polkadot",
    }

    def __init__(
        self,
        base_url: str = BASE_URL,
        cache: PriceCache | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.cache = cache or PriceCache(ttl=60.0)
        self.client = httpx.Client(timeout=timeout, transport=transport)

    def get_price(self, symbol: str, asset_class: AssetClass | str = AssetClass.CRYPTO) -> Decimal | None:
        """
        Fetch the USD price for one symbol.

        Parameters
        ----------
        symbol : str
            Ticker or token symbol
        asset_class : AssetClass | str
            Asset class of the holding; only crypto is priced

        Returns
        -------
        Decimal | None
            USD price, or None if the symbol cannot be priced

        Raises
        ------
        UpstreamProviderError
            If the API request fails

        """
        if asset_class != AssetClass.CRYPTO:
            return None
        return self.get_prices([symbol]).get(symbol.strip().upper())

    def get_prices(self, symbols: Iterable[str]) -> dict[str, Decimal]:
        """
        Fetch USD prices for multiple crypto symbols in one request.

        Parameters
        ----------
        symbols : Iterable[str]
            Ticker symbols, case-insensitive

        Returns
        -------
        dict[str, Decimal]
            Mapping of upper-cased symbol to USD price; symbols without a
            known CoinGecko id or without a quote are left out

        Raises
        ------
        UpstreamProviderError
            If the API request fails

        """
        prices: dict[str, Decimal] = {}
        to_fetch: dict[str, str] = {}

        for symbol in {s.strip().upper() for s in symbols if s}:
            cached = self.cache.get(symbol)
            if cached is not None:
                logger.debug("Price cache hit for %s: %s", symbol, cached)
                prices[symbol] = cached
                continue
            coin_id = self.COINGECKO_IDS.get(symbol)
            if coin_id is None:
                logger.debug("No CoinGecko id for %s, skipping", symbol)
                continue
            to_fetch[coin_id] = symbol

        if not to_fetch:
            return prices

        data = self._fetch_simple_prices(sorted(to_fetch))
        for coin_id, symbol in to_fetch.items():
            usd = data.get(coin_id, {}).get("usd")
            if usd is None:
                continue
            price = Decimal(str(usd))
            self.cache.set(symbol, price)
            prices[symbol] = price
            logger.debug("Fetched %s: %s", symbol, price)

        return prices

    def _fetch_simple_prices(self, coin_ids: list[str]) -> dict:
        """
        Call the /simple/price endpoint.

        Parameters
        ----------
        coin_ids : list[str]
            CoinGecko coin ids

        Returns
        -------
        dict
            Raw response keyed by coin id

        """
        try:
            response = self.client.get(
                f"{self.base_url}/simple/price",
                params={"ids": ",".join(coin_ids), "vs_currencies": "usd"},
            )
            response.raise_for_status()
            return response.json()

        except httpx.TimeoutException as e:
            msg = f"request timeout: {e}"
            raise UpstreamProviderError("coingecko", msg) from e
        except httpx.HTTPStatusError as e:
            msg = f"HTTP error {e.response.status_code}"
            raise UpstreamProviderError("coingecko", msg) from e
        except httpx.HTTPError as e:
            msg = f"HTTP request failed: {e}"
            raise UpstreamProviderError("coingecko", msg) from e

    def close(self) -> None:
        """Close HTTP client."""
        self.client.close()

    def __enter__(self) -> "CoinGeckoPricing":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: type, exc_val: Exception, exc_tb: object) -> None:
        """Context manager exit."""
        self.close()
