"""Moralis API client for wallet token balances."""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from networth_tracker.core.errors import UpstreamProviderError
from networth_tracker.core.models import TokenBalance

logger = logging.getLogger(__name__)


class MoralisClient:
    """
    Client for the Moralis wallet API.

    Fetches ERC-20 and native token balances, with USD prices where
    Moralis has them, for one address on one chain.

    Parameters
    ----------
    api_key : str
        Moralis API key
    base_url : str
        API base URL
    timeout : float
        Request timeout in seconds
    transport : httpx.BaseTransport | None
        Custom transport, used by tests

    """

    BASE_URL = "https://deep-index.moralis.io/api/v2.2"

    # Our chain names -> Moralis chain identifiers
    CHAIN_MAPPING = {
        "ethereum": "eth",
        "eth": "eth",
        "base": "base",
        "arbitrum": "arbitrum",
        "optimism": "optimism",
        "polygon": "polygon",
        "bsc": "bsc",
        "avalanche": "avalanche",
    }

    def __init__(
        self,
        api_key: str,
        base_url: str = BASE_URL,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = httpx.Client(
            timeout=timeout,
            headers={"x-api-key": api_key, "accept": "application/json"},
            transport=transport,
        )

    def get_token_balances_raw(self, address: str, chain: str) -> dict[str, Any]:
        """
        Fetch the raw token list for a wallet.

        Parameters
        ----------
        address : str
            Wallet address
        chain : str
            Chain name (e.g., 'eth', 'base')

        Returns
        -------
        dict[str, Any]
            Raw Moralis response with a 'result' list

        Raises
        ------
        UpstreamProviderError
            If the API request fails

        """
        moralis_chain = self.CHAIN_MAPPING.get(chain.lower(), chain.lower())
        url = f"{self.base_url}/wallets/{address}/tokens"

        try:
            response = self.client.get(url, params={"chain": moralis_chain})
            response.raise_for_status()
            return response.json()

        except httpx.TimeoutException as e:
            msg = f"request timeout for {address}: {e}"
            raise UpstreamProviderError("moralis", msg) from e
        except httpx.HTTPStatusError as e:
            msg = f"HTTP error {e.response.status_code} for {address}"
            raise UpstreamProviderError("moralis", msg) from e
        except httpx.HTTPError as e:
            msg = f"HTTP request failed for {address}: {e}"
            raise UpstreamProviderError("moralis", msg) from e

    def get_token_balances(self, address: str, chain: str) -> list[TokenBalance]:
        """
        Fetch and convert token balances to TokenBalance models.

        Parameters
        ----------
        address : str
            Wallet address
        chain : str
            Chain name

        Returns
        -------
        list[TokenBalance]
            One entry per token; unparseable entries are skipped

        Raises
        ------
        UpstreamProviderError
            If the API request fails

        """
        raw = self.get_token_balances_raw(address, chain)
        balances = []

        for item in raw.get("result") or []:
            balance = self._parse_token(item)
            if balance is not None:
                balances.append(balance)

        return balances

    def _parse_token(self, item: dict[str, Any]) -> TokenBalance | None:
        """
        Parse one Moralis token entry.

        Parameters
        ----------
        item : dict[str, Any]
            Raw token data

        Returns
        -------
        TokenBalance | None
            Parsed balance, or None if the entry is malformed

        """
        try:
            decimals = item.get("decimals")
            return TokenBalance(
                symbol=item.get("symbol"),
                raw_balance=str(item.get("balance") or "0"),
                decimals=int(decimals) if decimals not in (None, "") else None,
                usd_price=_to_decimal(item.get("usd_price")),
                usd_value=_to_decimal(item.get("usd_value")),
            )
        except (TypeError, ValueError) as e:
            logger.debug("Skipping malformed Moralis token %r: %s", item.get("token_address"), e)
            return None

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self) -> "MoralisClient":
        """Context manager entry."""
        return self

    def __exit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: object | None,
    ) -> None:
        """Context manager exit."""
        self.close()


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None
