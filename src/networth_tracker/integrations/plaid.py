"""Plaid client for brokerage-link token exchange and investment holdings."""

import json
import logging
from collections.abc import Callable
from decimal import Decimal
from typing import Any

import plaid
from plaid.api import plaid_api
from plaid.exceptions import ApiException, OpenApiException
from plaid.model.country_code import CountryCode
from plaid.model.investments_holdings_get_request import InvestmentsHoldingsGetRequest
from plaid.model.item_public_token_exchange_request import ItemPublicTokenExchangeRequest
from plaid.model.link_token_create_request import LinkTokenCreateRequest
from plaid.model.link_token_create_request_user import LinkTokenCreateRequestUser
from plaid.model.products import Products
from pydantic import BaseModel, Field
from urllib3.exceptions import HTTPError

from networth_tracker.core.errors import UpstreamProviderError

logger = logging.getLogger(__name__)


class PlaidAccount(BaseModel):
    """Brokerage account as returned by /investments/holdings/get."""

    account_id: str
    name: str = "Investment Account"
    iso_currency_code: str | None = None


class PlaidSecurity(BaseModel):
    """Security referenced by holdings via ``security_id``."""

    security_id: str
    ticker_symbol: str | None = None
    name: str | None = None
    type: str | None = None
    close_price: Decimal | None = None


class PlaidHolding(BaseModel):
    """One security position inside a brokerage account."""

    account_id: str
    security_id: str
    quantity: Decimal
    institution_price: Decimal | None = None
    cost_basis: Decimal | None = None


class PlaidHoldingsResponse(BaseModel):
    """Parsed /investments/holdings/get response keyed by provider ids."""

    accounts: list[PlaidAccount] = Field(default_factory=list)
    holdings: list[PlaidHolding] = Field(default_factory=list)
    securities: list[PlaidSecurity] = Field(default_factory=list)


class TokenExchange(BaseModel):
    """Result of exchanging a Link public token."""

    access_token: str = Field(repr=False)
    item_id: str



class PlaidClient:
    """
    Client for the Plaid API built on the official ``plaid`` SDK.

    Parameters
    ----------
    client_id : str
        Plaid client id
    secret : str
        Plaid secret for the selected environment
    environment : str
        'sandbox' or 'production'
    timeout : float
        Request timeout in seconds
    api : plaid_api.PlaidApi | None
        Preconfigured API object, used by tests

    """

    ENVIRONMENTS = {
        "sandbox": plaid.Environment.Sandbox,
        "production": plaid.Environment.Production,
    }

    def __init__(
        self,
        client_id: str,
        secret: str,
        environment: str = "sandbox",
        timeout: float = 30.0,
        api: plaid_api.PlaidApi | None = None,
    ) -> None:
        if environment not in self.ENVIRONMENTS:
            msg = f"Unknown Plaid environment: {environment}"
            raise ValueError(msg)
        self.timeout = timeout
        self._api_client: plaid.ApiClient | None = None
        if api is None:
            configuration = plaid.Configuration(
                host=self.ENVIRONMENTS[environment],
                api_key={"clientId": client_id, "secret": secret},
            )
            self._api_client = plaid.ApiClient(configuration)
            api = plaid_api.PlaidApi(self._api_client)
        self.api = api

    def _call(self, operation: str, method: Callable[..., Any], request: Any) -> dict[str, Any]:
        """
        Invoke one SDK operation and return the response as a dict.

        Parameters
        ----------
        operation : str
            Operation name for error messages (e.g., 'item_public_token_exchange')
        method : Callable[..., Any]
            Bound ``PlaidApi`` method
        request : Any
            SDK request model

        Returns
        -------
        dict[str, Any]
            Response converted with ``to_dict()``

        Raises
        ------
        UpstreamProviderError
            If Plaid returns an error status or the request cannot be sent

        """
        try:
            response = method(request, _request_timeout=self.timeout)
            return response.to_dict()

        except ApiException as e:
            msg = f"{operation} returned HTTP {e.status} ({_error_code(e.body)})"
            raise UpstreamProviderError("plaid", msg) from e
        except OpenApiException as e:
            msg = f"{operation} rejected: {e}"
            raise UpstreamProviderError("plaid", msg) from e
        except HTTPError as e:
            msg = f"{operation} failed: {e}"
            raise UpstreamProviderError("plaid", msg) from e

    def create_link_token(self, user_id: str, client_name: str = "Net Worth Tracker") -> str:
        """
        Create a Link token for the investments product.

        Parameters
        ----------
        user_id : str
            Stable identifier of the end user
        client_name : str
            Application name shown in Link

        Returns
        -------
        str
            Link token

        """
        request = LinkTokenCreateRequest(
            user=LinkTokenCreateRequestUser(client_user_id=user_id),
            client_name=client_name,
            products=[Products("investments")],
            language="en",
            country_codes=[CountryCode("US")],
        )
        return self._call("link_token_create", self.api.link_token_create, request)["link_token"]

    def exchange_public_token(self, public_token: str) -> TokenExchange:
        """
        Exchange a Link public token for a long-lived access token.

        Parameters
        ----------
        public_token : str
            Token returned by Plaid Link

        Returns
        -------
        TokenExchange
            Access token and item id

        """
        request = ItemPublicTokenExchangeRequest(public_token=public_token)
        data = self._call("item_public_token_exchange", self.api.item_public_token_exchange, request)
        return TokenExchange(access_token=data["access_token"], item_id=data["item_id"])

    def get_investment_holdings(self, access_token: str) -> PlaidHoldingsResponse:
        """
        Read accounts, holdings and securities for an item.

        Parameters
        ----------
        access_token : str
            Item access token

        Returns
        -------
        PlaidHoldingsResponse
            Parsed response

        """
        request = InvestmentsHoldingsGetRequest(access_token=access_token)
        data = self._call("investments_holdings_get", self.api.investments_holdings_get, request)
        accounts = [
            PlaidAccount(
                account_id=acct["account_id"],
                name=acct.get("name") or "Investment Account",
                iso_currency_code=(acct.get("balances") or {}).get("iso_currency_code"),
            )
            for acct in data.get("accounts") or []
        ]
        return PlaidHoldingsResponse(
            accounts=accounts,
            holdings=[PlaidHolding.model_validate(h) for h in data.get("holdings") or []],
            securities=[PlaidSecurity.model_validate(s) for s in data.get("securities") or []],
        )

    def close(self) -> None:
        """Release the SDK connection pool."""
        if self._api_client is not None:
            self._api_client.close()

    def __enter__(self) -> "PlaidClient":
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


def _error_code(body: str | bytes | None) -> str:
    try:
        return json.loads(body or "{}").get("error_code", "unknown")
    except (ValueError, AttributeError):
        return "unknown"
