"""Clients for wallet-data and brokerage-link providers."""

from networth_tracker.integrations.moralis import MoralisClient
from networth_tracker.integrations.plaid import (
    PlaidAccount,
    PlaidClient,
    PlaidHolding,
    PlaidHoldingsResponse,
    PlaidSecurity,
    TokenExchange,
)

__all__ = [
    "MoralisClient",
    "PlaidAccount",
    "PlaidClient",
    "PlaidHolding",
    "PlaidHoldingsResponse",
    "PlaidSecurity",
    "TokenExchange",
]
