"""Storage contract for connections, holdings, liabilities, properties and snapshots."""

from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Protocol

from networth_tracker.core.models import (
    Account,
    Connection,
    Holding,
    HoldingContext,
    Liability,
    Provider,
    RealEstateProperty,
    Snapshot,
)


class PortfolioStore(Protocol):
    """
    Interface every persistence backend must implement.

    Reads are scoped by user id; holdings are owned through
    account -> connection -> user. ``replace_holdings`` is a single atomic
    unit: readers never observe the account between the delete and the
    insert. Failures raise :class:`~networth_tracker.core.errors.PersistenceError`.

    """

    def add_connection(self, connection: Connection) -> Connection:
        """Insert a connection and return it with its id."""
        ...

    def get_connection(self, user_id: str, connection_id: int) -> Connection | None:
        """Get a connection owned by the user, or None."""
        ...

    def list_connections(self, user_id: str, provider: Provider | None = None) -> list[Connection]:
        """List the user's connections, optionally filtered by provider."""
        ...

    def add_account(self, account: Account) -> Account:
        """Insert an account and return it with its id."""
        ...

    def list_accounts(self, connection_id: int) -> list[Account]:
        """List accounts owned by a connection in insertion order."""
        ...

    def add_holdings(self, holdings: Sequence[Holding]) -> list[Holding]:
        """Append holdings and return them with their ids."""
        ...

    def replace_holdings(self, account_id: int, holdings: Sequence[Holding]) -> list[Holding]:
        """Atomically delete all holdings of an account and insert the given set."""
        ...

    def delete_holding(self, holding_id: int) -> None:
        """Delete one holding by id."""
        ...

    def update_holding_price(self, holding_id: int, price_usd: Decimal, value_usd: Decimal, as_of: datetime) -> bool:
        """Overwrite the price, value and as-of time of one holding; False if it no longer exists."""
        ...

    def list_holdings(self, user_id: str, effective_on: date | None = None) -> list[Holding]:
        """List the user's holdings, optionally only those effective on or before a date."""
        ...

    def list_holdings_for_account(self, account_id: int) -> list[Holding]:
        """List holdings of one account."""
        ...

    def list_holding_contexts(self, user_id: str) -> list[HoldingContext]:
        """List the user's holdings joined with account and connection."""
        ...

    def get_holding_context(self, user_id: str, holding_id: int) -> HoldingContext | None:
        """Get one holding owned by the user, joined with its account and connection."""
        ...

    def add_liability(self, liability: Liability) -> Liability:
        """Insert a liability and return it with its id."""
        ...

    def list_liabilities(self, user_id: str) -> list[Liability]:
        """List the user's liabilities, newest first."""
        ...

    def add_property(self, prop: RealEstateProperty) -> RealEstateProperty:
        """Insert a property and return it with its id."""
        ...

    def list_properties(self, user_id: str) -> list[RealEstateProperty]:
        """List the user's properties, newest first."""
        ...

    def append_snapshot(self, snapshot: Snapshot) -> Snapshot:
        """Append an immutable snapshot and return it with its id."""
        ...

    def list_snapshots(self, user_id: str) -> list[Snapshot]:
        """List the user's snapshots ordered by taken_at ascending."""
        ...
