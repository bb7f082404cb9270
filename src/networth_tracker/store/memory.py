"""In-memory store, used for tests and one-shot CLI runs."""

import itertools
import threading
from collections.abc import Sequence
from datetime import date, datetime
from decimal import Decimal

from networth_tracker.core.errors import PersistenceError
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


def _epoch(moment: datetime | None) -> float:
    return moment.timestamp() if moment else 0.0


class MemoryStore:
    """
    Dict-backed implementation of :class:`PortfolioStore`.

    A single re-entrant lock guards every table, so ``replace_holdings`` is
    atomic with respect to concurrent readers.

    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._ids = itertools.count(1)
        self._connections: dict[int, Connection] = {}
        self._accounts: dict[int, Account] = {}
        self._holdings: dict[int, Holding] = {}
        self._liabilities: dict[int, Liability] = {}
        self._properties: dict[int, RealEstateProperty] = {}
        self._snapshots: dict[int, Snapshot] = {}

    def _next_id(self) -> int:
        return next(self._ids)

    # Connections and accounts

    def add_connection(self, connection: Connection) -> Connection:
        with self._lock:
            stored = connection.model_copy(update={"id": self._next_id()})
            self._connections[stored.id] = stored
            return stored

    def get_connection(self, user_id: str, connection_id: int) -> Connection | None:
        with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None or connection.user_id != user_id:
                return None
            return connection

    def list_connections(self, user_id: str, provider: Provider | None = None) -> list[Connection]:
        with self._lock:
            return [
                c
                for c in self._connections.values()
                if c.user_id == user_id and (provider is None or c.provider == provider)
            ]

    def add_account(self, account: Account) -> Account:
        with self._lock:
            if account.connection_id not in self._connections:
                msg = f"connection {account.connection_id} does not exist"
                raise PersistenceError(msg)
            stored = account.model_copy(update={"id": self._next_id()})
            self._accounts[stored.id] = stored
            return stored

    def list_accounts(self, connection_id: int) -> list[Account]:
        with self._lock:
            return [a for a in self._accounts.values() if a.connection_id == connection_id]

    # Holdings

    def _insert_holdings(self, holdings: Sequence[Holding]) -> list[Holding]:
        stored = []
        for holding in holdings:
            if holding.account_id not in self._accounts:
                msg = f"account {holding.account_id} does not exist"
                raise PersistenceError(msg)
            row = holding.model_copy(update={"id": self._next_id()})
            self._holdings[row.id] = row
            stored.append(row)
        return stored

    def add_holdings(self, holdings: Sequence[Holding]) -> list[Holding]:
        with self._lock:
            return self._insert_holdings(holdings)

    def replace_holdings(self, account_id: int, holdings: Sequence[Holding]) -> list[Holding]:
        with self._lock:
            if account_id not in self._accounts:
                msg = f"account {account_id} does not exist"
                raise PersistenceError(msg)
            if any(h.account_id != account_id for h in holdings):
                msg = f"replacement holdings must all belong to account {account_id}"
                raise PersistenceError(msg)
            stale = [key for key, h in self._holdings.items() if h.account_id == account_id]
            for key in stale:
                del self._holdings[key]
            return self._insert_holdings(holdings)

    def delete_holding(self, holding_id: int) -> None:
        with self._lock:
            self._holdings.pop(holding_id, None)

    def update_holding_price(self, holding_id: int, price_usd: Decimal, value_usd: Decimal, as_of: datetime) -> bool:
        with self._lock:
            holding = self._holdings.get(holding_id)
            if holding is None:
                return False
            self._holdings[holding_id] = holding.model_copy(
                update={"price_usd": price_usd, "value_usd": value_usd, "as_of": as_of}
            )
            return True

    def _owner_of(self, holding: Holding) -> str | None:
        account = self._accounts.get(holding.account_id)
        if account is None:
            return None
        connection = self._connections.get(account.connection_id)
        return connection.user_id if connection else None

    def list_holdings(self, user_id: str, effective_on: date | None = None) -> list[Holding]:
        with self._lock:
            return [
                h
                for h in self._holdings.values()
                if self._owner_of(h) == user_id and (effective_on is None or h.effective_date <= effective_on)
            ]

    def list_holdings_for_account(self, account_id: int) -> list[Holding]:
        with self._lock:
            return [h for h in self._holdings.values() if h.account_id == account_id]

    def _context(self, holding: Holding) -> HoldingContext:
        account = self._accounts[holding.account_id]
        return HoldingContext(
            holding=holding,
            account=account,
            connection=self._connections[account.connection_id],
        )

    def list_holding_contexts(self, user_id: str) -> list[HoldingContext]:
        with self._lock:
            return [self._context(h) for h in self._holdings.values() if self._owner_of(h) == user_id]

    def get_holding_context(self, user_id: str, holding_id: int) -> HoldingContext | None:
        with self._lock:
            holding = self._holdings.get(holding_id)
            if holding is None or self._owner_of(holding) != user_id:
                return None
            return self._context(holding)

    # Liabilities, properties and snapshots

    def add_liability(self, liability: Liability) -> Liability:
        with self._lock:
            stored = liability.model_copy(update={"id": self._next_id()})
            self._liabilities[stored.id] = stored
            return stored

    def list_liabilities(self, user_id: str) -> list[Liability]:
        with self._lock:
            rows = [item for item in self._liabilities.values() if item.user_id == user_id]
        return sorted(rows, key=lambda item: (_epoch(item.as_of), item.id), reverse=True)

    def add_property(self, prop: RealEstateProperty) -> RealEstateProperty:
        with self._lock:
            stored = prop.model_copy(update={"id": self._next_id()})
            self._properties[stored.id] = stored
            return stored

    def list_properties(self, user_id: str) -> list[RealEstateProperty]:
        with self._lock:
            rows = [p for p in self._properties.values() if p.user_id == user_id]
        return sorted(rows, key=lambda p: (_epoch(p.created_at), p.id), reverse=True)

    def append_snapshot(self, snapshot: Snapshot) -> Snapshot:
        with self._lock:
            stored = snapshot.model_copy(update={"id": self._next_id()})
            self._snapshots[stored.id] = stored
            return stored

    def list_snapshots(self, user_id: str) -> list[Snapshot]:
        with self._lock:
            rows = [s for s in self._snapshots.values() if s.user_id == user_id]
        return sorted(rows, key=lambda s: (s.taken_at, s.id))
