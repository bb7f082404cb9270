"""SQLite implementation of the portfolio store."""

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any

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

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS connections (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    provider TEXT NOT NULL,
    identifier TEXT NOT NULL,
    chain TEXT,
    nickname TEXT,
    access_token TEXT
);
CREATE INDEX IF NOT EXISTS idx_connections_user ON connections(user_id);

CREATE TABLE IF NOT EXISTS accounts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    connection_id INTEGER NOT NULL,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    currency TEXT NOT NULL DEFAULT 'USD',
    external_id TEXT,
    FOREIGN KEY (connection_id) REFERENCES connections(id)
);

CREATE TABLE IF NOT EXISTS holdings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    account_id INTEGER NOT NULL,
    symbol TEXT NOT NULL,
    quantity TEXT NOT NULL,
    price_usd TEXT,
    value_usd TEXT,
    purchase_price_usd TEXT,
    asset_class TEXT NOT NULL,
    as_of TEXT NOT NULL,
    effective_date TEXT NOT NULL,
    FOREIGN KEY (account_id) REFERENCES accounts(id)
);
CREATE INDEX IF NOT EXISTS idx_holdings_account ON holdings(account_id);

CREATE TABLE IF NOT EXISTS liabilities (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    balance_usd TEXT NOT NULL,
    credit_limit_usd TEXT,
    interest_rate TEXT,
    min_payment_usd TEXT,
    notes TEXT,
    as_of TEXT
);

CREATE TABLE IF NOT EXISTS real_estate_properties (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    property_type TEXT,
    city TEXT,
    state TEXT,
    current_value_usd TEXT NOT NULL,
    purchase_price_usd TEXT,
    notes TEXT,
    created_at TEXT
);

CREATE TABLE IF NOT EXISTS snapshots (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    taken_at TEXT NOT NULL,
    total_net_worth_usd TEXT NOT NULL,
    total_crypto_usd TEXT NOT NULL,
    total_tradfi_usd TEXT NOT NULL,
    total_liabilities_usd TEXT NOT NULL,
    total_real_estate_usd TEXT NOT NULL,
    breakdown TEXT NOT NULL,
    source TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_snapshots_user_taken ON snapshots(user_id, taken_at);
"""

HOLDING_COLUMNS = (
    "account_id",
    "symbol",
    "quantity",
    "price_usd",
    "value_usd",
    "purchase_price_usd",
    "asset_class",
    "as_of",
    "effective_date",
)

_HOLDING_JOIN = """
SELECT h.*,
       a.id AS a_id, a.connection_id AS a_connection_id, a.name AS a_name,
       a.type AS a_type, a.currency AS a_currency, a.external_id AS a_external_id,
       c.id AS c_id, c.user_id AS c_user_id, c.provider AS c_provider,
       c.identifier AS c_identifier, c.chain AS c_chain, c.nickname AS c_nickname,
       c.access_token AS c_access_token
FROM holdings h
JOIN accounts a ON h.account_id = a.id
JOIN connections c ON a.connection_id = c.id
"""


def _to_db(value: Any) -> Any:
    """Convert a model value to its SQLite representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class SQLiteStore:
    """
    SQLite-backed implementation of :class:`PortfolioStore`.

    Parameters
    ----------
    path : str | Path
        Database file, or ':memory:'

    """

    def __init__(self, path: str | Path = ":memory:") -> None:
        self._path = str(path)
        self._lock = threading.RLock()
        self._connection: sqlite3.Connection | None = None

    def connect(self) -> sqlite3.Connection:
        """Get or create the database connection."""
        if self._connection is None:
            self._connection = sqlite3.connect(self._path, check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
            self._connection.execute("PRAGMA foreign_keys = ON")
        return self._connection

    def initialize(self) -> "SQLiteStore":
        """Create all tables if they do not exist."""
        with self._transaction() as conn:
            conn.executescript(SCHEMA)
        return self

    def close(self) -> None:
        """Close the database connection."""
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block in one transaction, translating sqlite errors."""
        with self._lock:
            conn = self.connect()
            try:
                with conn:
                    yield conn
            except sqlite3.Error as e:
                logger.error("SQLite operation failed on %s: %s", self._path, e)
                msg = f"store operation failed: {e}"
                raise PersistenceError(msg) from e

    def _insert(self, conn: sqlite3.Connection, table: str, data: dict[str, Any]) -> int:
        columns = ", ".join(data)
        placeholders = ", ".join("?" for _ in data)
        cursor = conn.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",  # noqa: S608
            tuple(_to_db(v) for v in data.values()),
        )
        return cursor.lastrowid

    # Connections and accounts

    def add_connection(self, connection: Connection) -> Connection:
        with self._transaction() as conn:
            new_id = self._insert(conn, "connections", connection.model_dump(exclude={"id"}))
        return connection.model_copy(update={"id": new_id})

    def get_connection(self, user_id: str, connection_id: int) -> Connection | None:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM connections WHERE id = ? AND user_id = ?",
                (connection_id, user_id),
            ).fetchone()
        return Connection.model_validate(dict(row)) if row else None

    def list_connections(self, user_id: str, provider: Provider | None = None) -> list[Connection]:
        query = "SELECT * FROM connections WHERE user_id = ?"
        params: list[Any] = [user_id]
        if provider is not None:
            query += " AND provider = ?"
            params.append(str(provider))
        with self._transaction() as conn:
            rows = conn.execute(query + " ORDER BY id", params).fetchall()
        return [Connection.model_validate(dict(row)) for row in rows]

    def add_account(self, account: Account) -> Account:
        with self._transaction() as conn:
            new_id = self._insert(conn, "accounts", account.model_dump(exclude={"id"}))
        return account.model_copy(update={"id": new_id})

    def list_accounts(self, connection_id: int) -> list[Account]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM accounts WHERE connection_id = ? ORDER BY id",
                (connection_id,),
            ).fetchall()
        return [Account.model_validate(dict(row)) for row in rows]

    # Holdings

    def _insert_holdings(self, conn: sqlite3.Connection, holdings: Sequence[Holding]) -> list[Holding]:
        stored = []
        for holding in holdings:
            new_id = self._insert(conn, "holdings", holding.model_dump(include=set(HOLDING_COLUMNS)))
            stored.append(holding.model_copy(update={"id": new_id}))
        return stored

    def add_holdings(self, holdings: Sequence[Holding]) -> list[Holding]:
        with self._transaction() as conn:
            return self._insert_holdings(conn, holdings)

    def replace_holdings(self, account_id: int, holdings: Sequence[Holding]) -> list[Holding]:
        if any(h.account_id != account_id for h in holdings):
            msg = f"replacement holdings must all belong to account {account_id}"
            raise PersistenceError(msg)
        with self._transaction() as conn:
            conn.execute("DELETE FROM holdings WHERE account_id = ?", (account_id,))
            return self._insert_holdings(conn, holdings)

    def delete_holding(self, holding_id: int) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM holdings WHERE id = ?", (holding_id,))

    def update_holding_price(self, holding_id: int, price_usd: Decimal, value_usd: Decimal, as_of: datetime) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE holdings SET price_usd = ?, value_usd = ?, as_of = ? WHERE id = ?",
                (_to_db(price_usd), _to_db(value_usd), _to_db(as_of), holding_id),
            )
        return cursor.rowcount > 0

    def list_holdings(self, user_id: str, effective_on: date | None = None) -> list[Holding]:
        query = _HOLDING_JOIN + " WHERE c.user_id = ?"
        params: list[Any] = [user_id]
        if effective_on is not None:
            query += " AND h.effective_date <= ?"
            params.append(effective_on.isoformat())
        with self._transaction() as conn:
            rows = conn.execute(query + " ORDER BY h.id", params).fetchall()
        return [self._row_to_holding(row) for row in rows]

    def list_holdings_for_account(self, account_id: int) -> list[Holding]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM holdings WHERE account_id = ? ORDER BY id",
                (account_id,),
            ).fetchall()
        return [self._row_to_holding(row) for row in rows]

    def list_holding_contexts(self, user_id: str) -> list[HoldingContext]:
        with self._transaction() as conn:
            rows = conn.execute(_HOLDING_JOIN + " WHERE c.user_id = ? ORDER BY h.id", (user_id,)).fetchall()
        return [self._row_to_context(row) for row in rows]

    def get_holding_context(self, user_id: str, holding_id: int) -> HoldingContext | None:
        with self._transaction() as conn:
            row = conn.execute(
                _HOLDING_JOIN + " WHERE c.user_id = ? AND h.id = ?",
                (user_id, holding_id),
            ).fetchone()
        return self._row_to_context(row) if row else None

    # Liabilities, properties and snapshots

    def add_liability(self, liability: Liability) -> Liability:
        with self._transaction() as conn:
            new_id = self._insert(conn, "liabilities", liability.model_dump(exclude={"id"}))
        return liability.model_copy(update={"id": new_id})

    def list_liabilities(self, user_id: str) -> list[Liability]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM liabilities WHERE user_id = ? ORDER BY as_of DESC, id DESC",
                (user_id,),
            ).fetchall()
        return [Liability.model_validate(dict(row)) for row in rows]

    def add_property(self, prop: RealEstateProperty) -> RealEstateProperty:
        with self._transaction() as conn:
            new_id = self._insert(conn, "real_estate_properties", prop.model_dump(exclude={"id"}))
        return prop.model_copy(update={"id": new_id})

    def list_properties(self, user_id: str) -> list[RealEstateProperty]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM real_estate_properties WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (user_id,),
            ).fetchall()
        return [RealEstateProperty.model_validate(dict(row)) for row in rows]

    def append_snapshot(self, snapshot: Snapshot) -> Snapshot:
        data = snapshot.model_dump(exclude={"id"})
        data["breakdown"] = json.dumps({k: str(v) for k, v in snapshot.breakdown.items()}, sort_keys=True)
        with self._transaction() as conn:
            new_id = self._insert(conn, "snapshots", data)
        return snapshot.model_copy(update={"id": new_id})

    def list_snapshots(self, user_id: str) -> list[Snapshot]:
        with self._transaction() as conn:
            rows = conn.execute(
                "SELECT * FROM snapshots WHERE user_id = ? ORDER BY taken_at ASC, id ASC",
                (user_id,),
            ).fetchall()
        snapshots = []
        for row in rows:
            data = dict(row)
            data["breakdown"] = json.loads(data["breakdown"])
            snapshots.append(Snapshot.model_validate(data))
        return snapshots

    # Row conversion

    def _row_to_holding(self, row: sqlite3.Row) -> Holding:
        return Holding.model_validate({key: row[key] for key in ("id", *HOLDING_COLUMNS)})

    def _row_to_context(self, row: sqlite3.Row) -> HoldingContext:
        account = {key[2:]: row[key] for key in row.keys() if key.startswith("a_")}
        connection = {key[2:]: row[key] for key in row.keys() if key.startswith("c_")}
        return HoldingContext(
            holding=self._row_to_holding(row),
            account=Account.model_validate(account),
            connection=Connection.model_validate(connection),
        )
