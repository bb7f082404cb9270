"""Tests for the snapshot recorder."""

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import NOW, make_holding
from networth_tracker.core.errors import PersistenceError
from networth_tracker.core.models import (
    Account,
    AccountType,
    AssetClass,
    Connection,
    Liability,
    Provider,
    RealEstateProperty,
    SnapshotSource,
)
from networth_tracker.core.snapshots import SnapshotRecorder
from networth_tracker.store import MemoryStore


def _seed(store):
    connection = store.add_connection(Connection(user_id="alice", provider=Provider.MANUAL, identifier="manual"))
    account = store.add_account(Account(connection_id=connection.id, name="Manual", type=AccountType.MANUAL))
    store.add_holdings(
        [
            make_holding("BTC", "1000", AssetClass.CRYPTO, account_id=account.id),
            make_holding("VTI", "2000", account_id=account.id),
            make_holding("FUTURE", "9999", account_id=account.id, effective_date=NOW.date() + timedelta(days=1)),
        ]
    )
    store.add_liability(Liability(user_id="alice", name="Mortgage", type="mortgage", balance_usd=Decimal("100000")))
    store.add_property(RealEstateProperty(user_id="alice", name="Home", current_value_usd=Decimal("500000")))


class FailingStore(MemoryStore):
    def append_snapshot(self, snapshot):
        raise PersistenceError("disk full")


def test_record(store, principal, clock):
    """Test that a snapshot captures current net worth."""
    _seed(store)

    snapshot = SnapshotRecorder(store, clock=clock).record(principal, SnapshotSource.MANUAL_WRITE)

    assert snapshot.id is not None
    assert snapshot.taken_at == NOW
    assert snapshot.total_net_worth_usd == Decimal("403000")
    assert snapshot.total_crypto_usd == Decimal("1000")
    assert snapshot.total_tradfi_usd == Decimal("502000")
    assert snapshot.total_real_estate_usd == Decimal("500000")
    assert snapshot.total_liabilities_usd == Decimal("100000")
    assert snapshot.breakdown["tradfi"] == Decimal("2000")
    assert snapshot.source == SnapshotSource.MANUAL_WRITE


def test_future_holdings_excluded(store, principal, clock):
    """Holdings effective after today do not count yet."""
    _seed(store)

    snapshot = SnapshotRecorder(store, clock=clock).record(principal)

    assert snapshot.total_tradfi_usd == Decimal("502000")
    assert snapshot.total_net_worth_usd == Decimal("403000")


def test_snapshots_append_only(store, principal):
    """Each call appends; earlier snapshots are unchanged."""
    times = iter([NOW, NOW + timedelta(minutes=1)])
    recorder = SnapshotRecorder(store, clock=lambda: next(times))

    first = recorder.record(principal, SnapshotSource.WALLET_REFRESH)
    _seed(store)
    second = recorder.record(principal, SnapshotSource.PLAID_SYNC)

    history = recorder.list_snapshots(principal)
    assert history == [first, second]
    assert history[0].total_net_worth_usd == Decimal("0")
    assert history[1].total_net_worth_usd == Decimal("403000")


def test_record_quietly_swallows_failures(principal, clock):
    """A failed snapshot after a mutation returns None instead of raising."""
    recorder = SnapshotRecorder(FailingStore(), clock=clock)

    assert recorder.record_quietly(principal, SnapshotSource.MANUAL_WRITE) is None


def test_record_surfaces_failures(principal, clock):
    """A failed snapshot as the primary operation raises."""
    recorder = SnapshotRecorder(FailingStore(), clock=clock)

    with pytest.raises(PersistenceError, match="disk full"):
        recorder.record(principal)
