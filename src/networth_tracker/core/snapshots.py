"""Snapshot recording: one immutable net-worth entry per call."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from networth_tracker.core.aggregator import compute_net_worth, snapshot_breakdown
from networth_tracker.core.models import Principal, Snapshot, SnapshotSource
from networth_tracker.store.base import PortfolioStore

logger = logging.getLogger(__name__)


class SnapshotRecorder:
    """
    Aggregates current state and appends it to the snapshot series.

    Parameters
    ----------
    store : PortfolioStore
        Persistence backend
    clock : Callable[[], datetime] | None
        Source of ``taken_at`` timestamps (timezone-aware UTC by default)

    """

    def __init__(self, store: PortfolioStore, clock: Callable[[], datetime] | None = None) -> None:
        self.store = store
        self._clock = clock or (lambda: datetime.now(UTC))

    def record(self, principal: Principal, source: SnapshotSource = SnapshotSource.MANUAL_WRITE) -> Snapshot:
        """
        Compute net worth and append a snapshot.

        Only holdings whose effective date is on or before today count.

        Parameters
        ----------
        principal : Principal
            Owner of the snapshot
        source : SnapshotSource
            Event that triggered the write

        Returns
        -------
        Snapshot
            The stored snapshot

        Raises
        ------
        PersistenceError
            If reading state or appending the snapshot fails

        """
        taken_at = self._clock()
        holdings = self.store.list_holdings(principal.user_id, effective_on=taken_at.date())
        liabilities = self.store.list_liabilities(principal.user_id)
        properties = self.store.list_properties(principal.user_id)

        summary = compute_net_worth(holdings, liabilities, properties)
        snapshot = Snapshot(
            user_id=principal.user_id,
            taken_at=taken_at,
            total_net_worth_usd=summary.total_net_worth_usd,
            total_crypto_usd=summary.total_crypto_usd,
            total_tradfi_usd=summary.total_tradfi_usd,
            total_liabilities_usd=summary.total_liabilities_usd,
            total_real_estate_usd=summary.total_real_estate_usd,
            breakdown=snapshot_breakdown(summary),
            source=source,
        )
        stored = self.store.append_snapshot(snapshot)
        logger.info("Recorded %s snapshot for %s: %s", source, principal.user_id, stored.total_net_worth_usd)
        return stored

    def record_quietly(self, principal: Principal, source: SnapshotSource) -> Snapshot | None:
        """
        Record a snapshot after a mutation without failing the caller.

        Returns
        -------
        Snapshot | None
            The stored snapshot, or None if recording failed

        """
        try:
            return self.record(principal, source)
        except Exception as e:
            # Snapshot failures never fail the mutation that triggered them
            logger.warning("Snapshot after %s failed for %s: %s", source, principal.user_id, e)
            return None

    def list_snapshots(self, principal: Principal) -> list[Snapshot]:
        """Return the user's snapshots ordered by ``taken_at`` ascending."""
        return self.store.list_snapshots(principal.user_id)
