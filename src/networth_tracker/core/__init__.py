"""Core functionality including models, classifier, aggregator, ingestion and service."""

from networth_tracker.core.aggregator import (
    compute_exposure_summary,
    compute_holdings_total,
    compute_net_worth,
    snapshot_breakdown,
)
from networth_tracker.core.classifier import classify, get_default_taxonomy, load_taxonomy
from networth_tracker.core.errors import (
    NotFoundError,
    PersistenceError,
    TrackerError,
    UpstreamProviderError,
    ValidationError,
)
from networth_tracker.core.ingestion import (
    BrokerageSync,
    WalletRefresher,
    normalize_plaid_holdings,
    normalize_wallet_balances,
)
from networth_tracker.core.models import (
    Account,
    AccountType,
    AssetClass,
    Classification,
    Connection,
    ExposureSummary,
    Holding,
    HoldingContext,
    Liability,
    NetWorthSummary,
    Principal,
    Provider,
    RealEstateProperty,
    Snapshot,
    SnapshotSource,
    Taxonomy,
)
from networth_tracker.core.service import PortfolioService
from networth_tracker.core.snapshots import SnapshotRecorder
from networth_tracker.core.spam import is_junk

__all__ = [
    "Account",
    "AccountType",
    "AssetClass",
    "BrokerageSync",
    "Classification",
    "Connection",
    "ExposureSummary",
    "Holding",
    "HoldingContext",
    "Liability",
    "NetWorthSummary",
    "NotFoundError",
    "PersistenceError",
    "PortfolioService",
    "Principal",
    "Provider",
    "RealEstateProperty",
    "Snapshot",
    "SnapshotRecorder",
    "SnapshotSource",
    "Taxonomy",
    "TrackerError",
    "UpstreamProviderError",
    "ValidationError",
    "WalletRefresher",
    "classify",
    "compute_exposure_summary",
    "compute_holdings_total",
    "compute_net_worth",
    "get_default_taxonomy",
    "is_junk",
    "load_taxonomy",
    "normalize_plaid_holdings",
    "normalize_wallet_balances",
    "snapshot_breakdown",
]
