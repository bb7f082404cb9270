"""Aggregation of holdings, liabilities and real estate into portfolio summaries."""

from collections.abc import Iterable
from decimal import Decimal

from networth_tracker.core.classifier import classify
from networth_tracker.core.models import (
    AssetClass,
    BucketExposure,
    CryptoBreakdown,
    ExposureSummary,
    Holding,
    HoldingContext,
    Liability,
    NetWorthSummary,
    RealEstateProperty,
    Taxonomy,
)

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Crypto subtype -> CryptoBreakdown field
CRYPTO_SUBTYPE_FIELDS = {
    "spot_on_chain": "spot_on_chain_usd",
    "spot_custodial": "spot_custodial_usd",
    "stablecoin": "stablecoin_usd",
    "crypto_etf": "crypto_etf_usd",
    "crypto_equity": "crypto_equity_usd",
}


def compute_net_worth(
    holdings: Iterable[Holding],
    liabilities: Iterable[Liability],
    real_estate: Iterable[RealEstateProperty],
) -> NetWorthSummary:
    """
    Compute net worth across holdings, real estate and liabilities.

    Holdings split into crypto (asset class 'crypto') and tradfi (everything
    else). Property values count towards both total assets and tradfi.
    Missing values count as zero; no row is excluded.

    Parameters
    ----------
    holdings : Iterable[Holding]
        All holdings of the user
    liabilities : Iterable[Liability]
        All liabilities of the user
    real_estate : Iterable[RealEstateProperty]
        All directly held properties of the user

    Returns
    -------
    NetWorthSummary
        Totals with liabilities subtracted from assets

    """
    total_crypto = ZERO
    total_tradfi = ZERO

    for holding in holdings:
        value = holding.value_usd or ZERO
        if holding.asset_class == AssetClass.CRYPTO:
            total_crypto += value
        else:
            total_tradfi += value

    total_real_estate = sum((p.current_value_usd or ZERO for p in real_estate), ZERO)
    total_liabilities = sum((item.balance_usd or ZERO for item in liabilities), ZERO)

    total_assets = total_crypto + total_tradfi + total_real_estate
    total_tradfi += total_real_estate

    return NetWorthSummary(
        total_assets_usd=total_assets,
        total_liabilities_usd=total_liabilities,
        total_net_worth_usd=total_assets - total_liabilities,
        total_crypto_usd=total_crypto,
        total_tradfi_usd=total_tradfi,
        total_real_estate_usd=total_real_estate,
    )


def compute_holdings_total(holdings: Iterable[Holding]) -> Decimal:
    """Sum holding values only, treating missing values as zero."""
    return sum((h.value_usd or ZERO for h in holdings), ZERO)


def compute_exposure_summary(
    contexts: Iterable[HoldingContext],
    taxonomy: Taxonomy | None = None,
) -> ExposureSummary:
    """
    Classify positive-value holdings and fold them into an exposure summary.

    The denominator for percentages is the sum of the classified holdings
    only: real estate properties and liabilities are not part of it. Use
    :func:`compute_net_worth` for the balance-sheet figure.

    Parameters
    ----------
    contexts : Iterable[HoldingContext]
        Holdings joined with their account and connection
    taxonomy : Taxonomy | None
        Classification data, defaults to the packaged taxonomy

    Returns
    -------
    ExposureSummary
        Per-bucket exposures in first-seen order plus the crypto breakdown

    """
    total = ZERO
    crypto_total = ZERO
    tradfi_total = ZERO
    by_bucket: dict[str, Decimal] = {}
    breakdown: dict[str, Decimal] = dict.fromkeys(CRYPTO_SUBTYPE_FIELDS.values(), ZERO)
    other_crypto = ZERO

    for context in contexts:
        value = context.holding.value_usd
        if value is None or value <= 0:
            continue

        total += value
        result = classify(context.holding, context.account, context.connection, taxonomy)
        by_bucket[result.bucket] = by_bucket.get(result.bucket, ZERO) + result.exposure_usd

        if result.is_crypto_exposure:
            crypto_total += result.exposure_usd
            field = CRYPTO_SUBTYPE_FIELDS.get(result.subtype)
            if field:
                breakdown[field] += result.exposure_usd
            else:
                other_crypto += result.exposure_usd
        else:
            tradfi_total += result.exposure_usd

    exposures = [
        BucketExposure(
            bucket=bucket,
            exposure_usd=exposure,
            pct_of_net_worth=(exposure / total * HUNDRED) if total > 0 else ZERO,
        )
        for bucket, exposure in by_bucket.items()
    ]

    return ExposureSummary(
        total_net_worth_usd=total,
        total_crypto_exposure_usd=crypto_total,
        total_tradfi_exposure_usd=tradfi_total,
        crypto_breakdown=CryptoBreakdown(
            **breakdown,
            other_crypto_usd=other_crypto,
            total_crypto_exposure_usd=crypto_total,
        ),
        exposures_by_bucket=exposures,
    )


def snapshot_breakdown(summary: NetWorthSummary) -> dict[str, Decimal]:
    """
    Build the per-category breakdown stored on a snapshot.

    Parameters
    ----------
    summary : NetWorthSummary
        Net worth computed at snapshot time

    Returns
    -------
    dict[str, Decimal]
        Crypto, tradfi (excluding real estate), real estate and liabilities

    """
    return {
        "crypto": summary.total_crypto_usd,
        "tradfi": summary.total_tradfi_usd - summary.total_real_estate_usd,
        "real_estate": summary.total_real_estate_usd,
        "liabilities": summary.total_liabilities_usd,
    }
