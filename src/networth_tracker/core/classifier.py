"""Exposure classifier mapping holdings to taxonomy buckets."""

from functools import lru_cache
from pathlib import Path

from networth_tracker.core.models import (
    Account,
    AccountType,
    AssetClass,
    Classification,
    Connection,
    Holding,
    Provider,
    Taxonomy,
)
from networth_tracker.data import load_taxonomy_data


def load_taxonomy(path: str | Path | None = None) -> Taxonomy:
    """
    Load and validate a taxonomy file.

    Parameters
    ----------
    path : str | Path | None
        YAML file to read. Uses the packaged taxonomy.yaml if None.

    Returns
    -------
    Taxonomy
        Validated taxonomy with upper-cased symbol sets

    Raises
    ------
    pydantic.ValidationError
        If the document does not match the taxonomy schema

    """
    return Taxonomy.model_validate(load_taxonomy_data(path))


@lru_cache(maxsize=1)
def get_default_taxonomy() -> Taxonomy:
    """Get the packaged taxonomy, loaded once per process."""
    return load_taxonomy()


def classify(
    holding: Holding,
    account: Account | None = None,
    connection: Connection | None = None,
    taxonomy: Taxonomy | None = None,
) -> Classification:
    """
    Assign a holding to an exposure bucket and subtype.

    Non-positive or missing values short-circuit to the 'unknown' bucket
    with zero exposure. Otherwise the holding's asset class picks the
    branch; equities are matched against the taxonomy's equity rules in
    order and the first rule containing the ticker wins.

    Parameters
    ----------
    holding : Holding
        Holding to classify
    account : Account | None
        Owning account, used to tell on-chain from custodial crypto
    connection : Connection | None
        Owning connection, used to tell on-chain from custodial crypto
    taxonomy : Taxonomy | None
        Membership sets to match against. Uses the packaged taxonomy if None.

    Returns
    -------
    Classification
        Bucket, subtype, crypto flags and exposure in USD

    """
    value = holding.value_usd
    if value is None or value <= 0:
        return Classification()

    taxonomy = taxonomy or get_default_taxonomy()
    asset_class = holding.asset_class
    account_type = account.type if account else None
    provider = connection.provider if connection else None
    symbol = (holding.symbol or "").strip().upper()

    if asset_class == AssetClass.CRYPTO:
        if taxonomy.stablecoins.matches(symbol):
            subtype = "stablecoin"
        elif provider == Provider.WALLET or account_type == AccountType.CRYPTO_WALLET:
            subtype = "spot_on_chain"
        else:
            subtype = "spot_custodial"
        return Classification(bucket="crypto", subtype=subtype, is_crypto_exposure=True, exposure_usd=value)

    if asset_class == AssetClass.EQUITY:
        for rule in taxonomy.equity_rules:
            if symbol in rule.symbols:
                return Classification(
                    bucket=rule.bucket,
                    subtype=rule.subtype,
                    is_crypto_exposure=rule.crypto_exposure,
                    crypto_underlying=rule.underlying,
                    exposure_usd=value,
                )
        return Classification(bucket="equity", subtype="us_equity", exposure_usd=value)

    if asset_class == AssetClass.CASH:
        return Classification(bucket="cash", subtype="cash", exposure_usd=value)

    if asset_class == AssetClass.FIXED_INCOME:
        return Classification(bucket="fixed_income", subtype="fixed_income", exposure_usd=value)

    if asset_class == AssetClass.REAL_ESTATE or account_type == AccountType.REAL_ESTATE:
        return Classification(bucket="real_estate", subtype="direct_property", exposure_usd=value)

    return Classification(exposure_usd=value)
