"""Re-pricing of stored holdings from a spot-price source."""

import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Protocol

from networth_tracker.core.errors import UpstreamProviderError
from networth_tracker.core.models import AssetClass, Principal
from networth_tracker.store.base import PortfolioStore

logger = logging.getLogger(__name__)


class PriceSource(Protocol):
    """Spot-price provider: (symbol, asset class) -> USD price or None."""

    def get_price(self, symbol: str, asset_class: AssetClass | str = AssetClass.CRYPTO) -> Decimal | None: ...


class PriceRefresher:
    """
    Updates price, value and ``as_of`` of every priceable holding.

    Cash holdings and holdings without a symbol are left alone. A symbol
    the source cannot price, or whose lookup fails, keeps its stored price. Holdings replaced between the listing
    and the update are skipped.

    Parameters
    ----------
    store : PortfolioStore
        Persistence backend
    source : PriceSource
        Spot-price client

    """

    def __init__(self, store: PortfolioStore, source: PriceSource) -> None:
        self.store = store
        self.source = source

    def refresh(self, principal: Principal, as_of: datetime | None = None) -> int:
        """
        Re-price the user's holdings.

        Parameters
        ----------
        principal : Principal
            Owner of the holdings
        as_of : datetime | None
            Timestamp written on updated holdings. Uses current UTC time if None.

        Returns
        -------
        int
            Number of holdings updated

        """
        as_of = as_of or datetime.now(UTC)
        prices: dict[tuple[str, AssetClass], Decimal | None] = {}
        updated = 0

        for holding in self.store.list_holdings(principal.user_id):
            if holding.asset_class == AssetClass.CASH or not holding.symbol:
                continue

            key = (holding.symbol.strip().upper(), holding.asset_class)
            if key not in prices:
                prices[key] = self._lookup(*key)
            price = prices[key]
            if price is None:
                continue

            if not self.store.update_holding_price(holding.id, price, holding.quantity * price, as_of):
                # Replaced by a concurrent wallet refresh since the listing
                logger.debug("Holding %s vanished before re-pricing, skipping", holding.id)
                continue
            updated += 1

        logger.info("Re-priced %d holdings for %s", updated, principal.user_id)
        return updated

    def _lookup(self, symbol: str, asset_class: AssetClass) -> Decimal | None:
        try:
            return self.source.get_price(symbol, asset_class)
        except UpstreamProviderError as e:
            logger.warning("Price lookup failed for %s: %s", symbol, e)
            return None
