"""
Contracts for the collaborators the pricing engine consumes, plus the
in-memory snapshot implementations used for a single calculation pass.

Stock valuations and directories are fetched ahead of time and treated as
read-only for the duration of a pass; only the coefficient lookup suspends.
"""
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Protocol

from app.models.pricing_models import Component, Dealer, PricingCatalog, StockValuation

logger = logging.getLogger("sash-providers")

_ZERO = Decimal("0")


class StockValuationProvider(Protocol):
    def get_stock_valuation(self, item_id: str) -> Optional[StockValuation]:
        ...


class CoefficientLookup(Protocol):
    async def lookup_coefficient(
        self, system_key: str, category: str, width_m: float, height_m: float
    ) -> Optional[float]:
        ...


class ComponentDirectory(Protocol):
    def list_components(self) -> List[Component]:
        ...


class DealerDirectory(Protocol):
    def get_dealer(self, dealer_id: str) -> Optional[Dealer]:
        ...


class StockSnapshot:
    """Read-only stock valuation snapshot keyed by fabric/component id."""

    def __init__(self, valuations: Optional[Dict[str, StockValuation]] = None) -> None:
        self._valuations: Dict[str, StockValuation] = dict(valuations or {})

    @classmethod
    def from_catalog(cls, catalog: PricingCatalog) -> "StockSnapshot":
        return cls(catalog.stock)

    def get_stock_valuation(self, item_id: str) -> Optional[StockValuation]:
        return self._valuations.get(item_id)

    def average_price(self, item_id: Optional[str]) -> Decimal:
        """Average purchase price, or 0 when the item has no stock history."""
        if not item_id:
            return _ZERO
        valuation = self._valuations.get(item_id)
        if valuation is None:
            return _ZERO
        return valuation.average_price


class StaticComponentDirectory:
    def __init__(self, components: Iterable[Component]) -> None:
        self._components = list(components)

    def list_components(self) -> List[Component]:
        return list(self._components)


class StaticDealerDirectory:
    def __init__(self, dealers: Iterable[Dealer]) -> None:
        self._dealers = {d.id: d for d in dealers}

    def get_dealer(self, dealer_id: str) -> Optional[Dealer]:
        dealer = self._dealers.get(dealer_id)
        if dealer is None:
            logger.debug(f"Dealer {dealer_id} not in directory snapshot")
        return dealer
