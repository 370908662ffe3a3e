"""
SashCostEngine — manufacturing cost of a single sash (order line).

Cost = fabric + components:
  - Fabric:     area (m²) × average purchase price × type multiplier
                (zebra = 2, roll = 1)
  - Components: per SystemComponent of the sash's system
                  metric unit   → avg × size (width/height) × size multiplier × quantity
                  discrete unit → avg × quantity
                An unset size source on a metric component means width.

Average purchase prices come from the stock valuation snapshot. Missing fabric,
system or price data degrades to a zero contribution; nothing here raises for
incomplete orders, which are the normal state during data entry.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from app.models.pricing_models import (
    Component, Fabric, FabricType, PricingCatalog, Sash, SizeSource, System,
)
from app.services.money import ONE, ZERO, mm_to_m, quantize_money, to_decimal
from app.services.providers import StockSnapshot
from app.services.unit_classifier import UnitKind, classify_unit

logger = logging.getLogger("sash-cost")

ZEBRA_FABRIC_MULTIPLIER = Decimal("2")
ROLL_FABRIC_MULTIPLIER = ONE


@dataclass
class ComponentCostLine:
    component_id: str
    name: str
    unit: str
    unit_kind: UnitKind
    quantity: Decimal
    size_source: Optional[str]
    size_multiplier: Decimal
    size_value: Decimal
    avg_price: Decimal
    total_price: Decimal
    formula: str


@dataclass
class SashCostResult:
    width_mm: Decimal
    height_mm: Decimal
    area_m2: Decimal
    fabric_name: str = ""
    fabric_type: str = FabricType.ROLL.value
    fabric_avg_price: Decimal = ZERO
    fabric_multiplier: Decimal = ONE
    fabric_cost: Decimal = ZERO
    components_cost: Decimal = ZERO
    components: List[ComponentCostLine] = field(default_factory=list)
    sash_cost: Decimal = ZERO

    @property
    def rounded_cost(self) -> Decimal:
        return quantize_money(self.sash_cost)


@dataclass
class SashCostDetail:
    """One entry of the cost audit breakdown (1-based position in the order)."""
    index: int
    quantity: int
    cost: SashCostResult
    total_sash_cost: Decimal


@dataclass
class CostBreakdown:
    total_cost: Decimal
    sashes: List[SashCostDetail]


def fabric_multiplier(fabric_type: Optional[FabricType]) -> Decimal:
    if fabric_type == FabricType.ZEBRA:
        return ZEBRA_FABRIC_MULTIPLIER
    return ROLL_FABRIC_MULTIPLIER


def _fmt_number(value: Decimal) -> str:
    """1 → '1', 2.50 → '2.5' (formula strings only)."""
    return format(value.normalize(), "f")


class SashCostEngine:
    """Cost calculator bound to one stock snapshot and component directory."""

    def __init__(
        self,
        stock: StockSnapshot,
        components: Optional[Iterable[Component]] = None,
    ) -> None:
        self.stock = stock
        self._components: Dict[str, Component] = {c.id: c for c in (components or [])}

    @classmethod
    def from_catalog(cls, catalog: PricingCatalog) -> "SashCostEngine":
        return cls(StockSnapshot.from_catalog(catalog), catalog.components)

    # ------------------------------------------------------------------
    # Single line
    # ------------------------------------------------------------------

    def compute_sash_cost(
        self,
        width_mm,
        height_mm,
        fabric: Optional[Fabric] = None,
        system: Optional[System] = None,
    ) -> Optional[SashCostResult]:
        """
        Cost one sash. Returns None when either dimension is not positive:
        such a line is skipped entirely rather than counted as a zero-cost line.
        """
        width = to_decimal(width_mm)
        height = to_decimal(height_mm)
        if width <= 0 or height <= 0:
            return None

        width_m = mm_to_m(width)
        height_m = mm_to_m(height)
        result = SashCostResult(width_mm=width, height_mm=height, area_m2=width_m * height_m)

        if fabric is not None:
            self._apply_fabric(result, fabric)

        if system is not None:
            for entry in system.components:
                line = self._component_line(entry, width_m, height_m)
                if line is None:
                    continue
                result.components.append(line)
                result.components_cost += line.total_price

        result.sash_cost = result.fabric_cost + result.components_cost
        return result

    def _apply_fabric(self, result: SashCostResult, fabric: Fabric) -> None:
        avg_price = self.stock.average_price(fabric.id)
        multiplier = fabric_multiplier(fabric.fabric_type)
        result.fabric_name = fabric.name
        result.fabric_type = FabricType(fabric.fabric_type).value
        result.fabric_avg_price = avg_price
        result.fabric_multiplier = multiplier
        if avg_price > 0:
            result.fabric_cost = result.area_m2 * avg_price * multiplier

    def _component_line(self, entry, width_m: Decimal, height_m: Decimal) -> Optional[ComponentCostLine]:
        component = self._components.get(entry.component_id)
        if component is None:
            logger.debug(f"System component {entry.component_id} not in directory — skipped")
            return None
        avg_price = self.stock.average_price(component.id)
        if avg_price <= 0:
            return None

        unit = component.unit or "шт"
        kind = classify_unit(unit)
        quantity = entry.quantity
        size_multiplier = entry.size_multiplier
        source = SizeSource(entry.size_source).value if entry.size_source else None

        if kind is UnitKind.METRIC:
            if source == SizeSource.HEIGHT.value:
                size_value = height_m
                size_label = "м"
            elif source == SizeSource.WIDTH.value:
                size_value = width_m
                size_label = "м"
            else:
                size_value = width_m
                size_label = "м (ширина)"
            total = avg_price * size_value * size_multiplier * quantity
            formula = (
                f"{quantize_money(avg_price)} × {size_value.quantize(Decimal('0.001'))}{size_label}"
                f" × {_fmt_number(size_multiplier)} × {_fmt_number(quantity)}"
            )
        else:
            size_value = ONE
            total = avg_price * quantity
            formula = f"{quantize_money(avg_price)} × {_fmt_number(quantity)}шт"

        return ComponentCostLine(
            component_id=component.id,
            name=component.name,
            unit=unit,
            unit_kind=kind,
            quantity=quantity,
            size_source=source,
            size_multiplier=size_multiplier,
            size_value=size_value,
            avg_price=avg_price,
            total_price=total,
            formula=formula,
        )

    # ------------------------------------------------------------------
    # Whole order (cost audit)
    # ------------------------------------------------------------------

    def compute_breakdown(self, sashes: List[Sash], catalog: PricingCatalog) -> CostBreakdown:
        """
        Per-line cost audit for an order. Only dimensioned lines appear; each
        keeps its 1-based position so staff can match it to the form row.
        """
        details: List[SashCostDetail] = []
        total = ZERO
        for position, sash in enumerate(sashes, start=1):
            cost = self.compute_sash_cost(
                sash.width, sash.height,
                catalog.fabric(sash.fabric_id), catalog.system(sash.system_id),
            )
            if cost is None:
                continue
            line_total = cost.rounded_cost * sash.quantity
            total += line_total
            details.append(SashCostDetail(
                index=position, quantity=sash.quantity, cost=cost, total_sash_cost=line_total,
            ))
        return CostBreakdown(total_cost=quantize_money(total), sashes=details)
