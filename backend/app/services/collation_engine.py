"""
Line-Item Collation — groups order lines into printed rows for the
technical card (production), the dealer invoice and the cash receipt.

Sash orders are grouped by
    (width, height, system name + color, fabric name + color [+ " (zebra)"], control side)
and product orders by component id, summing quantities in first-seen order.

Prices on printed rows:
  - a group whose lines carry a sash price gets the quantity-weighted
    average of those prices;
  - otherwise (legacy rows saved without line prices) the order total is
    spread evenly: order sale price / total order quantity. This is an
    approximation for display, not a ledger price;
  - a group mixing priced and unpriced lines bills the unpriced units at
    that fallback and averages over the whole group (marked estimated).
    Without a fallback, the priced lines' average stands for the group.

Pre-migration product orders kept their quantities in the order comment as
"[Товар: Карниз x 2, Цепь x 1.5]". When a line's structured quantity is
missing, the quantity is read from that marker by component name.
"""
import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from app.models.pricing_models import (
    Component, ControlSide, Fabric, FabricType, Order, OrderKind, PricingCatalog, System,
)
from app.services.money import ZERO, quantize_money, to_decimal
from app.services.providers import ComponentDirectory

logger = logging.getLogger("sash-collation")

ZEBRA_SUFFIX = " (zebra)"
SASH_UNIT = "шт"

_LEGACY_MARKER_RE = re.compile(r"\[Товар:\s*(.*?)\]", re.IGNORECASE | re.DOTALL)
_LEGACY_ITEM_RE = re.compile(r"^\s*(.+?)\s+[xх×]\s*(\d+(?:[.,]\d+)?)\s*$", re.IGNORECASE)


@dataclass
class PrintRow:
    description: str
    quantity: Decimal
    unit: str = SASH_UNIT
    dimensions: Optional[str] = None
    unit_price: Optional[Decimal] = None
    line_total: Optional[Decimal] = None
    price_is_estimated: bool = False

    def as_dict(self) -> Dict:
        return {
            "description": self.description,
            "dimensions": self.dimensions,
            "quantity": str(self.quantity),
            "unit": self.unit,
            "unit_price": str(self.unit_price) if self.unit_price is not None else None,
            "line_total": str(self.line_total) if self.line_total is not None else None,
            "price_is_estimated": self.price_is_estimated,
        }


@dataclass
class _Group:
    description: str
    dimensions: Optional[str]
    unit: str
    quantity: Decimal = ZERO
    priced_quantity: Decimal = ZERO
    priced_amount: Decimal = ZERO


# ---------------------------------------------------------------------------
# Labels
# ---------------------------------------------------------------------------

def _join(*parts: Optional[str]) -> str:
    return " ".join(p.strip() for p in parts if p and p.strip())


def system_label(system: Optional[System], color: Optional[str] = None) -> str:
    if system is None:
        return ""
    return _join(system.name, color or system.color)


def fabric_label(fabric: Optional[Fabric], color: Optional[str] = None) -> str:
    if fabric is None:
        return ""
    label = _join(fabric.name, color or fabric.color)
    if fabric.fabric_type == FabricType.ZEBRA:
        label += ZEBRA_SUFFIX
    return label


def _dim(value) -> str:
    number = to_decimal(value)
    if number <= 0:
        return ""
    return format(number.normalize(), "f")


def _control_label(side: Optional[ControlSide]) -> str:
    if side is None:
        return ""
    return ControlSide(side).value


# ---------------------------------------------------------------------------
# Legacy comment parsing
# ---------------------------------------------------------------------------

def parse_legacy_product_comment(comment: Optional[str]) -> List[Tuple[str, Decimal]]:
    """
    Read "(name, quantity)" pairs out of "[Товар: name x qty, name x qty]"
    markers. Items that do not match "<name> x <qty>" are ignored.
    """
    if not comment:
        return []
    items: List[Tuple[str, Decimal]] = []
    for marker in _LEGACY_MARKER_RE.findall(comment):
        for chunk in re.split(r"[;,\n](?!\d)", marker):
            match = _LEGACY_ITEM_RE.match(chunk)
            if not match:
                continue
            qty = to_decimal(match.group(2))
            if qty > 0:
                items.append((match.group(1).strip(), qty))
    return items


def _legacy_quantities(comment: Optional[str]) -> Dict[str, Decimal]:
    quantities: Dict[str, Decimal] = {}
    for name, qty in parse_legacy_product_comment(comment):
        key = name.lower()
        quantities[key] = quantities.get(key, ZERO) + qty
    return quantities


# ---------------------------------------------------------------------------
# Collation
# ---------------------------------------------------------------------------

def _finish(groups: Iterable[_Group], fallback_price: Optional[Decimal]) -> List[PrintRow]:
    rows: List[PrintRow] = []
    for group in groups:
        row = PrintRow(
            description=group.description,
            dimensions=group.dimensions,
            quantity=group.quantity,
            unit=group.unit,
        )
        unpriced_quantity = group.quantity - group.priced_quantity
        if unpriced_quantity > 0 and fallback_price is not None:
            # unpriced units billed at the fallback, priced ones at their own price
            amount = group.priced_amount + fallback_price * unpriced_quantity
            row.unit_price = quantize_money(amount / group.quantity)
            row.price_is_estimated = True
        elif group.priced_quantity > 0:
            row.unit_price = quantize_money(group.priced_amount / group.priced_quantity)
        if row.unit_price is not None:
            row.line_total = quantize_money(row.unit_price * row.quantity)
        rows.append(row)
    return rows


def fallback_unit_price(order_total: Decimal, total_quantity: Decimal) -> Optional[Decimal]:
    """Order total spread evenly over all printed units."""
    if total_quantity <= 0 or order_total <= 0:
        return None
    return quantize_money(order_total / total_quantity)


def collate_sashes(order: Order, catalog: PricingCatalog) -> List[PrintRow]:
    groups: "OrderedDict[tuple, _Group]" = OrderedDict()
    for sash in order.sashes:
        width, height = _dim(sash.width), _dim(sash.height)
        system_text = system_label(catalog.system(sash.system_id), sash.system_color)
        fabric_text = fabric_label(catalog.fabric(sash.fabric_id), sash.fabric_color)
        control = _control_label(sash.control_side)
        key = (width, height, system_text, fabric_text, control)

        group = groups.get(key)
        if group is None:
            description = " / ".join(p for p in (system_text, fabric_text) if p) or "Створка"
            if control:
                description += f" ({control})"
            dimensions = f"{width}×{height}" if width and height else None
            group = groups[key] = _Group(description=description, dimensions=dimensions, unit=SASH_UNIT)

        qty = Decimal(sash.quantity)
        group.quantity += qty
        price = sash.sash_price
        if price is not None and price > 0:
            group.priced_quantity += qty
            group.priced_amount += price * qty

    total_qty = sum((g.quantity for g in groups.values()), ZERO)
    return _finish(groups.values(), fallback_unit_price(order.sale_price, total_qty))


def collate_products(order: Order, components: Iterable[Component]) -> List[PrintRow]:
    directory: Dict[str, Component] = {c.id: c for c in components}
    by_name: Dict[str, Component] = {c.name.strip().lower(): c for c in directory.values()}
    legacy = _legacy_quantities(order.comment)
    groups: "OrderedDict[str, _Group]" = OrderedDict()

    def _add(key: str, name: str, unit: str, qty: Decimal) -> None:
        group = groups.get(key)
        if group is None:
            group = groups[key] = _Group(description=name, dimensions=None, unit=unit)
        group.quantity += qty

    for line in order.components:
        if not line.component_id:
            continue
        component = directory.get(line.component_id)
        name = component.name if component else line.component_id
        unit = (component.unit if component else None) or SASH_UNIT
        qty = line.quantity
        if qty is None:
            qty = legacy.get(name.strip().lower())
            if qty is None:
                logger.warning(f"Order {order.order_number}: no quantity for component {name}")
                continue
        _add(line.component_id, name, unit, to_decimal(qty))

    if not order.components and legacy:
        # No structured lines at all: the marker is the only record of the order
        for name, qty in parse_legacy_product_comment(order.comment):
            component = by_name.get(name.lower())
            if component is not None:
                _add(component.id, component.name, component.unit or SASH_UNIT, qty)
            else:
                _add(f"legacy:{name.lower()}", name, SASH_UNIT, qty)

    total_qty = sum((g.quantity for g in groups.values()), ZERO)
    return _finish(groups.values(), fallback_unit_price(order.sale_price, total_qty))


def collate_for_printing(
    order: Order,
    catalog: PricingCatalog,
    component_directory: Optional[ComponentDirectory] = None,
) -> List[PrintRow]:
    """
    Printed rows for an order, in first-seen line order. Product rows take
    names and units from ``component_directory`` when given, else from the
    catalog snapshot.
    """
    if order.order_kind == OrderKind.PRODUCT:
        if component_directory is not None:
            components = component_directory.list_components()
        else:
            components = catalog.components
        return collate_products(order, components)
    return collate_sashes(order, catalog)


def summarize(rows: Iterable[PrintRow]) -> Dict[str, Decimal]:
    total_quantity = ZERO
    total_amount = ZERO
    for row in rows:
        total_quantity += row.quantity
        if row.line_total is not None:
            total_amount += row.line_total
    return {"total_quantity": total_quantity, "total_amount": quantize_money(total_amount)}
