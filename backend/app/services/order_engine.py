"""
Order Aggregator — order-level cost and sale price.

Sash orders
    cost_price = Σ sash_cost × quantity
    sale_price = Σ sash_price × quantity
    over lines with positive width and height only.

Product orders
    cost_price = Σ component quantity × average purchase price
    sale_price is entered by hand and never computed.

Computed totals are written back to the order only when they differ from the
stored value by more than one minor currency unit, so recomputing with
unchanged inputs never touches the order. A sale price (line or order) switched
to manual is frozen until reset; reset restores the last automatic value.

OrderPricingSession is the form-layer contract: every change to a line's
width, height, fabric or system recomputes that line's cost at once and
starts its own coefficient lookup. Each line carries a revision counter and a
lookup result is applied only if the revision has not moved since the request
was issued, so the latest input wins regardless of response order.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Set

from app.models.pricing_models import (
    Fabric, Order, OrderKind, PriceMode, PricingCatalog, ProductComponentLine, Sash, System,
)
from app.services.cost_engine import SashCostEngine, SashCostResult
from app.services.money import ZERO, exceeds_minor_unit, mm_to_m, quantize_money, to_decimal
from app.services.price_engine import (
    PriceStatus, SashPriceResult, compute_sash_price, has_pricing_inputs, system_multiplier,
)
from app.services.providers import CoefficientLookup, StockSnapshot

logger = logging.getLogger("sash-pricing")

# Line fields whose change invalidates the line's cost, price and coefficient
RECALC_FIELDS = frozenset({"width", "height", "fabric_id", "system_id"})

# Line fields the order form edits directly
EDITABLE_FIELDS = RECALC_FIELDS | frozenset({
    "quantity", "system_color", "fabric_color", "control_side",
})


@dataclass
class SashLineResult:
    sash_cost: Optional[Decimal]          # None: line has no dimensions and is not counted
    sash_price: Decimal
    price_status: PriceStatus
    coefficient: Optional[Decimal] = None
    cost_detail: Optional[SashCostResult] = None


@dataclass
class OrderTotals:
    cost_price: Decimal = ZERO
    sale_price: Decimal = ZERO
    counted_lines: int = 0
    total_quantity: int = 0
    total_area_m2: Decimal = ZERO
    missing_reference_lines: List[int] = field(default_factory=list)
    pending_lines: List[int] = field(default_factory=list)
    cost_written: bool = False
    sale_written: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {
            "cost_price": str(self.cost_price),
            "sale_price": str(self.sale_price),
            "counted_lines": self.counted_lines,
            "total_quantity": self.total_quantity,
            "total_area_m2": str(self.total_area_m2),
            "missing_reference_lines": list(self.missing_reference_lines),
            "pending_lines": list(self.pending_lines),
        }


def has_dimensions(sash: Sash) -> bool:
    return to_decimal(sash.width) > 0 and to_decimal(sash.height) > 0


def should_write_back(current: Optional[Decimal], computed: Decimal, allow_zero: bool = False) -> bool:
    """
    Persist only when the delta exceeds one minor unit. Sash orders pass
    allow_zero=False so a zero total (lines not filled in yet) never wipes a
    price typed by hand.
    """
    if not allow_zero and computed <= 0:
        return False
    return exceeds_minor_unit(current, computed)


# ---------------------------------------------------------------------------
# Line level
# ---------------------------------------------------------------------------

async def recalculate_sash_line(
    sash: Sash,
    fabric: Optional[Fabric],
    system: Optional[System],
    cost_engine: SashCostEngine,
    lookup: CoefficientLookup,
) -> SashLineResult:
    """Cost and price for one line. Does not modify the line."""
    cost = cost_engine.compute_sash_cost(sash.width, sash.height, fabric, system)
    price: SashPriceResult = await compute_sash_price(sash.width, sash.height, system, fabric, lookup)
    return SashLineResult(
        sash_cost=cost.rounded_cost if cost is not None else None,
        sash_price=price.price,
        price_status=price.status,
        coefficient=price.coefficient,
        cost_detail=cost,
    )


def apply_line_result(sash: Sash, result: SashLineResult) -> None:
    """Write computed fields onto the line; a manual line price is left alone."""
    sash.sash_cost = result.sash_cost if result.sash_cost is not None else ZERO
    sash.coefficient = result.coefficient
    if sash.price_mode != PriceMode.MANUAL:
        sash.sash_price = result.sash_price


# ---------------------------------------------------------------------------
# Order level
# ---------------------------------------------------------------------------

def aggregate_sash_totals(sashes: Iterable[Sash]) -> OrderTotals:
    """Sum stored line cost/price × quantity over dimensioned lines."""
    totals = OrderTotals()
    for sash in sashes:
        if not has_dimensions(sash):
            continue
        qty = sash.quantity
        totals.counted_lines += 1
        totals.total_quantity += qty
        totals.total_area_m2 += mm_to_m(to_decimal(sash.width)) * mm_to_m(to_decimal(sash.height)) * qty
        totals.cost_price += quantize_money(sash.sash_cost or ZERO) * qty
        totals.sale_price += quantize_money(sash.sash_price or ZERO) * qty
    totals.cost_price = quantize_money(totals.cost_price)
    totals.sale_price = quantize_money(totals.sale_price)
    return totals


def compute_product_cost(lines: Iterable[ProductComponentLine], stock: StockSnapshot) -> Decimal:
    total = ZERO
    for line in lines:
        if not line.component_id or line.quantity is None:
            continue
        avg_price = stock.average_price(line.component_id)
        if avg_price > 0:
            total += to_decimal(line.quantity) * avg_price
    return quantize_money(total)


def _write_back_sash_totals(order: Order, totals: OrderTotals, write_sale: bool = True) -> None:
    if should_write_back(order.cost_price, totals.cost_price):
        order.cost_price = totals.cost_price
        totals.cost_written = True
    if (
        write_sale
        and order.sale_price_mode != PriceMode.MANUAL
        and should_write_back(order.sale_price, totals.sale_price)
    ):
        order.sale_price = totals.sale_price
        totals.sale_written = True


async def recalculate_order_totals(
    order: Order,
    catalog: PricingCatalog,
    lookup: Optional[CoefficientLookup] = None,
) -> OrderTotals:
    """
    Full recompute of an order in place. Sash lines are looked up concurrently;
    product orders only get their cost recomputed.
    """
    if order.order_kind == OrderKind.PRODUCT:
        cost = compute_product_cost(order.components, StockSnapshot.from_catalog(catalog))
        totals = OrderTotals(cost_price=cost, sale_price=order.sale_price)
        if should_write_back(order.cost_price, cost, allow_zero=True):
            order.cost_price = cost
            totals.cost_written = True
        return totals

    if lookup is None:
        raise ValueError("sash orders need a coefficient lookup")

    cost_engine = SashCostEngine.from_catalog(catalog)
    results = await asyncio.gather(*[
        recalculate_sash_line(
            sash, catalog.fabric(sash.fabric_id), catalog.system(sash.system_id), cost_engine, lookup,
        )
        for sash in order.sashes
    ])

    missing: List[int] = []
    for index, (sash, result) in enumerate(zip(order.sashes, results)):
        apply_line_result(sash, result)
        if result.price_status is PriceStatus.MISSING_REFERENCE:
            missing.append(index)

    totals = aggregate_sash_totals(order.sashes)
    totals.missing_reference_lines = missing
    _write_back_sash_totals(order, totals)
    logger.info(
        f"Order {order.order_number or order.id or '-'} recalculated: "
        f"cost={totals.cost_price} sale={totals.sale_price} lines={totals.counted_lines}",
        extra={"order_id": order.id},
    )
    return totals


# ---------------------------------------------------------------------------
# Reactive session (order form)
# ---------------------------------------------------------------------------

@dataclass(eq=False)
class _LineState:
    sash: Sash
    revision: int = 0
    price_status: PriceStatus = PriceStatus.INCOMPLETE
    auto_status: PriceStatus = PriceStatus.INCOMPLETE
    auto_price: Decimal = ZERO
    coefficient: Optional[Decimal] = None
    cost_detail: Optional[SashCostResult] = None
    removed: bool = False


class OrderPricingSession:
    """
    Pricing state of one order being edited. Not shared between orders.

    Must be driven from a running event loop: line changes schedule their
    coefficient lookups as tasks. ``await settle()`` waits for all of them.
    """

    def __init__(
        self,
        order: Order,
        catalog: PricingCatalog,
        lookup: CoefficientLookup,
    ) -> None:
        self.order = order
        self.catalog = catalog
        self.lookup = lookup
        self.cost_engine = SashCostEngine.from_catalog(catalog)
        self.stock = StockSnapshot.from_catalog(catalog)
        self._lines: List[_LineState] = []
        self._tasks: Set[asyncio.Task] = set()
        self._auto_sale_price: Decimal = order.sale_price
        for sash in order.sashes:
            system = catalog.system(sash.system_id)
            state = _LineState(sash=sash, coefficient=sash.coefficient)
            state.cost_detail = self.cost_engine.compute_sash_cost(
                sash.width, sash.height, catalog.fabric(sash.fabric_id), system,
            )
            if sash.price_mode == PriceMode.MANUAL:
                # stored price is hand-typed; rebuild the automatic one from the cached coefficient
                if sash.coefficient and sash.coefficient > 0:
                    state.auto_price = quantize_money(sash.coefficient * system_multiplier(system))
                    state.auto_status = PriceStatus.PRICED
                state.price_status = PriceStatus.MANUAL
            else:
                state.auto_price = sash.sash_price or ZERO
                if sash.sash_price and sash.sash_price > 0:
                    state.auto_status = PriceStatus.PRICED
                state.price_status = state.auto_status
            self._lines.append(state)

    # ------------------------------------------------------------------
    # Line editing
    # ------------------------------------------------------------------

    def add_line(self, **values) -> int:
        sash = Sash.model_validate(values)
        self.order.sashes.append(sash)
        state = _LineState(sash=sash)
        self._lines.append(state)
        index = len(self._lines) - 1
        self._recalculate_line(index, state)
        self._recompute_totals()
        return index

    def remove_line(self, index: int) -> None:
        state = self._lines.pop(index)
        state.removed = True
        state.revision += 1
        self.order.sashes.pop(index)
        self._recompute_totals()

    def update_line(self, index: int, **changes) -> Set[str]:
        """
        Apply form changes to one line. Returns the names of fields whose value
        actually changed. Only form inputs are accepted; prices go through
        set_manual_line_price / reset_line_price, cost and coefficient are
        always computed.
        """
        rejected = set(changes) - EDITABLE_FIELDS
        if rejected:
            raise ValueError(f"Sash fields not editable here: {', '.join(sorted(rejected))}")
        state = self._lines[index]
        current = state.sash
        updated = Sash.model_validate({**current.model_dump(), **changes})
        changed = {name for name in changes if getattr(updated, name) != getattr(current, name)}
        if not changed:
            return changed

        self.order.sashes[index] = updated
        state.sash = updated
        if changed & RECALC_FIELDS:
            self._recalculate_line(index, state)
        self._recompute_totals()
        return changed

    def _recalculate_line(self, index: int, state: _LineState) -> None:
        state.revision += 1
        sash = state.sash
        fabric = self.catalog.fabric(sash.fabric_id)
        system = self.catalog.system(sash.system_id)

        cost = self.cost_engine.compute_sash_cost(sash.width, sash.height, fabric, system)
        state.cost_detail = cost
        sash.sash_cost = cost.rounded_cost if cost is not None else ZERO

        if not has_pricing_inputs(sash.width, sash.height, system, fabric):
            self._apply_price(state, SashPriceResult(status=PriceStatus.INCOMPLETE))
            return

        state.price_status = PriceStatus.PENDING
        task = asyncio.get_running_loop().create_task(
            self._run_lookup(index, state, state.revision, sash, system, fabric)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run_lookup(
        self, index: int, state: _LineState, revision: int,
        sash: Sash, system: System, fabric: Fabric,
    ) -> None:
        result = await compute_sash_price(sash.width, sash.height, system, fabric, self.lookup)
        if state.removed or state.revision != revision:
            logger.debug(
                f"Discarding stale coefficient for line {index} (revision {revision}, now {state.revision})",
                extra={"order_id": self.order.id, "sash_index": index},
            )
            return
        self._apply_price(state, result)
        self._recompute_totals()

    def _apply_price(self, state: _LineState, result: SashPriceResult) -> None:
        state.auto_price = result.price
        state.auto_status = result.status
        state.coefficient = result.coefficient
        state.sash.coefficient = result.coefficient
        if state.sash.price_mode == PriceMode.MANUAL:
            state.price_status = PriceStatus.MANUAL
            return
        state.price_status = result.status
        state.sash.sash_price = result.price

    async def settle(self) -> OrderTotals:
        """Wait for every outstanding lookup (including ones started meanwhile)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
        return self._recompute_totals()

    # ------------------------------------------------------------------
    # Manual overrides
    # ------------------------------------------------------------------

    def set_manual_line_price(self, index: int, price) -> None:
        state = self._lines[index]
        state.sash.price_mode = PriceMode.MANUAL
        state.sash.sash_price = quantize_money(to_decimal(price))
        state.price_status = PriceStatus.MANUAL
        self._recompute_totals()

    def reset_line_price(self, index: int) -> None:
        state = self._lines[index]
        state.sash.price_mode = PriceMode.AUTO
        state.sash.sash_price = state.auto_price
        if state.price_status is PriceStatus.MANUAL:
            state.price_status = state.auto_status
        self._recompute_totals()

    def set_manual_sale_price(self, price) -> None:
        self.order.sale_price_mode = PriceMode.MANUAL
        self.order.sale_price = quantize_money(to_decimal(price))

    def reset_sale_price(self) -> None:
        self.order.sale_price_mode = PriceMode.AUTO
        self.order.sale_price = self._auto_sale_price

    # ------------------------------------------------------------------
    # Product orders
    # ------------------------------------------------------------------

    def update_components(self, lines: List[Any]) -> Decimal:
        self.order.components = [ProductComponentLine.model_validate(line) for line in lines]
        cost = compute_product_cost(self.order.components, self.stock)
        if should_write_back(self.order.cost_price, cost, allow_zero=True):
            self.order.cost_price = cost
        return cost

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def line_result(self, index: int) -> SashLineResult:
        state = self._lines[index]
        cost = state.cost_detail
        return SashLineResult(
            sash_cost=cost.rounded_cost if cost is not None else None,
            sash_price=state.sash.sash_price or ZERO,
            price_status=state.price_status,
            coefficient=state.coefficient,
            cost_detail=cost,
        )

    @property
    def pending_lines(self) -> List[int]:
        return [i for i, s in enumerate(self._lines) if s.price_status is PriceStatus.PENDING]

    def _recompute_totals(self) -> OrderTotals:
        totals = aggregate_sash_totals(self.order.sashes)
        totals.pending_lines = self.pending_lines
        totals.missing_reference_lines = [
            i for i, s in enumerate(self._lines) if s.price_status is PriceStatus.MISSING_REFERENCE
        ]
        settled = not totals.pending_lines
        if settled and totals.sale_price > 0:
            self._auto_sale_price = totals.sale_price
        _write_back_sash_totals(self.order, totals, write_sale=settled)
        return totals
