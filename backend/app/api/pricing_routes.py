"""
Order Pricing API — called by the order form and the print views.

POST /api/pricing/sash-line         — cost, price and coefficient for one sash
POST /api/pricing/order-totals      — recompute an order's lines and totals
POST /api/pricing/cost-breakdown    — per-line cost audit (formulas per component)
POST /api/pricing/collate           — printed rows for an order
POST /api/pricing/documents/{type}  — technical card / invoice / receipt PDF
"""
import dataclasses
import logging
from decimal import Decimal
from enum import Enum
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from app.api.deps import get_coefficient_lookup
from app.models.pricing_models import Dealer, Order, OrderKind, PricingCatalog, Sash
from app.services.collation_engine import collate_for_printing, summarize
from app.services.cost_engine import SashCostEngine
from app.services.order_engine import recalculate_order_totals, recalculate_sash_line
from app.services.providers import CoefficientLookup, StaticDealerDirectory
from app.services.report_engine import DocumentEngine, DocumentType

router = APIRouter(prefix="/api/pricing", tags=["Order Pricing"])
logger = logging.getLogger("sash-pricing-routes")


# ── Pydantic Models ─────────────────────────────────────────────────────────

class SashLineRequest(BaseModel):
    sash: Sash
    catalog: PricingCatalog = Field(default_factory=PricingCatalog)


class OrderRequest(BaseModel):
    order: Order
    catalog: PricingCatalog = Field(default_factory=PricingCatalog)


class DocumentRequest(OrderRequest):
    dealer: Optional[Dealer] = None
    # Directory snapshot used to resolve order.dealer_id when no dealer is given
    dealers: List[Dealer] = Field(default_factory=list)


def _jsonable(value: Any) -> Any:
    """Dataclass results → JSON with money kept as strings."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    return value


# ── Routes ──────────────────────────────────────────────────────────────────

@router.post("/sash-line")
async def price_sash_line(
    body: SashLineRequest,
    lookup: CoefficientLookup = Depends(get_coefficient_lookup),
):
    catalog = body.catalog
    result = await recalculate_sash_line(
        body.sash,
        catalog.fabric(body.sash.fabric_id),
        catalog.system(body.sash.system_id),
        SashCostEngine.from_catalog(catalog),
        lookup,
    )
    return _jsonable(result)


@router.post("/order-totals")
async def price_order(
    body: OrderRequest,
    lookup: CoefficientLookup = Depends(get_coefficient_lookup),
):
    order = body.order
    totals = await recalculate_order_totals(order, body.catalog, lookup)
    return {"order": order.model_dump(mode="json"), "totals": totals.as_dict()}


@router.post("/cost-breakdown")
async def cost_breakdown(body: OrderRequest):
    if body.order.order_kind != OrderKind.SASH:
        raise HTTPException(status_code=400, detail="Cost breakdown is only available for sash orders")
    breakdown = SashCostEngine.from_catalog(body.catalog).compute_breakdown(body.order.sashes, body.catalog)
    return _jsonable(breakdown)


@router.post("/collate")
async def collate(body: OrderRequest):
    rows = collate_for_printing(body.order, body.catalog)
    return {
        "rows": [row.as_dict() for row in rows],
        "summary": _jsonable(summarize(rows)),
    }


@router.post("/documents/{doc_type}")
async def render_document(doc_type: DocumentType, body: DocumentRequest):
    rows = collate_for_printing(body.order, body.catalog)
    dealer = body.dealer
    if dealer is None and body.order.dealer_id:
        dealer = StaticDealerDirectory(body.dealers).get_dealer(body.order.dealer_id)
    pdf = DocumentEngine().render(body.order, rows, doc_type, dealer)
    filename = f"{doc_type.value}_{body.order.order_number or 'draft'}.pdf"
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'inline; filename="{filename}"'},
    )
