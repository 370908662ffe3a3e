"""
Pricing domain models for sash and product orders.

Monetary and dimensional fields are Decimal. They accept the string form the
order forms send ("1200", "1500.5", "") and serialize back to strings in JSON
mode, so no float ever reaches the pricing arithmetic.
"""
from datetime import date as date_type
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrderStatus(str, Enum):
    NEW = "new"
    IN_PRODUCTION = "in_production"
    READY = "ready"
    SHIPPED = "shipped"


class OrderKind(str, Enum):
    SASH = "sash"
    PRODUCT = "product"


class FabricType(str, Enum):
    ROLL = "roll"
    ZEBRA = "zebra"


class SizeSource(str, Enum):
    WIDTH = "width"
    HEIGHT = "height"


class ControlSide(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    NONE = "none"


class PriceMode(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"


def _blank_to_none(value):
    """Form fields arrive as "" when the user has not typed anything yet."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


class _Model(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)


# ── Reference data ────────────────────────────────────────────────────────────

class Multiplier(_Model):
    id: str
    name: str = ""
    value: Decimal = Decimal("1")


class Component(_Model):
    id: str
    name: str
    unit: str = "шт"
    color: Optional[str] = None


class SystemComponent(_Model):
    """How much of one component a single unit of the system consumes."""
    component_id: str
    quantity: Decimal = Decimal("1")
    size_source: Optional[SizeSource] = None
    size_multiplier: Decimal = Decimal("1")

    @field_validator("quantity", "size_multiplier", mode="before")
    @classmethod
    def _default_one(cls, v):
        v = _blank_to_none(v)
        return Decimal("1") if v is None else v

    @field_validator("size_source", mode="before")
    @classmethod
    def _blank_source(cls, v):
        return _blank_to_none(v)


class System(_Model):
    id: str
    name: str
    system_key: Optional[str] = None
    color: Optional[str] = None
    multiplier: Optional[Multiplier] = None
    components: List[SystemComponent] = Field(default_factory=list)


class Fabric(_Model):
    id: str
    name: str
    category: Optional[str] = None
    fabric_type: FabricType = FabricType.ROLL
    width: Optional[Decimal] = None
    color: Optional[str] = None

    @field_validator("fabric_type", mode="before")
    @classmethod
    def _default_roll(cls, v):
        return _blank_to_none(v) or FabricType.ROLL


class StockValuation(_Model):
    quantity: Decimal = Decimal("0")
    last_price: Decimal = Decimal("0")
    average_price: Decimal = Decimal("0")
    total_value: Decimal = Decimal("0")


class Dealer(_Model):
    id: str
    full_name: str
    phone: Optional[str] = None
    balance: Decimal = Decimal("0")


# ── Order lines ───────────────────────────────────────────────────────────────

class Sash(_Model):
    id: Optional[str] = None
    width: Optional[Decimal] = None
    height: Optional[Decimal] = None
    quantity: int = Field(default=1, ge=1)
    system_id: Optional[str] = None
    system_color: Optional[str] = None
    fabric_id: Optional[str] = None
    fabric_color: Optional[str] = None
    control_side: Optional[ControlSide] = None
    sash_price: Optional[Decimal] = None
    sash_cost: Optional[Decimal] = None
    coefficient: Optional[Decimal] = None
    price_mode: PriceMode = PriceMode.AUTO

    @field_validator(
        "width", "height", "sash_price", "sash_cost", "coefficient",
        "system_id", "fabric_id", "system_color", "fabric_color", "control_side",
        mode="before",
    )
    @classmethod
    def _blank(cls, v):
        return _blank_to_none(v)

    @field_validator("quantity", mode="before")
    @classmethod
    def _default_quantity(cls, v):
        v = _blank_to_none(v)
        return 1 if v is None else v


class ProductComponentLine(_Model):
    component_id: Optional[str] = None
    # None on pre-migration rows; the quantity then lives in the order comment
    quantity: Optional[Decimal] = None

    @field_validator("component_id", "quantity", mode="before")
    @classmethod
    def _blank(cls, v):
        return _blank_to_none(v)


class Order(_Model):
    id: Optional[str] = None
    order_number: Optional[int] = None
    date: Optional[date_type] = None
    dealer_id: Optional[str] = None
    status: OrderStatus = OrderStatus.NEW
    sale_price: Decimal = Decimal("0")
    cost_price: Decimal = Decimal("0")
    comment: Optional[str] = None
    is_paid: bool = False
    cashbox_id: Optional[str] = None
    order_kind: OrderKind = OrderKind.SASH
    sale_price_mode: PriceMode = PriceMode.AUTO
    sashes: List[Sash] = Field(default_factory=list)
    components: List[ProductComponentLine] = Field(default_factory=list)

    @field_validator("sale_price", "cost_price", mode="before")
    @classmethod
    def _blank_money(cls, v):
        v = _blank_to_none(v)
        return Decimal("0") if v is None else v


class PricingCatalog(_Model):
    """
    Reference-data snapshot for one calculation pass: fabrics, systems and
    components plus their stock valuations keyed by item id.
    """
    fabrics: List[Fabric] = Field(default_factory=list)
    systems: List[System] = Field(default_factory=list)
    components: List[Component] = Field(default_factory=list)
    stock: Dict[str, StockValuation] = Field(default_factory=dict)

    def fabric(self, fabric_id: Optional[str]) -> Optional[Fabric]:
        if not fabric_id:
            return None
        return next((f for f in self.fabrics if f.id == fabric_id), None)

    def system(self, system_id: Optional[str]) -> Optional[System]:
        if not system_id:
            return None
        return next((s for s in self.systems if s.id == system_id), None)

    def component(self, component_id: Optional[str]) -> Optional[Component]:
        if not component_id:
            return None
        return next((c for c in self.components if c.id == component_id), None)
