"""
Sash sale price: reference coefficient × system price multiplier.

The price is only computed when the line is fully specified (positive width and
height, a system with a coefficient key, a fabric with a category). A partially
specified line is INCOMPLETE and priced at 0; orders may be priced by hand.

A fully specified line for which the table has no coefficient is
MISSING_REFERENCE: also 0, but flagged so staff fix the reference table instead
of trusting a zero panel price.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from app.models.pricing_models import Fabric, System
from app.services.money import ONE, ZERO, mm_to_m, quantize_money, to_decimal
from app.services.providers import CoefficientLookup

logger = logging.getLogger("sash-price")


class PriceStatus(str, Enum):
    PRICED = "priced"
    INCOMPLETE = "incomplete"
    MISSING_REFERENCE = "missing_reference"
    PENDING = "pending"
    MANUAL = "manual"


@dataclass
class SashPriceResult:
    status: PriceStatus
    price: Decimal = ZERO
    coefficient: Optional[Decimal] = None
    multiplier: Decimal = ONE

    @property
    def is_missing_reference(self) -> bool:
        return self.status is PriceStatus.MISSING_REFERENCE


def system_multiplier(system: Optional[System]) -> Decimal:
    if system is None or system.multiplier is None:
        return ONE
    return to_decimal(system.multiplier.value, ONE)


def has_pricing_inputs(width_mm, height_mm, system: Optional[System], fabric: Optional[Fabric]) -> bool:
    return (
        to_decimal(width_mm) > 0
        and to_decimal(height_mm) > 0
        and system is not None
        and bool((system.system_key or "").strip())
        and fabric is not None
        and bool((fabric.category or "").strip())
    )


async def compute_sash_price(
    width_mm,
    height_mm,
    system: Optional[System],
    fabric: Optional[Fabric],
    lookup: CoefficientLookup,
) -> SashPriceResult:
    """Price one sash through the coefficient lookup. Never raises."""
    if not has_pricing_inputs(width_mm, height_mm, system, fabric):
        return SashPriceResult(status=PriceStatus.INCOMPLETE)

    width_m = mm_to_m(to_decimal(width_mm))
    height_m = mm_to_m(to_decimal(height_mm))
    system_key = system.system_key.strip()
    category = fabric.category.strip()
    multiplier = system_multiplier(system)

    try:
        raw = await lookup.lookup_coefficient(system_key, category, float(width_m), float(height_m))
    except Exception as e:
        # Lookup failures must not block saving the order; same as "not found"
        logger.warning(f"Coefficient lookup error for {system_key}/{category}: {type(e).__name__}: {e}")
        raw = None

    if raw is None or to_decimal(raw) == 0:
        logger.warning(
            f"No coefficient for system '{system_key}', category '{category}', "
            f"size {width_m}×{height_m} m — reference data missing"
        )
        return SashPriceResult(status=PriceStatus.MISSING_REFERENCE, multiplier=multiplier)

    coefficient = to_decimal(raw)
    return SashPriceResult(
        status=PriceStatus.PRICED,
        price=quantize_money(coefficient * multiplier),
        coefficient=coefficient,
        multiplier=multiplier,
    )
