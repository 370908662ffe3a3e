"""
Coefficient reference-table API

POST /api/coefficients/calculate                                   — coefficient for a size
GET  /api/coefficients/systems                                     — system keys in the table
GET  /api/coefficients/systems/{system_key}/categories             — categories of a system
GET  /api/coefficients/systems/{system_key}/categories/{category}/ranges — grid size ranges
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from app.api.deps import get_coefficient_table
from app.services.coefficient_service import CoefficientTable

router = APIRouter(prefix="/api/coefficients", tags=["Coefficients"])
logger = logging.getLogger("sash-coefficient-routes")


# ── Pydantic Models ─────────────────────────────────────────────────────────

class CoefficientRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    system_key: str = Field(..., min_length=1, alias="systemKey")
    category: str = Field(..., min_length=1)
    width: float = Field(..., gt=0, description="Width in metres")
    height: float = Field(..., gt=0, description="Height in metres")


class CoefficientResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    coefficient: float
    system_key: str = Field(alias="systemKey")
    category: str
    used_system_key: str = Field(alias="usedSystemKey")
    used_category: str = Field(alias="usedCategory")


class RangesResponse(BaseModel):
    width_min: Optional[float] = None
    width_max: Optional[float] = None
    height_min: Optional[float] = None
    height_max: Optional[float] = None


# ── Routes ──────────────────────────────────────────────────────────────────

@router.post("/calculate", response_model=CoefficientResponse, response_model_by_alias=True)
async def calculate_coefficient(
    body: CoefficientRequest,
    table: CoefficientTable = Depends(get_coefficient_table),
):
    match = table.get_coefficient_detailed(body.system_key, body.category, body.width, body.height)
    if match is None:
        raise HTTPException(
            status_code=404,
            detail=f"No coefficient for system '{body.system_key}', category '{body.category}'",
        )
    return CoefficientResponse(
        coefficient=match.coefficient,
        system_key=match.system_key,
        category=match.category,
        used_system_key=match.used_system_key,
        used_category=match.used_category,
    )


@router.get("/systems", response_model=List[str])
async def list_systems(table: CoefficientTable = Depends(get_coefficient_table)):
    return table.available_systems()


@router.get("/systems/{system_key}/categories", response_model=List[str])
async def list_categories(system_key: str, table: CoefficientTable = Depends(get_coefficient_table)):
    categories = table.system_categories(system_key)
    if not categories:
        raise HTTPException(status_code=404, detail=f"System '{system_key}' not found")
    return categories


@router.get("/systems/{system_key}/categories/{category}/ranges", response_model=RangesResponse)
async def get_ranges(
    system_key: str,
    category: str,
    table: CoefficientTable = Depends(get_coefficient_table),
):
    ranges = table.coefficient_ranges(system_key, category)
    if ranges.width_range is None and ranges.height_range is None:
        raise HTTPException(status_code=404, detail=f"No grid for '{system_key}' / '{category}'")
    response = RangesResponse()
    if ranges.width_range:
        response.width_min, response.width_max = ranges.width_range
    if ranges.height_range:
        response.height_min, response.height_max = ranges.height_range
    return response
