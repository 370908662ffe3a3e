"""
Coefficient Lookup Service — reference-table price factors per
(system key, fabric category, width m, height m).

Two implementations of the CoefficientLookup contract:

  CoefficientTable        the table itself, loaded from a JSON document:
                            {"products": {"<system_key>": {"categories": {
                                "<category>": {"widths":  [m, ...],
                                               "heights": [m, ...],
                                               "values":  [[...per width...] per height]}}}}}
                          Sizes between grid nodes are bilinearly interpolated;
                          sizes outside the grid are clamped to the edge.

  HttpCoefficientClient   async client for a remote table exposed at
                          POST /api/coefficients/calculate.

"Not found" is always None. Transport failures are logged and reported as
None as well; there is no retry, the next edit to the line asks again.
"""
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import httpx

logger = logging.getLogger("sash-coefficients")

COEFFICIENTS_PATH = os.getenv(
    "COEFFICIENTS_PATH",
    os.path.join(os.path.dirname(os.path.dirname(__file__)), "data", "coefficients.json"),
)
COEFFICIENT_SERVICE_URL = os.getenv("COEFFICIENT_SERVICE_URL", "")
COEFFICIENT_TIMEOUT_S = float(os.getenv("COEFFICIENT_TIMEOUT_S", "10"))


@dataclass
class CoefficientMatch:
    coefficient: float
    system_key: str
    category: str
    used_system_key: str
    used_category: str


@dataclass
class CoefficientRanges:
    width_range: Optional[Tuple[float, float]]
    height_range: Optional[Tuple[float, float]]


def _bracket(value: float, axis: List[float]) -> Tuple[int, int]:
    """Indices of the grid nodes surrounding ``value`` (equal at or beyond the edges)."""
    last = len(axis) - 1
    if value <= axis[0]:
        return 0, 0
    if value >= axis[last]:
        return last, last
    for i in range(last):
        if axis[i] <= value <= axis[i + 1]:
            return i, i + 1
    return 0, last


def bilinear_interpolate(
    x: float, y: float, xs: List[float], ys: List[float], values: List[List[float]]
) -> float:
    """
    Interpolate values[y_index][x_index] at (x, y). x runs along widths,
    y along heights.
    """
    x1i, x2i = _bracket(x, xs)
    y1i, y2i = _bracket(y, ys)
    x1, x2 = xs[x1i], xs[x2i]
    y1, y2 = ys[y1i], ys[y2i]

    q11 = values[y1i][x1i]
    q12 = values[y2i][x1i]
    q21 = values[y1i][x2i]
    q22 = values[y2i][x2i]

    if x1 == x2 and y1 == y2:
        return q11
    if x1 == x2:
        return q11 + (y - y1) / (y2 - y1) * (q12 - q11)
    if y1 == y2:
        return q11 + (x - x1) / (x2 - x1) * (q21 - q11)

    r1 = (x2 - x) / (x2 - x1) * q11 + (x - x1) / (x2 - x1) * q21
    r2 = (x2 - x) / (x2 - x1) * q12 + (x - x1) / (x2 - x1) * q22
    return (y2 - y) / (y2 - y1) * r1 + (y - y1) / (y2 - y1) * r2


def _resolve_key(requested: str, available: Dict[str, Any]) -> Optional[str]:
    """Exact key first, then a case-insensitive match ("E" vs "e", "UNI1_ZEBRA")."""
    if requested in available:
        return requested
    wanted = requested.strip().lower()
    for key in available:
        if key.lower() == wanted:
            return key
    return None


class CoefficientTable:
    """In-process reference table. Loads lazily and keeps the parsed document."""

    def __init__(self, data: Optional[Dict[str, Any]] = None, path: Optional[str] = None) -> None:
        self._path = path or COEFFICIENTS_PATH
        self._data: Optional[Dict[str, Any]] = data

    @classmethod
    def from_file(cls, path: str) -> "CoefficientTable":
        return cls(path=path)

    def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data
        if not os.path.exists(self._path):
            logger.warning(f"Coefficient table {self._path} not found — using empty table")
            return {"products": {}}
        try:
            with open(self._path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load coefficient table {self._path}: {e}")
            return {"products": {}}
        if not isinstance(data, dict) or not isinstance(data.get("products"), dict):
            logger.error(f"Coefficient table {self._path} has no 'products' mapping")
            return {"products": {}}
        self._data = data
        logger.info(f"Coefficient table loaded: {len(data['products'])} systems")
        return data

    @property
    def products(self) -> Dict[str, Any]:
        return self._load().get("products", {})

    def reload(self) -> None:
        self._data = None

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_coefficient_detailed(
        self, system_key: str, category: str, width_m: float, height_m: float
    ) -> Optional[CoefficientMatch]:
        products = self.products
        used_key = _resolve_key(system_key, products)
        if used_key is None:
            logger.warning(f"System '{system_key}' not found in coefficient table")
            return None

        categories = products[used_key].get("categories", {})
        used_category = _resolve_key(str(category), categories)
        if used_category is None:
            logger.warning(f"Category '{category}' not found for system '{used_key}'")
            return None

        grid = categories[used_category]
        widths = grid.get("widths") or []
        heights = grid.get("heights") or []
        values = grid.get("values") or []
        if not widths or not heights or len(values) != len(heights) or any(
            len(row) != len(widths) for row in values
        ):
            logger.warning(f"Malformed grid for system '{used_key}', category '{used_category}'")
            return None

        coefficient = bilinear_interpolate(float(width_m), float(height_m), widths, heights, values)
        return CoefficientMatch(
            coefficient=coefficient,
            system_key=system_key,
            category=str(category),
            used_system_key=used_key,
            used_category=used_category,
        )

    def get_coefficient(
        self, system_key: str, category: str, width_m: float, height_m: float
    ) -> Optional[float]:
        match = self.get_coefficient_detailed(system_key, category, width_m, height_m)
        return match.coefficient if match else None

    async def lookup_coefficient(
        self, system_key: str, category: str, width_m: float, height_m: float
    ) -> Optional[float]:
        return self.get_coefficient(system_key, category, width_m, height_m)

    # ------------------------------------------------------------------
    # Directory queries
    # ------------------------------------------------------------------

    def available_systems(self) -> List[str]:
        return list(self.products.keys())

    def system_categories(self, system_key: str) -> List[str]:
        used_key = _resolve_key(system_key, self.products)
        if used_key is None:
            return []
        return list(self.products[used_key].get("categories", {}).keys())

    def coefficient_ranges(self, system_key: str, category: str) -> CoefficientRanges:
        used_key = _resolve_key(system_key, self.products)
        if used_key is None:
            return CoefficientRanges(None, None)
        categories = self.products[used_key].get("categories", {})
        used_category = _resolve_key(category, categories)
        if used_category is None:
            return CoefficientRanges(None, None)
        widths = categories[used_category].get("widths") or []
        heights = categories[used_category].get("heights") or []
        return CoefficientRanges(
            width_range=(widths[0], widths[-1]) if widths else None,
            height_range=(heights[0], heights[-1]) if heights else None,
        )


class HttpCoefficientClient:
    """
    Remote lookup. Successful answers are cached per
    (system key, category, width, height) rounded to the millimetre; misses
    are not cached so fixed reference data is picked up on the next edit.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = (base_url if base_url is not None else COEFFICIENT_SERVICE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else COEFFICIENT_TIMEOUT_S
        self._client = client
        self._cache: Dict[str, float] = {}

    @staticmethod
    def cache_key(system_key: str, category: str, width_m: float, height_m: float) -> str:
        return f"{system_key}_{category}_{float(width_m):.3f}_{float(height_m):.3f}"

    def clear_cache(self) -> None:
        self._cache.clear()

    async def lookup_coefficient(
        self, system_key: str, category: str, width_m: float, height_m: float
    ) -> Optional[float]:
        key = self.cache_key(system_key, category, width_m, height_m)
        if key in self._cache:
            return self._cache[key]

        payload = {
            "systemKey": system_key,
            "category": category,
            "width": float(width_m),
            "height": float(height_m),
        }
        url = f"{self.base_url}/api/coefficients/calculate"
        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            logger.warning(f"Coefficient lookup failed for {key}: {e}")
            return None

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.warning(f"Coefficient service returned {response.status_code} for {key}")
            return None

        try:
            body = response.json()
        except ValueError as e:
            logger.warning(f"Coefficient service sent invalid JSON for {key}: {e}")
            return None
        coefficient = body.get("coefficient") if isinstance(body, dict) else None
        if not coefficient:
            return None

        try:
            value = float(coefficient)
        except (TypeError, ValueError):
            logger.warning(f"Coefficient service sent non-numeric coefficient {coefficient!r} for {key}")
            return None

        self._cache[key] = value
        return value
