"""FastAPI dependency injection — coefficient table and lookup client."""
import logging
from functools import lru_cache

from app.services.coefficient_service import (
    COEFFICIENT_SERVICE_URL, CoefficientTable, HttpCoefficientClient,
)
from app.services.providers import CoefficientLookup

logger = logging.getLogger("sash-api")


@lru_cache(maxsize=1)
def get_coefficient_table() -> CoefficientTable:
    """Process-wide reference table, loaded on first use from COEFFICIENTS_PATH."""
    return CoefficientTable()


@lru_cache(maxsize=1)
def _remote_lookup() -> HttpCoefficientClient:
    logger.info(f"Using remote coefficient service at {COEFFICIENT_SERVICE_URL}")
    return HttpCoefficientClient(COEFFICIENT_SERVICE_URL)


def get_coefficient_lookup() -> CoefficientLookup:
    """
    Remote service when COEFFICIENT_SERVICE_URL is set, otherwise the local
    table this process serves under /api/coefficients.
    """
    if COEFFICIENT_SERVICE_URL:
        return _remote_lookup()
    return get_coefficient_table()
