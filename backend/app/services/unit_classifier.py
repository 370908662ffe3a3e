"""Unit-of-measure classification for system components."""
from enum import Enum
from typing import Optional


class UnitKind(str, Enum):
    METRIC = "metric"        # consumes length (priced per running metre)
    DISCRETE = "discrete"    # consumes a count (pieces, packs, ...)


# Linear-measure spellings used in the component directory
METRIC_UNIT_ALIASES = frozenset({"м", "пм", "п.м.", "м.п."})


def classify_unit(unit: Optional[str]) -> UnitKind:
    """Return METRIC for the linear-measure aliases, DISCRETE for anything else."""
    if not unit:
        return UnitKind.DISCRETE
    if unit.strip().lower() in METRIC_UNIT_ALIASES:
        return UnitKind.METRIC
    return UnitKind.DISCRETE


def is_metric_unit(unit: Optional[str]) -> bool:
    return classify_unit(unit) is UnitKind.METRIC
