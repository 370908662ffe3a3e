"""
conftest.py — Shared pytest fixtures for the sash pricing test suite.

No database or network fixtures are defined here. Coefficient lookups are
served by an in-memory CoefficientTable or by small fake lookups that record
their calls; stock valuations come from a fixed snapshot.

Import-path bootstrapping:
    The ``backend/`` directory is inserted into sys.path so that all
    ``app.*`` imports resolve correctly regardless of where pytest is invoked.
"""

import asyncio
import sys
import os
import pytest

# ---------------------------------------------------------------------------
# Ensure ``backend/`` is on the import path before any app imports occur.
# ---------------------------------------------------------------------------
_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


# ---------------------------------------------------------------------------
# Coefficient table data
#
# System "A1", category "blackout": widths 1.0/1.2/1.5 m, heights 1.0/1.5/2.0 m.
# values[height_index][width_index]; (1.2 m, 1.5 m) sits on the node = 50.
# ---------------------------------------------------------------------------

COEFFICIENT_DATA = {
    "products": {
        "A1": {
            "categories": {
                "blackout": {
                    "widths": [1.0, 1.2, 1.5],
                    "heights": [1.0, 1.5, 2.0],
                    "values": [
                        [40.0, 45.0, 50.0],
                        [45.0, 50.0, 55.0],
                        [50.0, 55.0, 60.0],
                    ],
                },
                "E": {
                    "widths": [1.0, 2.0],
                    "heights": [1.0, 2.0],
                    "values": [[10.0, 20.0], [30.0, 40.0]],
                },
            }
        },
        "uni1_zebra": {
            "categories": {
                "1": {"widths": [1.0], "heights": [1.0], "values": [[99.0]]},
            }
        },
    }
}


@pytest.fixture
def coefficient_data():
    import copy
    return copy.deepcopy(COEFFICIENT_DATA)


@pytest.fixture
def coefficient_table(coefficient_data):
    from app.services.coefficient_service import CoefficientTable
    return CoefficientTable(data=coefficient_data)


# ---------------------------------------------------------------------------
# Reference data snapshot
# ---------------------------------------------------------------------------

@pytest.fixture
def catalog():
    """
    Fabrics (avg price 500/m²): zebra and roll in category "blackout", one
    without a category, one without stock history.
    Components: tube "м" 100, chain "пм" 40, bracket "шт" 35, end cap "шт"
    (no stock).
    Systems:
      sys-a1    key "A1", multiplier 1.1, tube with no size source × 2
      sys-full  key "A1", no multiplier, tube(width) + chain(height ×2)
                + bracket ×2 + end cap ×2
      sys-nokey no coefficient key
    """
    from app.models.pricing_models import PricingCatalog
    return PricingCatalog.model_validate({
        "fabrics": [
            {"id": "fab-zebra", "name": "Зебра Лайт", "category": "blackout", "fabric_type": "zebra", "color": "белый"},
            {"id": "fab-roll", "name": "Рулон Базовый", "category": "blackout", "fabric_type": "roll"},
            {"id": "fab-nocat", "name": "Без категории", "category": None, "fabric_type": "roll"},
            {"id": "fab-noprice", "name": "Новинка", "category": "blackout", "fabric_type": "roll"},
        ],
        "components": [
            {"id": "cmp-tube", "name": "Труба 25мм", "unit": "м"},
            {"id": "cmp-chain", "name": "Цепь", "unit": "пм"},
            {"id": "cmp-bracket", "name": "Кронштейн", "unit": "шт"},
            {"id": "cmp-cap", "name": "Заглушка", "unit": "шт"},
        ],
        "systems": [
            {
                "id": "sys-a1", "name": "UNI-1", "system_key": "A1", "color": "белая",
                "multiplier": {"id": "m1", "name": "Дилерский", "value": "1.1"},
                "components": [
                    {"component_id": "cmp-tube", "quantity": "1", "size_source": None, "size_multiplier": "2"},
                ],
            },
            {
                "id": "sys-full", "name": "UNI-2", "system_key": "A1",
                "components": [
                    {"component_id": "cmp-tube", "quantity": "1", "size_source": "width", "size_multiplier": "1"},
                    {"component_id": "cmp-chain", "quantity": "1", "size_source": "height", "size_multiplier": "2"},
                    {"component_id": "cmp-bracket", "quantity": "2"},
                    {"component_id": "cmp-cap", "quantity": "2"},
                ],
            },
            {"id": "sys-nokey", "name": "Мини", "system_key": None, "components": []},
        ],
        "stock": {
            "fab-zebra": {"quantity": "40", "last_price": "520", "average_price": "500", "total_value": "20000"},
            "fab-roll": {"quantity": "40", "last_price": "480", "average_price": "500", "total_value": "20000"},
            "fab-nocat": {"quantity": "10", "last_price": "300", "average_price": "300", "total_value": "3000"},
            "fab-noprice": {"quantity": "0", "last_price": "0", "average_price": "0", "total_value": "0"},
            "cmp-tube": {"quantity": "100", "last_price": "100", "average_price": "100", "total_value": "10000"},
            "cmp-chain": {"quantity": "100", "last_price": "40", "average_price": "40", "total_value": "4000"},
            "cmp-bracket": {"quantity": "100", "last_price": "35", "average_price": "35", "total_value": "3500"},
        },
    })


@pytest.fixture
def cost_engine(catalog):
    from app.services.cost_engine import SashCostEngine
    return SashCostEngine.from_catalog(catalog)


# ---------------------------------------------------------------------------
# Fake coefficient lookups
# ---------------------------------------------------------------------------

class RecordingLookup:
    """
    Answers with ``coefficient_fn(system_key, category, width_m, height_m)``
    after an optional per-call delay (popped from ``delays`` in call order).
    """

    def __init__(self, coefficient_fn=None, delays=None, error=None):
        self.coefficient_fn = coefficient_fn or (lambda key, cat, w, h: 50.0)
        self.delays = list(delays or [])
        self.error = error
        self.calls = []

    async def lookup_coefficient(self, system_key, category, width_m, height_m):
        self.calls.append((system_key, category, width_m, height_m))
        delay = self.delays.pop(0) if self.delays else 0
        if delay:
            await asyncio.sleep(delay)
        if self.error is not None:
            raise self.error
        return self.coefficient_fn(system_key, category, width_m, height_m)


@pytest.fixture
def recording_lookup():
    return RecordingLookup()


@pytest.fixture
def make_lookup():
    return RecordingLookup


@pytest.fixture
def table_lookup(coefficient_table):
    """A1/blackout answers from the in-memory table, with call recording."""
    return RecordingLookup(coefficient_fn=coefficient_table.get_coefficient)
