"""
test_import_safety.py — Module import and circular import checks.

Verifies that:
  1. Every service, model and API module imports cleanly on its own.
  2. Importing the coefficient service does not read the table file; it is
     loaded on first lookup.
  3. The app module builds the FastAPI application with both routers.

No database, network, or external services are required.
"""

import sys
import os
import importlib
import pytest

_BACKEND_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)


MODULES = [
    "app.models.pricing_models",
    "app.services.unit_classifier",
    "app.services.money",
    "app.services.providers",
    "app.services.cost_engine",
    "app.services.price_engine",
    "app.services.coefficient_service",
    "app.services.order_engine",
    "app.services.collation_engine",
    "app.services.report_engine",
    "app.services.logging_config",
    "app.services.middleware",
    "app.api.deps",
    "app.api.coefficient_routes",
    "app.api.pricing_routes",
    "app.main",
]


class TestModuleImports:

    @pytest.mark.parametrize("module_name", MODULES)
    def test_module_imports(self, module_name):
        module = importlib.import_module(module_name)
        assert module is not None

    def test_table_is_loaded_lazily(self, tmp_path):
        from app.services.coefficient_service import CoefficientTable
        path = tmp_path / "coefficients.json"
        table = CoefficientTable(path=str(path))
        # file created after construction is still picked up on first use
        path.write_text('{"products": {"A1": {"categories": {}}}}', encoding="utf-8")
        assert table.available_systems() == ["A1"]

    def test_app_routes_registered(self):
        from app.main import app
        paths = {getattr(route, "path", None) for route in app.routes}
        assert "/health" in paths
        assert "/api/coefficients/calculate" in paths
        assert "/api/pricing/order-totals" in paths
        assert "/api/pricing/documents/{doc_type}" in paths
