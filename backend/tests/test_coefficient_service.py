"""
test_coefficient_service.py — Coefficient reference table and HTTP client.

Tests cover:
  - Bilinear interpolation at grid nodes, between nodes and clamped outside
  - Case-insensitive system key / category matching
  - Malformed grids and unknown keys → None
  - Table loading from JSON files (missing / malformed files → empty table)
  - HttpCoefficientClient against httpx.MockTransport: success, caching,
    404, server errors, transport errors
"""

import asyncio
import json

import httpx
import pytest

from app.services.coefficient_service import (
    CoefficientTable, HttpCoefficientClient, bilinear_interpolate,
)


# ===========================================================================
# Class 1: Interpolation
# ===========================================================================

class TestBilinearInterpolation:

    XS = [1.0, 1.2, 1.5]
    YS = [1.0, 1.5, 2.0]
    VALUES = [
        [40.0, 45.0, 50.0],
        [45.0, 50.0, 55.0],
        [50.0, 55.0, 60.0],
    ]

    @pytest.mark.parametrize("x,y,expected", [
        (1.0, 1.0, 40.0),
        (1.2, 1.5, 50.0),
        (1.5, 2.0, 60.0),
        (1.5, 1.0, 50.0),
    ])
    def test_grid_nodes_return_node_value(self, x, y, expected):
        assert bilinear_interpolate(x, y, self.XS, self.YS, self.VALUES) == pytest.approx(expected)

    def test_between_nodes(self):
        """
        (1.1, 1.25) sits half-way in both directions of the cell
        40 / 45 / 45 / 50 → 45.
        """
        assert bilinear_interpolate(1.1, 1.25, self.XS, self.YS, self.VALUES) == pytest.approx(45.0)

    def test_between_nodes_on_one_axis(self):
        """Width on a node (1.2), height half-way 1.0→1.5: 45 → 50 gives 47.5."""
        assert bilinear_interpolate(1.2, 1.25, self.XS, self.YS, self.VALUES) == pytest.approx(47.5)

    @pytest.mark.parametrize("x,y,expected", [
        (0.5, 0.5, 40.0),
        (3.0, 3.0, 60.0),
        (0.5, 1.25, 42.5),
        (1.1, 5.0, 52.5),
    ])
    def test_outside_grid_is_clamped(self, x, y, expected):
        assert bilinear_interpolate(x, y, self.XS, self.YS, self.VALUES) == pytest.approx(expected)


# ===========================================================================
# Class 2: Table lookups
# ===========================================================================

class TestCoefficientTable:

    def test_exact_lookup(self, coefficient_table):
        assert coefficient_table.get_coefficient("A1", "blackout", 1.2, 1.5) == pytest.approx(50.0)

    def test_case_insensitive_system_and_category(self, coefficient_table):
        match = coefficient_table.get_coefficient_detailed("a1", "e", 1.0, 1.0)
        assert match.coefficient == pytest.approx(10.0)
        assert match.system_key == "a1"
        assert match.category == "e"
        assert match.used_system_key == "A1"
        assert match.used_category == "E"

    def test_mixed_case_system_key(self, coefficient_table):
        assert coefficient_table.get_coefficient("UNI1_ZEBRA", "1", 2.0, 2.0) == pytest.approx(99.0)

    def test_unknown_system_and_category(self, coefficient_table):
        assert coefficient_table.get_coefficient("Z9", "blackout", 1.2, 1.5) is None
        assert coefficient_table.get_coefficient("A1", "jacquard", 1.2, 1.5) is None

    def test_malformed_grid_returns_none(self):
        table = CoefficientTable(data={"products": {"A1": {"categories": {
            "x": {"widths": [1.0, 2.0], "heights": [1.0], "values": [[1.0]]},
        }}}})
        assert table.get_coefficient("A1", "x", 1.0, 1.0) is None

    def test_async_lookup_matches_sync(self, coefficient_table):
        value = asyncio.run(coefficient_table.lookup_coefficient("A1", "blackout", 1.1, 1.25))
        assert value == pytest.approx(45.0)

    def test_directory_queries(self, coefficient_table):
        assert coefficient_table.available_systems() == ["A1", "uni1_zebra"]
        assert coefficient_table.system_categories("a1") == ["blackout", "E"]
        assert coefficient_table.system_categories("nope") == []
        ranges = coefficient_table.coefficient_ranges("A1", "BLACKOUT")
        assert ranges.width_range == (1.0, 1.5)
        assert ranges.height_range == (1.0, 2.0)
        missing = coefficient_table.coefficient_ranges("A1", "nope")
        assert missing.width_range is None and missing.height_range is None


class TestTableLoading:

    def test_loads_from_json_file(self, tmp_path, coefficient_data):
        path = tmp_path / "coefficients.json"
        path.write_text(json.dumps(coefficient_data), encoding="utf-8")
        table = CoefficientTable.from_file(str(path))
        assert table.get_coefficient("A1", "blackout", 1.2, 1.5) == pytest.approx(50.0)

    def test_missing_file_is_empty_table(self, tmp_path):
        table = CoefficientTable(path=str(tmp_path / "absent.json"))
        assert table.available_systems() == []
        assert table.get_coefficient("A1", "blackout", 1.2, 1.5) is None

    def test_malformed_file_is_empty_table(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        table = CoefficientTable(path=str(path))
        assert table.available_systems() == []

    def test_document_without_products_is_empty_table(self, tmp_path):
        path = tmp_path / "other.json"
        path.write_text(json.dumps({"systems": []}), encoding="utf-8")
        assert CoefficientTable(path=str(path)).products == {}

    def test_reload_picks_up_new_file_contents(self, tmp_path, coefficient_data):
        path = tmp_path / "coefficients.json"
        path.write_text(json.dumps({"products": {}}), encoding="utf-8")
        table = CoefficientTable(path=str(path))
        assert table.available_systems() == []
        path.write_text(json.dumps(coefficient_data), encoding="utf-8")
        table.reload()
        assert "A1" in table.available_systems()


# ===========================================================================
# Class 3: HTTP client
# ===========================================================================

def _client_for(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpCoefficientClient:

    def test_posts_payload_and_caches_success(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"coefficient": 50.0, "systemKey": "A1"})

        async def scenario():
            async with _client_for(handler) as http:
                client = HttpCoefficientClient("http://coeff.local/", client=http)
                first = await client.lookup_coefficient("A1", "blackout", 1.2, 1.5)
                second = await client.lookup_coefficient("A1", "blackout", 1.2, 1.5)
                return first, second

        first, second = asyncio.run(scenario())
        assert first == second == 50.0
        assert len(requests) == 1
        assert str(requests[0].url) == "http://coeff.local/api/coefficients/calculate"
        assert json.loads(requests[0].content) == {
            "systemKey": "A1", "category": "blackout", "width": 1.2, "height": 1.5,
        }

    def test_cache_key_rounds_to_millimetre(self):
        assert HttpCoefficientClient.cache_key("A1", "E", 1.2, 1.5) == "A1_E_1.200_1.500"
        assert HttpCoefficientClient.cache_key("A1", "E", 1.2, 1.5) == \
            HttpCoefficientClient.cache_key("A1", "E", 1.20004, 1.49996)

    @pytest.mark.parametrize("status", [404, 500, 503])
    def test_error_statuses_are_not_found_and_not_cached(self, status):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(status, json={"detail": "nope"})

        async def scenario():
            async with _client_for(handler) as http:
                client = HttpCoefficientClient("http://coeff.local", client=http)
                first = await client.lookup_coefficient("A1", "blackout", 1.2, 1.5)
                second = await client.lookup_coefficient("A1", "blackout", 1.2, 1.5)
                return first, second

        assert asyncio.run(scenario()) == (None, None)
        assert len(calls) == 2

    def test_transport_error_returns_none(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async def scenario():
            async with _client_for(handler) as http:
                client = HttpCoefficientClient("http://coeff.local", client=http)
                return await client.lookup_coefficient("A1", "blackout", 1.2, 1.5)

        assert asyncio.run(scenario()) is None

    @pytest.mark.parametrize("body", [
        b"not json", b"[1, 2]", b'{"coefficient": 0}', b"{}",
        b'{"coefficient": "n/a"}', b'{"coefficient": [50]}',
    ])
    def test_unusable_bodies_return_none(self, body):
        def handler(request):
            return httpx.Response(200, content=body)

        async def scenario():
            async with _client_for(handler) as http:
                client = HttpCoefficientClient("http://coeff.local", client=http)
                return await client.lookup_coefficient("A1", "blackout", 1.2, 1.5)

        assert asyncio.run(scenario()) is None

    def test_clear_cache_forces_new_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"coefficient": 42})

        async def scenario():
            async with _client_for(handler) as http:
                client = HttpCoefficientClient("http://coeff.local", client=http)
                await client.lookup_coefficient("A1", "E", 1.0, 1.0)
                client.clear_cache()
                return await client.lookup_coefficient("A1", "E", 1.0, 1.0)

        assert asyncio.run(scenario()) == 42.0
        assert len(calls) == 2
