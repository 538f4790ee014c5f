"""
test_engine_routes.py — HTTP surface of the quote engine.

The snapshot dependencies are overridden with in-memory stores, so no
database is needed. The lifespan is not entered (no ``with TestClient``).
"""

import logging

import pytest
from fastapi.testclient import TestClient

from app.api.engine_routes import get_graph_store, get_order_store
from app.main import app
from app.services.graph_store import OrderHeader, OrderTaxLine, ProcessAssignment

BASE = "/api/v1/engine"


@pytest.fixture
def client(order_store):
    app.dependency_overrides[get_graph_store] = lambda: order_store
    app.dependency_overrides[get_order_store] = lambda: order_store
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "active"

    def test_request_id_echoed(self, client):
        resp = client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["X-Request-ID"] == "abc-123"
        assert "X-Process-Time" in resp.headers


class TestRequestLogging:
    """The request log line carries the order or product the path addressed."""

    def _records(self, caplog):
        return [r for r in caplog.records if r.name == "quoter-api.middleware"]

    def test_order_id_tagged(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="quoter-api.middleware"):
            client.get(f"{BASE}/orders/O1/quote")
        [record] = self._records(caplog)
        assert record.order_id == "O1"
        assert record.http_status == 200
        assert record.levelno == logging.INFO
        assert "[order_id=O1]" in record.getMessage()

    def test_failed_product_request_logged_as_warning(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="quoter-api.middleware"):
            client.get(f"{BASE}/products/NOPE/materials")
        [record] = self._records(caplog)
        assert record.product_id == "NOPE"
        assert record.levelno == logging.WARNING

    def test_health_not_logged(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="quoter-api.middleware"):
            client.get("/health")
        assert self._records(caplog) == []

    def test_unparameterised_route_has_no_ids(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="quoter-api.middleware"):
            client.get(f"{BASE}/products/hierarchy")
        [record] = self._records(caplog)
        assert not hasattr(record, "order_id")
        assert not hasattr(record, "product_id")


class TestProductRoutes:

    def test_materials(self, client):
        resp = client.get(f"{BASE}/products/A/materials", params={"quantity": 2})
        assert resp.status_code == 200
        body = resp.json()
        assert body["materials"] == {"C": 14.0}
        assert body["requirements"][0]["subtotal"] == 140.0
        assert body["errors"] == []

    def test_materials_unknown_product_404(self, client):
        resp = client.get(f"{BASE}/products/NOPE/materials")
        assert resp.status_code == 404
        assert resp.json()["detail"]["code"] == "NOT_FOUND"

    def test_materials_rejects_zero_quantity(self, client):
        assert client.get(f"{BASE}/products/A/materials", params={"quantity": 0}).status_code == 422

    def test_product_cost(self, client):
        resp = client.get(f"{BASE}/products/A/cost")
        assert resp.status_code == 200
        assert resp.json()["cost_with_margin"] == 70.0

    def test_hierarchy(self, client):
        body = client.get(f"{BASE}/products/hierarchy").json()
        assert [r["id"] for r in body["roots"]] == ["A"]
        assert body["errors"] == []

    def test_hierarchy_hides_base_materials(self, client):
        body = client.get(f"{BASE}/products/hierarchy", params={"show_base_materials": "false"}).json()
        [root] = body["roots"]
        assert [c["id"] for c in root["children"]] == ["B"]

    def test_hierarchy_term_filter(self, client):
        body = client.get(f"{BASE}/products/hierarchy", params={"term": "nothing-matches"}).json()
        assert body["roots"] == []

    def test_cycle_check(self, client):
        resp = client.post(f"{BASE}/products/C/dependencies/cycle-check", json={"child_id": "A"})
        assert resp.status_code == 200
        assert resp.json()["would_create_cycle"] is True

    def test_cycle_check_ok(self, client):
        resp = client.post(f"{BASE}/products/B/dependencies/cycle-check", json={"child_id": "C"})
        assert resp.json()["would_create_cycle"] is False

    def test_validate_edge_conflict(self, client):
        resp = client.post(
            f"{BASE}/products/B/dependencies/validate",
            json={"child_id": "A", "quantity_per_unit": 1},
        )
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "CYCLE_DETECTED"

    @pytest.mark.parametrize("qty", [0, -2, "NaN", "Infinity"])
    def test_validate_edge_bad_quantity_rejected_by_schema(self, client, qty):
        resp = client.post(
            f"{BASE}/products/B/dependencies/validate",
            json={"child_id": "C", "quantity_per_unit": qty},
        )
        assert resp.status_code == 422

    def test_validate_edge_duplicate(self, client):
        resp = client.post(
            f"{BASE}/products/A/dependencies/validate",
            json={"child_id": "B", "quantity_per_unit": 1},
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "INVALID_EDGE"

    def test_validate_edge_replacing(self, client):
        resp = client.post(
            f"{BASE}/products/B/dependencies/validate",
            json={"child_id": "C", "quantity_per_unit": 5, "replacing_child_id": "C"},
        )
        assert resp.status_code == 200
        assert resp.json() == {"valid": True}


class TestOrderRoutes:

    def test_costs(self, client):
        body = client.get(f"{BASE}/orders/O1/costs").json()
        assert body["materials"]["subtotal"] == 140.0
        assert [i["name"] for i in body["processes"]["items"]] == ["Cutting", "Welding"]

    def test_quote(self, client):
        body = client.get(f"{BASE}/orders/O1/quote").json()
        assert body["quote"]["final_total"] == 500.0
        assert body["is_partial"] is False

    def test_quote_includes_named_tax_chain(self, client, order_store):
        order_store.add_order_tax("O1", OrderTaxLine("ISS", 5.0, position=1))
        body = client.get(f"{BASE}/orders/O1/quote").json()
        assert body["quote"]["final_total"] == 500.0
        assert [s["name"] for s in body["tax_chain"]["steps"]] == ["ISS"]
        assert body["tax_chain"]["final_total"] == round(500.0 / 0.95, 2)

    def test_partial_quote_still_200(self, client, order_store):
        order_store.add_order_process("O1", ProcessAssignment("P-GONE", 1.0, None))
        resp = client.get(f"{BASE}/orders/O1/quote")
        assert resp.status_code == 200
        assert resp.json()["is_partial"] is True

    def test_unknown_order_404(self, client):
        assert client.get(f"{BASE}/orders/NOPE/quote").status_code == 404

    def test_invalid_order_rate_422(self, client, order_store):
        order_store.add_order(OrderHeader("O-BAD", "A", 1.0, tax_pct=150.0))
        resp = client.get(f"{BASE}/orders/O-BAD/quote")
        assert resp.status_code == 422
        assert resp.json()["detail"]["code"] == "INVALID_RATE"


class TestAdHocQuotes:

    def test_cascade(self, client):
        resp = client.post(f"{BASE}/quotes/cascade", json={
            "materials_cost": 58000, "margin_pct": 42, "tax_pct": 18,
        })
        body = resp.json()
        assert body["total_with_margin"] == 100000.0
        assert body["final_total"] == 121951.22

    def test_cascade_margin_100_rejected(self, client):
        resp = client.post(f"{BASE}/quotes/cascade", json={"materials_cost": 10, "margin_pct": 100})
        assert resp.status_code == 422

    def test_tax_chain(self, client):
        resp = client.post(f"{BASE}/quotes/tax-chain", json={
            "amount": 1000, "taxes": [{"name": "ISS", "pct": 5}, {"name": "ICMS", "pct": 18}],
        })
        body = resp.json()
        assert [s["name"] for s in body["steps"]] == ["ISS", "ICMS"]
        assert body["final_total"] == round(1000 / 0.95 / 0.82, 2)
