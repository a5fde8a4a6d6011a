"""HTTP tests for the FastAPI application."""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from production_tracker.web.app import create_app


def future(days: int = 7) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def create_item(client, **body):
    response = client.post("/api/inventory", json=body)
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def model(client):
    frame = create_item(client, name="Frame", type="component", sku="cmp-frm")
    panel = create_item(client, name="Panel", type="component", sku="cmp-pnl")
    create_item(client, name="Steel", type="material", sku="mat-stl", unit="kg", quantity=20)
    return create_item(
        client,
        name="Workbench",
        type="model",
        sku="mod-wb",
        estimated_manufacturing_time=2,
        components=[frame["id"], panel["id"]],
        can_manufacture=True,
    )


@pytest.fixture
def order(client, model):
    response = client.post(
        "/api/manufacturing-orders",
        json={"model_id": model["id"], "quantity": 3, "client_name": "Acme", "due_date": future()},
    )
    assert response.status_code == 201, response.text
    return response.json()["data"]


class TestEnvelope:
    def test_health(self, client):
        body = client.get("/health").json()
        assert body["success"] is True
        assert body["data"]["status"] == "ok"

    def test_not_found(self, client):
        response = client.get("/api/manufacturing-orders/missing")
        assert response.status_code == 404
        assert response.json() == {"success": False, "message": "Order 'missing' not found"}

    def test_request_validation_is_400(self, client):
        response = client.post("/api/inventory", json={"type": "material"})
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_duplicate_sku_is_409(self, client):
        create_item(client, name="Bolt", type="material", sku="bolt")
        response = client.post("/api/inventory", json={"name": "Bolt", "type": "material", "sku": "BOLT"})
        assert response.status_code == 409
        assert response.json()["success"] is False


class TestInventoryRoutes:
    def test_lookup_and_quantity(self, client, model):
        by_sku = client.get("/api/inventory/sku/MOD-WB").json()["data"]
        assert by_sku["id"] == model["id"]

        response = client.patch(f"/api/inventory/{model['id']}/quantity", json={"quantity": 4})
        assert response.json()["data"]["quantity"] == 4

        response = client.patch(f"/api/inventory/{model['id']}/quantity", json={"quantity": -1})
        assert response.status_code == 400

    def test_filters_and_stats(self, client, model):
        materials = client.get("/api/inventory", params={"type": "material"}).json()["data"]
        assert [item["sku"] for item in materials] == ["MAT-STL"]
        stats = client.get("/api/inventory/stats").json()["data"]
        assert stats["total_items"] == 4
        assert stats["by_type"]["component"] == 2

    def test_update_and_delete(self, client, model):
        response = client.put(f"/api/inventory/{model['id']}", json={"location": "Hall B"})
        assert response.json()["data"]["location"] == "Hall B"
        assert client.delete(f"/api/inventory/{model['id']}").status_code == 200
        assert client.get(f"/api/inventory/{model['id']}").status_code == 404


class TestOrderRoutes:
    def test_create(self, order):
        assert order["order"]["estimated_hours"] == 6
        assert order["order"]["status"] == "pending"
        assert [card["estimated_hours"] for card in order["cards"]] == [2, 2, 2]
        assert order["cards"][0]["label"] == "Acme (1/3)"

    def test_create_for_unbuildable_model_is_409(self, client):
        draft = create_item(client, name="Stool", type="model", sku="mod-stl")
        response = client.post(
            "/api/manufacturing-orders",
            json={"model_id": draft["id"], "quantity": 1, "client_name": "Acme", "due_date": future()},
        )
        assert response.status_code == 409

    def test_past_due_date_is_400(self, client, model):
        response = client.post(
            "/api/manufacturing-orders",
            json={"model_id": model["id"], "quantity": 1, "client_name": "Acme", "due_date": future(-1)},
        )
        assert response.status_code == 400

    def test_full_lifecycle(self, client, model, order):
        order_id = order["order"]["id"]
        base = f"/api/manufacturing-orders/{order_id}"
        assert client.post(f"{base}/start").json()["data"]["status"] == "in_progress"
        assert client.post(f"{base}/complete").status_code == 409

        for component in order["order"]["components"]:
            response = client.post(f"{base}/components/{component['component_id']}/complete")
            assert response.status_code == 200
        assert client.get(base).json()["data"]["progress"] == 100

        completed = client.post(f"{base}/complete").json()["data"]
        assert completed["status"] == "completed"
        assert client.get(f"/api/inventory/{model['id']}").json()["data"]["quantity"] == 3
        assert client.post(f"{base}/cancel").status_code == 409

    def test_production_time(self, client, order):
        base = f"/api/manufacturing-orders/{order['order']['id']}"
        assert client.get(f"{base}/production-time").json()["data"] == {"minutes": 0}
        client.post(f"{base}/start")
        client.post(f"{base}/pause")
        assert client.post(f"{base}/pause").status_code == 409
        assert client.post(f"{base}/resume").status_code == 200

    def test_queue_stats_and_delete(self, client, order):
        order_id = order["order"]["id"]
        queue = client.get("/api/manufacturing-orders/production-queue").json()["data"]
        assert [o["id"] for o in queue] == [order_id]
        stats = client.get("/api/manufacturing-orders/stats").json()["data"]
        assert stats["total_quantity"] == 3

        deleted = client.delete(f"/api/manufacturing-orders/{order_id}").json()["data"]
        assert deleted == {"deleted_cards": 3}
        assert client.get(f"/api/production-cards/order/{order_id}").json()["data"] == []


class TestCardRoutes:
    def test_priority_and_listing(self, client, order):
        cards = order["cards"]
        response = client.patch(
            f"/api/production-cards/{cards[2]['id']}/priority", json={"priority": "urgent"}
        )
        assert response.json()["data"]["priority"] == "urgent"
        listed = client.get("/api/production-cards").json()["data"]
        assert listed[0]["id"] == cards[2]["id"]

        response = client.patch(
            f"/api/production-cards/{cards[0]['id']}/priority", json={"priority": "critical"}
        )
        assert response.status_code == 400

    def test_card_completion_adds_one_unit(self, client, model, order):
        card = order["cards"][0]
        base = f"/api/production-cards/{card['id']}"
        client.post(f"{base}/start")
        for component in card["components"]:
            client.post(f"{base}/components/{component['component_id']}/complete")
        assert client.post(f"{base}/complete").json()["data"]["status"] == "completed"
        assert client.get(f"/api/inventory/{model['id']}").json()["data"]["quantity"] == 1

    def test_component_timer_and_materials(self, client, order):
        card = order["cards"][1]
        component_id = card["components"][0]["component_id"]
        base = f"/api/production-cards/{card['id']}/components/{component_id}"
        steel = client.get("/api/inventory/sku/MAT-STL").json()["data"]

        assert client.post(f"{base}/start").status_code == 409
        client.post(f"/api/production-cards/{card['id']}/start")
        assert client.post(f"{base}/start").status_code == 200
        assert client.get(f"{base}/production-time").json()["data"]["minutes"] == 0

        response = client.post(
            f"{base}/materials", json={"material_id": steel["id"], "planned_quantity": 3}
        )
        usage = response.json()["data"]["components"][0]["material_usage"]
        assert usage[0]["material_sku"] == "MAT-STL"

        response = client.put(
            f"{base}/materials",
            json={"materials": [{"material_id": steel["id"], "actual_quantity": 3.5}]},
        )
        usage = response.json()["data"]["components"][0]["material_usage"]
        assert usage[0]["planned_quantity"] == 3
        assert usage[0]["actual_quantity"] == 3.5

    def test_card_stats(self, client, order):
        stats = client.get("/api/production-cards/stats").json()["data"]
        assert stats["total_cards"] == 3
        assert stats["by_priority"]["normal"] == 3


class TestDashboardAndSockets:
    def test_dashboard_renders(self, client, order):
        response = client.get("/")
        assert response.status_code == 200
        assert "Production queue" in response.text
        assert "Acme (1/3)" in response.text

    def test_websocket_receives_changes(self, client):
        with client.websocket_connect("/ws") as websocket:
            create_item(client, name="Bolt", type="material", sku="bolt")
            message = websocket.receive_json()
        assert message["topic"] == "inventory-changed"
        assert message["payload"]["sku"] == "BOLT"


def test_injected_service_uses_its_clock(app_settings, service, catalog, clock):
    created = service.orders.create_order(
        catalog.model.id, 1, "Acme", clock() + timedelta(days=1)
    )
    clock.advance(hours=48)
    with TestClient(create_app(app_settings, service=service)) as client:
        overdue = client.get("/api/manufacturing-orders/overdue").json()["data"]
        assert [o["id"] for o in overdue] == [created.order.id]
        assert overdue[0]["effective_status"] == "overdue"
        filtered = client.get("/api/manufacturing-orders", params={"status": "overdue"}).json()
        assert len(filtered["data"]) == 1


def test_null_fields_are_rejected_without_touching_the_item(client):
    item = create_item(client, name="Frame", type="component", sku="cmp-frm", quantity=4)
    response = client.put(f"/api/inventory/{item['id']}", json={"quantity": None, "sku": None})
    assert response.status_code == 400
    assert response.json()["success"] is False

    stored = client.get(f"/api/inventory/{item['id']}").json()["data"]
    assert stored["quantity"] == 4
    assert stored["sku"] == "CMP-FRM"
    assert client.get("/api/inventory/low-stock").status_code == 200
    assert client.get("/api/inventory/stats").status_code == 200

    response = client.put(f"/api/inventory/{item['id']}", json={"supplier": None})
    assert response.status_code == 200
    assert response.json()["data"]["supplier"] is None
