from inventory_ledger.application import chaos
from conftest import add_item


def test_root_and_info(client):
    assert client.get("/").json()["status"] == "running"
    info = client.get("/info").json()
    assert info["endpoints"]["inventory"] == "/api/v1/inventory"


def test_list_inventory_empty(client):
    resp = client.get("/api/v1/inventory")
    assert resp.status_code == 200
    assert resp.json() == []


def test_get_inventory(client, store):
    add_item(store, "SKU-1", 12, reserved=3)
    resp = client.get("/api/v1/inventory/SKU-1")
    assert resp.status_code == 200
    body = resp.json()
    assert body["available_quantity"] == 12
    assert body["reserved_quantity"] == 3
    assert body["total_quantity"] == 15

    missing = client.get("/api/v1/inventory/SKU-404")
    assert missing.status_code == 404
    assert missing.json()["error"] == "NotFound"
    assert missing.json()["retryable"] is False


def test_listings(client, store):
    add_item(store, "A", 3, warehouse="WH-1")
    add_item(store, "B", 30, warehouse="WH-2")
    assert [i["product_id"] for i in client.get("/api/v1/inventory/warehouse/WH-2").json()] == ["B"]
    low = client.get("/api/v1/inventory/low-stock", params={"threshold": 5}).json()
    assert [i["product_id"] for i in low] == ["A"]
    assert client.get("/api/v1/inventory/low-stock", params={"threshold": 10**20}).status_code == 422


def test_update_inventory(client, store):
    add_item(store, "A", 5)
    resp = client.put("/api/v1/inventory/A", params={"quantity_change": 7, "reason": "cycle count"})
    assert resp.status_code == 200
    assert resp.json()["available_quantity"] == 12

    assert client.put("/api/v1/inventory/A", params={"quantity_change": -13}).status_code == 400
    assert client.put("/api/v1/inventory/A", params={"quantity_change": 0}).status_code == 400
    assert client.put("/api/v1/inventory/ghost", params={"quantity_change": 1}).status_code == 404

    huge = client.put("/api/v1/inventory/A", params={"quantity_change": 10**20})
    assert huge.status_code == 400
    assert huge.json()["error"] == "InvalidQuantity"
    assert client.put("/api/v1/inventory/A", params={"quantity_change": 2**31 - 12}).status_code == 400
    assert client.get("/api/v1/inventory/A").json()["available_quantity"] == 12


def test_check_availability(client, store):
    add_item(store, "A", 5)
    resp = client.post("/api/v1/inventory/check-availability", json={
        "items": [{"product_id": "A", "quantity": 5}, {"product_id": "B", "quantity": 1}],
    })
    assert resp.status_code == 200
    assert resp.json() == {"availability": {"A": True, "B": False}, "all_available": False}


def test_reserve_release_flow(client, store):
    add_item(store, "A", 5)
    add_item(store, "B", 2)
    items = [{"product_id": "A", "quantity": 2}, {"product_id": "B", "quantity": 2}]

    resp = client.post("/api/v1/inventory/reserve", params={"reservation_id": "order-1"}, json=items)
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    reservation = client.get("/api/v1/inventory/reservations/order-1").json()
    assert reservation["status"] == "ACTIVE"
    assert [line["committed"] for line in reservation["items"]] == [True, True]

    conflict = client.post("/api/v1/inventory/reserve", params={"reservation_id": "order-1"}, json=items)
    assert conflict.status_code == 409
    assert conflict.json()["error"] == "ReservationConflict"

    short = client.post("/api/v1/inventory/reserve", params={"reservation_id": "order-2"}, json=items)
    assert short.status_code == 200
    assert short.json()["success"] is False

    released = client.post("/api/v1/inventory/release", params={"reservation_id": "order-1"})
    assert released.json()["success"] is True
    assert store.get("B").available_quantity == 2

    assert client.post("/api/v1/inventory/release", params={"reservation_id": "nope"}).status_code == 404
    assert client.get("/api/v1/inventory/reservations/nope").status_code == 404


def test_reserve_rejects_bad_quantities(client, store):
    add_item(store, "A", 5)
    resp = client.post("/api/v1/inventory/reserve", params={"reservation_id": "r"},
                       json=[{"product_id": "A", "quantity": 0}])
    assert resp.status_code == 422
    too_many = client.post("/api/v1/inventory/reserve", params={"reservation_id": "r"},
                           json=[{"product_id": "A", "quantity": 2**31}])
    assert too_many.status_code == 422
    empty = client.post("/api/v1/inventory/reserve", params={"reservation_id": "r"}, json=[])
    assert empty.status_code == 400


def test_injected_faults_map_to_status_codes(client, store, flags):
    add_item(store, "A", 5)
    flags.set(chaos.FLAG_SERVICE_FAILURE, True)
    resp = client.get("/api/v1/inventory/A")
    assert resp.status_code == 500
    assert resp.json() == {
        "detail": "Injected failure: getInventory failed",
        "error": "InjectedFailure",
        "retryable": True,
    }

    flags.set(chaos.FLAG_DATABASE_FAILURE, True)
    resp = client.put("/api/v1/inventory/A", params={"quantity_change": 1})
    assert resp.status_code == 503
    assert resp.json()["retryable"] is True
    assert store.get("A").available_quantity == 5


def test_monitoring(client, store):
    add_item(store, "LOW", 1)
    add_item(store, "OK", 80)

    stats = client.get("/api/v1/inventory/monitoring/stats").json()
    assert stats["low_stock_count"] == 1
    assert stats["monitoring_enabled"] is False

    # Disabled in the test settings, so a manual trigger is skipped
    resp = client.post("/api/v1/inventory/monitoring/trigger-check").json()
    assert resp["success"] is True
    assert resp["restocked"] == {}
    assert store.get("LOW").available_quantity == 1


def test_monitoring_trigger_restocks(client, container, store):
    add_item(store, "LOW", 1)
    container.scheduler.policy.enabled = True
    try:
        resp = client.post("/api/v1/inventory/monitoring/trigger-check").json()
    finally:
        container.scheduler.policy.enabled = False
    assert resp["scanned"] == 1
    assert store.get("LOW").available_quantity == 1 + resp["restocked"]["LOW"]


def test_chaos_status_and_manual_injection(client, flags):
    status = client.get("/api/v1/chaos/status").json()
    assert status["service_failure_enabled"] is False

    ok = client.post("/api/v1/chaos/inject/getInventory").json()
    assert ok["success"] is True

    flags.set(chaos.FLAG_DATABASE_FAILURE, True)
    failed = client.post("/api/v1/chaos/inject/database/getInventory")
    assert failed.status_code == 200
    assert failed.json()["success"] is False
    assert failed.json()["error"] == "StoreUnavailable"


def test_chaos_memory_leak_and_cleanup(client, flags):
    flags.set(chaos.FLAG_MEMORY_LEAK, True)
    client.post("/api/v1/chaos/inject/memory-leak/getInventory")
    client.post("/api/v1/chaos/inject/memory-leak/getInventory")
    assert client.get("/api/v1/chaos/status").json()["memory_leak_blocks"] == 2

    cleaned = client.post("/api/v1/chaos/cleanup/memory-leak").json()
    assert cleaned["released_blocks"] == 2
    health = client.get("/api/v1/chaos/health").json()
    assert health["chaos_status"]["memory_leak_blocks"] == 0
