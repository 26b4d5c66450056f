from fastapi.testclient import TestClient

from kartqueue.enterprise.core import QueueContention, StoreError
from kartqueue.server.app import app
from kartqueue.server.dependencies import get_platform, get_push_gateway, reset_platform


client = TestClient(app)

ALICE = {"Authorization": "Bearer token-alice"}
BOB = {"Authorization": "Bearer token-bob"}
CAROL = {"Authorization": "Bearer token-carol"}


def setup_function() -> None:
    reset_platform()


def _seed_floor() -> None:
    assert client.post(
        "/api/v1/cases",
        json={"id": "case-drill", "name": "Cordless Drill Kit", "last_location": "a1"},
    ).status_code == 201
    assert client.post("/api/v1/karts", json={"id": "kart-a2", "current_location": "A2"}).status_code == 201
    assert client.post("/api/v1/karts", json={"id": "kart-b2", "current_location": "B2"}).status_code == 201
    for headers, pickup in ((ALICE, "C1"), (BOB, "A3")):
        response = client.put(
            "/api/v1/users/me",
            json={"pickup_location": pickup, "device_token": f"device-{pickup}"},
            headers=headers,
        )
        assert response.status_code == 200


def _checkout(headers: dict, case_id: str = "case-drill") -> dict:
    assert client.put(f"/api/v1/users/me/cart/{case_id}", headers=headers).status_code == 200
    response = client.post("/api/v1/orders", headers=headers)
    assert response.status_code == 202
    return response.json()


def test_health_endpoints() -> None:
    live = client.get("/api/v1/health/live")
    assert live.status_code == 200
    assert live.json()["status"] == "ok"

    ready = client.get("/api/v1/health/ready")
    assert ready.status_code == 200
    assert ready.json()["status"] == "ready"


def test_order_requires_a_valid_bearer_token() -> None:
    assert client.post("/api/v1/orders").status_code == 401
    response = client.post("/api/v1/orders", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_full_reservation_lifecycle() -> None:
    _seed_floor()

    placed = _checkout(ALICE)
    assert placed["type"] == "success"
    assert placed["message"] == "Added order to queue"
    [admission] = placed["orders"]
    assert admission["position"] == 1
    assert admission["pickup_location"] == "C1"
    [fulfilled] = placed["fulfilled"]
    assert fulfilled["kart_id"] == "kart-a2"
    assert fulfilled["status"] == "dispatched"
    order_id = admission["order_id"]

    assert client.get("/api/v1/users/me/cart", headers=ALICE).json()["case_ids"] == []

    waiting = _checkout(BOB)
    assert waiting["fulfilled"] == []
    queue = client.get("/api/v1/cases/case-drill/queue").json()
    assert queue["queue_count"] == 1
    assert queue["entries"][0]["user_id"] == "bob"

    kart_queue = client.get("/api/v1/karts/kart-a2/queue").json()
    assert [item["order_id"] for item in kart_queue] == [order_id]

    received = client.post(f"/api/v1/karts/kart-a2/orders/{order_id}/received")
    assert received.status_code == 200
    assert received.json()["kart_received_order"] is True
    completed = client.post(f"/api/v1/karts/kart-a2/orders/{order_id}/completed")
    assert completed.json()["status"] == "completed"

    scanned = client.post(f"/api/v1/orders/{order_id}/scan", headers=ALICE)
    assert scanned.status_code == 200
    assert scanned.json()["scanned_by_user"] is True
    assert client.post(f"/api/v1/orders/{order_id}/scan", headers=ALICE).status_code == 409

    released = client.post("/api/v1/cases/case-drill/release", json={"location": "B2"})
    assert released.status_code == 200
    body = released.json()
    assert body["case"]["last_location"] == "B2"
    assert body["fulfilled"]["user_id"] == "bob"
    assert body["fulfilled"]["kart_id"] == "kart-b2"

    history = client.get("/api/v1/users/me/history", headers=ALICE).json()
    assert [entry["event_type"] for entry in history] == [
        "order_queued",
        "order_fulfilled",
        "order_dispatched",
        "order_received",
        "order_completed",
        "order_scanned",
    ]
    order = client.get(f"/api/v1/users/me/orders/{order_id}", headers=ALICE).json()
    assert order["status"] == "scanned"
    assert [item["order_id"] for item in client.get("/api/v1/users/me/orders", headers=ALICE).json()] == [order_id]

    sent = get_push_gateway().sent
    assert {message["device_token"] for message in sent} == {"device-C1", "device-A3"}


def test_incomplete_profile_is_a_conflict() -> None:
    _seed_floor()
    assert client.put("/api/v1/users/me/cart/case-drill", headers=CAROL).status_code == 200

    response = client.post("/api/v1/orders", headers=CAROL)

    assert response.status_code == 409
    assert client.get("/api/v1/users/me/cart", headers=CAROL).json()["case_ids"] == ["case-drill"]


def test_contention_is_reported_as_retryable(monkeypatch) -> None:
    _seed_floor()
    platform = get_platform()

    async def contended(case_id, user_id, pickup_location):
        raise QueueContention(f"caseQueues/{case_id}", 25)

    monkeypatch.setattr(platform.queue, "enqueue", contended)
    client.put("/api/v1/users/me/cart/case-drill", headers=ALICE)

    response = client.post("/api/v1/orders", headers=ALICE)

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"


def test_trigger_failure_after_admission_still_accepts_the_order(monkeypatch) -> None:
    _seed_floor()
    platform = get_platform()

    async def unreachable(case_id):
        raise StoreError("documents table unreachable")

    monkeypatch.setattr(platform.lifecycle, "fulfill_next", unreachable)

    placed = _checkout(ALICE)

    [admission] = placed["orders"]
    assert admission["position"] == 1
    assert placed["fulfilled"] == []
    assert client.get("/api/v1/users/me/cart", headers=ALICE).json()["case_ids"] == []
    assert client.get("/api/v1/cases/case-drill/queue").json()["queue_count"] == 1


def test_unknown_resources_and_bad_locations() -> None:
    _seed_floor()

    assert client.get("/api/v1/cases/case-ghost").status_code == 404
    assert client.put("/api/v1/users/me/cart/case-ghost", headers=ALICE).status_code == 404
    assert client.get("/api/v1/users/me/orders/missing", headers=ALICE).status_code == 404
    assert client.post("/api/v1/karts/kart-a2/orders/missing/received").status_code == 404
    bad_case = client.post("/api/v1/cases", json={"id": "c", "name": "C", "last_location": "Z9"})
    assert bad_case.status_code == 422
    bad_profile = client.put("/api/v1/users/me", json={"pickup_location": "A0"}, headers=ALICE)
    assert bad_profile.status_code == 422


def test_event_webhook_runs_the_lifecycle() -> None:
    _seed_floor()
    locked = {"id": "case-drill", "name": "Cordless Drill Kit", "last_location": "A1", "is_available": False}
    assert client.post("/api/v1/cases", json=locked).status_code == 201

    waiting = _checkout(BOB)
    assert waiting["fulfilled"] == []

    locked["is_available"] = True
    client.post("/api/v1/cases", json=locked)
    event = {"kind": "case_availability_changed", "case_id": "case-drill", "is_available": True}

    delivered = client.post("/api/v1/events", json=event)
    assert delivered.status_code == 200
    assert delivered.json()["user_id"] == "bob"

    repeated = client.post("/api/v1/events", json=event)
    assert repeated.status_code == 200
    assert repeated.json() is None

    invalid = client.post("/api/v1/events", json={"kind": "nonsense", "case_id": "case-drill"})
    assert invalid.status_code == 422


def test_metrics_endpoint_exposes_queue_counters() -> None:
    _seed_floor()
    _checkout(ALICE)

    response = client.get("/api/v1/observability/metrics")

    assert response.status_code == 200
    assert "kartqueue_orders_enqueued_total" in response.text
    assert "kartqueue_orders_dispatched_total" in response.text
