import re
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from ordertrack.application.security import create_access_token
from ordertrack.infrastructure.db import get_db
from ordertrack.main import app


@pytest.fixture
def client(session_factory, seed):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def auth(user_id="U-emp00001", role="EMPLOYEE"):
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


OWNER = {"user_id": "U-owner001", "role": "OWNER"}


def order_payload(**overrides):
    promised = datetime.now(timezone.utc) + timedelta(days=3)
    payload = {
        "customer_id": "C-acme0001",
        "product_type_id": "PT-cartons",
        "title": "Cereal boxes",
        "quantity": 5000,
        "promised_date": promised.isoformat(),
    }
    payload.update(overrides)
    return payload


def create(client, **overrides):
    resp = client.post("/api/orders", json=order_payload(**overrides), headers=auth())
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def test_create_returns_success_envelope(client):
    resp = client.post("/api/orders", json=order_payload(), headers=auth())
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert re.fullmatch(r"\d{4}-0001", body["data"]["order_number"])
    assert body["data"]["status"] == "NEW"
    assert body["data"]["customer_name"] == "Acme Foods"
    assert body["data"]["is_delayed"] is False


def test_missing_token_is_unauthorized(client):
    resp = client.get("/api/orders")
    assert resp.status_code == 401
    assert resp.json() == {
        "success": False,
        "error": {"code": "UNAUTHORIZED", "message": "Missing token"},
    }


def test_garbage_token_is_unauthorized(client):
    resp = client.get("/api/orders", headers={"Authorization": "Bearer not.a.jwt"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "UNAUTHORIZED"


def test_body_validation_uses_envelope(client):
    resp = client.post("/api/orders", json={"customer_id": "C-acme0001"}, headers=auth())
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert "title" in body["error"]["message"]


def test_unknown_fields_are_rejected(client):
    resp = client.post("/api/orders", json=order_payload(status="DELIVERED"), headers=auth())
    assert resp.status_code == 400


def test_employee_cannot_delete(client):
    order = create(client)
    resp = client.delete(f"/api/orders/{order['id']}", headers=auth())
    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "FORBIDDEN"

    resp = client.delete(f"/api/orders/{order['id']}", headers=auth(**OWNER))
    assert resp.status_code == 200
    assert resp.json()["data"]["is_deleted"] is True
    assert client.get(f"/api/orders/{order['id']}", headers=auth()).status_code == 404


def test_unknown_order_is_not_found(client):
    resp = client.get("/api/orders/O-missing0", headers=auth())
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "NOT_FOUND"


def test_terminal_order_conflict(client):
    order = create(client)
    assert client.post(f"/api/orders/{order['id']}/deliver", headers=auth()).status_code == 200
    resp = client.post(f"/api/orders/{order['id']}/status", json={"status": "NEW"}, headers=auth())
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "CONFLICT"


def test_ledger_timeline(client):
    order = create(client)
    client.post(f"/api/orders/{order['id']}/status", json={"status": "IN_PROGRESS"}, headers=auth())
    client.post(f"/api/orders/{order['id']}/vendor", json={"vendor_id": "V-lamin001"}, headers=auth())
    client.post(f"/api/orders/{order['id']}/cancel", json={"reason": "artwork rejected"}, headers=auth())

    resp = client.get(f"/api/orders/{order['id']}/ledger", headers=auth())
    entries = resp.json()["data"]
    assert [e["event_type"] for e in entries] == [
        "ORDER_CREATED", "STATUS_CHANGED", "VENDOR_CHANGED", "CANCELLED_MARKED",
    ]
    assert entries[1]["payload"]["changes"]["status"] == {"from": "NEW", "to": "IN_PROGRESS"}
    assert entries[3]["payload"]["reason"] == "artwork rejected"

    check = client.get(f"/api/orders/{order['id']}/verify", headers=auth()).json()["data"]
    assert check["consistent"] is True


def test_list_paginates(client):
    for _ in range(5):
        create(client)
    first = client.get("/api/orders", params={"page_size": 2}, headers=auth()).json()["data"]
    assert len(first["items"]) == 2
    second = client.get(
        "/api/orders", params={"page_size": 2, "cursor": first["next_cursor"]}, headers=auth()
    ).json()["data"]
    assert {i["id"] for i in first["items"]}.isdisjoint({i["id"] for i in second["items"]})


def test_list_filters_by_status(client):
    order = create(client)
    create(client)
    client.post(f"/api/orders/{order['id']}/status", json={"status": "READY"}, headers=auth())
    data = client.get("/api/orders", params={"status": "READY"}, headers=auth()).json()["data"]
    assert [i["id"] for i in data["items"]] == [order["id"]]


@pytest.mark.parametrize("params", [{"page_size": 500}, {"cursor": "bogus"}])
def test_bad_listing_params(client, params):
    resp = client.get("/api/orders", params=params, headers=auth())
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


def test_summary_counts(client):
    create(client)
    data = client.get("/api/orders/summary", headers=auth()).json()["data"]
    assert data["NEW"] == 1
    assert data["DELAYED"] == 0


def test_login_and_revocation(client):
    resp = client.post("/auth/token", json={"phone": "9000000002", "password": "employee-pass-1"})
    assert resp.status_code == 200
    token = resp.json()["data"]["access_token"]
    headers = {"Authorization": f"Bearer {token}"}
    assert client.get("/api/orders", headers=headers).status_code == 200

    resp = client.post("/api/users/U-emp00001/revoke-sessions", headers=auth(**OWNER))
    assert resp.status_code == 200
    assert client.get("/api/orders", headers=headers).status_code == 401

    fresh = client.post("/auth/token", json={"phone": "9000000002", "password": "employee-pass-1"})
    fresh_headers = {"Authorization": f"Bearer {fresh.json()['data']['access_token']}"}
    assert client.get("/api/orders", headers=fresh_headers).status_code == 200


def test_bad_login(client):
    resp = client.post("/auth/token", json={"phone": "9000000002", "password": "nope-nope"})
    assert resp.status_code == 401
    assert resp.json()["error"]["code"] == "UNAUTHORIZED"


def test_master_data_routes(client):
    resp = client.post("/api/customers", json={"name": "Initech"}, headers=auth())
    assert resp.status_code == 201
    customer_id = resp.json()["data"]["id"]

    names = [c["name"] for c in client.get("/api/customers", headers=auth()).json()["data"]]
    assert names == ["Acme Foods", "Initech"]

    assert client.delete(f"/api/customers/{customer_id}", headers=auth()).status_code == 403
    assert client.post("/api/vendors/V-lamin001/deactivate", headers=auth()).status_code == 403
    assert client.post("/api/vendors/V-lamin001/deactivate", headers=auth(**OWNER)).status_code == 200
    assert client.get("/api/vendors", headers=auth()).json()["data"] == []

    product_types = client.get("/api/product-types", headers=auth()).json()["data"]
    assert [p["id"] for p in product_types] == ["PT-cartons"]

    assert client.get("/api/users", headers=auth()).status_code == 403
    assert len(client.get("/api/users", headers=auth(**OWNER)).json()["data"]) == 2


def test_health_and_root(client):
    assert client.get("/health").json()["status"] == "pass"
    assert client.get("/health/live").json() == {"status": "alive"}
    assert client.get("/").json()["service"] == "ordertrack"
