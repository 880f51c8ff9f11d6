# tests/test_api.py
import json

import pytest
from fastapi.testclient import TestClient

from fulfillment.api import create_app
from fulfillment.api.deps import get_audit_logger, get_gateways, get_lock_service
from fulfillment.data.database import get_db
from fulfillment.data.models.order import OrderModel
from fulfillment.domain.enums import PaymentStatus
from fulfillment.services.audit_service import AuditLogger
from fulfillment.services.payment_gateway import GatewayResult, sign_payload
from tests.factories import seed_coupon, seed_variant
from tests.fakes import FakeGateway, FakeLock


@pytest.fixture
def gateway():
    return FakeGateway(provider="MOCKPAY")


@pytest.fixture
def client(session_factory, gateway, audit_entries):
    app = create_app()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    lock = FakeLock()
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_lock_service] = lambda: lock
    app.dependency_overrides[get_gateways] = lambda: {"MOCKPAY": gateway}
    app.dependency_overrides[get_audit_logger] = lambda: AuditLogger(dispatch=audit_entries.append)

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def variant(session_factory):
    with session_factory() as session:
        return seed_variant(session, price="50.00", on_hand=5)


def add_to_cart(client, user_id, variant, quantity=1):
    resp = client.post(
        "/cart/items",
        params={"user_id": user_id},
        json={"product_id": variant.product_id, "variant_id": variant.id, "quantity": quantity},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_cart_endpoints(client, variant):
    cart = add_to_cart(client, "u1", variant, 2)
    item_id = cart["items"][0]["id"]
    assert cart["subtotal"] == "100.00"

    resp = client.patch(f"/cart/items/{item_id}", params={"user_id": "u1"}, json={"quantity": 3})
    assert resp.json()["items"][0]["quantity"] == 3

    resp = client.delete(f"/cart/items/{item_id}", params={"user_id": "u1"})
    assert resp.json()["items"] == []


def test_invalid_quantity_is_rejected(client, variant):
    resp = client.post(
        "/cart/items",
        params={"user_id": "u1"},
        json={"product_id": variant.product_id, "variant_id": variant.id, "quantity": 0},
    )
    assert resp.status_code == 422


def test_checkout_and_replay(client, variant, session_factory):
    with session_factory() as session:
        seed_coupon(session, code="SAVE10", value="10")
    add_to_cart(client, "u1", variant, 2)
    headers = {"Idempotency-Key": "checkout-1"}
    body = {"coupon_code": "save10"}

    first = client.post("/checkout", params={"user_id": "u1"}, json=body, headers=headers)
    assert first.status_code == 201, first.text
    order = first.json()
    assert order["total"] == "90.00"
    assert order["discount_total"] == "10.00"
    assert order["coupon_code"] == "SAVE10"
    assert order["status"] == "PENDING"
    assert len(order["items"]) == 1

    replay = client.post("/checkout", params={"user_id": "u1"}, json=body, headers=headers)
    assert replay.status_code == 201
    assert replay.json() == order
    assert replay.headers["Idempotent-Replayed"] == "true"

    with session_factory() as session:
        assert session.query(OrderModel).count() == 1


def test_checkout_key_reuse_with_other_body(client, variant):
    add_to_cart(client, "u1", variant)
    headers = {"Idempotency-Key": "checkout-1"}
    client.post("/checkout", params={"user_id": "u1"}, json={}, headers=headers)

    resp = client.post("/checkout", params={"user_id": "u1"}, json={"coupon_code": "X"}, headers=headers)

    assert resp.status_code == 409
    assert resp.json() == {
        "error": {
            "code": "idempotency_conflict",
            "message": "Idempotency key was already used with a different payload",
            "retryable": False,
        }
    }


def test_checkout_requires_idempotency_key(client, variant):
    add_to_cart(client, "u1", variant)

    resp = client.post("/checkout", params={"user_id": "u1"}, json={})

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "missing_idempotency_key"


def test_empty_cart_checkout(client):
    resp = client.post("/checkout", params={"user_id": "u1"}, json={}, headers={"Idempotency-Key": "k"})

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "empty_cart"


def test_checkout_summary(client, variant):
    add_to_cart(client, "u1", variant, 2)

    resp = client.get("/checkout/summary", params={"user_id": "u1"})

    assert resp.json()["total"] == "100.00"


def test_checkout_with_provider_opens_payment(client, variant, gateway):
    add_to_cart(client, "u1", variant)

    resp = client.post(
        "/checkout",
        params={"user_id": "u1"},
        json={"payment_provider": "mockpay"},
        headers={"Idempotency-Key": "checkout-2"},
    )

    assert resp.status_code == 201, resp.text
    payment = resp.json()["payment"]
    assert payment["provider"] == "MOCKPAY"
    assert payment["checkout_url"] == "https://pay.example/s/1"
    assert len(gateway.requests) == 1


def test_create_payment_endpoint(client, variant, gateway):
    add_to_cart(client, "u1", variant)
    order = client.post("/checkout", params={"user_id": "u1"}, json={}, headers={"Idempotency-Key": "c"}).json()
    gateway.result = GatewayResult(ok=True, external_ref="mp-1", payment_status=PaymentStatus.AUTHORIZED)
    headers = {"Idempotency-Key": "pay-1"}

    first = client.post(f"/orders/{order['id']}/payments", params={"user_id": "u1"}, json={"provider": "MOCKPAY"}, headers=headers)
    replay = client.post(f"/orders/{order['id']}/payments", params={"user_id": "u1"}, json={"provider": "MOCKPAY"}, headers=headers)

    assert first.status_code == 201, first.text
    assert first.json()["status"] == "AUTHORIZED"
    assert replay.json() == first.json()
    assert len(gateway.requests) == 1

    fetched = client.get(f"/orders/{order['id']}", params={"user_id": "u1"}).json()
    assert fetched["payment_status"] == "AUTHORIZED"


def test_orders_listing_and_cancel(client, variant):
    add_to_cart(client, "u1", variant)
    order = client.post("/checkout", params={"user_id": "u1"}, json={}, headers={"Idempotency-Key": "c"}).json()

    assert [o["id"] for o in client.get("/orders", params={"user_id": "u1"}).json()] == [order["id"]]
    assert client.get(f"/orders/{order['id']}", params={"user_id": "u2"}).status_code == 404

    resp = client.post(f"/orders/{order['id']}/cancel", params={"user_id": "u1"})
    assert resp.json()["status"] == "CANCELED"

    resp = client.post(f"/orders/{order['id']}/cancel", params={"user_id": "u1"})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "invalid_status"


def test_backoffice_status_updates(client, variant):
    add_to_cart(client, "u1", variant, 2)
    order = client.post("/checkout", params={"user_id": "u1"}, json={}, headers={"Idempotency-Key": "c"}).json()

    resp = client.patch(f"/backoffice/orders/{order['id']}/status", json={"status": "PAID"})
    assert resp.json()["status"] == "PAID"

    resp = client.patch(f"/backoffice/orders/{order['id']}/payment-status", json={"payment_status": "CAPTURED"})
    assert resp.json()["payment"]["status"] == "CAPTURED"

    resp = client.patch(f"/backoffice/orders/{order['id']}/status", json={"status": "PENDING"})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "invalid_transition"


def test_backoffice_stock_adjust(client, variant):
    resp = client.post(f"/backoffice/stock/{variant.id}/adjustments", json={"delta": 3, "reason": "restock"})
    assert resp.status_code == 200, resp.text
    assert resp.json()["on_hand"] == 8

    resp = client.post(f"/backoffice/stock/{variant.id}/adjustments", json={"delta": -20, "reason": "audit"})
    assert resp.status_code == 409
    assert resp.json()["error"] == {
        "code": "insufficient_stock",
        "message": f"Adjustment of -20 would take variant {variant.id} below zero",
        "retryable": True,
    }


def test_payment_webhook(client, variant, monkeypatch):
    add_to_cart(client, "u1", variant, 2)
    order = client.post("/checkout", params={"user_id": "u1"}, json={}, headers={"Idempotency-Key": "c"}).json()
    monkeypatch.setattr("fulfillment.services.payment_gateway.PAYMENT_WEBHOOK_SECRET", "whsec")
    raw = json.dumps({"event_id": "evt-1", "outcome": "succeeded", "order_id": order["id"]}).encode()

    bad = client.post("/webhooks/payments/mockpay", content=raw, headers={"X-Signature": "nope"})
    assert bad.status_code == 401
    assert bad.json()["error"]["code"] == "invalid_signature"

    good = client.post("/webhooks/payments/mockpay", content=raw, headers={"X-Signature": sign_payload(raw, "whsec")})
    assert good.status_code == 200, good.text
    assert good.json()["applied"] is True

    fetched = client.get(f"/orders/{order['id']}", params={"user_id": "u1"}).json()
    assert fetched["status"] == "PAID"
    assert fetched["payment_status"] == "CAPTURED"


def test_webhook_rejects_malformed_payload(client):
    resp = client.post("/webhooks/payments/mockpay", content=b'{"outcome": "exploded"}')

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "invalid_payload"
