import json
import time
from decimal import Decimal

import pytest
import requests
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from storefront.api import create_app
from storefront.services.token_service import TokenPurpose

from tests.fakes import FakeProductClient

PRICES = {"p1": "500.00", "p2": "300.00", "p3": "19.99", "iphone-15": "22990000", "broken": "abc"}


@pytest.fixture
def client(session_factory, redis_client, gateways, token_issuer):
    app = create_app(
        session_factory=session_factory,
        redis_client=redis_client,
        gateways=gateways,
        token_issuer=token_issuer,
        product_client=FakeProductClient(PRICES),
        relay_events=False,
    )
    with TestClient(app) as c:
        yield c


@pytest.fixture
def auth(token_issuer):
    def _headers(user_id="user-1", roles=("customer",)):
        token = token_issuer.issue(TokenPurpose.ACCESS, {"sub": user_id, "roles": list(roles)})
        return {"Authorization": f"Bearer {token}"}

    return _headers


def _checkout(client, headers, method="bank_transfer", items=None):
    items = items or [{"product_id": "p1", "quantity": 2}, {"product_id": "p2", "quantity": 1}]
    resp = client.post("/orders/", json={"items": items, "payment_method": method}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _callback(client, gateway, payload, signature=None):
    body = json.dumps(payload).encode("utf-8")
    return client.post(
        f"/payments/callbacks/{gateway.method}",
        content=body,
        headers={"X-Signature": signature or gateway.sign(body), "Content-Type": "application/json"},
    )


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_requires_token(client):
    assert client.get("/orders/").status_code == 401
    assert client.get("/orders/", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_access_token_cookie_is_accepted(client, token_issuer):
    token = token_issuer.issue(TokenPurpose.ACCESS, {"sub": "user-1"})
    client.cookies.set("accessToken", token)
    assert client.get("/orders/").status_code == 200


def test_checkout_copies_catalog_prices(client, auth):
    order = _checkout(client, auth())

    assert order["status"] == "pending"
    assert order["user_id"] == "user-1"
    assert Decimal(str(order["total_price"])) == Decimal("1300")
    assert [(i["product_id"], Decimal(str(i["unit_price"]))) for i in order["items"]] == [
        ("p1", Decimal("500")),
        ("p2", Decimal("300")),
    ]

    listed = client.get("/orders/", headers=auth()).json()
    assert [o["id"] for o in listed] == [order["id"]]


def test_checkout_validation_errors(client, auth):
    resp = client.post(
        "/orders/",
        json={"items": [{"product_id": "p1", "quantity": 0}], "payment_method": "bitcoin"},
        headers=auth(),
    )
    assert resp.status_code == 422
    errors = resp.json()["detail"]["errors"]
    assert "line_items[0].quantity" in errors
    assert "payment_method" in errors


def test_checkout_unknown_product(client, auth):
    resp = client.post("/orders/", json={"items": [{"product_id": "nope", "quantity": 1}]}, headers=auth())
    assert resp.status_code == 404


def test_checkout_beyond_money_column_is_422(client, auth):
    resp = client.post("/orders/", json={"items": [{"product_id": "iphone-15", "quantity": 435}]}, headers=auth())
    assert resp.status_code == 422
    assert "line_items" in resp.json()["detail"]["errors"]
    assert client.get("/orders/", headers=auth()).json() == []


def test_checkout_with_broken_catalog_price_is_503(client, auth):
    resp = client.post("/orders/", json={"items": [{"product_id": "broken", "quantity": 1}]}, headers=auth())
    assert resp.status_code == 503


def test_bank_transfer_callback_completes_order(client, auth, gateways):
    order = _checkout(client, auth())

    resp = client.post(f"/orders/{order['id']}/payments", json={"method": "bank_transfer"}, headers=auth())
    assert resp.status_code == 201
    body = resp.json()
    payment = body["payment"]
    assert payment["status"] == "pending"
    assert body["order"]["payment_id"] == payment["id"]
    assert body["redirect_url"] == "http://fake-provider/pay"

    gateway = gateways.for_method("bank_transfer")
    payload = {"payment_id": payment["id"], "status": "succeeded", "transaction_id": "T1"}

    first = _callback(client, gateway, payload)
    assert first.status_code == 200
    assert first.json() == {"payment_id": payment["id"], "status": "completed", "duplicate": False}

    again = _callback(client, gateway, payload)
    assert again.status_code == 200
    assert again.json()["duplicate"] is True

    assert client.get(f"/orders/{order['id']}", headers=auth()).json()["status"] == "completed"
    [stored] = client.get(f"/orders/{order['id']}/payments", headers=auth()).json()
    assert stored["transaction_id"] == "T1"
    assert stored["paid_at"] is not None


def test_callback_with_bad_signature_is_forbidden(client, auth, gateways):
    order = _checkout(client, auth())
    payment = client.post(
        f"/orders/{order['id']}/payments", json={"method": "bank_transfer"}, headers=auth()
    ).json()["payment"]

    resp = _callback(
        client,
        gateways.for_method("bank_transfer"),
        {"payment_id": payment["id"], "status": "succeeded", "transaction_id": "T1"},
        signature="forged",
    )

    assert resp.status_code == 403
    assert client.get(f"/orders/{order['id']}", headers=auth()).json()["status"] == "pending"


def test_callback_routed_through_other_provider_is_rejected(client, auth, gateways):
    order = _checkout(client, auth())
    payment = client.post(
        f"/orders/{order['id']}/payments", json={"method": "e_wallet_b"}, headers=auth()
    ).json()["payment"]
    payload = {"payment_id": payment["id"], "status": "succeeded", "transaction_id": "W1"}

    wrong = _callback(client, gateways.for_method("bank_transfer"), payload)
    assert wrong.status_code == 422
    assert "method" in wrong.json()["detail"]["errors"]
    assert client.get(f"/orders/{order['id']}", headers=auth()).json()["status"] == "pending"

    right = _callback(client, gateways.for_method("e_wallet_b"), payload)
    assert right.json()["status"] == "completed"


def test_callback_for_unknown_payment_is_retryable(client, gateways):
    gateway = gateways.for_method("e_wallet_b")
    first = _callback(client, gateway, {"payment_id": "missing", "status": "succeeded", "transaction_id": "W1"})
    again = _callback(client, gateway, {"payment_id": "missing", "status": "succeeded", "transaction_id": "W1"})
    #dedup key released, the provider's retry is evaluated again
    assert first.status_code == again.status_code == 404


def test_failed_payment_then_retry(client, auth, gateways):
    order = _checkout(client, auth())
    first = client.post(
        f"/orders/{order['id']}/payments", json={"method": "bank_transfer"}, headers=auth()
    ).json()["payment"]

    resp = _callback(client, gateways.for_method("bank_transfer"), {"payment_id": first["id"], "status": "failed"})
    assert resp.json()["status"] == "failed"

    retry = client.post(f"/orders/{order['id']}/payments", json={"method": "e_wallet_b"}, headers=auth())
    assert retry.status_code == 201
    assert retry.json()["order"]["payment_method"] == "e_wallet_b"

    history = client.get(f"/orders/{order['id']}/payments", headers=auth()).json()
    assert [p["status"] for p in history] == ["failed", "pending"]


def test_state_conflicts_are_409(client, auth):
    order = _checkout(client, auth(), method="cash_on_delivery")
    resp = client.post(f"/orders/{order['id']}/payments", json={"method": "cash_on_delivery"}, headers=auth())
    assert resp.json()["order"]["status"] == "completed"

    assert client.post(f"/orders/{order['id']}/cancel", headers=auth()).status_code == 409
    again = client.post(f"/orders/{order['id']}/payments", json={"method": "cash_on_delivery"}, headers=auth())
    assert again.status_code == 409


def test_unsupported_payment_method_is_422(client, auth):
    order = _checkout(client, auth(), method="e_wallet_a")
    resp = client.post(f"/orders/{order['id']}/payments", json={"method": "e_wallet_a"}, headers=auth())
    assert resp.status_code == 422


def test_gateway_down_is_502(client, auth, gateways):
    gateways.for_method("bank_transfer").error = requests.ConnectionError("down")
    order = _checkout(client, auth())
    resp = client.post(f"/orders/{order['id']}/payments", json={"method": "bank_transfer"}, headers=auth())
    assert resp.status_code == 502
    assert client.get(f"/orders/{order['id']}/payments", headers=auth()).json() == []


def test_ownership(client, auth):
    order = _checkout(client, auth("user-1"))

    assert client.get(f"/orders/{order['id']}", headers=auth("user-2")).status_code == 403
    assert client.post(f"/orders/{order['id']}/cancel", headers=auth("user-2")).status_code == 403
    assert client.get("/orders/missing", headers=auth()).status_code == 404

    resp = client.post(f"/orders/{order['id']}/cancel", headers=auth("staff", roles=("admin",)))
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"


def test_admin_lists_orders_by_status(client, auth):
    first = _checkout(client, auth("user-1"))
    second = _checkout(client, auth("user-2"))
    client.post(f"/orders/{second['id']}/cancel", headers=auth("user-2"))
    admin = auth("staff", roles=("admin",))

    assert {o["id"] for o in client.get("/orders/", headers=admin).json()} == {first["id"], second["id"]}
    resp = client.get("/orders/", params={"status": "cancelled"}, headers=admin)
    assert [o["id"] for o in resp.json()] == [second["id"]]

    assert [o["id"] for o in client.get("/orders/", headers=auth("user-1")).json()] == [first["id"]]
    bad = client.get("/orders/", params={"status": "shipped"}, headers=admin)
    assert bad.status_code == 422
    assert "status" in bad.json()["detail"]["errors"]


def test_note_update(client, auth):
    order = _checkout(client, auth())

    resp = client.patch(f"/orders/{order['id']}/note", json={"note": "ring twice"}, headers=auth())
    assert resp.status_code == 200
    assert resp.json()["note"] == "ring twice"
    assert resp.json()["status"] == "pending"

    admin = auth("staff", roles=("admin",))
    assert client.patch(f"/orders/{order['id']}/note", json={"note": "x"}, headers=admin).status_code == 403
    assert client.patch(f"/orders/{order['id']}/note", json={"note": "x"}, headers=auth("user-2")).status_code == 403
    assert client.patch("/orders/missing/note", json={"note": "x"}, headers=auth()).status_code == 404
    assert client.patch(f"/orders/{order['id']}/note", json={"note": "x" * 1001}, headers=auth()).status_code == 422
    assert client.get(f"/orders/{order['id']}", headers=auth()).json()["note"] == "ring twice"


def test_reviews_need_completed_purchase(client, auth):
    review = {"product_id": "p1", "rating": 5, "comment": "solid"}
    assert client.post("/reviews", json=review, headers=auth()).status_code == 403

    order = _checkout(client, auth(), method="cash_on_delivery")
    client.post(f"/orders/{order['id']}/payments", json={"method": "cash_on_delivery"}, headers=auth())

    resp = client.post("/reviews", json=review, headers=auth())
    assert resp.status_code == 201
    assert resp.json()["rating"] == 5

    bad = client.post("/reviews", json={"product_id": "p1", "rating": 9}, headers=auth())
    assert bad.status_code == 422

    assert [r["comment"] for r in client.get("/products/p1/reviews").json()] == ["solid"]
    assert len(client.get("/reviews/me", headers=auth()).json()) == 1
    assert client.get("/reviews/me", headers=auth("user-2")).json() == []


def test_refresh_issues_access_token(client, token_issuer):
    refresh = token_issuer.issue(TokenPurpose.REFRESH, {"sub": "user-1", "roles": ["customer"]})

    resp = client.post("/auth/refresh", json={"refresh_token": refresh})
    assert resp.status_code == 200
    access = resp.json()["access_token"]
    assert token_issuer.verify(TokenPurpose.ACCESS, access)["sub"] == "user-1"

    assert client.get("/orders/", headers={"Authorization": f"Bearer {access}"}).status_code == 200
    #an access token is not a refresh token
    assert client.post("/auth/refresh", json={"refresh_token": access}).status_code == 401


class TestNotificationSocket:
    def test_owner_receives_status_change(self, client, auth, token_issuer):
        token = token_issuer.issue(TokenPurpose.ACCESS, {"sub": "user-1"})
        order = _checkout(client, auth(), method="cash_on_delivery")

        with client.websocket_connect(f"/ws/notifications?token={token}") as ws:
            assert ws.receive_json() == {"type": "joined", "user_id": "user-1"}

            resp = client.post(
                f"/orders/{order['id']}/payments", json={"method": "cash_on_delivery"}, headers=auth()
            )
            assert resp.status_code == 201

            event = ws.receive_json()
            assert event["type"] == "order:status"
            assert event["order_id"] == order["id"]
            assert (event["old_status"], event["new_status"]) == ("pending", "completed")

            ws.send_text("ping")
            assert ws.receive_text() == "pong"

    def test_token_in_authorization_header(self, client, auth):
        with client.websocket_connect("/ws/notifications", headers=auth("user-7")) as ws:
            assert ws.receive_json()["user_id"] == "user-7"

    def test_invalid_token_is_rejected(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws/notifications?token=garbage") as ws:
                ws.receive_json()
        assert exc.value.code == 1008

    def test_disconnect_leaves_dispatcher(self, client, token_issuer):
        token = token_issuer.issue(TokenPurpose.ACCESS, {"sub": "user-1"})
        with client.websocket_connect(f"/ws/notifications?token={token}") as ws:
            ws.receive_json()
            assert len(client.app.state.dispatcher.connections_of("user-1")) == 1

        #leave runs on the server side after the close frame
        for _ in range(50):
            if not client.app.state.dispatcher.connections_of("user-1"):
                break
            time.sleep(0.02)
        assert client.app.state.dispatcher.connections_of("user-1") == set()
