from __future__ import annotations

from fastapi.testclient import TestClient
from services.storefront.app.db.database import db_session
from services.storefront.app.db.models import Product

GUEST = {"X-Forwarded-For": "203.0.113.50"}
CUSTOMER = {"X-Customer-Id": "7"}


def _delete_product(product_id: int) -> None:
    session = db_session()
    try:
        session.delete(session.get(Product, product_id))
        session.commit()
    finally:
        session.close()


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_guest_add_and_list(client: TestClient) -> None:
    added = client.post("/v1/cart/items", json={"product_id": 2, "quantity": 3}, headers=GUEST)
    assert added.status_code == 200
    body = added.json()
    assert body["success"] is True
    assert body["error"] is None
    assert body["data"]["action"] == "created"

    again = client.post("/v1/cart/items", json={"product_id": 2, "quantity": 1}, headers=GUEST)
    assert again.json()["data"]["quantity"] == 4

    view = client.get("/v1/cart", headers=GUEST).json()["data"]
    assert view["owner"] == {"owner_kind": "guest", "customer_id": None, "guest_address": "203.0.113.50"}
    assert view["count"] == 1
    assert view["total_items"] == 4
    assert view["total_amount"] == "60.00"


def test_guest_and_customer_carts_are_separate(client: TestClient) -> None:
    client.post("/v1/cart/items", json={"product_id": 1}, headers=GUEST)

    view = client.get("/v1/cart", headers=CUSTOMER).json()["data"]
    assert view["owner"]["owner_kind"] == "customer"
    assert view["items"] == []


def test_add_errors_use_envelope(client: TestClient) -> None:
    too_many = client.post("/v1/cart/items", json={"product_id": 1, "quantity": 1000}, headers=GUEST)
    assert too_many.status_code == 400
    assert too_many.json()["error_type"] == "invalid_quantity"
    assert too_many.json()["error_details"]["max_allowed"] == 999

    missing = client.post("/v1/cart/items", json={"product_id": 404}, headers=GUEST)
    assert missing.status_code == 409
    assert missing.json()["error_type"] == "product_not_available"

    malformed = client.post("/v1/cart/items", json={"product_id": "abc"}, headers=GUEST)
    assert malformed.status_code == 400
    assert malformed.json()["success"] is False
    assert malformed.json()["error_type"] == "validation_error"


def test_invalid_guest_address(client: TestClient) -> None:
    response = client.get("/v1/cart", headers={"X-Forwarded-For": "bogus"})
    assert response.status_code == 400
    assert response.json()["error_type"] == "invalid_address"


def test_update_remove_and_empty(client: TestClient) -> None:
    client.post("/v1/cart/items", json={"product_id": 1, "quantity": 2}, headers=CUSTOMER)
    client.post("/v1/cart/items", json={"product_id": 2, "quantity": 2}, headers=CUSTOMER)

    updated = client.patch("/v1/cart/items/1", json={"quantity": 5}, headers=CUSTOMER)
    assert updated.json()["data"]["quantity"] == 5

    zeroed = client.patch("/v1/cart/items/1", json={"quantity": 0}, headers=CUSTOMER)
    assert zeroed.json()["data"]["action"] == "removed"

    gone = client.delete("/v1/cart/items/1", headers=CUSTOMER)
    assert gone.status_code == 404
    assert gone.json()["error_type"] == "not_found"

    bad_id = client.delete("/v1/cart/items/abc", headers=CUSTOMER)
    assert bad_id.status_code == 400

    first = client.delete("/v1/cart", headers=CUSTOMER)
    assert first.json()["data"]["removed_rows"] == 1
    second = client.delete("/v1/cart", headers=CUSTOMER)
    assert second.status_code == 200
    assert second.json()["data"]["removed_rows"] == 0


def test_count(client: TestClient) -> None:
    client.post("/v1/cart/items", json={"product_id": 1, "quantity": 2}, headers=GUEST)
    client.post("/v1/cart/items", json={"product_id": 3, "quantity": 1}, headers=GUEST)

    counted = client.get("/v1/cart/count", headers=GUEST).json()["data"]
    assert counted == {"count": 2, "total_items": 3, "removed_items": 0}


def test_list_self_heals_vanished_products(client: TestClient) -> None:
    client.post("/v1/cart/items", json={"product_id": 1}, headers=CUSTOMER)
    client.post("/v1/cart/items", json={"product_id": 4}, headers=CUSTOMER)
    _delete_product(4)

    kept = client.get("/v1/cart", params={"self_heal": "false"}, headers=CUSTOMER).json()["data"]
    assert kept["orphaned_items"] == 1
    assert kept["removed_items"] == 0

    healed = client.get("/v1/cart", headers=CUSTOMER).json()["data"]
    assert [item["product_id"] for item in healed["items"]] == [1]
    assert healed["removed_items"] == 1

    again = client.get("/v1/cart", headers=CUSTOMER).json()["data"]
    assert again["orphaned_items"] == 0


def test_item_integrity(client: TestClient) -> None:
    client.post("/v1/cart/items", json={"product_id": 3, "quantity": 2}, headers=CUSTOMER)

    ok = client.get("/v1/cart/items/3/integrity", headers=CUSTOMER).json()
    assert ok["data"]["integrity_status"] == "valid"
    assert ok["data"]["quantity"] == 2

    _delete_product(3)
    orphan = client.get("/v1/cart/items/3/integrity", headers=CUSTOMER)
    assert orphan.status_code == 409
    assert orphan.json()["error_type"] == "orphaned_product"
    assert orphan.json()["error_details"]["auto_removed"] is True


def test_transfer_requires_login(client: TestClient) -> None:
    response = client.post("/v1/cart/transfer", json={}, headers=GUEST)
    assert response.status_code == 401
    assert response.json()["error_type"] == "authentication_required"


def test_transfer_after_login(client: TestClient) -> None:
    client.post("/v1/cart/items", json={"product_id": 1, "quantity": 2}, headers=GUEST)
    client.post("/v1/cart/items", json={"product_id": 1, "quantity": 3}, headers=CUSTOMER)

    # Same browser, now logged in: the transport address still identifies the guest cart.
    response = client.post("/v1/cart/transfer", headers={**GUEST, **CUSTOMER})
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["merged_items"] == 1
    assert data["guest_address"] == "203.0.113.50"

    view = client.get("/v1/cart", headers=CUSTOMER).json()["data"]
    assert view["items"][0]["quantity"] == 5
    assert client.get("/v1/cart", headers=GUEST).json()["data"]["count"] == 0


def test_transfer_only_moves_the_callers_own_guest_cart(client: TestClient) -> None:
    victim = {"X-Forwarded-For": "10.0.0.5"}
    client.post("/v1/cart/items", json={"product_id": 1, "quantity": 3}, headers=victim)

    # A body naming another address is ignored; the caller's own address is used.
    response = client.post(
        "/v1/cart/transfer",
        json={"guest_address": "10.0.0.5"},
        headers={"X-Forwarded-For": "10.0.0.99", "X-Customer-Id": "77"},
    )
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["guest_address"] == "10.0.0.99"
    assert data["transferred_items"] == 0
    assert data["merged_items"] == 0

    assert client.get("/v1/cart", headers=victim).json()["data"]["items"][0]["quantity"] == 3
    assert client.get("/v1/cart", headers={"X-Customer-Id": "77"}).json()["data"]["count"] == 0


def test_forwarded_for_is_ignored_by_default(client: TestClient, monkeypatch) -> None:
    victim = {"X-Forwarded-For": "10.0.0.5"}
    client.post("/v1/cart/items", json={"product_id": 1}, headers=victim)

    monkeypatch.delenv("STOREFRONT_TRUST_FORWARDED_FOR")

    # The socket peer identifies the guest now. The test client's peer is not an IP address,
    # so the spoofed header neither reaches nor changes the other guest's cart.
    read = client.get("/v1/cart", headers=victim)
    assert read.status_code == 400
    assert read.json()["error_type"] == "invalid_address"

    write = client.delete("/v1/cart", headers=victim)
    assert write.status_code == 400

    monkeypatch.setenv("STOREFRONT_TRUST_FORWARDED_FOR", "true")
    assert client.get("/v1/cart", headers=victim).json()["data"]["count"] == 1
