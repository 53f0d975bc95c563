"""API tests for the checkout endpoints, backed by the in-memory tables."""

import pytest

from apps.checkout.domain import TableUnavailable
from apps.checkout.idempotency import _hash
from apps.checkout.models import IdempotencyKey

OPTIONS_URL = "/api/checkout/options/"
QUOTE_URL = "/api/checkout/quote/"
COUPON_URL = "/api/checkout/coupon/"
ORDERS_URL = "/api/checkout/orders/"
DETAIL_URL = "/api/checkout/orders/{oid}/"
REVIEWS_URL = "/api/checkout/orders/{oid}/reviews/"


@pytest.fixture
def seeded(tables, address_row):
    tables.insert("shipping_addresses", address_row)
    tables.insert("cart_items", {"user_id": address_row["user_id"], "product_id": "p-1", "quantity": 2})
    tables.insert("coupons", {"code": "SAVE10", "discount_type": "percentage", "discount_value": 10, "is_active": True})
    return tables


def test_ping_is_public(client):
    r = client.get("/api/checkout/ping/")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_endpoints_require_authentication(client):
    r = client.get(OPTIONS_URL)
    assert r.status_code == 401


def test_options(api, seeded):
    r = api.get(OPTIONS_URL)
    assert r.status_code == 200
    body = r.json()
    assert body["selected_address_id"] == "addr-1"
    assert body["addresses"][0]["city"] == "Springfield"
    assert len(body["delivery_dates"]) >= 9
    assert body["delivery_times"] == ["09:00-12:00", "12:00-15:00", "15:00-18:00", "18:00-21:00"]
    assert body["default_delivery_time"] == "09:00-12:00"
    assert "cash_on_delivery" in body["payment_methods"]


def test_options_table_failure_is_generic_503(api, monkeypatch):
    def boom(self, user_id):
        raise TableUnavailable("connection refused")

    monkeypatch.setattr("apps.checkout.service.CheckoutService.load_addresses", boom)
    r = api.get(OPTIONS_URL)
    assert r.status_code == 503
    assert r.json()["detail"] == "Failed to load addresses. Please try again."


def test_quote(api, seeded, checkout_payload):
    payload = dict(checkout_payload, gift_wrapping=True, coupon_code="save10")
    r = api.post(QUOTE_URL, payload, format="json")
    assert r.status_code == 200
    assert r.json() == {
        "subtotal": "30.00",
        "shipping_fee": "7.99",
        "gift_wrapping_fee": "5.99",
        "discount": "3.00",
        "total": "40.98",
        "coupon": {"valid": True, "message": "Coupon applied successfully"},
    }


def test_quote_validation_error(api):
    r = api.post(QUOTE_URL, {"items": [{"product_id": "p", "name": "x", "price": "-1", "quantity": 0}]}, format="json")
    assert r.status_code == 400


def test_coupon_verify(api, seeded):
    r = api.post(COUPON_URL, {"code": "save10", "subtotal": "50"}, format="json")
    assert r.status_code == 200
    assert r.json() == {"valid": True, "code": "SAVE10", "message": "Coupon applied successfully", "discount": "5.00"}


def test_coupon_rejected_is_422(api, seeded):
    r = api.post(COUPON_URL, {"code": "NOPE", "subtotal": "50"}, format="json")
    assert r.status_code == 422
    assert r.json()["detail"] == "Invalid coupon code"


@pytest.mark.django_db
def test_submit_order(api, seeded, checkout_payload):
    r = api.post(ORDERS_URL, checkout_payload, format="json")
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "pending"
    assert body["payment_status"] == "paid"
    assert body["total"] == "37.99"
    assert body["shipping_address"]["street"] == "1 Main St"
    assert {i["product_id"] for i in body["items"]} == {"p-1", "p-2"}
    assert body["display"]["status_label"] == "Pending"
    assert seeded.rows["cart_items"] == []
    # card data never reaches the order row
    assert "card" not in seeded.rows["orders"][0]


@pytest.mark.django_db
def test_submit_order_validation_message(api, seeded, checkout_payload):
    payload = dict(checkout_payload, card={"card_number": "4242"})
    r = api.post(ORDERS_URL, payload, format="json")
    assert r.status_code == 400
    assert r.json()["detail"] == "Please enter a valid card number"


@pytest.mark.django_db
def test_submit_order_table_failure_is_generic_503(api, seeded, checkout_payload, monkeypatch):
    def boom(self, row):
        raise TableUnavailable("500 from upstream: secret detail")

    monkeypatch.setattr("apps.checkout.repository.OrderRepository.create", boom)
    r = api.post(ORDERS_URL, checkout_payload, format="json")
    assert r.status_code == 503
    assert r.json() == {"detail": "Failed to submit order. Please try again."}


@pytest.mark.django_db
def test_submit_order_idempotent_replay(api, seeded, checkout_payload):
    r1 = api.post(ORDERS_URL, checkout_payload, format="json", HTTP_IDEMPOTENCY_KEY="k-1")
    assert r1.status_code == 201
    seeded.insert("cart_items", {"user_id": "user-1", "product_id": "p-3", "quantity": 1})

    r2 = api.post(ORDERS_URL, checkout_payload, format="json", HTTP_IDEMPOTENCY_KEY="k-1")
    assert r2.status_code == 201
    assert r2.json() == r1.json()
    assert r2.headers.get("Idempotent-Replay") == "true"
    assert len(seeded.rows["orders"]) == 1
    assert IdempotencyKey.objects.get(key="k-1").order_id == r1.json()["id"]


@pytest.mark.django_db
def test_submit_order_idempotency_conflict(api, seeded, checkout_payload):
    api.post(ORDERS_URL, checkout_payload, format="json", HTTP_IDEMPOTENCY_KEY="k-2")
    r = api.post(ORDERS_URL, dict(checkout_payload, special_instructions="Ring twice"), format="json",
                 HTTP_IDEMPOTENCY_KEY="k-2")
    assert r.status_code == 409
    assert r.json()["detail"] == "IDEMPOTENCY_CONFLICT"


@pytest.mark.django_db
def test_submit_order_idempotency_in_progress(api, seeded, checkout_payload):
    IdempotencyKey.objects.create(key="k-3", user_id="user-1", request_hash=_hash(checkout_payload), response_status=0)
    r = api.post(ORDERS_URL, checkout_payload, format="json", HTTP_IDEMPOTENCY_KEY="k-3")
    assert r.status_code == 409
    assert r.json()["detail"] == "IDEMPOTENCY_IN_PROGRESS"


@pytest.mark.django_db
def test_order_detail_and_review(api, seeded, checkout_payload):
    oid = api.post(ORDERS_URL, checkout_payload, format="json").json()["id"]

    r = api.get(DETAIL_URL.format(oid=oid))
    assert r.status_code == 200
    assert all(i["reviewed"] is False for i in r.json()["items"])

    r = api.post(REVIEWS_URL.format(oid=oid), {"product_id": "p-1", "rating": 5, "text": "Nice"}, format="json")
    assert r.status_code == 403
    assert r.json()["detail"] == "You can only review products from your completed orders"

    seeded.update("orders", {"status": "delivered"}, filters={"id": oid})
    r = api.post(REVIEWS_URL.format(oid=oid), {"product_id": "p-1", "rating": 5, "text": "Nice"}, format="json")
    assert r.status_code == 201
    assert r.json()["username"] == "Sam Shopper"

    items = {i["product_id"]: i["reviewed"] for i in api.get(DETAIL_URL.format(oid=oid)).json()["items"]}
    assert items == {"p-1": True, "p-2": False}


def test_order_detail_not_found(api, seeded):
    r = api.get(DETAIL_URL.format(oid="missing"))
    assert r.status_code == 404
    assert r.json()["detail"] == "NOT_FOUND"


@pytest.mark.django_db
def test_submit_order_cart_clear_failure_still_created(api, seeded, checkout_payload, monkeypatch):
    def down(self, user_id):
        raise TableUnavailable("cart table down")

    monkeypatch.setattr("apps.checkout.repository.CartRepository.clear", down)
    r = api.post(ORDERS_URL, checkout_payload, format="json", HTTP_IDEMPOTENCY_KEY="k-cart")
    assert r.status_code == 201
    assert len(seeded.rows["orders"]) == 1
    assert IdempotencyKey.objects.get(key="k-cart").response_status == 201


@pytest.mark.django_db
def test_submit_order_unexpected_error_is_stored_under_key(api, seeded, checkout_payload, monkeypatch):
    def broken(self, row):
        raise ValueError("malformed response")

    monkeypatch.setattr("apps.checkout.repository.OrderRepository.create", broken)
    r1 = api.post(ORDERS_URL, checkout_payload, format="json", HTTP_IDEMPOTENCY_KEY="k-err")
    assert r1.status_code == 503
    assert r1.json() == {"detail": "Failed to submit order. Please try again."}
    monkeypatch.undo()

    r2 = api.post(ORDERS_URL, checkout_payload, format="json", HTTP_IDEMPOTENCY_KEY="k-err")
    assert r2.status_code == 503
    assert r2.headers.get("Idempotent-Replay") == "true"
    assert IdempotencyKey.objects.get(key="k-err").response_status == 503


@pytest.mark.django_db
def test_order_detail_without_reviews_when_lookup_fails(api, seeded, checkout_payload, monkeypatch):
    oid = api.post(ORDERS_URL, checkout_payload, format="json").json()["id"]

    def down(self, user_id):
        raise TableUnavailable("reviews table down")

    monkeypatch.setattr("apps.checkout.repository.ReviewRepository.list_for_user", down)
    r = api.get(DETAIL_URL.format(oid=oid))
    assert r.status_code == 200
    assert r.json()["id"] == oid
    assert all("reviewed" not in i for i in r.json()["items"])


@pytest.mark.django_db
def test_order_detail_with_postgres_timestamp(api, seeded, checkout_payload):
    oid = api.post(ORDERS_URL, checkout_payload, format="json").json()["id"]
    seeded.update("orders", {"created_at": "2025-03-05T10:20:30.12345+00:00"}, filters={"id": oid})
    r = api.get(DETAIL_URL.format(oid=oid))
    assert r.status_code == 200
    assert r.json()["display"]["timeline"][0]["date"] == "March 5, 2025"
