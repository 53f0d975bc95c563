from datetime import datetime, timezone

import pytest
from django.core.cache import cache
from rest_framework.test import APIClient

from apps.checkout.delivery import available_delivery_dates
from apps.checkout.providers import reset_memory_tables
from apps.checkout.tables import tables_cb
from gateway.auth import HostedUser

SHOPPER = {
    "id": "user-1",
    "email": "shopper@example.com",
    "user_metadata": {"full_name": "Sam Shopper"},
    "app_metadata": {},
}
ADMIN = {
    "id": "admin-1",
    "email": "admin@example.com",
    "user_metadata": {"full_name": "Store Admin"},
    "app_metadata": {"role": "admin"},
}


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    settings.USE_HTTP_ADAPTERS = False
    reset_memory_tables()
    cache.clear()
    tables_cb.on_success()
    yield
    tables_cb.on_success()


@pytest.fixture
def tables():
    """Fresh in-memory tables shared with the views."""
    return reset_memory_tables()


@pytest.fixture
def shopper():
    return HostedUser(SHOPPER, access_token="shopper-token")


@pytest.fixture
def api(shopper):
    client = APIClient()
    client.force_authenticate(user=shopper, token=shopper.access_token)
    return client


@pytest.fixture
def admin_api():
    user = HostedUser(ADMIN, access_token="admin-token")
    client = APIClient()
    client.force_authenticate(user=user, token=user.access_token)
    return client


@pytest.fixture
def address_row():
    return {
        "id": "addr-1",
        "user_id": SHOPPER["id"],
        "name": "Home",
        "street": "1 Main St",
        "city": "Springfield",
        "state": "IL",
        "zipcode": "62701",
        "country": "US",
        "is_default": True,
    }


@pytest.fixture
def delivery_date():
    """First delivery date offered today."""
    return available_delivery_dates(datetime.now(timezone.utc).date())[0]


@pytest.fixture
def checkout_payload(delivery_date):
    return {
        "items": [
            {"product_id": "p-1", "name": "Mug", "price": "12.50", "quantity": 2},
            {"product_id": "p-2", "name": "Tea", "price": "5.00", "quantity": 1, "variation_id": "v-1", "variation_name": "Green"},
        ],
        "address_id": "addr-1",
        "payment_method": "credit_card",
        "card": {"card_number": "4242424242424242", "card_name": "Sam Shopper", "expiry_date": "1230", "cvv": "123"},
        "delivery_date": delivery_date,
        "delivery_time": "09:00-12:00",
    }
