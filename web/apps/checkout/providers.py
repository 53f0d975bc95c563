"""Factories wiring the checkout services with a table port.

When ``settings.USE_HTTP_ADAPTERS`` is truthy the services talk to the
hosted table API through ``HttpTableClient``, forwarding the shopper's
access token. Otherwise they share one process-wide ``InMemoryTables``,
which tests and local demos seed through ``memory_tables()``.
"""

from typing import Optional

from django.conf import settings

from .adapters import InMemoryTables
from .domain import TablePort
from .reviews import ReviewService
from .service import CheckoutService
from .tables import HttpTableClient

_memory = InMemoryTables()


def memory_tables() -> InMemoryTables:
    return _memory


def reset_memory_tables(seed: Optional[dict] = None) -> InMemoryTables:
    global _memory
    _memory = InMemoryTables(seed)
    return _memory


def get_tables(access_token: Optional[str] = None) -> TablePort:
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return HttpTableClient(access_token=access_token)
    return _memory


def get_checkout_service(access_token: Optional[str] = None) -> CheckoutService:
    return CheckoutService(get_tables(access_token))


def get_review_service(access_token: Optional[str] = None) -> ReviewService:
    return ReviewService(get_tables(access_token))
