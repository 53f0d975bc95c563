"""Resilience tests for the hosted table client (retries, errors, circuit)."""

import httpx
import pytest

from apps.checkout.domain import RowNotFound, TableError, TableUnavailable
from apps.checkout.tables import HttpTableClient, tables_cb


@pytest.fixture
def fast_retries(settings, monkeypatch):
    settings.HTTP_RETRY_MAX = 2
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    monkeypatch.setattr("time.sleep", lambda *a, **k: None, raising=True)


def scripted(monkeypatch, *responses):
    """Patch ``httpx.Client.request`` to answer with ``responses`` in order."""
    calls = []

    def fake_request(self, method, url, params=None, json=None, headers=None, **kwargs):
        calls.append({"method": method, "url": url, "params": params, "json": json, "headers": dict(headers or {})})
        answer = responses[min(len(calls), len(responses)) - 1]
        if isinstance(answer, Exception):
            raise answer
        status, body = answer
        return httpx.Response(status, json=body, request=httpx.Request(method, url))

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    return calls


def client():
    return HttpTableClient(base_url="http://db.test", api_key="anon", access_token="tok")


def test_select_builds_filters_and_headers(monkeypatch, fast_retries):
    calls = scripted(monkeypatch, (200, [{"id": "a1"}]))
    rows = client().select("shipping_addresses", filters={"user_id": "u1", "is_default": True}, order="is_default.desc")
    assert rows == [{"id": "a1"}]
    call = calls[0]
    assert call["url"] == "http://db.test/rest/v1/shipping_addresses"
    assert call["params"] == {"select": "*", "user_id": "eq.u1", "is_default": "eq.true", "order": "is_default.desc"}
    assert call["headers"]["apikey"] == "anon"
    assert call["headers"]["Authorization"] == "Bearer tok"


def test_single_select_no_rows_is_row_not_found(monkeypatch, fast_retries):
    calls = scripted(monkeypatch, (406, {"code": "PGRST116", "message": "JSON object requested, multiple (or no) rows returned"}))
    with pytest.raises(RowNotFound):
        client().select("coupons", filters={"code": "X"}, single=True)
    assert calls[0]["headers"]["Accept"] == "application/vnd.pgrst.object+json"
    assert len(calls) == 1
    assert tables_cb.state == "CLOSED"


def test_get_retried_on_5xx(monkeypatch, fast_retries):
    calls = scripted(monkeypatch, (503, {"message": "down"}), (200, []))
    assert client().select("orders") == []
    assert len(calls) == 2
    assert calls[1]["headers"]["X-Retry-Count"] == "1"


def test_insert_not_retried(monkeypatch, fast_retries):
    calls = scripted(monkeypatch, (500, {"message": "boom"}), (201, [{"id": "o1"}]))
    with pytest.raises(TableUnavailable):
        client().insert("orders", {"user_id": "u1"})
    assert len(calls) == 1
    assert calls[0]["headers"]["Prefer"] == "return=representation"


def test_transport_error_after_retries(monkeypatch, fast_retries):
    calls = scripted(monkeypatch, httpx.ConnectError("refused"))
    with pytest.raises(TableUnavailable):
        client().delete("cart_items", filters={"user_id": "u1"})
    assert len(calls) == 3


def test_4xx_is_table_error_with_code(monkeypatch, fast_retries):
    scripted(monkeypatch, (409, {"code": "23505", "message": "duplicate key value"}))
    with pytest.raises(TableError) as e:
        client().insert("coupons", {"code": "DUP"})
    assert e.value.code == "23505"
    assert not isinstance(e.value, TableUnavailable)


def test_circuit_opens_after_failures(monkeypatch, settings, fast_retries):
    settings.HTTP_RETRY_MAX = 0
    monkeypatch.setattr(tables_cb, "fail_threshold", 2)
    calls = scripted(monkeypatch, (500, {"message": "boom"}))
    for _ in range(2):
        with pytest.raises(TableUnavailable):
            client().select("orders")
    with pytest.raises(TableUnavailable) as e:
        client().select("orders")
    assert e.value.code == "CIRCUIT_OPEN"
    assert len(calls) == 2


def test_half_open_failure_reopens_circuit(monkeypatch, settings, fast_retries):
    settings.HTTP_RETRY_MAX = 0
    monkeypatch.setattr(tables_cb, "fail_threshold", 1)
    calls = scripted(monkeypatch, (500, {"message": "boom"}))
    with pytest.raises(TableUnavailable):
        client().select("orders")

    # reset timeout elapsed: the next call is the trial call
    monkeypatch.setattr(tables_cb, "_opened_at", tables_cb._opened_at - tables_cb.reset_timeout - 1)
    assert tables_cb.state == "HALF_OPEN"
    with pytest.raises(TableUnavailable):
        client().select("orders")
    assert tables_cb.state == "OPEN"

    with pytest.raises(TableUnavailable) as e:
        client().select("orders")
    assert e.value.code == "CIRCUIT_OPEN"
    assert len(calls) == 2


def test_half_open_success_closes_circuit(monkeypatch, settings, fast_retries):
    settings.HTTP_RETRY_MAX = 0
    monkeypatch.setattr(tables_cb, "fail_threshold", 1)
    scripted(monkeypatch, (500, {"message": "boom"}), (200, [{"id": "o1"}]))
    with pytest.raises(TableUnavailable):
        client().select("orders")

    monkeypatch.setattr(tables_cb, "_opened_at", tables_cb._opened_at - tables_cb.reset_timeout - 1)
    assert client().select("orders") == [{"id": "o1"}]
    assert tables_cb.state == "CLOSED"
