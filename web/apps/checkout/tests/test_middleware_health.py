import pytest


@pytest.mark.django_db
def test_health_reports_local_db(client):
    r = client.get("/health/")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "components": {"db": {"ok": True}}}


@pytest.mark.django_db
def test_health_includes_table_api_when_enabled(client, settings, monkeypatch):
    settings.USE_HTTP_ADAPTERS = True
    monkeypatch.setattr("apps.checkout.tables.HttpTableClient.ping", lambda self: False)
    r = client.get("/health/")
    assert r.status_code == 503
    assert r.json()["components"]["tables"] == {"ok": False, "circuit": "CLOSED"}


def test_request_id_is_echoed(client):
    r = client.get("/api/checkout/ping/", HTTP_X_REQUEST_ID="req-123")
    assert r["X-Request-ID"] == "req-123"


def test_request_id_generated(client):
    r = client.get("/api/checkout/ping/")
    assert len(r["X-Request-ID"]) == 36


def test_oversized_api_payload_rejected(client, settings):
    settings.API_MAX_BYTES = 10
    r = client.post("/api/checkout/quote/", data={"items": []}, content_type="application/json")
    assert r.status_code == 413
    assert r.json()["detail"] == "PAYLOAD_TOO_LARGE"
