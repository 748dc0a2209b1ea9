# tests/test_lead_route.py
import uuid

import pytest
from fastapi.testclient import TestClient

from crm_intake.core.config import get_settings
from crm_intake.main import create_app
from crm_intake.routes.lead import get_lead_store
from crm_intake.services.storage_errors import StorageFailure


@pytest.fixture
def client(fake_store):
    app = create_app(get_settings())
    app.dependency_overrides[get_lead_store] = lambda: fake_store
    # No context manager: the lifespan (and its database engine) is not started.
    return TestClient(app)


def test_new_lead_returns_201(client, fake_store):
    response = client.post("/api/lead", json={"email": "a@x.com"}, headers={"Idempotency-Key": "k1"})

    assert response.status_code == 201
    body = response.json()
    assert body["ok"] is True
    assert body["deduplicated"] is False
    assert uuid.UUID(body["lead_id"]) in fake_store.leads


def test_replay_returns_409_with_original_id(client):
    first = client.post("/api/lead", json={"email": "a@x.com"}, headers={"Idempotency-Key": "k1"})
    second = client.post("/api/lead", json={"email": "a@x.com"}, headers={"Idempotency-Key": "k1"})

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json() == {"ok": True, "lead_id": first.json()["lead_id"], "deduplicated": True}


def test_without_key_every_post_creates_a_lead(client, fake_store):
    first = client.post("/api/lead", json={"email": "a@x.com"})
    second = client.post("/api/lead", json={"email": "a@x.com"})

    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["lead_id"] != second.json()["lead_id"]
    assert len(fake_store.leads) == 2


def test_headers_are_case_insensitive(client, fake_store):
    response = client.post(
        "/api/lead",
        json={"email": "a@x.com"},
        headers={"IDEMPOTENCY-KEY": "k-upper", "x-request-id": "req-77"},
    )

    assert response.status_code == 201
    [row] = fake_store.leads.values()
    assert row["idempotency_key"] == "k-upper"
    assert row["x_request_id"] == "req-77"


def test_empty_idempotency_header_is_absent(client, fake_store):
    client.post("/api/lead", json={"email": "a@x.com"}, headers={"Idempotency-Key": ""})
    client.post("/api/lead", json={"email": "a@x.com"}, headers={"Idempotency-Key": ""})

    assert len(fake_store.leads) == 2


def test_arbitrary_field_contents_are_accepted(client, fake_store):
    response = client.post("/api/lead", json={"email": "not-an-email", "extra": {"nested": [1, 2]}})

    assert response.status_code == 201
    [raw] = fake_store.raw.values()
    assert raw["payload"]["extra"] == {"nested": [1, 2]}


@pytest.mark.parametrize("body", [[{"email": "a@x.com"}], "lead", 42, None, True])
def test_non_object_body_is_rejected_before_ingestion(client, fake_store, body):
    response = client.post("/api/lead", json=body)

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "invalid_payload"}
    assert fake_store.calls == []


def test_malformed_json_is_rejected(client, fake_store):
    response = client.post("/api/lead", content=b"{not json", headers={"Content-Type": "application/json"})

    assert response.status_code == 400
    assert response.json() == {"ok": False, "error": "invalid_payload"}
    assert fake_store.calls == []


def test_storage_failure_returns_generic_500(client, fake_store):
    fake_store.lead_error = StorageFailure(ConnectionResetError("db host 10.0.0.5 unreachable"))

    response = client.post("/api/lead", json={"email": "a@x.com"})

    assert response.status_code == 500
    assert response.json() == {"ok": False, "error": "internal_error"}
    assert "10.0.0.5" not in response.text
    # Raw capture survived the failed normalization
    assert len(fake_store.raw) == 1


def test_request_id_is_echoed(client):
    response = client.post("/api/lead", json={}, headers={"X-Request-ID": "req-echo"})

    assert response.status_code == 201
    assert response.headers["X-Request-ID"] == "req-echo"


class _RecordingLogger:
    def __init__(self, events):
        self.events = events

    def bind(self, **kw):
        return self

    def _record(level):
        def log(self, event, *args, **kw):
            self.events.append((level, event))
        return log

    debug = _record("debug")
    info = _record("info")
    warning = _record("warning")
    error = _record("error")
    critical = _record("critical")


def test_storage_failure_raises_a_single_error_log(client, fake_store, monkeypatch):
    import crm_intake.main
    import crm_intake.routes.lead
    import crm_intake.services.lead_ingest

    events = []
    for module in (crm_intake.main, crm_intake.routes.lead, crm_intake.services.lead_ingest):
        monkeypatch.setattr(module, "logger", _RecordingLogger(events))
    fake_store.lead_error = StorageFailure(ConnectionResetError("reset"))

    response = client.post("/api/lead", json={"email": "a@x.com"})

    assert response.status_code == 500
    errors = [event for level, event in events if level in ("error", "critical")]
    assert errors == ["lead.ingest_failed"]
    assert ("warning", "api.exception") in events
