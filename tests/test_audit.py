"""Tests for the audit logger and the /api/log ingestion endpoint."""

import pytest
from starlette.requests import Request

from atlas import crud
from atlas.audit import AuditLogger, RequestContext, resolve_client_ip
from atlas.errors import AuditWriteError, MissingAction

from conftest import audit_actions


def make_request(headers=None, client=("10.0.0.1", 5000)):
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/api/log",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


def test_ip_prefers_first_forwarded_address():
    request = make_request({"X-Forwarded-For": "198.51.100.4, 10.0.0.2"})

    assert resolve_client_ip(request) == "198.51.100.4"


def test_ip_falls_back_to_peer():
    assert resolve_client_ip(make_request()) == "10.0.0.1"


def test_ip_absent_when_unknown():
    assert resolve_client_ip(make_request(client=None)) is None


def test_record_swallows_failures(caplog):
    def broken_session():
        raise RuntimeError("boom")

    logger = AuditLogger(broken_session)

    logger.record(crud.AuditEventCreate(action="visit"))

    assert "Failed to record audit event" in caplog.text


def test_client_event_requires_action(audit_logger, session_factory):
    with pytest.raises(MissingAction):
        audit_logger.record_client_event(RequestContext(), "   ")

    assert audit_actions(session_factory) == []


def test_client_event_failure_is_reported():
    def broken_session():
        raise RuntimeError("boom")

    with pytest.raises(AuditWriteError):
        AuditLogger(broken_session).record_client_event(RequestContext(), "visit")


def test_log_endpoint_records_visit(client, session_factory):
    response = client.post(
        "/api/log",
        json={"action": "visit", "path": "/index.html"},
        headers={"X-Forwarded-For": "198.51.100.4", "User-Agent": "Mozilla/5.0"},
    )

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    session = session_factory()
    try:
        [event] = crud.get_audit_events(session)
    finally:
        session.close()
    assert event.action == "visit"
    assert event.path == "/index.html"
    assert event.ip_address == "198.51.100.4"
    assert event.extra == {"userAgent": "Mozilla/5.0"}
    assert event.timestamp is not None


def test_log_endpoint_records_download(client, session_factory):
    response = client.post(
        "/api/log",
        json={"action": "download", "path": "/", "fileName": "1700000000000-a.pdf", "extra": {"id": 1}},
    )

    assert response.status_code == 200
    session = session_factory()
    try:
        [event] = crud.get_audit_events(session, action="download")
    finally:
        session.close()
    assert event.file_name == "1700000000000-a.pdf"
    assert event.extra["id"] == 1
    assert event.ip_address == "testclient"


def test_log_endpoint_rejects_missing_action(client, session_factory):
    response = client.post("/api/log", json={"path": "/"})

    assert response.status_code == 400
    assert response.json() == {"error": "action is required"}
    assert audit_actions(session_factory) == []


def test_log_endpoint_without_body_requires_action(client, session_factory):
    response = client.post("/api/log")

    assert response.status_code == 400
    assert response.json() == {"error": "action is required"}
    assert audit_actions(session_factory) == []


def test_log_endpoint_reports_storage_failure(app, client):
    from atlas.audit import get_audit_logger

    def broken_session():
        raise RuntimeError("boom")

    app.dependency_overrides[get_audit_logger] = lambda: AuditLogger(broken_session)

    response = client.post("/api/log", json={"action": "visit"})

    assert response.status_code == 500
    assert response.json() == {"error": "Log failed"}
