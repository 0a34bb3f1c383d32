"""Tests for the Flask application factory."""

from contextlib import contextmanager
from pathlib import Path
import sys
from types import SimpleNamespace

from flask import Response

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:  # pragma: no cover
    sys.path.insert(0, str(ROOT))

import app as app_module  # noqa: E402
from office_workflow_bot import security  # noqa: E402


class DummyHandler:
    called = False

    def __init__(self, bolt_app):
        self.bolt_app = bolt_app

    def handle(self, _request):
        DummyHandler.called = True
        return Response('{"response_action":"clear"}', status=200, mimetype="application/json")


def _signed_headers(secret: str, body: str, timestamp: str) -> dict[str, str]:
    signature = security.compute_signature(secret, timestamp, body)
    return {
        security.SLACK_SIGNATURE_HEADER: signature,
        security.SLACK_TIMESTAMP_HEADER: timestamp,
    }


def _post(flask_app, body: str, headers: dict[str, str]):
    client = flask_app.test_client()
    return client.post("/slack/events", data=body, content_type="application/json", headers=headers)


def test_slack_events_route_returns_handler_response(monkeypatch):
    DummyHandler.called = False
    monkeypatch.setattr(app_module, "SlackRequestHandler", DummyHandler)
    flask_app = app_module.create_app()

    body = "{}"
    timestamp = "1700000000"
    monkeypatch.setattr(security, "time", SimpleNamespace(time=lambda: int(timestamp)))

    response = _post(flask_app, body, _signed_headers("secret", body, timestamp))

    assert response.status_code == 200
    assert response.get_json() == {"response_action": "clear"}
    assert DummyHandler.called is True


def test_invalid_signature_returns_unauthorised(monkeypatch):
    DummyHandler.called = False
    monkeypatch.setattr(app_module, "SlackRequestHandler", DummyHandler)
    flask_app = app_module.create_app()

    timestamp = "1700000000"
    monkeypatch.setattr(security, "time", SimpleNamespace(time=lambda: int(timestamp)))

    response = _post(
        flask_app,
        "{}",
        {security.SLACK_SIGNATURE_HEADER: "v0=invalid", security.SLACK_TIMESTAMP_HEADER: timestamp},
    )

    assert response.status_code == 401
    assert response.get_json()["error"] == "invalid_signature"
    assert DummyHandler.called is False


def test_stale_timestamp_rejected(monkeypatch):
    DummyHandler.called = False
    monkeypatch.setattr(app_module, "SlackRequestHandler", DummyHandler)
    flask_app = app_module.create_app()

    body = "{}"
    monkeypatch.setattr(security, "time", SimpleNamespace(time=lambda: 2000))

    response = _post(flask_app, body, _signed_headers("secret", body, "100"))

    assert response.status_code == 401
    assert response.get_json()["error"] == "invalid_signature"
    assert DummyHandler.called is False


def test_unexpected_errors_return_trace_id(monkeypatch):
    class ExplodingHandler(DummyHandler):
        def handle(self, _request):
            raise RuntimeError("boom")

    monkeypatch.setattr(app_module, "SlackRequestHandler", ExplodingHandler)
    flask_app = app_module.create_app()

    body = "{}"
    timestamp = "1700000000"
    monkeypatch.setattr(security, "time", SimpleNamespace(time=lambda: int(timestamp)))

    response = _post(flask_app, body, _signed_headers("secret", body, timestamp))

    assert response.status_code == 500
    payload = response.get_json()
    assert payload["error"] == "internal_server_error"
    assert payload["trace_id"]


def test_healthz_reports_config_and_database():
    response = app_module.create_app().test_client().get("/healthz")

    assert response.status_code == 200
    assert response.get_json() == {"ok": True, "version": "unknown", "config": "valid", "db": "up"}


def test_healthz_returns_503_when_database_is_unreachable(monkeypatch):
    @contextmanager
    def unreachable():
        raise RuntimeError("connection refused")
        yield

    flask_app = app_module.create_app()
    monkeypatch.setattr(app_module, "session_scope", unreachable)

    payload = flask_app.test_client().get("/healthz").get_json()

    assert payload["ok"] is False
    assert payload["db"] == "down"
    assert payload["db_error"] == "connection refused"
