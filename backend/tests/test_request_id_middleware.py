import logging

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from backend.core.logging import LOGGER_NAME, get_request_id
from backend.core.middleware.request_id import RequestIdMiddleware


def _make_app():
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)

    @app.get("/echo")
    async def echo(request: Request):
        return {
            "state": getattr(request.state, "request_id", None),
            "context": get_request_id(),
        }

    return app


def test_generates_request_id_when_missing():
    client = TestClient(_make_app())

    resp = client.get("/echo")
    rid = resp.headers.get("x-request-id")
    assert rid
    assert resp.json() == {"state": rid, "context": rid}


def test_echoes_provided_request_id():
    client = TestClient(_make_app())

    resp = client.get("/echo", headers={"X-Request-Id": "mix-rid-42"})
    assert resp.headers.get("x-request-id") == "mix-rid-42"
    assert resp.json()["context"] == "mix-rid-42"


def test_context_is_cleared_after_request():
    client = TestClient(_make_app())
    client.get("/echo", headers={"X-Request-Id": "short-lived"})
    assert get_request_id() is None


def test_completion_is_logged_with_request_id(client, caplog):
    with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
        resp = client.get("/healthz", headers={"X-Request-Id": "log-me"})
    assert resp.status_code == 200

    completed = [r for r in caplog.records if r.getMessage() == "request.complete"]
    assert completed
    record = completed[-1]
    assert record.request_id == "log-me"
    assert record.path == "/healthz"
    assert record.status == 200
    assert record.latency_bucket


def test_completion_log_carries_resolved_user(client, caplog):
    with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
        resp = client.get("/api/auth/me", headers={"X-User-Id": "alice"})
    user_id = resp.json()["id"]

    completed = [r for r in caplog.records if r.getMessage() == "request.complete"]
    assert completed[-1].user_id == user_id
