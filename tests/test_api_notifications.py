"""Tests for the HTTP surface: routing, dependency wiring and 500 mapping."""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from app.api.notifications import get_notification_handler
from app.errors import InvalidPayloadError, SigningError
from app.main import app
from app.models.delivery import DeliveryResult, DispatchResponse


@pytest.fixture
def stub_handler():
    handler = AsyncMock()
    app.dependency_overrides[get_notification_handler] = lambda: handler
    yield handler
    app.dependency_overrides.clear()


@pytest.fixture
def client():
    # sin "with": no corre el lifespan (no hace falta configuración real)
    return TestClient(app, raise_server_exceptions=False)


def test_send_returns_dispatch_result(client, stub_handler):
    stub_handler.process_notification.return_value = DispatchResponse(
        success=True,
        sent=1,
        total=2,
        results=[
            DeliveryResult(token="android-token-aaaaaa", success=True, messageId="projects/p/messages/1"),
            DeliveryResult(token="ios-token-bbbbbbbbbbb", success=False, error="boom"),
        ],
    )

    response = client.post("/notifications/send", json={"userId": "u1", "title": "Hi"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["sent"] == 1
    assert body["results"][0] == {
        "token": "android-token-aaaaaa",
        "success": True,
        "messageId": "projects/p/messages/1",
    }
    assert body["results"][1] == {"token": "ios-token-bbbbbbbbbbb", "success": False, "error": "boom"}
    stub_handler.process_notification.assert_awaited_once_with({"userId": "u1", "title": "Hi"})


def test_skipped_response_omits_counts(client, stub_handler):
    stub_handler.process_notification.return_value = DispatchResponse(success=True, skipped=True)

    body = client.post("/notifications/send", json={"userId": "u1"}).json()

    assert body["skipped"] is True
    assert "sent" not in body


def test_invalid_json_is_500(client, stub_handler):
    response = client.post(
        "/notifications/send",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert response.json()["error"] == "Invalid JSON payload"
    stub_handler.process_notification.assert_not_awaited()


@pytest.mark.parametrize(
    "exc",
    [InvalidPayloadError("Invalid payload format"), SigningError("Clave privada mal formada")],
)
def test_fatal_errors_become_500(client, stub_handler, exc):
    stub_handler.process_notification.side_effect = exc

    response = client.post("/notifications/send", json={"foo": "bar"})

    assert response.status_code == 500
    assert response.json()["error"] == str(exc)
    assert "timestamp" in response.json()


def test_unexpected_errors_become_500(client, stub_handler):
    stub_handler.process_notification.side_effect = RuntimeError("kaboom")

    response = client.post("/notifications/send", json={"userId": "u1"})

    assert response.status_code == 500
    assert response.json() == {
        "success": False,
        "error": "kaboom",
        "timestamp": response.json()["timestamp"],
    }


def test_uninitialised_service_is_500(client):
    response = client.post("/notifications/send", json={"userId": "u1"})

    assert response.status_code == 500
    assert "no está inicializado" in response.json()["error"]


def test_consumer_status(client):
    body = client.get("/notifications/debug/consumer-status").json()

    assert set(body) == {"startedAt", "lastMessageAt", "lastError", "queue", "hasConnectionString"}


def test_health(client):
    assert client.get("/health").json() == {"ok": True}
