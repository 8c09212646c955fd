"""Shared fixtures: RSA test key, in-memory registry/ledger and a mocked FCM/OAuth transport."""

from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest
import pytest_asyncio
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from app.errors import RegistryError
from app.infra.oauth_client import TokenExchanger
from app.models.device import DeviceEndpoint
from app.models.service_account import ServiceAccountKey
from app.services.dedup import DedupGuard
from app.services.dispatcher import FanOutDispatcher
from app.services.endpoint_resolver import EndpointResolver
from app.services.notification_handler import NotificationHandler

TOKEN_URI = "https://oauth2.googleapis.com/token"
PROJECT_ID = "artisan-test"
SEND_URL = f"https://fcm.googleapis.com/v1/projects/{PROJECT_ID}/messages:send"

ANDROID_TOKEN = "android-token-aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
IOS_TOKEN = "ios-token-bbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def service_account(private_key_pem) -> ServiceAccountKey:
    return ServiceAccountKey(
        client_email="push@artisan-test.iam.gserviceaccount.com",
        private_key=private_key_pem,
        project_id=PROJECT_ID,
    )


class FakeRegistry:
    """In-memory stand-in for ``EndpointRegistry``."""

    def __init__(self, endpoints=None, fail_reads=False, fail_deletes=False):
        self.endpoints: list[DeviceEndpoint] = list(endpoints or [])
        self.fail_reads = fail_reads
        self.fail_deletes = fail_deletes
        self.deleted: list[str] = []

    async def list_endpoints(self, user_id):
        if self.fail_reads:
            raise RegistryError("table unavailable")
        return [ep for ep in self.endpoints if ep.user_id == user_id]

    async def delete_by_token(self, token):
        if self.fail_deletes:
            raise RegistryError("delete failed")
        before = len(self.endpoints)
        self.endpoints = [ep for ep in self.endpoints if ep.token != token]
        self.deleted.append(token)
        return before - len(self.endpoints)


class FakeLedger:
    """In-memory stand-in for ``DedupLedger``."""

    def __init__(self):
        self.processed: set[str] = set()

    async def is_processed(self, event_id):
        return event_id in self.processed

    async def mark_processed(self, event_id):
        self.processed.add(event_id)


class FakeFcm:
    """Routes OAuth and FCM calls; ``responses`` maps a device token to a send response."""

    def __init__(self):
        self.token_calls = 0
        self.sent: list[dict] = []
        self.responses: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.token_response = lambda: httpx.Response(
            200, json={"access_token": "ya29.test-token", "expires_in": 3599}
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URI:
            self.token_calls += 1
            return self.token_response()
        if str(request.url) == SEND_URL:
            body = json.loads(request.content)
            self.sent.append({"body": body, "headers": dict(request.headers)})
            token = body["message"]["token"]
            factory = self.responses.get(token)
            if factory is not None:
                return factory(request)
            return httpx.Response(
                200, json={"name": f"projects/{PROJECT_ID}/messages/{len(self.sent)}"}
            )
        return httpx.Response(404, text="unexpected url")


@pytest.fixture
def fcm() -> FakeFcm:
    return FakeFcm()


@pytest.fixture
def two_devices() -> list[DeviceEndpoint]:
    return [
        DeviceEndpoint(token=ANDROID_TOKEN, device_type="android", user_id="u1"),
        DeviceEndpoint(token=IOS_TOKEN, device_type="ios", user_id="u1"),
    ]


@pytest.fixture
def registry(two_devices) -> FakeRegistry:
    return FakeRegistry(two_devices)


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest_asyncio.fixture
async def http_client(fcm):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fcm)) as client:
        yield client


@pytest.fixture
def handler(service_account, registry, ledger, http_client) -> NotificationHandler:
    return NotificationHandler(
        service_account=service_account,
        dedup=DedupGuard(ledger),
        resolver=EndpointResolver(registry),
        token_exchanger=TokenExchanger(http_client),
        dispatcher=FanOutDispatcher(http_client, registry, PROJECT_ID),
    )
