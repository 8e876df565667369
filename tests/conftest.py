"""Shared fixtures: throwaway service account keys and a stub Google backend."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from credential_broker.google import ServiceAccountKey

START_TIME = 1_700_000_000.0


class FakeClock:
    """Settable replacement for time.time."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGoogleBackend:
    """Stub for the OAuth token endpoint and the Sheets values API.

    Token responses are served from ``token_responses`` in order; once it
    is empty every exchange succeeds with a numbered token valid for an
    hour. Values live in ``ranges`` keyed by A1 range.
    """

    def __init__(self) -> None:
        self.ranges: dict[str, list[list[Any]]] = {}
        self.token_responses: list[httpx.Response | dict[str, Any]] = []
        self.token_requests: list[dict[str, str]] = []
        self.value_requests: list[httpx.Request] = []
        self.values_error: int | None = None
        # When set, token requests after the first wait on it
        self.token_gate: asyncio.Event | None = None

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth2.googleapis.com":
            return await self._token(request)
        if request.url.host == "sheets.googleapis.com":
            return self._values(request)
        return httpx.Response(404, json={"error": "unknown host"})

    async def _token(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.token_requests.append(form)

        if self.token_gate is not None and len(self.token_requests) > 1:
            await self.token_gate.wait()

        if self.token_responses:
            response = self.token_responses.pop(0)
            if isinstance(response, httpx.Response):
                return response
            return httpx.Response(200, json=response)

        n = len(self.token_requests)
        return httpx.Response(200, json={"access_token": f"token-{n}", "expires_in": 3600})

    def _values(self, request: httpx.Request) -> httpx.Response:
        self.value_requests.append(request)
        if self.values_error is not None:
            return httpx.Response(self.values_error, json={"error": {"code": self.values_error}})

        range_notation = request.url.path.split("/values/", 1)[1]

        if request.method == "GET":
            body: dict[str, Any] = {"range": range_notation, "majorDimension": "ROWS"}
            if self.ranges.get(range_notation):
                body["values"] = self.ranges[range_notation]
            return httpx.Response(200, json=body)

        if request.method == "PUT":
            values = json.loads(request.content)["values"]
            self.ranges[range_notation] = values
            return httpx.Response(
                200,
                json={
                    "updatedRange": range_notation,
                    "updatedCells": sum(len(row) for row in values),
                },
            )

        return httpx.Response(405)

    def reads_of(self, range_notation: str) -> int:
        """Number of GET requests made for a range."""
        return sum(
            1
            for r in self.value_requests
            if r.method == "GET" and r.url.path.endswith(f"/values/{range_notation}")
        )


@pytest.fixture(scope="session")
def rsa_keypair() -> tuple[str, str]:
    """PEM private and public key of a throwaway RSA key."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = (
        key.public_key()
        .public_bytes(serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo)
        .decode()
    )
    return private_pem, public_pem


@pytest.fixture
def key_info(rsa_keypair) -> dict[str, Any]:
    """Contents of a service account JSON key file."""
    private_pem, _ = rsa_keypair
    return {
        "type": "service_account",
        "project_id": "broker-test",
        "private_key_id": "abc123",
        "private_key": private_pem,
        "client_email": "broker@broker-test.iam.gserviceaccount.com",
        "client_id": "1234567890",
        "token_uri": "https://oauth2.googleapis.com/token",
    }


@pytest.fixture
def key_file(tmp_path, key_info):
    """A service account key file on disk."""
    path = tmp_path / "service_account_key.json"
    with open(path, "w") as f:
        json.dump(key_info, f)
    return path


@pytest.fixture
def service_account_key(key_info) -> ServiceAccountKey:
    return ServiceAccountKey.from_info(key_info)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> FakeGoogleBackend:
    return FakeGoogleBackend()


@pytest.fixture
def http(backend) -> httpx.AsyncClient:
    """HTTP client routed to the stub backend."""
    return httpx.AsyncClient(transport=httpx.MockTransport(backend.handler))
