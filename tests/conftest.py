"""Shared test fixtures."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qs

import httpx
import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from healthcheck.checks.http import PEER_IP, build_client
from healthcheck.checks.models import CheckContext
from healthcheck.config import Settings
from healthcheck.registry.codec import encode_prefixed_bytes, encode_uint64, hash_all

PORTAL = "portal.test"
SERVER_IP = "203.0.113.10"

_ENV_VARS = (
    "PORTAL_DOMAIN", "SERVER_DOMAIN", "ACCOUNTS_TEST_USER_API_KEY", "ACCOUNTS_ENABLED",
    "ACCOUNTS_LIMIT_ACCESS", "PORTAL_MODULES", "DENY_PUBLIC_ACCESS", "SERVERIP",
    "STATE_DIR", "LOG_LEVEL", "RETRY_DELAY", "RETRY_ATTEMPTS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the host environment out of Settings()."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "portal_domain": PORTAL,
        "serverip": SERVER_IP,
        "retry_delay": 0,
        "_env_file": None,
    }
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


def reply(status_code: int = 200, ip: str | None = SERVER_IP, **kwargs: Any) -> httpx.Response:
    """A mocked response that reports ``ip`` as its peer address."""
    extensions = {PEER_IP: ip} if ip else {}
    return httpx.Response(status_code, extensions=extensions, **kwargs)


def make_context(settings: Settings, handler: Any) -> CheckContext:
    client = build_client(settings, transport=httpx.MockTransport(handler))
    return CheckContext(settings=settings, client=client)


# ── Fake portal ──────────────────────────────────────────────────────────────


class FakeRegistry:
    """In-memory registry that only accepts correctly signed entries."""

    def __init__(self) -> None:
        self.entries: dict[tuple[str, str], dict[str, Any]] = {}
        self.writes = 0

    def handle(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST":
            return self._write(request)
        return self._read(request)

    def _write(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        public_key = bytes(body["publickey"]["key"])
        data = bytes(body["data"])
        signature = bytes(body["signature"])
        digest = hash_all(
            bytes.fromhex(body["datakey"]),
            encode_prefixed_bytes(data),
            encode_uint64(body["revision"]),
        )
        try:
            Ed25519PublicKey.from_public_bytes(public_key).verify(signature, digest)
        except InvalidSignature:
            return reply(400, json={"message": "could not verify signature"})

        self.writes += 1
        self.entries[(public_key.hex(), body["datakey"])] = {
            "data": data.hex(),
            "revision": body["revision"],
            "signature": signature.hex(),
        }
        return reply(204)

    def _read(self, request: httpx.Request) -> httpx.Response:
        query = parse_qs(request.url.query.decode())
        public_key = query["publickey"][0].removeprefix("ed25519:")
        entry = self.entries.get((public_key, query["datakey"][0]))
        if entry is None:
            return reply(404, json={"message": "registry entry not found"})
        return reply(200, json=entry)


class FakePortal:
    """Answers every endpoint the critical checks touch with a healthy response."""

    def __init__(self, ip: str = SERVER_IP) -> None:
        self.ip = ip
        self.registry = FakeRegistry()
        self.requests: list[httpx.Request] = []
        # path or (host, path) -> factory of the response to send instead
        self.overrides: dict[Any, Callable[[], httpx.Response]] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host, path = request.url.host, request.url.path

        if (host, path) in self.overrides:
            return self.overrides[(host, path)]()
        if path in self.overrides:
            return self.overrides[path]()

        if host == "whatismyip.akamai.com":
            return reply(200, text=self.ip)
        if path == "/renter":
            return reply(200, ip=None, json={
                "settings": {"allowance": {"paymentcontractinitialfunding": "10000000000000000000000000"}},
            })
        if path == "/renter/workers":
            return reply(200, ip=None, json={
                "numworkers": 10,
                "totaldownloadcooldown": 1,
                "totalmaintenancecooldown": 0,
                "totaluploadcooldown": 1,
            })
        if path == "/skynet/registry":
            return self.registry.handle(request)
        if path == "/health":
            return reply(200, ip=self.ip, json={"dbAlive": True})
        return reply(200, ip=self.ip, text="ok")

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


@pytest.fixture
def portal() -> FakePortal:
    return FakePortal()
