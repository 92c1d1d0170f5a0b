"""httpx-based client for the portal's /skynet/registry endpoint.

All methods return parsed values or raise RegistryError.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from healthcheck.checks.http import error_data, peer_ip, response_content
from healthcheck.registry.codec import RegistryEntry, hash_data_key
from healthcheck.registry.keys import sign_registry_entry

logger = logging.getLogger(__name__)

REGISTRY_PATH = "/skynet/registry"
READ_TIMEOUT = 5  # seconds the portal waits for hosts before answering


class RegistryError(Exception):
    """Raised when a registry request fails in transport or is rejected."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        content: Any = None,
        ip: str | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.content = content
        self.ip = ip
        super().__init__(message)

    @classmethod
    def from_exception(cls, exc: Exception) -> "RegistryError":
        data = error_data(exc)
        content = data["error_response_content"]
        message = data["error_message"]
        # prefer the portal's own explanation when the body carries one
        if isinstance(content, dict) and content.get("message"):
            message = content["message"]
        return cls(message, status_code=data["status_code"], content=content, ip=data["ip"])


class RegistryClient:
    """Signed reads and writes against one portal's registry."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        portal_url: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._client = client
        self._endpoint = f"{portal_url.rstrip('/')}{REGISTRY_PATH}"
        self._headers = headers or {}
        self.last_ip: str | None = None

    async def set_entry(self, private_key: str, public_key: str, entry: RegistryEntry) -> None:
        signature = sign_registry_entry(private_key, entry)
        payload = {
            "publickey": {"algorithm": "ed25519", "key": list(bytes.fromhex(public_key))},
            "datakey": hash_data_key(entry.data_key).hex(),
            "revision": entry.revision,
            "data": list(entry.data),
            "signature": list(signature),
        }
        try:
            resp = await self._client.post(self._endpoint, json=payload, headers=self._headers)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise RegistryError.from_exception(e) from e
        self.last_ip = peer_ip(resp)
        logger.debug("Registry entry %r written (revision %d)", entry.data_key, entry.revision)

    async def get_entry(self, public_key: str, data_key: str) -> tuple[RegistryEntry, bytes | None]:
        """Read an entry back; returns it with its signature when one is sent."""
        params = {
            "publickey": f"ed25519:{public_key}",
            "datakey": hash_data_key(data_key).hex(),
            "timeout": str(READ_TIMEOUT),
        }
        try:
            resp = await self._client.get(self._endpoint, params=params, headers=self._headers)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as e:
            raise RegistryError.from_exception(e) from e
        except ValueError as e:
            raise RegistryError(
                f"Registry responded with invalid json: {e}",
                status_code=resp.status_code, content=response_content(resp), ip=peer_ip(resp),
            ) from e
        self.last_ip = peer_ip(resp)

        try:
            entry = RegistryEntry(
                data_key=data_key,
                data=bytes.fromhex(body["data"]),
                revision=int(body["revision"]),
            )
            signature = bytes.fromhex(body["signature"]) if body.get("signature") else None
        except (KeyError, TypeError, ValueError) as e:
            raise RegistryError(
                f"Registry responded with a malformed entry: {e}",
                status_code=resp.status_code, content=body, ip=self.last_ip,
            ) from e

        return entry, signature
