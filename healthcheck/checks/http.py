"""HTTP plumbing shared by all probes.

Builds the run's httpx client, captures the responding peer IP of every
response and converts request failures into Result diagnostics.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any

import httpx

from healthcheck.checks.models import CheckContext, Result
from healthcheck.config import Settings

logger = logging.getLogger(__name__)

IP_REGEX = re.compile(
    r"^(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]\d|\d)(?:\.(?:25[0-5]|2[0-4]\d|1\d\d|[1-9]\d|\d)){3}$"
)

# Response extension key holding the peer address captured on receipt
PEER_IP = "peer_ip"


class CheckFailed(Exception):
    """A response arrived but did not satisfy the probe's expectations."""

    def __init__(self, message: str, response: httpx.Response | None = None) -> None:
        super().__init__(message)
        self.response = response


def is_valid_ip(value: Any) -> bool:
    return isinstance(value, str) and bool(IP_REGEX.match(value))


# ── Client ───────────────────────────────────────────────────────────────────


async def _record_peer_ip(response: httpx.Response) -> None:
    """Response hook: remember the peer address while the stream is open."""
    if PEER_IP in response.extensions:
        return
    stream = response.extensions.get("network_stream")
    if stream is None:
        return
    try:
        addr = stream.get_extra_info("server_addr")
    except (AttributeError, OSError):
        return
    if addr:
        response.extensions[PEER_IP] = addr[0]


def build_client(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the client shared by every probe of one run."""
    return httpx.AsyncClient(
        timeout=settings.request_timeout,
        follow_redirects=True,
        transport=transport,
        event_hooks={"response": [_record_peer_ip]},
    )


def peer_ip(response: httpx.Response | None) -> str | None:
    if response is None:
        return None
    return response.extensions.get(PEER_IP)


# ── Diagnostics ──────────────────────────────────────────────────────────────


def elapsed_ms(t0: float) -> int:
    """Milliseconds since ``t0`` (a ``time.perf_counter()`` reading)."""
    return round((time.perf_counter() - t0) * 1000)


def response_content(response: httpx.Response | None) -> Any:
    """Response body parsed as JSON when possible, raw text otherwise."""
    if response is None:
        return None
    try:
        text = response.text
    except httpx.ResponseNotRead:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text or None


def error_response(exc: BaseException) -> httpx.Response | None:
    if isinstance(exc, (httpx.HTTPStatusError, CheckFailed)):
        return exc.response
    return None


def error_data(exc: BaseException) -> dict[str, Any]:
    """Everything a failed request can tell us, as Result keyword arguments."""
    response = error_response(exc)
    return {
        "status_code": response.status_code if response is not None else None,
        "error_message": str(exc) or type(exc).__name__,
        "error_response_content": response_content(response),
        "ip": peer_ip(response),
    }


# ── Generic access check ─────────────────────────────────────────────────────


async def access_check(ctx: CheckContext, name: str, url: str) -> Result:
    """GET ``url`` with the portal API key; up on any 2xx after redirects."""
    t0 = time.perf_counter()
    try:
        resp = await ctx.client.get(url, headers=ctx.settings.api_headers)
        resp.raise_for_status()
    except Exception as e:
        logger.debug("Access check %s failed: %s", name, e)
        return Result(name=name, up=False, time=elapsed_ms(t0), url=url, **error_data(e))

    return Result(
        name=name, up=True, time=elapsed_ms(t0), url=url,
        status_code=resp.status_code, ip=peer_ip(resp),
    )
