"""IP validation middleware.

In multi-node portals a probe's request can be routed to a different node
than the one running the checks, which attributes failures to the wrong
server. Every result that reports a responding IP is compared with this
runner's own egress IP and invalidated on mismatch.

When the egress IP cannot be determined the middleware does nothing for the
whole run (fail open).
"""

from __future__ import annotations

import dataclasses
import logging

import httpx

from healthcheck.checks.http import is_valid_ip
from healthcheck.checks.models import Result
from healthcheck.config import Settings

logger = logging.getLogger(__name__)

MISMATCH_MESSAGE = (
    "Response ip was different than current server ip - possibly there was an error with routing request"
)


async def resolve_egress_ip(settings: Settings, client: httpx.AsyncClient) -> str | None:
    """Current machine's public IPv4 address, or None when unknown."""
    if settings.serverip:
        if is_valid_ip(settings.serverip):
            return settings.serverip
        logger.warning("Environment variable serverip contains invalid ip: %r", settings.serverip)

    service = settings.ip_check_service
    try:
        resp = await client.get(f"http://{service}")
        resp.raise_for_status()
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.warning("Egress ip lookup via %s failed: %s", service, e)
        return None

    body = resp.text.strip()
    if not is_valid_ip(body):
        logger.warning("%s responded with invalid ip: %r", service, body)
        return None

    logger.info("Server public ip: %s (source: %s)", body, service)
    return body


class IpValidator:
    """Per-result check of the responding IP against the egress IP."""

    def __init__(self, server_ip: str | None) -> None:
        self.server_ip = server_ip

    def __call__(self, result: Result) -> Result:
        if not self.server_ip or not result.ip or result.ip == self.server_ip:
            return result

        logger.warning(
            "Check %s answered from %s, expected %s", result.name, result.ip, self.server_ip,
        )
        note = {
            "message": MISMATCH_MESSAGE,
            "data": {"response": result.ip, "server": self.server_ip},
        }
        return dataclasses.replace(result, up=False, errors=[*(result.errors or []), note])


async def create_middleware(settings: Settings, client: httpx.AsyncClient) -> IpValidator:
    """Resolve the egress IP once and return the validator for this run."""
    return IpValidator(await resolve_egress_ip(settings, client))
