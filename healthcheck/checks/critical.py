"""Critical checks: portal availability and its core dependencies.

Every probe takes the run's CheckContext and returns ``Ran(Result)`` or
``Skipped`` when its feature is turned off. Probes never raise.
"""

from __future__ import annotations

import asyncio
import base64
import dataclasses
import logging
import math
import time

from healthcheck.checks.http import (
    CheckFailed,
    access_check,
    elapsed_ms,
    error_data,
    peer_ip,
)
from healthcheck.checks.models import CheckContext, Outcome, Probe, Ran, Result, Skipped, utc_now_iso
from healthcheck.checks.retry import with_retries
from healthcheck.config import MODULE_BLOCKER, Settings
from healthcheck.registry import (
    RegistryClient,
    RegistryEntry,
    RegistryError,
    gen_keypair_and_seed,
    verify_registry_entry,
)

logger = logging.getLogger(__name__)

EXAMPLE_SKYLINK = "AACogzrAimYPG42tDOKhS3lXZD8YvlF8Q8R17afe95iV2Q"

# Points to the latest release of the portal website, updated on every merge
EXAMPLE_RESOLVER_SKYLINK = "AQCExZYFmmc75OPgjPpHuF4WVN0pc4FX2p09t4naLKfTLw"

EXAMPLE_HNS_DOMAIN = "note-to-self"

EXPECTED_CONTRACT_FUNDING = "10000000000000000000000000"  # 10SC in hastings
WORKERS_COOLDOWN_THRESHOLD = 0.6

SKYD_HEADERS = {"User-Agent": "Sia-Agent"}


def skylink_to_base32(skylink: str) -> str:
    """Subdomain-safe form of a base64url skylink."""
    raw = base64.urlsafe_b64decode(skylink + "=" * (-len(skylink) % 4))
    return base64.b32hexencode(raw).decode("ascii").rstrip("=").lower()


def skylink_url(settings: Settings, skylink: str, subdomain: bool = False) -> str:
    if subdomain:
        return f"https://{skylink_to_base32(skylink)}.{settings.portal_domain}"
    return f"{settings.portal_url}/{skylink}"


def hns_url(settings: Settings, domain: str) -> str:
    return f"https://{domain}.hns.{settings.portal_domain}"


# ── skyd ─────────────────────────────────────────────────────────────────────


async def skyd_config_check(ctx: CheckContext) -> Outcome:
    """Renter settings in skyd must keep the expected per-contract budget."""
    t0 = time.perf_counter()
    try:
        resp = await ctx.client.get(f"{ctx.settings.skyd_url}/renter", headers=SKYD_HEADERS)
        resp.raise_for_status()
        funding = resp.json()["settings"]["allowance"]["paymentcontractinitialfunding"]
        if funding != EXPECTED_CONTRACT_FUNDING:
            raise CheckFailed("Skynet Portal Per-Contract Budget is not set correctly!")
    except Exception as e:
        return Ran(Result(name="skyd_config", up=False, time=elapsed_ms(t0), **error_data(e)))

    return Ran(Result(name="skyd_config", up=True, time=elapsed_ms(t0)))


async def skyd_workers_cooldown_check(ctx: CheckContext) -> Outcome:
    """Too many skyd workers on cooldown means uploads/downloads will stall."""
    t0 = time.perf_counter()
    try:
        resp = await ctx.client.get(f"{ctx.settings.skyd_url}/renter/workers", headers=SKYD_HEADERS)
        resp.raise_for_status()
        body = resp.json()

        cooldown = (
            body["totaldownloadcooldown"] + body["totalmaintenancecooldown"] + body["totaluploadcooldown"]
        )
        ratio = cooldown / body["numworkers"]
        if ratio > WORKERS_COOLDOWN_THRESHOLD:
            raise CheckFailed(
                f"{cooldown}/{body['numworkers']} skyd workers on cooldown "
                f"(current {cooldown * 100 // body['numworkers']}%, "
                f"threshold {math.floor(WORKERS_COOLDOWN_THRESHOLD * 100)}%)"
            )
    except Exception as e:
        return Ran(Result(name="skyd_renter_workers", up=False, time=elapsed_ms(t0), **error_data(e)))

    return Ran(Result(name="skyd_renter_workers", up=True, time=elapsed_ms(t0)))


# ── Portal access ────────────────────────────────────────────────────────────


async def upload_check(ctx: CheckContext) -> Outcome:
    """Upload a small file; the current date keeps the payload unique."""
    t0 = time.perf_counter()
    payload = utc_now_iso().encode("utf-8")
    try:
        resp = await ctx.client.post(
            f"{ctx.settings.portal_url}/skynet/skyfile",
            files={"file": ("time.txt", payload, "text/plain")},
            headers=ctx.settings.api_headers,
        )
        resp.raise_for_status()
    except Exception as e:
        return Ran(Result(name="upload_file", up=False, time=elapsed_ms(t0), **error_data(e)))

    return Ran(Result(
        name="upload_file", up=True, time=elapsed_ms(t0),
        status_code=resp.status_code, ip=peer_ip(resp),
    ))


async def website_check(ctx: CheckContext) -> Outcome:
    return Ran(await access_check(ctx, "website", ctx.settings.portal_url))


async def download_skylink_check(ctx: CheckContext) -> Outcome:
    return Ran(await access_check(ctx, "skylink", skylink_url(ctx.settings, EXAMPLE_SKYLINK)))


async def download_resolver_skylink_check(ctx: CheckContext) -> Outcome:
    url = skylink_url(ctx.settings, EXAMPLE_RESOLVER_SKYLINK)
    return Ran(await access_check(ctx, "resolver_skylink", url))


async def skylink_subdomain_check(ctx: CheckContext) -> Outcome:
    url = skylink_url(ctx.settings, EXAMPLE_SKYLINK, subdomain=True)
    return Ran(await access_check(ctx, "skylink_via_subdomain", url))


async def handshake_subdomain_check(ctx: CheckContext) -> Outcome:
    url = hns_url(ctx.settings, EXAMPLE_HNS_DOMAIN)
    return Ran(await access_check(ctx, "hns_via_subdomain", url))


async def account_website_check(ctx: CheckContext) -> Outcome:
    if not ctx.settings.accounts_enabled:
        return Skipped("account_website", "accounts disabled")
    url = f"https://account.{ctx.settings.portal_domain}/auth/login"
    return Ran(await access_check(ctx, "account_website", url))


async def direct_server_api_access_check(ctx: CheckContext) -> Outcome:
    """The portal domain and this server's own domain must reach the same node."""
    settings = ctx.settings
    if not settings.server_domain or settings.server_domain == settings.portal_domain:
        return Skipped("server_api_access", "single server portal")

    portal, server = await asyncio.gather(
        access_check(ctx, "portal_api_access", f"https://{settings.portal_domain}"),
        access_check(ctx, "server_api_access", f"https://{settings.server_domain}"),
    )

    if portal.ip != server.ip:
        note = {
            "message": "Access ip mismatch between portal and server access",
            "response": {
                "portal": {"name": settings.portal_domain, "ip": portal.ip},
                "server": {"name": settings.server_domain, "ip": server.ip},
            },
        }
        server = dataclasses.replace(server, up=False, errors=[*(server.errors or []), note])

    return Ran(server)


# ── Registry ─────────────────────────────────────────────────────────────────


def _entry_diff(expected: RegistryEntry, received: RegistryEntry) -> dict[str, dict[str, object]]:
    diff: dict[str, dict[str, object]] = {}
    if expected.data_key != received.data_key:
        diff["dataKey"] = {"expected": expected.data_key, "received": received.data_key}
    if expected.data != received.data:
        diff["data"] = {"expected": expected.data.hex(), "received": received.data.hex()}
    if expected.revision != received.revision:
        diff["revision"] = {"expected": expected.revision, "received": received.revision}
    return diff


async def registry_write_and_read_check(ctx: CheckContext) -> Outcome:
    """Write a freshly signed entry and read it straight back."""
    name = "registry_write_and_read"
    t0 = time.perf_counter()
    keys = gen_keypair_and_seed()
    expected = RegistryEntry(data_key="foo-key", data="foo-data".encode("utf-8"), revision=0)
    registry = RegistryClient(ctx.client, ctx.settings.portal_url, ctx.settings.api_headers)

    try:
        await registry.set_entry(keys.private_key, keys.public_key, expected)
        received, signature = await registry.get_entry(keys.public_key, expected.data_key)
    except RegistryError as e:
        return Ran(Result(
            name=name, up=False, time=elapsed_ms(t0),
            status_code=e.status_code, error_message=e.message,
            error_response_content=e.content, ip=e.ip,
            errors=[{"message": e.message}],
        ))
    except Exception as e:
        logger.exception("Registry round trip crashed")
        return Ran(Result(
            name=name, up=False, time=elapsed_ms(t0), errors=[{"message": str(e)}], **error_data(e),
        ))

    result = Result(name=name, up=True, time=elapsed_ms(t0), ip=registry.last_ip)

    diff = _entry_diff(expected, received)
    if diff:
        message = "Data mismatch in registry (read after write)"
        return Ran(dataclasses.replace(
            result, up=False, error_message=message, info=diff, errors=[{"message": message}],
        ))

    if signature is not None and not verify_registry_entry(keys.public_key, received, signature):
        message = "Registry entry signature does not verify (read after write)"
        return Ran(dataclasses.replace(
            result, up=False, error_message=message,
            info={"signature": {"publicKey": keys.public_key, "received": signature.hex()}},
            errors=[{"message": message}],
        ))

    return Ran(result)


# ── Dependency health (retried) ──────────────────────────────────────────────


async def _db_health_check(ctx: CheckContext, name: str, url: str, headers: dict[str, str]) -> Result:
    t0 = time.perf_counter()
    try:
        resp = await ctx.client.get(url, headers=headers)
        resp.raise_for_status()
        body = resp.json()
    except Exception as e:
        return Result(name=name, up=False, time=elapsed_ms(t0), **error_data(e))

    return Result(
        name=name,
        up=isinstance(body, dict) and body.get("dbAlive") is True,
        time=elapsed_ms(t0),
        status_code=resp.status_code,
        response=body,
        ip=peer_ip(resp),
    )


async def _account_health(ctx: CheckContext) -> Outcome:
    url = f"https://account.{ctx.settings.portal_domain}/health"
    return Ran(await _db_health_check(ctx, "accounts", url, ctx.settings.api_headers))


async def _blocker_health(ctx: CheckContext) -> Outcome:
    url = f"http://{ctx.settings.blocker_host}:{ctx.settings.blocker_port}/health"
    result = await _db_health_check(ctx, "blocker", url, {})
    # internal address, never routed through the portal's load balancer
    return Ran(dataclasses.replace(result, ip=None))


_retrying_account_health = with_retries(_account_health)
_retrying_blocker_health = with_retries(_blocker_health)


async def account_health_check(ctx: CheckContext) -> Outcome:
    if not ctx.settings.accounts_enabled:
        return Skipped("accounts", "accounts disabled")
    return await _retrying_account_health(ctx)


async def blocker_health_check(ctx: CheckContext) -> Outcome:
    if not ctx.settings.is_portal_module_enabled(MODULE_BLOCKER):
        return Skipped("blocker", "blocker module disabled")
    return await _retrying_blocker_health(ctx)


CHECKS: list[Probe] = [
    skyd_config_check,
    skyd_workers_cooldown_check,
    upload_check,
    website_check,
    download_skylink_check,
    download_resolver_skylink_check,
    skylink_subdomain_check,
    handshake_subdomain_check,
    registry_write_and_read_check,
    direct_server_api_access_check,
    account_health_check,
    account_website_check,
    blocker_health_check,
]


def load_checks(settings: Settings) -> list[Probe]:
    """Critical probes in reporting order; gating happens inside each probe."""
    return list(CHECKS)
