"""Extended checks: download known skylinks and compare what comes back.

Definitions live in ``fixtures/extended_checks.yaml``. Each one names a
skylink and the parts of the response it pins down: status code, sha1 of
the body, selected headers and the skyfile metadata. Any mismatch marks the
check down and is described under ``info``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from healthcheck.checks.http import elapsed_ms, error_data
from healthcheck.checks.models import CheckContext, Outcome, Probe, Ran, Result
from healthcheck.config import Settings

logger = logging.getLogger(__name__)

FIXTURES_PATH = Path(__file__).parent.parent / "fixtures" / "extended_checks.yaml"


# ── Definitions ──────────────────────────────────────────────────────────────


class ExpectedResponse(BaseModel):
    skylink: str
    statusCode: int | None = None
    bodyHash: str | None = None  # sha1 hex of the raw body
    headers: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None


class RequestConfig(BaseModel):
    method: str = "get"
    followRedirect: bool = True


class ExtendedCheckDef(BaseModel):
    name: str
    data: ExpectedResponse
    config: RequestConfig = Field(default_factory=RequestConfig)


def load_definitions(path: Path | None = None) -> list[ExtendedCheckDef]:
    raw = yaml.safe_load((path or FIXTURES_PATH).read_text(encoding="utf-8")) or []
    return [ExtendedCheckDef.model_validate(item) for item in raw]


# ── Comparison helpers ───────────────────────────────────────────────────────


def parse_header_string(header: Any) -> Any:
    """Headers may carry JSON documents; decode them, keep plain strings as-is."""
    if not isinstance(header, str):
        return header
    try:
        return json.loads(header)
    except ValueError:
        return header


def _as_mapping(value: Any) -> dict[str, Any] | None:
    if isinstance(value, dict):
        return value
    if isinstance(value, list):
        return {str(i): v for i, v in enumerate(value)}
    return None


def detailed_diff(lhs: Any, rhs: Any) -> dict[str, dict[str, Any]]:
    """Split the differences between two JSON documents into added/deleted/updated."""
    diff: dict[str, dict[str, Any]] = {"added": {}, "deleted": {}, "updated": {}}
    left, right = _as_mapping(lhs), _as_mapping(rhs)
    if left is None or right is None:
        if lhs != rhs:
            diff["updated"] = {"value": rhs}
        return diff

    for key, value in right.items():
        if key not in left:
            diff["added"][key] = value
    for key, value in left.items():
        if key not in right:
            diff["deleted"][key] = None
            continue
        other = right[key]
        if value == other:
            continue
        if _as_mapping(value) is not None and _as_mapping(other) is not None:
            nested = detailed_diff(value, other)
            for part in ("added", "deleted", "updated"):
                if nested[part]:
                    diff[part][key] = nested[part]
        else:
            diff["updated"][key] = other
    return diff


# ── Execution ────────────────────────────────────────────────────────────────


async def _compare_metadata(ctx: CheckContext, expected: ExpectedResponse) -> dict[str, Any] | None:
    url = f"{ctx.settings.portal_url}/skynet/metadata/{expected.skylink}"
    try:
        resp = await ctx.client.get(url, headers=ctx.settings.api_headers)
        resp.raise_for_status()
        metadata = resp.json()
    except Exception as e:
        data = error_data(e)
        return {
            "url": url,
            "ip": data["ip"],
            "statusCode": data["status_code"],
            "errorMessage": data["error_message"],
            "errorResponseContent": data["error_response_content"],
        }

    if metadata != expected.metadata:
        return {"url": url, "diff": detailed_diff(expected.metadata, metadata)}
    return None


async def execute_extended_check(ctx: CheckContext, definition: ExtendedCheckDef) -> Result:
    t0 = time.perf_counter()
    expected = definition.data
    config = definition.config
    url = f"{ctx.settings.portal_url}/{expected.skylink}"

    try:
        resp = await ctx.client.request(
            config.method.upper(), url,
            headers=ctx.settings.api_headers,
            follow_redirects=config.followRedirect,
        )
        if resp.is_error:
            resp.raise_for_status()
    except Exception as e:
        return Result(
            name=definition.name, up=False, time=elapsed_ms(t0), skylink=expected.skylink, **error_data(e),
        )

    up = True
    info: dict[str, Any] = {}

    if expected.statusCode and expected.statusCode != resp.status_code:
        up = False
        info["statusCode"] = {"expected": expected.statusCode, "current": resp.status_code}

    if expected.bodyHash:
        current_hash = hashlib.sha1(resp.content).hexdigest()
        if current_hash != expected.bodyHash:
            up = False
            info["bodyHash"] = {"expected": expected.bodyHash, "current": current_hash}

    for header_name, expected_header in (expected.headers or {}).items():
        current_header = parse_header_string(resp.headers.get(header_name))
        if current_header == expected_header:
            continue
        up = False
        headers_info = info.setdefault("headers", {})
        if isinstance(current_header, (dict, list)):
            headers_info[header_name] = detailed_diff(expected_header, current_header)
        else:
            headers_info[header_name] = {"expected": expected_header, "current": current_header}

    if expected.metadata is not None:
        mismatch = await _compare_metadata(ctx, expected)
        if mismatch:
            up = False
            info["metadata"] = mismatch

    return Result(
        name=definition.name,
        up=up,
        time=elapsed_ms(t0),
        status_code=resp.status_code,
        skylink=expected.skylink,
        info=info or None,
    )


def make_probe(definition: ExtendedCheckDef) -> Probe:
    async def probe(ctx: CheckContext) -> Outcome:
        return Ran(await execute_extended_check(ctx, definition))

    probe.__name__ = f"extended_{definition.name}"
    return probe


def load_checks(settings: Settings, path: Path | None = None) -> list[Probe]:
    definitions = load_definitions(path)
    logger.debug("Loaded %d extended check definitions", len(definitions))
    return [make_probe(d) for d in definitions]
