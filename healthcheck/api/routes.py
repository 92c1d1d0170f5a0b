"""Read-only endpoints over the stored check results.

Endpoints:
  GET /health-check           aggregate status (200 when up, 503 otherwise)
  GET /health-check/critical  critical entries of the last 24 hours
  GET /health-check/extended  extended entries of the last 24 hours
  GET /health-check/disabled  disabled flag status
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

health_router = APIRouter(prefix="/health-check")


def _failed(entry: dict[str, Any] | None) -> list[dict[str, Any]]:
    if entry is None:
        return []
    return [c for c in entry.get("checks", []) if not c.get("up")]


@health_router.get("")
def current_status(request: Request) -> JSONResponse:
    """Overall status; lists only failed checks of the latest entries."""
    store = request.app.state.store
    settings = request.app.state.settings

    disabled = store.disabled(settings.deny_public_access)
    critical = store.latest("critical")
    extended = store.latest("extended")

    failed_critical = _failed(critical)
    up = not disabled and critical is not None and not failed_critical

    body: dict[str, Any] = {
        "up": up,
        "critical": {
            "date": critical["date"] if critical else None,
            "failed": failed_critical,
        },
        "extended": {
            "date": extended["date"] if extended else None,
            "failed": _failed(extended),
        },
    }
    if disabled:
        body["disabled"] = disabled

    return JSONResponse(status_code=200 if up else 503, content=body)


@health_router.get("/critical")
def critical_entries(request: Request) -> list[dict[str, Any]]:
    return request.app.state.store.recent("critical")


@health_router.get("/extended")
def extended_entries(request: Request) -> list[dict[str, Any]]:
    return request.app.state.store.recent("extended")


@health_router.get("/disabled")
def disabled_status(request: Request) -> dict[str, Any]:
    settings = request.app.state.settings
    return {"disabled": request.app.state.store.disabled(settings.deny_public_access)}
