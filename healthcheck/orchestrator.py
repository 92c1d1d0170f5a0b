"""Check orchestrator: runs one family of probes and builds the run's Entry.

All probes of the family run concurrently. Skipped probes are dropped, every
remaining result passes through the IP validation middleware, and results
keep the declared probe order no matter which finished first.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence

import httpx

from healthcheck.checks import critical, extended
from healthcheck.checks.http import build_client
from healthcheck.checks.middleware import create_middleware
from healthcheck.checks.models import CheckContext, Entry, Probe, Ran, Result, utc_now_iso
from healthcheck.config import Settings

logger = logging.getLogger(__name__)

CHECK_FAMILIES: dict[str, Callable[[Settings], list[Probe]]] = {
    "critical": critical.load_checks,
    "extended": extended.load_checks,
}


def load_family(family: str, settings: Settings) -> list[Probe]:
    try:
        loader = CHECK_FAMILIES[family]
    except KeyError:
        raise ValueError(f"Unknown check family: {family}") from None
    return loader(settings)


async def run_probes(
    probes: Sequence[Probe],
    settings: Settings,
    client: httpx.AsyncClient,
) -> Entry:
    """Run ``probes`` concurrently and wrap their validated results in an Entry."""
    started = utc_now_iso()
    ctx = CheckContext(settings=settings, client=client)
    middleware, outcomes = await asyncio.gather(
        create_middleware(settings, client),
        asyncio.gather(*(probe(ctx) for probe in probes)),
    )

    results: list[Result] = []
    for outcome in outcomes:
        if isinstance(outcome, Ran):
            results.append(middleware(outcome.result))
        else:
            logger.debug("Check %s skipped: %s", outcome.name, outcome.reason or "disabled")

    entry = Entry(checks=tuple(results), date=started)
    logger.info(
        "Ran %d checks (%d skipped), %d failed",
        len(results), len(outcomes) - len(results), len(entry.failed_checks),
    )
    return entry


async def run_checks(
    family: str,
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Entry:
    """Execute one orchestration cycle for ``family``."""
    probes = load_family(family, settings)
    async with build_client(settings, transport=transport) as client:
        return await run_probes(probes, settings, client)
