"""Retry policy for dependency probes that report transient false negatives.

DB-backed health endpoints occasionally answer "down" under short load
spikes. A probe wrapped with ``with_retries`` is re-run after a fixed delay
until it reports up or the retry budget runs out. Only the terminal
attempt's Result is ever returned.
"""

from __future__ import annotations

import asyncio
import functools
import logging

from healthcheck.checks.models import CheckContext, Outcome, Probe, Ran

logger = logging.getLogger(__name__)

DEFAULT_RETRIES = 2
DEFAULT_DELAY = 3.0  # seconds


def with_retries(
    probe: Probe,
    retries: int | None = None,
    delay: float | None = None,
) -> Probe:
    """Wrap ``probe`` so that a down result is retried.

    ``retries`` and ``delay`` fall back to ``settings.retry_attempts`` and
    ``settings.retry_delay`` of the context the probe runs with.
    """

    @functools.wraps(probe)
    async def retrying(ctx: CheckContext) -> Outcome:
        budget = ctx.settings.retry_attempts if retries is None else retries
        pause = ctx.settings.retry_delay if delay is None else delay

        attempt = 1
        while True:
            outcome = await probe(ctx)
            if not isinstance(outcome, Ran) or outcome.result.up or attempt > budget:
                return outcome

            logger.info(
                "Check %s down on attempt %d/%d, retrying in %.1fs",
                outcome.result.name, attempt, budget + 1, pause,
            )
            attempt += 1
            await asyncio.sleep(pause)

    return retrying
