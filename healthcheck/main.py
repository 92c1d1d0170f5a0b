"""Entry point for the portal health checks CLI."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from urllib.parse import urlparse

from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel

from healthcheck.checks.http import build_client
from healthcheck.checks.middleware import resolve_egress_ip
from healthcheck.config import ConfigError, Settings
from healthcheck.orchestrator import CHECK_FAMILIES, run_checks
from healthcheck.store import StateError, StateStore

logger = logging.getLogger(__name__)

console = Console()

EXIT_OK = 0
EXIT_CHECKS_FAILED = 1
EXIT_CONFIG_ERROR = 2

DEFAULT_PORTAL_URL = "https://siasky.net"

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def run_family(family: str, settings: Settings) -> int:
    """Run one check cycle, persist the entry and report failures."""
    try:
        settings.validate_startup()
    except ConfigError as e:
        logger.error("%s", e)
        return EXIT_CONFIG_ERROR

    store = StateStore(settings.state_dir)
    try:
        store.initialize()
    except StateError as e:
        logger.error("%s", e)
        return EXIT_CONFIG_ERROR

    with console.status(f"[bold green]Running {family} checks against {settings.portal_domain}..."):
        entry = asyncio.run(run_checks(family, settings))

    try:
        store.append(family, entry)
    except StateError as e:
        logger.error("%s; %s entry was not stored", e, family)
        console.print_json(data=entry.to_dict())
        return EXIT_CONFIG_ERROR

    if entry.failed:
        console.print(Panel(
            f"{len(entry.failed_checks)}/{len(entry.checks)} {family} checks failed",
            style="bold red",
        ))
        console.print_json(data=[r.to_dict() for r in entry.failed_checks])
        return EXIT_CHECKS_FAILED

    console.print(f"[green]All {len(entry.checks)} {family} checks passed[/green]")
    return EXIT_OK


def run_server(settings: Settings) -> int:
    """Start the read API."""
    import uvicorn

    from healthcheck.api import create_app

    try:
        settings.validate_startup()
    except ConfigError as e:
        logger.error("%s", e)
        return EXIT_CONFIG_ERROR

    store = StateStore(settings.state_dir)
    try:
        store.initialize()
    except StateError as e:
        logger.error("%s", e)
        return EXIT_CONFIG_ERROR

    console.print(Panel(f"Serving health checks for {settings.portal_domain}", style="bold green"))
    uvicorn.run(create_app(settings, store), host=settings.api_host, port=settings.api_port)
    return EXIT_OK


async def _lookup_ip(settings: Settings) -> str | None:
    async with build_client(settings) as client:
        return await resolve_egress_ip(settings, client)


def print_egress_ip(settings: Settings) -> int:
    ip = asyncio.run(_lookup_ip(settings))
    if ip is None:
        return EXIT_CHECKS_FAILED
    sys.stdout.write(ip)
    return EXIT_OK


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Skynet portal health checks")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("enable", help="Mark portal as enabled")

    disable = sub.add_parser("disable", help="Mark portal as disabled (provide meaningful reason)")
    disable.add_argument("reason", help="Why the portal is disabled")

    run = sub.add_parser("run", help="Run one cycle of health checks")
    run.add_argument("type", choices=sorted(CHECK_FAMILIES), help="Type of checks to run")
    run.add_argument(
        "--portal-url",
        default=settings.portal_url if settings.portal_domain else DEFAULT_PORTAL_URL,
        help="Skynet portal url",
    )
    run.add_argument("--state-dir", default=settings.state_dir, help="State directory")

    sub.add_parser("serve", help="Start the results API server")
    sub.add_parser("whatismyip", help="Print this machine's public ip address")

    return parser


def main(argv: list[str] | None = None) -> int:
    try:
        settings = Settings()
    except ValidationError as e:
        setup_logging()
        logger.error("Invalid configuration: %s", e)
        return EXIT_CONFIG_ERROR
    setup_logging(settings.log_level)

    parser = build_parser(settings)
    args = parser.parse_args(argv)

    if args.command in ("enable", "disable"):
        reason = args.reason if args.command == "disable" else False
        try:
            StateStore(settings.state_dir).set_disabled(reason)
        except StateError as e:
            logger.error("%s", e)
            return EXIT_CONFIG_ERROR
        return EXIT_OK

    if args.command == "run":
        portal_domain = urlparse(args.portal_url).hostname or ""
        settings = settings.model_copy(update={"portal_domain": portal_domain, "state_dir": args.state_dir})
        return run_family(args.type, settings)

    if args.command == "serve":
        return run_server(settings)

    if args.command == "whatismyip":
        return print_egress_ip(settings)

    parser.print_help()
    return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    sys.exit(main())
