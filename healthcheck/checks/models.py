"""Check result models: per-probe Result, probe Outcome and the run Entry."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Union

if TYPE_CHECKING:
    import httpx

    from healthcheck.config import Settings


# ── Results ──────────────────────────────────────────────────────────────────


# Serialized (camelCase) names of Result fields that differ from the attribute
_WIRE_NAMES = {
    "status_code": "statusCode",
    "error_message": "errorMessage",
    "error_response_content": "errorResponseContent",
}


@dataclass
class Result:
    """Outcome of a single probe execution."""

    name: str
    up: bool
    time: int  # milliseconds
    status_code: int | None = None
    error_message: str | None = None
    error_response_content: Any = None
    ip: str | None = None
    url: str | None = None
    skylink: str | None = None
    response: Any = None
    info: dict[str, Any] | None = None
    errors: list[dict[str, Any]] | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for f in dataclasses.fields(self):
            value = getattr(self, f.name)
            if value is not None:
                d[_WIRE_NAMES.get(f.name, f.name)] = value
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Result":
        names = {wire: attr for attr, wire in _WIRE_NAMES.items()}
        known = {f.name for f in dataclasses.fields(cls)}
        kwargs = {}
        for key, value in data.items():
            attr = names.get(key, key)
            if attr in known:
                kwargs[attr] = value
        return cls(**kwargs)


@dataclass(frozen=True)
class Ran:
    """The probe executed and produced a result."""

    result: Result


@dataclass(frozen=True)
class Skipped:
    """The probe is gated off by configuration and produced nothing."""

    name: str
    reason: str = ""


Outcome = Union[Ran, Skipped]


# ── Entries ──────────────────────────────────────────────────────────────────


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return format_timestamp(datetime.now(timezone.utc))


def format_timestamp(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(frozen=True)
class Entry:
    """A timestamped batch of results from one orchestrator run."""

    checks: tuple[Result, ...]
    date: str = field(default_factory=utc_now_iso)

    @property
    def failed(self) -> bool:
        return any(not r.up for r in self.checks)

    @property
    def failed_checks(self) -> list[Result]:
        return [r for r in self.checks if not r.up]

    def to_dict(self) -> dict[str, Any]:
        return {"date": self.date, "checks": [r.to_dict() for r in self.checks]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Entry":
        return cls(
            date=data["date"],
            checks=tuple(Result.from_dict(c) for c in data.get("checks", [])),
        )


# ── Probe contract ───────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CheckContext:
    """Everything a probe may use: the run's settings and its HTTP client."""

    settings: "Settings"
    client: "httpx.AsyncClient"


Probe = Callable[[CheckContext], Awaitable[Outcome]]
