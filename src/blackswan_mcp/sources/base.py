"""Run source interface and the helpers every backend shares."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import ValidationError

from blackswan_mcp.models import AgentName, AgentRun

logger = logging.getLogger(__name__)


class SourceError(RuntimeError):
    """Transport or auth failure while reaching the run backend."""


@dataclass(frozen=True)
class LatestRun:
    """Backend-agnostic latest successful run."""

    output: Any
    created_at: datetime


class RunSource(Protocol):
    name: str

    def latest_run(self, agent: AgentName) -> LatestRun | None: ...


def to_datetime(value: Any) -> datetime | None:
    """Normalize a stored timestamp into an aware UTC datetime, or None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    for accessor in ("to_datetime", "ToDatetime", "toDate"):
        extract = getattr(value, accessor, None)
        if callable(extract):
            extracted = extract()
            return _as_utc(extracted) if isinstance(extracted, datetime) else None
    if isinstance(value, Mapping):
        return _from_seconds_mapping(value)
    if isinstance(value, str):
        try:
            return _as_utc(datetime.fromisoformat(value.strip()))
        except ValueError:
            return None
    return None


def latest_run_from_document(
    document: Mapping[str, Any] | None, *, source: str
) -> LatestRun | None:
    """Parse a stored AgentRun document into a LatestRun; None when unusable."""
    if document is None:
        return None
    try:
        run = AgentRun.model_validate(dict(document))
    except ValidationError as exc:
        logger.warning(
            "run_source event=document_invalid source=%s errors=%d",
            source,
            exc.error_count(),
        )
        return None

    created_at = to_datetime(run.createdAt)
    if created_at is None:
        logger.warning(
            "run_source event=timestamp_invalid source=%s agent=%s value=%r",
            source,
            run.agent,
            run.createdAt,
        )
        return None
    return LatestRun(output=run.output, created_at=created_at)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _from_seconds_mapping(value: Mapping[str, Any]) -> datetime | None:
    seconds = value.get("seconds", value.get("_seconds"))
    nanos = value.get("nanos", value.get("_nanoseconds", 0)) or 0
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        return None
    if isinstance(nanos, bool) or not isinstance(nanos, (int, float)):
        return None
    try:
        return datetime.fromtimestamp(seconds + nanos / 1_000_000_000, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None
