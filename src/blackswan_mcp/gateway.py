"""Run gateway: fetch, validate, and age-stamp the latest run for an agent.

Both front ends (MCP tools and REST routes) go through `RunGateway` so the
retrieval and validation rules live in one place. Backend exceptions stop here:
every call returns an `AgentResult` whose `kind` tells the caller what happened.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from blackswan_mcp import SERVICE_NAME
from blackswan_mcp.freshness import format_data_age
from blackswan_mcp.models import (
    ALL_AGENTS,
    AgentName,
    AgentStatus,
    CoreOutput,
    FlareOutput,
    OutputAgent,
    StatusReport,
)
from blackswan_mcp.sources.base import RunSource, SourceError
from blackswan_mcp.validation import OutputValidationError, dump_output, validate_output

logger = logging.getLogger(__name__)

ResultKind = Literal["success", "not_found", "schema_invalid", "source_unavailable"]


@dataclass(frozen=True)
class AgentResult:
    agent: OutputAgent
    kind: ResultKind
    data_age: str | None = None
    output: FlareOutput | CoreOutput | None = None
    # Underlying failure message; front ends decide whether to expose it.
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.kind == "success"

    def payload(self) -> dict[str, Any]:
        """Flattened success body: agent, data_age, then every validated field."""
        if self.output is None:
            raise ValueError(f"{self.agent} result has no output (kind={self.kind})")
        return {"agent": self.agent, "data_age": self.data_age, **dump_output(self.output)}


def _utcnow() -> datetime:
    return datetime.now(UTC)


class RunGateway:
    """Compose a run source, output validation, and freshness formatting."""

    def __init__(self, source: RunSource, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self.source = source
        self._clock = clock

    def get_agent_result(self, agent: OutputAgent) -> AgentResult:
        # 1) Fetch; any source failure becomes source_unavailable.
        try:
            run = self.source.latest_run(agent)
        except SourceError as exc:
            logger.exception(
                "gateway event=source_unavailable agent=%s source=%s", agent, self.source.name
            )
            return AgentResult(agent=agent, kind="source_unavailable", error=str(exc))
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "gateway event=source_failed_unexpectedly agent=%s source=%s",
                agent,
                self.source.name,
            )
            return AgentResult(agent=agent, kind="source_unavailable", error=repr(exc))

        if run is None:
            logger.warning("gateway event=not_found agent=%s source=%s", agent, self.source.name)
            return AgentResult(agent=agent, kind="not_found")

        # 2) Validate against the agent's own schema only.
        try:
            output = validate_output(agent, run.output)
        except OutputValidationError as exc:
            logger.warning("gateway event=schema_invalid agent=%s detail=%s", agent, exc)
            return AgentResult(agent=agent, kind="schema_invalid", error=str(exc))

        # 3) Age is computed against wall-clock now on every request.
        data_age = format_data_age(run.created_at, self._clock())
        logger.info("gateway event=success agent=%s data_age=%r", agent, data_age)
        return AgentResult(agent=agent, kind="success", data_age=data_age, output=output)

    def get_status(self) -> StatusReport:
        """Latest-run overview for every agent kind in the runs collection."""
        now = self._clock()
        entries: list[AgentStatus] = []
        for agent in ALL_AGENTS:
            try:
                run = self.source.latest_run(agent)
            except Exception:  # noqa: BLE001
                logger.exception(
                    "gateway event=status_source_unavailable agent=%s source=%s",
                    agent,
                    self.source.name,
                )
                entries.append(AgentStatus(agent=agent, status="source_unavailable"))
                continue
            if run is None:
                entries.append(AgentStatus(agent=agent, status="not_found"))
                continue
            entries.append(
                AgentStatus(
                    agent=agent,
                    status="ok",
                    created_at=run.created_at.isoformat(),
                    data_age=format_data_age(run.created_at, now),
                    summary=_summarize(agent, run.output),
                )
            )
        return StatusReport(service=SERVICE_NAME, agents=entries)


def _summarize(agent: AgentName, output: Any) -> str:
    if not isinstance(output, dict):
        return ""
    if agent == "flare":
        return f"severity: {_upper_or_unknown(output.get('severity'))}"
    if agent == "core":
        return f"environment: {_upper_or_unknown(output.get('environment'))}"
    return ""


def _upper_or_unknown(value: Any) -> str:
    return value.upper() if isinstance(value, str) and value else "unknown"
