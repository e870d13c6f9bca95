"""Pydantic models shared by the run sources, the gateway, and both front ends.

Beginner terms used in this file:
- Agent run: one completed execution of the external analysis pipeline.
- Literal: restricts a field to a fixed set of allowed string values.
- extra="ignore": unknown keys in a stored payload are dropped, not rejected,
  so newer pipeline versions can add fields without breaking this service.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Every agent kind the pipeline writes into the shared runs collection.
AgentName = Literal["flare", "core", "sentinel", "crisis"]
# Agent kinds with a published output schema (and a tool / REST route).
OutputAgent = Literal["flare", "core"]

ALL_AGENTS: tuple[AgentName, ...] = ("flare", "core", "sentinel", "crisis")
OUTPUT_AGENTS: tuple[OutputAgent, ...] = ("flare", "core")

FlareStatus = Literal["clear", "alert"]
FlareSeverity = Literal["none", "low", "medium", "high", "critical"]
CoreEnvironment = Literal["stable", "elevated", "stressed", "crisis"]


class OutputModel(BaseModel):
    """Base model for agent output payloads."""

    model_config = ConfigDict(extra="ignore")


class FlareSignal(OutputModel):
    type: str
    source: str
    detail: str


class FlareOutput(OutputModel):
    """Short-window precursor alert published by the Flare agent."""

    status: FlareStatus
    severity: FlareSeverity
    checked_at: str
    assessment: str
    # Optional, but an explicit null is a contract violation.
    signals: list[FlareSignal] | None = None

    @field_validator("signals", mode="before")
    @classmethod
    def _reject_null_signals(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("signals must be a list when present")
        return value


class CoreOutput(OutputModel):
    """Longer-window holistic risk environment published by the Core agent."""

    timestamp: str
    environment: CoreEnvironment
    assessment: str
    key_factors: list[str]
    sources_used: list[str]
    data_freshness: str


class StoredRecord(BaseModel):
    """Base for records written by the pipeline; values are never coerced."""

    model_config = ConfigDict(extra="ignore", strict=True)


class RunUsage(StoredRecord):
    promptTokens: float
    completionTokens: float
    totalTokens: float
    cost: float


class RunLatency(StoredRecord):
    dataAssemblyMs: float
    llmCallMs: float
    totalMs: float


class AgentRun(StoredRecord):
    """One stored run document, as written by the analysis pipeline."""

    agent: AgentName
    # Store-native timestamps; normalized later by sources.base.to_datetime.
    createdAt: Any = None
    completedAt: Any = None
    model: str
    # Untyped until checked against the agent-specific output schema.
    output: Any = None
    success: bool
    usage: RunUsage | None = None
    latency: RunLatency | None = None


class AgentStatus(BaseModel):
    """Per-agent entry of the status overview."""

    agent: AgentName
    status: Literal["ok", "not_found", "source_unavailable"]
    created_at: str | None = None
    data_age: str | None = None
    summary: str = ""


class StatusReport(BaseModel):
    service: str
    agents: list[AgentStatus] = Field(default_factory=list)
