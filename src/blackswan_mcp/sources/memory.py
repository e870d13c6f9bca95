"""In-memory run source for tests only."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from blackswan_mcp.models import AgentName
from blackswan_mcp.sources.base import LatestRun, SourceError, latest_run_from_document, to_datetime


class InMemoryRunSource:
    """Simple in-memory implementation for unit tests."""

    name = "memory"

    def __init__(self, documents: list[dict[str, Any]] | None = None) -> None:
        self._documents: list[dict[str, Any]] = list(documents or [])
        self.failure: Exception | None = None
        self.calls: list[AgentName] = []

    def add(self, document: dict[str, Any]) -> None:
        self._documents.append(document)

    def fail_with(self, message: str) -> None:
        self.failure = SourceError(message)

    def latest_run(self, agent: AgentName) -> LatestRun | None:
        self.calls.append(agent)
        if self.failure is not None:
            raise self.failure

        matching = [
            doc
            for doc in self._documents
            if doc.get("agent") == agent and doc.get("success") is True
        ]
        if not matching:
            return None
        matching.sort(key=_sort_key, reverse=True)
        return latest_run_from_document(matching[0], source=self.name)


def _sort_key(document: dict[str, Any]) -> datetime:
    return to_datetime(document.get("createdAt")) or datetime.min.replace(tzinfo=UTC)
