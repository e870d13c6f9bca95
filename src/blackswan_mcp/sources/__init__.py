"""Run source backends and the factory that picks one per deployment."""

from __future__ import annotations

from typing import TYPE_CHECKING

from blackswan_mcp.sources.base import LatestRun, RunSource, SourceError, to_datetime
from blackswan_mcp.sources.firestore import FirestoreRunSource, build_firestore_client
from blackswan_mcp.sources.memory import InMemoryRunSource
from blackswan_mcp.sources.risk_engine import RiskEngineRunSource

if TYPE_CHECKING:
    from blackswan_mcp.config.settings import Settings


def build_run_source(settings: Settings) -> RunSource:
    """Build the one backend this deployment is configured for."""
    if settings.data_source == "risk_engine":
        return RiskEngineRunSource(
            settings.risk_engine_url,
            api_key=settings.risk_engine_api_key,
            timeout_s=settings.source_timeout_s,
        )
    client = build_firestore_client(
        project_id=settings.firebase_project_id,
        service_account_json=settings.firebase_service_account_json,
        service_account_path=settings.firebase_service_account_path,
    )
    return FirestoreRunSource(client, timeout_s=settings.source_timeout_s)


__all__ = [
    "FirestoreRunSource",
    "InMemoryRunSource",
    "LatestRun",
    "RiskEngineRunSource",
    "RunSource",
    "SourceError",
    "build_run_source",
    "to_datetime",
]
