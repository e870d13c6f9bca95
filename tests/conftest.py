from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from http.client import IncompleteRead
from typing import Any

import pytest
from fastapi.testclient import TestClient

from blackswan_mcp.api.main import create_app
from blackswan_mcp.config.settings import Settings, get_settings
from blackswan_mcp.sources.memory import InMemoryRunSource

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _flare_payload() -> dict[str, Any]:
    return {
        "status": "alert",
        "severity": "high",
        "checked_at": "2026-03-01T11:55:00Z",
        "assessment": "Liquidation cascade forming on BTC perpetuals.",
        "signals": [
            {
                "type": "liquidations",
                "source": "coinglass",
                "detail": "$420M longs liquidated in 15 minutes",
            },
            {
                "type": "funding",
                "source": "binance",
                "detail": "Funding flipped negative across majors",
            },
        ],
    }


def _core_payload() -> dict[str, Any]:
    return {
        "timestamp": "2026-03-01T11:00:00Z",
        "environment": "elevated",
        "assessment": "Risk is elevated but contained; leverage is unwinding.",
        "key_factors": ["funding reset", "prediction market repricing"],
        "sources_used": ["liquidations", "funding", "polymarket"],
        "data_freshness": "all sources < 5 minutes old",
    }


@pytest.fixture
def flare_payload() -> dict[str, Any]:
    return _flare_payload()


@pytest.fixture
def core_payload() -> dict[str, Any]:
    return _core_payload()


@pytest.fixture
def make_run() -> Callable[..., dict[str, Any]]:
    """Build a stored AgentRun document the way the pipeline writes it."""

    def _make_run(
        agent: str,
        output: Any,
        *,
        created_at: Any = None,
        success: bool = True,
        **extra: Any,
    ) -> dict[str, Any]:
        created = created_at if created_at is not None else NOW - timedelta(minutes=5)
        document = {
            "agent": agent,
            "createdAt": created,
            "completedAt": created,
            "model": "risk-model-v3",
            "output": output,
            "success": success,
            "usage": {
                "promptTokens": 1200,
                "completionTokens": 300,
                "totalTokens": 1500,
                "cost": 0.0042,
            },
            "latency": {"dataAssemblyMs": 120, "llmCallMs": 2300, "totalMs": 2420},
        }
        document.update(extra)
        return document

    return _make_run


@pytest.fixture
def source() -> InMemoryRunSource:
    return InMemoryRunSource()


class ExplodingRunSource:
    """Source whose client fails with something other than SourceError."""

    name = "exploding"

    def __init__(self, exc: Exception) -> None:
        self.exc = exc

    def latest_run(self, agent: str) -> Any:
        raise self.exc


@pytest.fixture
def exploding_source() -> ExplodingRunSource:
    return ExplodingRunSource(IncompleteRead(b"{", 10))


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        data_source="firestore",
        firebase_service_account_json='{"type": "service_account"}',
        api_rate_limit=60,
        mcp_rate_limit=30,
        max_concurrent_mcp=20,
    )


@pytest.fixture
def client(source: InMemoryRunSource, test_settings: Settings) -> Iterator[TestClient]:
    app = create_app(source=source, settings_override=test_settings)
    yield TestClient(app)


@pytest.fixture
def clear_settings_cache() -> Iterator[None]:
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
