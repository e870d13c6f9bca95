from __future__ import annotations

import asyncio
import io
import json
from collections.abc import Callable
from typing import Any
from urllib import request

import pytest
from fastapi.testclient import TestClient

from blackswan_mcp.api.main import create_app
from blackswan_mcp.config.settings import Settings
from blackswan_mcp.gateway import AgentResult, RunGateway
from blackswan_mcp.mcp_server import (
    TOOL_DESCRIPTIONS,
    BlackSwanTools,
    build_mcp_server,
    render_tool_result,
)
from blackswan_mcp.sources.memory import InMemoryRunSource
from blackswan_mcp.sources.risk_engine import RiskEngineRunSource

MCP_HEADERS = {
    "Accept": "application/json, text/event-stream",
    "Content-Type": "application/json",
}


def _text(result: Any) -> dict[str, Any]:
    assert len(result.content) == 1
    assert result.content[0].type == "text"
    return json.loads(result.content[0].text)


def test_tools_are_listed_with_empty_input_schema(source: InMemoryRunSource) -> None:
    tools = asyncio.run(BlackSwanTools(RunGateway(source)).list_tools())

    assert [tool.name for tool in tools] == ["flare", "core"]
    for tool in tools:
        assert tool.inputSchema == {"type": "object", "properties": {}}
        assert tool.description == TOOL_DESCRIPTIONS[tool.name]
        assert tool.annotations is not None and tool.annotations.readOnlyHint is True


def test_flare_tool_success(
    source: InMemoryRunSource,
    make_run: Callable[..., dict[str, Any]],
    flare_payload: dict[str, Any],
) -> None:
    source.add(make_run("flare", flare_payload))

    result = asyncio.run(BlackSwanTools(RunGateway(source)).call_tool("flare", {}))

    assert result.isError is False
    body = _text(result)
    assert body["agent"] == "flare"
    assert body["severity"] == "high"
    assert "data_age" in body


@pytest.mark.parametrize(
    ("kind", "message"),
    [
        (
            "not_found",
            "No recent Core agent runs found. "
            "The system may be starting up or experiencing issues.",
        ),
        ("schema_invalid", "Failed to parse Core output. The agent output format may have changed."),
        ("source_unavailable", "Internal error fetching Core data."),
    ],
)
def test_tool_failures_use_fixed_messages(kind: str, message: str) -> None:
    result = render_tool_result(
        AgentResult(agent="core", kind=kind, error="gRPC status UNAVAILABLE at 10.0.0.4")  # type: ignore[arg-type]
    )

    assert result.isError is True
    assert _text(result) == {"error": message}


def test_source_failure_does_not_leak_into_tool_text(source: InMemoryRunSource) -> None:
    source.fail_with("credentials for project oaiao-labs rejected")

    result = asyncio.run(BlackSwanTools(RunGateway(source)).call_tool("core", {}))

    assert result.isError is True
    assert "oaiao-labs" not in result.content[0].text


def test_flare_tool_without_runs_reports_not_found(source: InMemoryRunSource) -> None:
    result = asyncio.run(BlackSwanTools(RunGateway(source)).call_tool("flare", {}))

    assert result.isError is True
    assert "No recent Flare" in _text(result)["error"]


def test_unexpected_source_exception_stays_generic(exploding_source: Any) -> None:
    result = asyncio.run(BlackSwanTools(RunGateway(exploding_source)).call_tool("core", {}))

    assert result.isError is True
    assert _text(result) == {"error": "Internal error fetching Core data."}


class RawResponse(io.BytesIO):
    def __enter__(self) -> RawResponse:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def test_undecodable_risk_engine_body_stays_generic(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(request, "urlopen", lambda req, timeout: RawResponse(b"\xff\xfe"))
    gateway = RunGateway(RiskEngineRunSource("https://risk.example.com"))

    result = asyncio.run(BlackSwanTools(gateway).call_tool("flare", {}))

    assert result.isError is True
    assert _text(result) == {"error": "Internal error fetching Flare data."}
    assert "codec" not in result.content[0].text


def test_unknown_tool_is_rejected(source: InMemoryRunSource) -> None:
    with pytest.raises(ValueError, match="Unknown tool"):
        asyncio.run(BlackSwanTools(RunGateway(source)).call_tool("sentinel", {}))


def test_server_is_named_blackswan(source: InMemoryRunSource) -> None:
    assert build_mcp_server(RunGateway(source)).name == "blackswan"


def test_stateless_http_tool_call_end_to_end(
    source: InMemoryRunSource,
    test_settings: Settings,
    make_run: Callable[..., dict[str, Any]],
    core_payload: dict[str, Any],
) -> None:
    source.add(make_run("core", core_payload))
    app = create_app(source=source, settings_override=test_settings)

    with TestClient(app) as client:
        listed = client.post(
            "/mcp",
            headers=MCP_HEADERS,
            json={"jsonrpc": "2.0", "id": 1, "method": "tools/list", "params": {}},
        )
        called = client.post(
            "/mcp",
            headers=MCP_HEADERS,
            json={
                "jsonrpc": "2.0",
                "id": 2,
                "method": "tools/call",
                "params": {"name": "core", "arguments": {}},
            },
        )

    assert listed.status_code == 200
    assert [tool["name"] for tool in listed.json()["result"]["tools"]] == ["flare", "core"]

    assert called.status_code == 200
    assert "ratelimit" in called.headers
    result = called.json()["result"]
    assert result["isError"] is False
    body = json.loads(result["content"][0]["text"])
    assert body["agent"] == "core"
    assert body["environment"] == "elevated"
    assert app.state.admission.active == 0
