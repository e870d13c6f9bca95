"""MCP tool surface: the `flare` and `core` tools."""

from __future__ import annotations

import json
import logging
from typing import Any

import anyio
import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from blackswan_mcp import __version__
from blackswan_mcp.gateway import AgentResult, RunGateway
from blackswan_mcp.models import OUTPUT_AGENTS

logger = logging.getLogger(__name__)

SERVER_NAME = "blackswan"

TOOL_DESCRIPTIONS: dict[str, str] = {
    "flare": (
        "BlackSwan Flare: Precursor Detection agent. Returns the latest risk assessment "
        "from a 15-minute signal window across liquidations, funding rates, prediction "
        "markets, crypto prices, and high-urgency social intelligence. Use this for "
        "immediate, alarm-bell risk detection. Output: { status, severity "
        "(none/low/medium/high/critical), checked_at, assessment, signals[] }"
    ),
    "core": (
        "BlackSwan Core: State Synthesis agent. Returns the latest comprehensive risk "
        "environment assessment from a 60-minute signal window across liquidations, funding "
        "rates, prediction markets, crypto prices, and social intelligence. Use this for full "
        "market context and holistic risk assessment. Output: { timestamp, environment "
        "(stable/elevated/stressed/crisis), assessment, key_factors[], sources_used[], "
        "data_freshness }"
    ),
}

# Tool callers never see backend internals, only these fixed messages.
TOOL_ERROR_MESSAGES: dict[str, str] = {
    "not_found": (
        "No recent {label} agent runs found. "
        "The system may be starting up or experiencing issues."
    ),
    "schema_invalid": (
        "Failed to parse {label} output. The agent output format may have changed."
    ),
    "source_unavailable": "Internal error fetching {label} data.",
}

NO_ARGUMENTS_SCHEMA: dict[str, Any] = {"type": "object", "properties": {}}


def render_tool_result(result: AgentResult) -> types.CallToolResult:
    """One JSON text block; failures set isError instead of relying on the text."""
    if result.ok:
        body: dict[str, Any] = result.payload()
    else:
        label = result.agent.capitalize()
        body = {"error": TOOL_ERROR_MESSAGES[result.kind].format(label=label)}
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=json.dumps(body))],
        isError=not result.ok,
    )


class BlackSwanTools:
    """Tool handlers bound to one gateway."""

    def __init__(self, gateway: RunGateway) -> None:
        self.gateway = gateway

    async def list_tools(self) -> list[types.Tool]:
        return [
            types.Tool(
                name=agent,
                description=TOOL_DESCRIPTIONS[agent],
                inputSchema=NO_ARGUMENTS_SCHEMA,
                annotations=types.ToolAnnotations(readOnlyHint=True, openWorldHint=True),
            )
            for agent in OUTPUT_AGENTS
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> types.CallToolResult:
        if name not in OUTPUT_AGENTS:
            raise ValueError(f"Unknown tool: {name}")
        # Sources are blocking clients; keep them off the event loop.
        result = await anyio.to_thread.run_sync(self.gateway.get_agent_result, name)
        logger.info("mcp_tool event=called tool=%s kind=%s", name, result.kind)
        return render_tool_result(result)


def build_mcp_server(gateway: RunGateway) -> Server:
    server: Server = Server(SERVER_NAME, version=__version__)
    tools = BlackSwanTools(gateway)
    server.list_tools()(tools.list_tools)
    server.call_tool()(tools.call_tool)
    return server


async def serve_stdio(server: Server) -> None:
    async with stdio_server() as (read_stream, write_stream):
        logger.info("mcp_server event=started transport=stdio")
        await server.run(read_stream, write_stream, server.create_initialization_options())
