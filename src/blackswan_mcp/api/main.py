"""FastAPI application: REST routes plus the stateless MCP endpoint.

Beginner terms used in this file:
- Lifespan: code that runs once at startup (before `yield`) and once at shutdown.
- app.state: shared runtime objects (run source, gateway, limiters) for handlers.
- Dependency: a function FastAPI calls before the route (used here for rate limits).
- Stateless MCP: every POST /mcp builds and tears down its own protocol transport.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from mcp.server.streamable_http_manager import StreamableHTTPSessionManager

from blackswan_mcp import SERVICE_NAME, __version__
from blackswan_mcp.api.limits import (
    TOO_MANY_REQUESTS,
    AdmissionGate,
    FixedWindowRateLimiter,
    RateLimitExceeded,
    client_address,
)
from blackswan_mcp.api.mcp_endpoint import McpEndpoint
from blackswan_mcp.config.settings import Settings, get_settings
from blackswan_mcp.gateway import AgentResult, RunGateway
from blackswan_mcp.mcp_server import build_mcp_server
from blackswan_mcp.models import OutputAgent, StatusReport
from blackswan_mcp.sources import RunSource, build_run_source

logger = logging.getLogger(__name__)

REST_STATUS_CODES: dict[str, int] = {
    "success": 200,
    "not_found": 503,
    "schema_invalid": 502,
    "source_unavailable": 500,
}

SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
}


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    source_override: RunSource | None,
) -> None:
    if not hasattr(app.state, "gateway"):
        source = source_override or build_run_source(settings)
        app.state.source = source
        app.state.gateway = RunGateway(source)
        logger.info("http_server event=source_ready source=%s", source.name)


def create_app(
    *,
    source: RunSource | None = None,
    settings_override: Settings | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    api_limiter = FixedWindowRateLimiter(
        name="api", limit=settings.api_rate_limit, window_s=settings.rate_limit_window_s
    )
    mcp_limiter = FixedWindowRateLimiter(
        name="mcp", limit=settings.mcp_rate_limit, window_s=settings.rate_limit_window_s
    )
    admission = AdmissionGate(settings.max_concurrent_mcp)
    mcp_endpoint = McpEndpoint(
        session_manager=None,
        gate=admission,
        limiter=mcp_limiter,
        trust_proxy=settings.trust_proxy,
        max_body_bytes=settings.max_body_bytes,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        _ensure_runtime_state(app, settings=settings, source_override=source)
        session_manager = StreamableHTTPSessionManager(
            app=build_mcp_server(app.state.gateway),
            json_response=True,
            stateless=True,
        )
        mcp_endpoint.session_manager = session_manager
        async with session_manager.run():
            logger.info(
                "http_server event=started max_concurrent_mcp=%d", settings.max_concurrent_mcp
            )
            yield
        mcp_endpoint.session_manager = None

    app = FastAPI(title=settings.app_name, version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.admission = admission
    app.state.api_limiter = api_limiter
    app.state.mcp_limiter = mcp_limiter
    app.state.mcp_endpoint = mcp_endpoint

    # Keep test paths reliable when lifespan is not executed by the client.
    if source is not None:
        _ensure_runtime_state(app, settings=settings, source_override=source)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def security_headers(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    @app.exception_handler(RateLimitExceeded)
    async def rate_limited(_request: Request, exc: RateLimitExceeded) -> JSONResponse:
        return JSONResponse(
            {"error": TOO_MANY_REQUESTS}, status_code=429, headers=exc.decision.headers()
        )

    def _get_gateway(request: Request) -> RunGateway:
        if not hasattr(request.app.state, "gateway"):
            _ensure_runtime_state(request.app, settings=settings, source_override=source)
        return request.app.state.gateway

    def enforce_api_rate_limit(request: Request, response: Response) -> None:
        peer = request.client.host if request.client else None
        key = client_address(request.headers, peer, trust_proxy=settings.trust_proxy)
        decision = api_limiter.hit(key)
        if not decision.allowed:
            raise RateLimitExceeded(decision)
        for name, value in decision.headers().items():
            response.headers[name] = value

    def _agent_body(result: AgentResult, response: Response) -> dict[str, Any]:
        response.status_code = REST_STATUS_CODES[result.kind]
        label = result.agent.capitalize()
        if result.kind == "success":
            return result.payload()
        if result.kind == "not_found":
            return {"error": f"No recent {label} agent runs found."}
        if result.kind == "schema_invalid":
            return {"error": f"{label} output failed schema validation."}
        body: dict[str, Any] = {"error": "Internal server error"}
        if settings.expose_error_details and result.error:
            body["detail"] = result.error
        return body

    def _agent_route(agent: OutputAgent) -> Callable[..., dict[str, Any]]:
        def handler(
            response: Response,
            gateway: RunGateway = Depends(_get_gateway),
        ) -> dict[str, Any]:
            return _agent_body(gateway.get_agent_result(agent), response)

        handler.__name__ = f"get_{agent}"
        return handler

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": SERVICE_NAME}

    for agent in ("flare", "core"):
        app.add_api_route(
            f"/api/{agent}",
            _agent_route(agent),
            methods=["GET"],
            dependencies=[Depends(enforce_api_rate_limit)],
        )

    @app.get(
        "/api/status",
        response_model=StatusReport,
        dependencies=[Depends(enforce_api_rate_limit)],
    )
    def status(gateway: RunGateway = Depends(_get_gateway)) -> StatusReport:
        return gateway.get_status()

    app.add_route("/mcp", mcp_endpoint, include_in_schema=False)

    return app


# Module-level app for `uvicorn blackswan_mcp.api.main:app`.
app = create_app()
