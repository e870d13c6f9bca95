"""ASGI endpoint for stateless MCP exchanges on `/mcp`."""

from __future__ import annotations

import logging
from typing import Any

from mcp.server.streamable_http_manager import StreamableHTTPSessionManager
from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import JSONResponse
from starlette.types import Message, Receive, Scope, Send

from blackswan_mcp.api.limits import (
    TOO_MANY_REQUESTS,
    AdmissionGate,
    FixedWindowRateLimiter,
    client_address,
)

logger = logging.getLogger(__name__)

SERVER_BUSY = "Server busy. Please try again later."

METHOD_NOT_ALLOWED_MESSAGES: dict[str, str] = {
    "GET": "SSE is not supported in stateless mode. Use POST.",
    "DELETE": "Session deletion is not supported in stateless mode.",
}


class McpEndpoint:
    """One POST = one protocol exchange with its own transport; nothing is kept."""

    def __init__(
        self,
        *,
        session_manager: StreamableHTTPSessionManager | None,
        gate: AdmissionGate,
        limiter: FixedWindowRateLimiter,
        trust_proxy: bool = True,
        max_body_bytes: int = 10 * 1024,
    ) -> None:
        self.session_manager = session_manager
        self.gate = gate
        self.limiter = limiter
        self.trust_proxy = trust_proxy
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        method = scope["method"]
        if method != "POST":
            message = METHOD_NOT_ALLOWED_MESSAGES.get(method, "Use POST.")
            response = JSONResponse(
                {"error": "Method Not Allowed", "message": message},
                status_code=405,
                headers={"Allow": "POST"},
            )
            await response(scope, receive, send)
            return

        headers = Headers(scope=scope)
        client = scope.get("client")
        key = client_address(headers, client[0] if client else None, trust_proxy=self.trust_proxy)
        decision = self.limiter.hit(key)
        if not decision.allowed:
            response = JSONResponse(
                {"error": TOO_MANY_REQUESTS}, status_code=429, headers=decision.headers()
            )
            await response(scope, receive, send)
            return

        session_manager = self.session_manager
        if session_manager is None:
            response = JSONResponse({"error": "MCP transport is not running."}, status_code=503)
            await response(scope, receive, send)
            return

        if _content_length(headers) > self.max_body_bytes:
            response = JSONResponse({"error": "Request body too large."}, status_code=413)
            await response(scope, receive, send)
            return

        if not self.gate.try_acquire():
            logger.warning(
                "mcp_http event=rejected reason=capacity active=%d limit=%d",
                self.gate.active,
                self.gate.limit,
            )
            response = JSONResponse({"error": SERVER_BUSY}, status_code=503)
            await response(scope, receive, send)
            return

        logger.debug("mcp_http event=admitted active=%d client=%s", self.gate.active, key)
        rate_headers = decision.headers()

        async def send_with_rate_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for name, value in rate_headers.items():
                    response_headers.append(name, value)
            await send(message)

        try:
            await session_manager.handle_request(scope, receive, send_with_rate_headers)
        finally:
            # Released on every exit path: response sent, client gone, or error.
            self.gate.release()
            logger.debug("mcp_http event=closed active=%d", self.gate.active)


def _content_length(headers: Headers) -> int:
    raw: Any = headers.get("content-length")
    try:
        return int(raw) if raw is not None else 0
    except ValueError:
        return 0
