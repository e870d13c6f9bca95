"""Process entry point: validate config, build the run source, start a transport."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from pydantic import ValidationError

from blackswan_mcp.config.settings import Settings, configure_logging, get_settings, validate_settings
from blackswan_mcp.sources import SourceError, build_run_source

logger = logging.getLogger("blackswan_mcp")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="blackswan-mcp",
        description="Serve the latest BlackSwan Flare/Core runs over MCP (stdio or HTTP).",
    )
    parser.add_argument("--transport", choices=["stdio", "http"], default=None)
    parser.add_argument("--port", type=int, default=None)
    return parser.parse_args(argv)


def load_settings(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    overrides: dict[str, object] = {}
    if args.transport:
        overrides["transport_mode"] = args.transport
    if args.port is not None:
        overrides["port"] = args.port
    if not overrides:
        return settings
    return Settings.model_validate({**settings.model_dump(), **overrides})


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        settings = load_settings(args)
    except ValidationError as exc:
        configure_logging("info")
        logger.error("config event=invalid errors=%s", exc.errors(include_url=False))
        return 1

    errors = validate_settings(settings)
    if errors:
        configure_logging("info")
        logger.error("config event=invalid errors=%s", errors)
        return 1
    configure_logging(settings.log_level)

    try:
        source = build_run_source(settings)
    except (SourceError, ValueError) as exc:
        logger.error("config event=source_failed data_source=%s error=%s", settings.data_source, exc)
        return 1

    if settings.transport_mode == "http":
        import uvicorn

        from blackswan_mcp.api.main import create_app

        logger.info(
            "http_server event=listening url=http://%s:%d health=/health mcp=/mcp "
            "rest=/api/flare,/api/core",
            settings.host,
            settings.port,
        )
        uvicorn.run(
            create_app(source=source, settings_override=settings),
            host=settings.host,
            port=settings.port,
            log_level=settings.log_level.lower(),
        )
    else:
        import anyio

        from blackswan_mcp.gateway import RunGateway
        from blackswan_mcp.mcp_server import build_mcp_server, serve_stdio

        anyio.run(serve_stdio, build_mcp_server(RunGateway(source)))
    return 0


if __name__ == "__main__":
    sys.exit(main())
