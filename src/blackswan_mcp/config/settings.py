"""Application settings."""

from __future__ import annotations

import logging
import sys
from functools import lru_cache
from typing import Literal
from urllib.parse import urlparse

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from blackswan_mcp import SERVICE_NAME

DataSource = Literal["firestore", "risk_engine"]
TransportMode = Literal["stdio", "http"]
# Names both the stdlib root logger and uvicorn accept.
LOG_LEVELS = ("critical", "error", "warning", "info", "debug")


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = SERVICE_NAME
    data_source: DataSource = "firestore"
    firebase_project_id: str = "oaiao-labs"
    firebase_service_account_path: str = "./serviceAccountKey.json"
    firebase_service_account_json: str = ""
    risk_engine_url: str = ""
    risk_engine_api_key: str = ""
    source_timeout_s: float = Field(default=10.0, gt=0.0)
    log_level: str = "info"
    transport_mode: TransportMode = "stdio"
    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=1, le=65535)
    max_concurrent_mcp: int = Field(default=20, ge=1)
    api_rate_limit: int = Field(default=60, ge=1)
    mcp_rate_limit: int = Field(default=30, ge=1)
    rate_limit_window_s: float = Field(default=60.0, gt=0.0)
    max_body_bytes: int = Field(default=10 * 1024, ge=1)
    expose_error_details: bool = False
    trust_proxy: bool = True

    model_config = SettingsConfigDict(
        extra="ignore",
        env_file=".env",
        env_file_encoding="utf-8",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


def validate_settings(settings: Settings) -> list[str]:
    """Return human-readable configuration errors; empty means valid."""
    errors: list[str] = []
    if settings.data_source == "firestore":
        if not (
            settings.firebase_service_account_path or settings.firebase_service_account_json
        ):
            errors.append(
                "Either FIREBASE_SERVICE_ACCOUNT_PATH or FIREBASE_SERVICE_ACCOUNT_JSON must be set"
            )
    else:
        if not settings.risk_engine_url:
            errors.append("RISK_ENGINE_URL must be set when DATA_SOURCE=risk_engine")
        else:
            parsed = urlparse(settings.risk_engine_url)
            if parsed.scheme not in {"http", "https"} or not parsed.netloc:
                errors.append(f"RISK_ENGINE_URL is not an http(s) URL: {settings.risk_engine_url}")

    if settings.log_level.lower() not in LOG_LEVELS:
        errors.append(
            f"LOG_LEVEL must be one of {', '.join(LOG_LEVELS)}: {settings.log_level}"
        )
    return errors


def configure_logging(level: str) -> None:
    """Send logs to stderr; stdout is reserved for the stdio MCP transport."""
    logging.basicConfig(
        stream=sys.stderr,
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        force=True,
    )
