"""Remote Risk Engine HTTP run source."""

from __future__ import annotations

import json
import logging
from http.client import HTTPException
from typing import Any
from urllib import error, parse, request

from blackswan_mcp.models import AgentName
from blackswan_mcp.sources.base import LatestRun, SourceError, to_datetime

logger = logging.getLogger(__name__)


class RiskEngineRunSource:
    """Fetch the latest run from `GET {base_url}/api/agents/{agent}/history?limit=1`.

    A non-2xx status means "nothing usable" and is reported as absent; failing
    to connect (or an unreadable body) raises SourceError.
    """

    name = "risk_engine"

    def __init__(self, base_url: str, *, api_key: str = "", timeout_s: float = 10.0) -> None:
        if not base_url:
            raise ValueError("RISK_ENGINE_URL is required")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_s = timeout_s

    def latest_run(self, agent: AgentName) -> LatestRun | None:
        payload = self._request_history(agent)
        if payload is None:
            return None

        runs = payload.get("runs")
        if payload.get("count") == 0 or not isinstance(runs, list) or not runs:
            return None
        run = runs[0]
        if not isinstance(run, dict):
            return None

        created_at = to_datetime(run.get("created_at"))
        if created_at is None:
            logger.warning(
                "run_source event=timestamp_invalid source=%s agent=%s value=%r",
                self.name,
                agent,
                run.get("created_at"),
            )
            return None
        return LatestRun(output=run.get("output"), created_at=created_at)

    def history_url(self, agent: AgentName) -> str:
        query = parse.urlencode({"limit": 1})
        return f"{self.base_url}/api/agents/{parse.quote(agent)}/history?{query}"

    def _request_history(self, agent: AgentName) -> dict[str, Any] | None:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        req = request.Request(url=self.history_url(agent), method="GET", headers=headers)

        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                body = response.read().decode("utf-8")
        except error.HTTPError as exc:
            logger.warning(
                "run_source event=http_status source=%s agent=%s status=%s",
                self.name,
                agent,
                exc.code,
            )
            return None
        except error.URLError as exc:
            raise SourceError(f"Risk Engine request for '{agent}' failed: {exc.reason}") from exc
        except (TimeoutError, OSError, HTTPException) as exc:
            raise SourceError(f"Risk Engine request for '{agent}' failed: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise SourceError(f"Risk Engine returned a non-UTF-8 body for '{agent}'.") from exc

        try:
            parsed = json.loads(body) if body else {}
        except json.JSONDecodeError as exc:
            raise SourceError(f"Risk Engine returned non-JSON response for '{agent}'.") from exc
        if not isinstance(parsed, dict):
            raise SourceError(
                f"Risk Engine returned unsupported JSON shape for '{agent}': {type(parsed)!r}"
            )
        return parsed
