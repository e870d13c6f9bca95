"""Firestore-backed run source.

Beginner terms:
- Collection: a named group of documents (here, one document per agent run).
- Composite query: filter on agent + success, newest createdAt first, limit 1.
- Service account: JSON credentials the Admin SDK uses to talk to Firestore.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from google.api_core.exceptions import GoogleAPIError
from google.auth.exceptions import GoogleAuthError
from google.cloud.firestore_v1.base_query import BaseQuery, FieldFilter

from blackswan_mcp.models import AgentName
from blackswan_mcp.sources.base import LatestRun, SourceError, latest_run_from_document

logger = logging.getLogger(__name__)

SMART_AGENT_RUNS = "smart_agent_runs"


class FirestoreRunSource:
    """Read the newest successful run per agent from the runs collection."""

    name = "firestore"

    def __init__(
        self,
        client: Any,
        *,
        collection: str = SMART_AGENT_RUNS,
        timeout_s: float = 10.0,
    ) -> None:
        self._client = client
        self.collection = collection
        self.timeout_s = timeout_s

    def latest_run(self, agent: AgentName) -> LatestRun | None:
        query = (
            self._client.collection(self.collection)
            .where(filter=FieldFilter("agent", "==", agent))
            .where(filter=FieldFilter("success", "==", True))
            .order_by("createdAt", direction=BaseQuery.DESCENDING)
            .limit(1)
        )
        try:
            snapshots = list(query.get(timeout=self.timeout_s))
        except (GoogleAPIError, GoogleAuthError) as exc:
            raise SourceError(f"Firestore query for agent '{agent}' failed: {exc}") from exc

        if not snapshots:
            return None
        return latest_run_from_document(snapshots[0].to_dict(), source=self.name)


def build_firestore_client(
    *,
    project_id: str,
    service_account_json: str = "",
    service_account_path: str = "",
) -> Any:
    """Initialize the Firebase Admin app once and return its Firestore client."""
    import firebase_admin
    from firebase_admin import credentials, firestore

    try:
        app = firebase_admin.get_app()
    except ValueError:
        service_account = load_service_account(
            service_account_json=service_account_json,
            service_account_path=service_account_path,
        )
        app = firebase_admin.initialize_app(
            credentials.Certificate(service_account),
            {"projectId": project_id},
        )
        logger.info("firestore event=initialized project_id=%s", project_id)
    return firestore.client(app)


def load_service_account(
    *,
    service_account_json: str = "",
    service_account_path: str = "",
) -> dict[str, Any]:
    """Resolve credentials: inline JSON first, then the file path."""
    if service_account_json:
        try:
            parsed = json.loads(service_account_json)
        except json.JSONDecodeError:
            logger.error("firestore event=credentials_invalid origin=env_json")
        else:
            if isinstance(parsed, dict):
                logger.info("firestore event=credentials_loaded origin=env_json")
                return parsed
            logger.error("firestore event=credentials_invalid origin=env_json")

    if service_account_path:
        path = Path(service_account_path).expanduser()
        if not path.is_absolute():
            path = Path.cwd() / path
        if not path.exists():
            logger.error("firestore event=credentials_missing path=%s", path)
        else:
            try:
                parsed = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as exc:
                logger.error("firestore event=credentials_invalid path=%s error=%s", path, exc)
            else:
                if isinstance(parsed, dict):
                    logger.info("firestore event=credentials_loaded path=%s", path)
                    return parsed

    raise SourceError(
        "No Firebase service account credentials found. "
        "Set FIREBASE_SERVICE_ACCOUNT_PATH or FIREBASE_SERVICE_ACCOUNT_JSON."
    )
