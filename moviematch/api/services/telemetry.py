from __future__ import annotations

"""
moviematch/api/services/telemetry.py

Registro best-effort de eventos del cliente:

- search         -> tabla `search_queries`
- recommendation -> `user_activity` (verb=recommendation_event)
- activity       -> `user_activity`

Eventos sin usuario (activity/recommendation) o sin datos mínimos se
descartan en silencio: responden ok igualmente.
"""

import logging
from collections.abc import Callable, Mapping
from typing import Any

from moviematch.api.errors import ApiError, InternalError, ValidationError
from moviematch.api.services.auth import extract_token, utc_now_iso
from moviematch.api.storage.auth_store import AuthStore
from moviematch.api.storage.backends import SEARCH_QUERIES_TABLE, USER_ACTIVITY_TABLE, TableBackend
from moviematch.api.storage.rest_client import RequestError

logger = logging.getLogger(__name__)

EVENT_TYPES = ("search", "recommendation", "activity")


def _as_dict(value: object) -> dict[str, Any]:
    return dict(value) if isinstance(value, Mapping) else {}


def _stripped(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


class TelemetryService:
    def __init__(
        self,
        backend: TableBackend,
        auth_store: AuthStore,
        *,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._backend = backend
        self._auth_store = auth_store
        self._clock = clock

    def resolve_username(self, token: str | None) -> str | None:
        if not token:
            return None
        try:
            session = self._auth_store.find_session(token)
        except ApiError as exc:
            logger.info("telemetry_username_unresolved", extra={"error": exc.message})
            return None
        return session.username if session else None

    def record(self, payload: Mapping[str, Any], authorization: str | None = None) -> None:
        event = _stripped(payload.get("event"))
        if not event:
            raise ValidationError("Missing event type")
        if event not in EVENT_TYPES:
            raise ValidationError("Unsupported event type")

        username = self.resolve_username(extract_token(authorization, payload))
        try:
            if event == "search":
                self._log_search(username, payload)
            elif event == "recommendation":
                self._log_recommendation(username, payload)
            else:
                self._log_activity(username, payload)
        except (RequestError, OSError) as exc:
            logger.error("telemetry_persist_failed", extra={"event_type": event, "error": repr(exc)})
            raise InternalError("Unable to record telemetry right now.") from exc

    def _log_search(self, username: str | None, payload: Mapping[str, Any]) -> None:
        query = _stripped(payload.get("query"))
        if not query:
            return
        results = payload.get("resultsCount")
        results_count = results if isinstance(results, (int, float)) and not isinstance(results, bool) else None
        self._backend.insert(
            SEARCH_QUERIES_TABLE,
            [
                {
                    "username": username,
                    "query": query,
                    "filters": _as_dict(payload.get("filters")),
                    "results_count": results_count,
                    "client_context": _as_dict(payload.get("clientContext")),
                    "created_at": self._clock(),
                }
            ],
        )

    def _log_recommendation(self, username: str | None, payload: Mapping[str, Any]) -> None:
        action = _stripped(payload.get("action"))
        if not username or not action:
            return
        metadata = _as_dict(payload.get("metadata"))
        self._log_activity(
            username,
            {
                "verb": "recommendation_event",
                "object_type": _stripped(metadata.get("object_type")) or "recommendation",
                "metadata": {**metadata, "action": action},
            },
        )

    def _log_activity(self, username: str | None, payload: Mapping[str, Any]) -> None:
        verb = _stripped(payload.get("verb"))
        object_type = _stripped(payload.get("object_type"))
        if not username or not verb or not object_type:
            return
        self._backend.insert(
            USER_ACTIVITY_TABLE,
            [
                {
                    "username": username,
                    "verb": verb,
                    "object_type": object_type,
                    "metadata": _as_dict(payload.get("metadata")),
                    "created_at": self._clock(),
                }
            ],
        )
