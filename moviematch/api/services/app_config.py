from __future__ import annotations

import logging
from typing import Any

from moviematch.api.errors import ApiError
from moviematch.api.services.auth import extract_token
from moviematch.api.storage.auth_store import AuthStore
from moviematch.api.storage.rest_client import FilteredQueryClient, RequestError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: dict[str, Any] = {
    "ui.home.maxRecommendations": 10,
    "ui.home.groupPicks": 3,
    "ui.discover.maxMovies": 12,
    "ui.discover.maxPeople": 6,
    "feature.watchParties.enabled": True,
    "feature.messages.enabled": True,
    "feature.notifications.enabled": True,
}


class AppConfigService:
    """
    Config de la app + experimentos.

    - Modo local: siempre DEFAULT_CONFIG y sin experimentos.
    - Modo remoto: DEFAULT_CONFIG pisado por la tabla `app_config`; experimentos
      habilitados y, si hay usuario, sus asignaciones.
    Cualquier fallo cae a los valores por defecto (se registra, no se propaga).
    """

    def __init__(self, remote: FilteredQueryClient | None, auth_store: AuthStore) -> None:
        self._remote = remote
        self._auth_store = auth_store

    def snapshot(self, authorization: str | None = None) -> dict[str, Any]:
        username = self._resolve_username(extract_token(authorization, {}))
        return {"config": self.load_config(), "experiments": self.load_experiments(username)}

    def _resolve_username(self, token: str | None) -> str | None:
        if not token:
            return None
        try:
            session = self._auth_store.find_session(token)
        except ApiError:
            # config es pública: un fallo de auth equivale a anónimo
            return None
        return session.username if session else None

    def load_config(self) -> dict[str, Any]:
        config = dict(DEFAULT_CONFIG)
        if self._remote is None:
            return config
        try:
            rows = self._remote.select("app_config", columns="key,value")
        except RequestError as exc:
            logger.warning("app_config_load_failed", extra={"status": exc.status, "error": exc.message})
            return config
        for row in rows:
            if isinstance(row, dict) and row.get("key"):
                config[str(row["key"])] = row.get("value")
        return config

    def load_experiments(self, username: str | None) -> dict[str, Any]:
        base: dict[str, Any] = {"experiments": [], "assignments": {}}
        if self._remote is None:
            return base
        try:
            experiments = self._remote.select("experiments", columns="key,description,is_enabled,config")
            enabled = [e for e in experiments if isinstance(e, dict) and e.get("is_enabled") is not False]
            assignments: dict[str, Any] = {}
            if username:
                rows = self._remote.select(
                    "experiment_assignments",
                    columns="experiment_key,variant",
                    filters={"username": username},
                )
                for row in rows:
                    if isinstance(row, dict) and row.get("experiment_key") and row.get("variant"):
                        assignments[str(row["experiment_key"])] = row["variant"]
        except RequestError as exc:
            logger.warning("experiments_load_failed", extra={"status": exc.status, "error": exc.message})
            return base
        return {"experiments": enabled, "assignments": assignments}
