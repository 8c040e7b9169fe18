from __future__ import annotations

"""
moviematch/api/services/streaming.py

Catálogo de plataformas de streaming + las que tiene marcadas el usuario.

- Modo local: lista fija FALLBACK_PROVIDERS y `userProviders` vacío.
- Modo remoto: tabla `streaming_providers` (hasta 100 filas) y, si el token
  resuelve a un usuario, sus claves en `user_streaming_profiles` sin duplicados.
Un fallo del backend remoto es un 500; resolver el usuario es best-effort.
"""

import logging
from typing import Any

from moviematch.api.errors import ApiError, InternalError
from moviematch.api.services.auth import extract_token
from moviematch.api.storage.auth_store import AuthStore
from moviematch.api.storage.rest_client import FilteredQueryClient, RequestError

logger = logging.getLogger(__name__)

STREAMING_PROVIDERS_TABLE = "streaming_providers"
USER_STREAMING_PROFILES_TABLE = "user_streaming_profiles"
MAX_PROVIDERS = 100

FALLBACK_PROVIDERS: tuple[dict[str, Any], ...] = (
    {"key": "netflix", "displayName": "Netflix", "url": "https://www.netflix.com", "metadata": {}},
    {"key": "prime-video", "displayName": "Prime Video", "url": "https://www.primevideo.com", "metadata": {}},
    {"key": "disney-plus", "displayName": "Disney+", "url": "https://www.disneyplus.com", "metadata": {}},
    {"key": "max", "displayName": "Max", "url": "https://www.max.com", "metadata": {}},
    {"key": "hulu", "displayName": "Hulu", "url": "https://www.hulu.com", "metadata": {}},
    {"key": "apple-tv", "displayName": "Apple TV+", "url": "https://tv.apple.com", "metadata": {}},
    {"key": "peacock", "displayName": "Peacock", "url": "https://www.peacocktv.com", "metadata": {}},
    {"key": "paramount-plus", "displayName": "Paramount+", "url": "https://www.paramountplus.com", "metadata": {}},
)


def provider_view(row: dict[str, Any]) -> dict[str, Any]:
    key = row.get("key") or ""
    metadata = row.get("metadata")
    return {
        "key": key,
        "displayName": row.get("display_name") or key or "Streaming provider",
        "url": row.get("url") or None,
        "metadata": metadata if isinstance(metadata, dict) else {},
    }


def load_providers(remote: FilteredQueryClient) -> list[dict[str, Any]]:
    rows = remote.select(
        STREAMING_PROVIDERS_TABLE,
        columns="key,display_name,url,metadata",
        limit=MAX_PROVIDERS,
    )
    return [provider_view(row) for row in rows if isinstance(row, dict)]


def load_user_providers(remote: FilteredQueryClient, username: str) -> list[str]:
    rows = remote.select(
        USER_STREAMING_PROFILES_TABLE,
        columns="provider_key",
        filters={"username": username},
    )
    keys: list[str] = []
    for row in rows:
        key = row.get("provider_key") if isinstance(row, dict) else None
        if key and str(key) not in keys:
            keys.append(str(key))
    return keys


class StreamingService:
    def __init__(self, remote: FilteredQueryClient | None, auth_store: AuthStore) -> None:
        self._remote = remote
        self._auth_store = auth_store

    def catalog(self, authorization: str | None = None) -> dict[str, Any]:
        if self._remote is None:
            return {"providers": [dict(p) for p in FALLBACK_PROVIDERS], "userProviders": []}

        username = self._resolve_username(extract_token(authorization, {}))
        try:
            providers = load_providers(self._remote)
            user_providers = load_user_providers(self._remote, username) if username else []
        except RequestError as exc:
            logger.error("streaming_load_failed", extra={"status": exc.status, "error": exc.message})
            raise InternalError("Unable to load streaming providers.") from exc
        return {"providers": providers, "userProviders": user_providers}

    def _resolve_username(self, token: str | None) -> str | None:
        if not token:
            return None
        try:
            session = self._auth_store.find_session(token)
        except ApiError:
            return None
        return session.username if session else None
