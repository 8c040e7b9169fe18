from __future__ import annotations

"""
moviematch/api/services/proxy.py

Proxies de solo lectura hacia TMDB, OMDb y YouTube.

- Las claves de API las pone el servidor; cualquier secreto que mande el
  cliente se descarta.
- Respuestas 2xx se memorizan en la RouteCache compartida con una clave
  normalizada (build_cache_key), así "la misma petición" con parámetros en
  otro orden o con nombres en otra capitalización acierta en caché.
- Errores:
    sin API key configurada -> 503
    timeout upstream        -> 504
    otro fallo de transporte/JSON -> 502
  Las respuestas no-2xx del upstream se devuelven tal cual (status + cuerpo),
  sin cachear.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import requests

from moviematch.api.caching.route_cache import SECRET_PARAMS, RouteCache, build_cache_key
from moviematch.api.errors import BadGateway, GatewayTimeout, ServiceUnavailable, ValidationError
from moviematch.api.services.http_client import UpstreamError, UpstreamTimeoutError, fetch_json
from moviematch.api.settings import Settings

logger = logging.getLogger(__name__)

TMDB_BASE_URL = "https://api.themoviedb.org/3"
OMDB_BASE_URL = "https://www.omdbapi.com/"
YOUTUBE_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"

TMDB_ALLOWED_PATHS: frozenset[str] = frozenset({"discover/movie", "search/movie", "trending/movie/week"})
TMDB_DEFAULT_PATH = "discover/movie"


@dataclass(frozen=True)
class ProxyResult:
    status: int
    data: Any
    cache_hit: bool = False

    @property
    def cache_header(self) -> str:
        return "HIT" if self.cache_hit else "MISS"


def _public_params(query: Mapping[str, str], *, drop: frozenset[str] = frozenset()) -> dict[str, str]:
    """Quita secretos, claves de control y valores vacíos."""
    out: dict[str, str] = {}
    for key, value in query.items():
        lowered = key.lower()
        if lowered in SECRET_PARAMS or lowered in drop:
            continue
        if value is None or value == "":
            continue
        out[key] = str(value)
    return out


class ProxyService:
    def __init__(
        self,
        cache: RouteCache[ProxyResult],
        settings: Settings,
        *,
        session: requests.Session | None = None,
    ) -> None:
        self._cache = cache
        self._settings = settings
        self._session = session

    @property
    def cache(self) -> RouteCache[ProxyResult]:
        return self._cache

    # ------------------------------------------------------------------
    # TMDB
    # ------------------------------------------------------------------

    def tmdb(self, query: Mapping[str, str]) -> ProxyResult:
        path = (query.get("path") or TMDB_DEFAULT_PATH).strip().strip("/")
        if path not in TMDB_ALLOWED_PATHS:
            raise ValidationError("Unsupported TMDB path")

        api_key = self._settings.tmdb_api_key
        token = self._settings.tmdb_read_access_token
        if not api_key and not token:
            raise ServiceUnavailable("TMDB API key is not configured.")

        params = _public_params(query, drop=frozenset({"path"}))
        params.setdefault("language", "en-US")
        params.setdefault("include_adult", "false")

        secret = {"api_key": api_key} if api_key else {}
        headers = {} if api_key else {"Authorization": f"Bearer {token}"}
        return self._fetch(
            f"tmdb:{path}",
            f"{TMDB_BASE_URL}/{path}",
            params,
            secret=secret,
            headers=headers,
        )

    # ------------------------------------------------------------------
    # OMDb
    # ------------------------------------------------------------------

    def omdb(self, query: Mapping[str, str]) -> ProxyResult:
        api_key = self._settings.omdb_api_key
        if not api_key:
            raise ServiceUnavailable("OMDb API key is not configured.")
        return self._fetch("omdb", OMDB_BASE_URL, _public_params(query), secret={"apikey": api_key})

    # ------------------------------------------------------------------
    # YouTube
    # ------------------------------------------------------------------

    def youtube(self, query: Mapping[str, str]) -> ProxyResult:
        api_key = self._settings.youtube_api_key
        if not api_key:
            raise ServiceUnavailable("YouTube API key is not configured.")

        params = {"part": "snippet", "type": "video", "maxResults": "1"}
        params.update(_public_params(query))
        return self._fetch("youtube", YOUTUBE_SEARCH_URL, params, secret={"key": api_key})

    # ------------------------------------------------------------------
    # común
    # ------------------------------------------------------------------

    def _fetch(
        self,
        namespace: str,
        url: str,
        params: dict[str, str],
        *,
        secret: dict[str, str],
        headers: dict[str, str] | None = None,
    ) -> ProxyResult:
        key = build_cache_key(namespace, params)
        cached = self._cache.get(key)
        if cached is not None:
            return ProxyResult(status=cached.status, data=cached.data, cache_hit=True)

        try:
            resp = fetch_json(
                "GET",
                url,
                timeout_seconds=self._settings.http_timeout_seconds,
                params={**params, **secret},
                headers=headers,
                session=self._session,
            )
        except UpstreamTimeoutError as exc:
            logger.warning("proxy_upstream_timeout", extra={"namespace": namespace, "error": str(exc)})
            raise GatewayTimeout(f"{namespace.split(':')[0].upper()} request timed out.") from exc
        except UpstreamError as exc:
            logger.warning("proxy_upstream_error", extra={"namespace": namespace, "error": str(exc)})
            raise BadGateway(f"{namespace.split(':')[0].upper()} proxy error") from exc

        result = ProxyResult(status=resp.status, data=resp.data, cache_hit=False)
        if resp.ok:
            self._cache.set(key, result)
        else:
            logger.info("proxy_upstream_status", extra={"namespace": namespace, "status": resp.status})
        return result
