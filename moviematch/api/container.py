from __future__ import annotations

"""
moviematch/api/container.py

Construcción explícita de todo lo que comparten los handlers (una vez por app):
settings -> backends -> fachada de auth -> servicios.

Nada de singletons a nivel de módulo: `create_app(settings)` construye un
contenedor nuevo y lo deja en `app.state.services`. Los tests pueden crear
apps independientes con settings distintos.
"""

import logging
from dataclasses import dataclass

import requests

from moviematch.api.caching.route_cache import RouteCache
from moviematch.api.services.app_config import AppConfigService
from moviematch.api.services.auth import AuthService
from moviematch.api.services.avatars import (
    AvatarResolver,
    LocalObjectStorage,
    ObjectStorage,
    SupabaseObjectStorage,
)
from moviematch.api.services.http_client import get_session
from moviematch.api.services.proxy import ProxyResult, ProxyService
from moviematch.api.services.streaming import StreamingService
from moviematch.api.services.telemetry import TelemetryService
from moviematch.api.settings import Settings
from moviematch.api.storage.auth_store import AuthStore
from moviematch.api.storage.backends import Backends, build_backends

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
    settings: Settings
    backends: Backends
    route_cache: RouteCache[ProxyResult]
    auth_store: AuthStore
    auth: AuthService
    proxy: ProxyService
    telemetry: TelemetryService
    app_config: AppConfigService
    streaming: StreamingService


def _object_storage(settings: Settings, session: requests.Session) -> ObjectStorage:
    if settings.remote_store_configured:
        return SupabaseObjectStorage(
            base_url=settings.supabase_url,
            service_key=settings.supabase_service_role_key,
            bucket=settings.avatar_bucket,
            timeout_seconds=settings.store_timeout_seconds,
            session=session,
        )
    return LocalObjectStorage(settings.avatar_dir)


def build_services(settings: Settings, *, session: requests.Session | None = None) -> Services:
    http = session if session is not None else get_session()

    backends = build_backends(settings)
    route_cache: RouteCache[ProxyResult] = RouteCache(
        ttl_seconds=settings.route_cache_ttl_seconds,
        max_entries=settings.route_cache_max_entries,
    )
    auth_store = AuthStore(backends.auth)
    avatars = AvatarResolver(
        _object_storage(settings, http),
        tmdb_api_key=settings.tmdb_api_key,
        tmdb_read_access_token=settings.tmdb_read_access_token,
        timeout_seconds=settings.http_timeout_seconds,
        session=http,
    )

    services = Services(
        settings=settings,
        backends=backends,
        route_cache=route_cache,
        auth_store=auth_store,
        auth=AuthService(auth_store, avatars),
        proxy=ProxyService(route_cache, settings, session=http),
        telemetry=TelemetryService(backends.telemetry, auth_store),
        app_config=AppConfigService(backends.remote, auth_store),
        streaming=StreamingService(backends.remote, auth_store),
    )
    logger.info(
        "services_ready",
        extra={"mode": backends.mode, "route_cache_ttl": settings.route_cache_ttl_seconds},
    )
    return services
