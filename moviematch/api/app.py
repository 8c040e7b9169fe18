from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from moviematch.api.container import build_services
from moviematch.api.errors import ApiError
from moviematch.api.logging_config import configure_logging
from moviematch.api.middleware import (
    build_api_error_handler,
    build_exception_handler,
    build_request_id_middleware,
)
from moviematch.api.routers.app_config import router as app_config_router
from moviematch.api.routers.auth import router as auth_router
from moviematch.api.routers.health import router as health_router
from moviematch.api.routers.proxy import router as proxy_router
from moviematch.api.routers.streaming import router as streaming_router
from moviematch.api.routers.telemetry import router as telemetry_router
from moviematch.api.settings import Settings


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings)

    app = FastAPI(title="Smart Movie Match API", version="1.0.0")
    app.state.services = build_services(settings)

    app.add_middleware(GZipMiddleware, minimum_size=max(0, settings.gzip_min_size))

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins(),
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.middleware("http")(build_request_id_middleware(settings))
    app.add_exception_handler(ApiError, build_api_error_handler(settings))
    app.add_exception_handler(Exception, build_exception_handler(settings))

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(proxy_router)
    app.include_router(telemetry_router)
    app.include_router(app_config_router)
    app.include_router(streaming_router)

    return app


app = create_app()
