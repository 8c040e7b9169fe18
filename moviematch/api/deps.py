from __future__ import annotations

from fastapi import Request

from moviematch.api.container import Services
from moviematch.api.services.app_config import AppConfigService
from moviematch.api.services.auth import AuthService
from moviematch.api.services.proxy import ProxyService
from moviematch.api.services.streaming import StreamingService
from moviematch.api.services.telemetry import TelemetryService
from moviematch.api.storage.backends import Backends


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_backends(request: Request) -> Backends:
    return get_services(request).backends


def get_auth_service(request: Request) -> AuthService:
    return get_services(request).auth


def get_proxy_service(request: Request) -> ProxyService:
    return get_services(request).proxy


def get_telemetry_service(request: Request) -> TelemetryService:
    return get_services(request).telemetry


def get_app_config_service(request: Request) -> AppConfigService:
    return get_services(request).app_config


def get_streaming_service(request: Request) -> StreamingService:
    return get_services(request).streaming
