# lectura de env vars + defaults
from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

# No sobre-escribimos env vars ya definidas (docker, CI, etc.)
load_dotenv(override=False)

# paths lee env vars al importarse: tras load_dotenv
from moviematch.api import paths  # noqa: E402


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    val = raw.strip()
    return val if val else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except Exception:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    val = raw.strip().lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


@dataclass(frozen=True)
class Settings:
    """
    Settings centralizados (env vars). Esto evita `os.getenv(...)` disperso.

    Notas importantes:
    - CORS: si CORS_ORIGINS="*" -> allow_credentials=False para compatibilidad browser.
    - Backend de persistencia: remoto si SUPABASE_URL y SUPABASE_SERVICE_ROLE_KEY
      están definidos; si no, ficheros JSON locales. La elección es fija por proceso.
    """

    log_level: str

    cors_origins_raw: str
    cors_allow_credentials: bool

    gzip_min_size: int

    route_cache_ttl_seconds: float = 60.0
    route_cache_max_entries: int = 100

    http_timeout_seconds: float = 10.0
    store_timeout_seconds: float = 15.0

    supabase_url: str = ""
    supabase_service_role_key: str = ""
    avatar_bucket: str = "avatars"

    tmdb_api_key: str = ""
    tmdb_read_access_token: str = ""
    omdb_api_key: str = ""
    youtube_api_key: str = ""

    auth_store_path: str = ""
    telemetry_store_path: str = ""
    avatar_dir: str = ""

    @property
    def remote_store_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_role_key)

    def cors_allow_origins(self) -> list[str]:
        raw = self.cors_origins_raw.strip()
        if raw == "*":
            return ["*"]
        parts = [p.strip() for p in raw.split(",")]
        return [p for p in parts if p]

    @staticmethod
    def from_env() -> "Settings":
        cors_raw = _env_str("CORS_ORIGINS", "*")
        allow_origins = ["*"] if cors_raw.strip() == "*" else [p.strip() for p in cors_raw.split(",") if p.strip()]

        # Regla browser: "*" + credentials=True no es válido
        cors_allow_credentials = True
        if allow_origins == ["*"]:
            cors_allow_credentials = False

        return Settings(
            log_level=_env_str("LOG_LEVEL", "INFO").upper(),
            cors_origins_raw=cors_raw,
            cors_allow_credentials=cors_allow_credentials,
            gzip_min_size=_env_int("GZIP_MIN_SIZE", 800),
            route_cache_ttl_seconds=max(0.001, _env_float("ROUTE_CACHE_TTL_SECONDS", 60.0)),
            route_cache_max_entries=max(1, _env_int("ROUTE_CACHE_MAX_ENTRIES", 100)),
            http_timeout_seconds=max(0.5, _env_float("HTTP_TIMEOUT_SECONDS", 10.0)),
            store_timeout_seconds=max(0.5, _env_float("STORE_TIMEOUT_SECONDS", 15.0)),
            supabase_url=_env_str("SUPABASE_URL", "").rstrip("/"),
            supabase_service_role_key=_env_str("SUPABASE_SERVICE_ROLE_KEY", ""),
            avatar_bucket=_env_str("AVATAR_BUCKET", "avatars"),
            tmdb_api_key=_env_str("TMDB_API_KEY", ""),
            tmdb_read_access_token=_env_str("TMDB_API_READ_ACCESS_TOKEN", ""),
            omdb_api_key=_env_str("OMDB_API_KEY", ""),
            youtube_api_key=_env_str("YOUTUBE_API_KEY", ""),
            auth_store_path=str(paths.AUTH_STORE_PATH),
            telemetry_store_path=str(paths.TELEMETRY_STORE_PATH),
            avatar_dir=str(paths.AVATAR_DIR),
        )
