# selección de backend (remoto vs ficheros locales) una sola vez por proceso
from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

from moviematch.api.settings import Settings
from moviematch.api.storage.local_store import LocalFileStore
from moviematch.api.storage.records import SESSIONS_TABLE, USERS_TABLE
from moviematch.api.storage.rest_client import FilteredQueryClient, Filters, Row

logger = logging.getLogger(__name__)

SEARCH_QUERIES_TABLE = "search_queries"
USER_ACTIVITY_TABLE = "user_activity"


class TableBackend(Protocol):
    def select(
        self,
        table: str,
        *,
        columns: str | Sequence[str] = "*",
        filters: Filters | None = None,
        limit: int | None = None,
    ) -> list[Row]: ...

    def select_one(
        self,
        table: str,
        *,
        columns: str | Sequence[str] = "*",
        filters: Filters | None = None,
    ) -> Row | None: ...

    def insert(self, table: str, rows: Row | Sequence[Row]) -> list[Row]: ...

    def update(self, table: str, patch: Mapping[str, object], filters: Filters | None = None) -> list[Row]: ...

    def delete(self, table: str, filters: Filters | None = None) -> None: ...


@dataclass(frozen=True)
class Backends:
    """
    - auth: usuarios + sesiones
    - telemetry: search_queries + user_activity
    - remote: cliente remoto si está configurado (app_config, experiments, storage...)
    """

    auth: TableBackend
    telemetry: TableBackend
    remote: FilteredQueryClient | None

    @property
    def mode(self) -> str:
        return "remote" if self.remote is not None else "local"


def build_backends(settings: Settings) -> Backends:
    if settings.remote_store_configured:
        client = FilteredQueryClient(
            base_url=settings.supabase_url,
            service_key=settings.supabase_service_role_key,
            timeout_seconds=settings.store_timeout_seconds,
        )
        logger.info("storage_backend_selected", extra={"mode": "remote", "base_url": client.base_url})
        return Backends(auth=client, telemetry=client, remote=client)

    auth_store = LocalFileStore(
        settings.auth_store_path,
        tables=("users", "sessions"),
        aliases={USERS_TABLE: "users", SESSIONS_TABLE: "sessions"},
    )
    telemetry_store = LocalFileStore(
        settings.telemetry_store_path, tables=(SEARCH_QUERIES_TABLE, USER_ACTIVITY_TABLE)
    )
    logger.info("storage_backend_selected", extra={"mode": "local", "path": str(auth_store.path)})
    return Backends(auth=auth_store, telemetry=telemetry_store, remote=None)
