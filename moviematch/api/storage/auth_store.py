from __future__ import annotations

"""
moviematch/api/storage/auth_store.py

Fachada de persistencia para usuarios y sesiones.

- Recibe un `TableBackend` ya elegido (remoto o fichero local); no hace
  comprobaciones de tipo sobre él.
- Traduce filas <-> UserRecord / SessionRecord (simétrico, campo a campo).
- Devuelve siempre copias: el caller no comparte estado mutable con el backend.
- `patch_*` devuelve None si la fila no existía: el caller decide (normalmente
  construye un registro optimista en memoria).
- Los RequestError del backend remoto se normalizan:
    503 (transporte) -> ServiceUnavailable
    resto            -> InternalError
"""

import logging
import secrets
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from moviematch.api.errors import InternalError, ServiceUnavailable
from moviematch.api.storage.backends import TableBackend
from moviematch.api.storage.records import SESSIONS_TABLE, USERS_TABLE, SessionRecord, UserRecord
from moviematch.api.storage.rest_client import RequestError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNAVAILABLE_MSG = "Authentication storage is unavailable. Try again shortly."
_FAILURE_MSG = "Authentication storage service failure."


def new_session_token() -> str:
    return secrets.token_hex(24)


class AuthStore:
    def __init__(self, backend: TableBackend, *, token_factory: Callable[[], str] = new_session_token) -> None:
        self._backend = backend
        self._token_factory = token_factory

    @property
    def backend(self) -> TableBackend:
        return self._backend

    def _call(self, op: str, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except RequestError as exc:
            logger.error("auth_store_error", extra={"op": op, "status": exc.status, "detail": exc.message})
            if exc.status == 503:
                raise ServiceUnavailable(_UNAVAILABLE_MSG) from exc
            raise InternalError(_FAILURE_MSG) from exc

    # ------------------------------------------------------------------
    # usuarios
    # ------------------------------------------------------------------

    def find_user(self, username: str) -> UserRecord | None:
        if not username:
            return None
        row = self._call(
            "find_user",
            lambda: self._backend.select_one(USERS_TABLE, columns="*", filters={"username": username}),
        )
        return UserRecord.from_row(row) if row else None

    def create_user(self, fields: UserRecord | Mapping[str, Any]) -> UserRecord:
        record = fields if isinstance(fields, UserRecord) else UserRecord.from_row(dict(fields))
        row = record.to_row()
        rows = self._call("create_user", lambda: self._backend.insert(USERS_TABLE, [row]))
        # Si el backend no devuelve representación, lo insertado es lo que vale
        return UserRecord.from_row(rows[0]) if rows else UserRecord.from_row(row)

    def patch_user(self, username: str, fields: Mapping[str, Any]) -> UserRecord | None:
        patch = {k: v for k, v in fields.items() if k != "username"}
        if not username or not patch:
            return self.find_user(username) if username else None
        rows = self._call(
            "patch_user",
            lambda: self._backend.update(USERS_TABLE, patch, {"username": username}),
        )
        return UserRecord.from_row(rows[0]) if rows else None

    # ------------------------------------------------------------------
    # sesiones
    # ------------------------------------------------------------------

    def find_session(self, token: str) -> SessionRecord | None:
        if not token:
            return None
        row = self._call(
            "find_session",
            lambda: self._backend.select_one(SESSIONS_TABLE, columns="*", filters={"token": token}),
        )
        return SessionRecord.from_row(row) if row else None

    def create_session(self, user: UserRecord, timestamp: str) -> SessionRecord:
        """Una sola sesión viva por usuario: borra las anteriores y crea una nueva."""
        self.delete_all_sessions_for_user(user.username)

        record = SessionRecord(
            token=self._token_factory(),
            username=user.username,
            created_at=timestamp,
            last_active_at=timestamp,
            last_preferences_sync=user.last_preferences_sync or None,
            last_watched_sync=user.last_watched_sync or None,
            last_favorites_sync=user.last_favorites_sync or None,
        )
        row = record.to_row()
        rows = self._call("create_session", lambda: self._backend.insert(SESSIONS_TABLE, [row]))
        return SessionRecord.from_row(rows[0]) if rows else record

    def patch_session(self, token: str, fields: Mapping[str, Any]) -> SessionRecord | None:
        patch = {k: v for k, v in fields.items() if k not in ("token", "username")}
        if not token or not patch:
            return self.find_session(token) if token else None
        rows = self._call(
            "patch_session",
            lambda: self._backend.update(SESSIONS_TABLE, patch, {"token": token}),
        )
        return SessionRecord.from_row(rows[0]) if rows else None

    def delete_session(self, token: str) -> None:
        if not token:
            return
        self._call("delete_session", lambda: self._backend.delete(SESSIONS_TABLE, {"token": token}))

    def delete_all_sessions_for_user(self, username: str) -> None:
        if not username:
            return
        self._call(
            "delete_all_sessions_for_user",
            lambda: self._backend.delete(SESSIONS_TABLE, {"username": username}),
        )
