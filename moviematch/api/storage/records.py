from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields, replace
from typing import Any

USERS_TABLE = "auth_users"
SESSIONS_TABLE = "auth_sessions"


@dataclass
class UserRecord:
    """
    Usuario. `username` es la clave canónica (minúsculas, trim) e inmutable.

    Mapeo 1:1 con la fila de almacenamiento: los nombres de campo del
    dataclass son los nombres de columna (snake_case).
    """

    username: str
    display_name: str | None = None
    password_hash: str = ""
    salt: str = ""
    created_at: str | None = None
    last_login_at: str | None = None
    preferences_snapshot: dict[str, Any] | None = None
    watched_history: list[Any] = field(default_factory=list)
    favorites_list: list[Any] = field(default_factory=list)
    avatar_path: str | None = None
    avatar_url: str | None = None
    last_preferences_sync: str | None = None
    last_watched_sync: str | None = None
    last_favorites_sync: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "UserRecord":
        snapshot = row.get("preferences_snapshot")
        watched = row.get("watched_history")
        favorites = row.get("favorites_list")
        return cls(
            username=str(row.get("username") or ""),
            display_name=row.get("display_name"),
            password_hash=str(row.get("password_hash") or ""),
            salt=str(row.get("salt") or ""),
            created_at=row.get("created_at"),
            last_login_at=row.get("last_login_at"),
            preferences_snapshot=copy.deepcopy(snapshot) if isinstance(snapshot, dict) else None,
            watched_history=copy.deepcopy(watched) if isinstance(watched, list) else [],
            favorites_list=copy.deepcopy(favorites) if isinstance(favorites, list) else [],
            avatar_path=row.get("avatar_path"),
            avatar_url=row.get("avatar_url"),
            last_preferences_sync=row.get("last_preferences_sync"),
            last_watched_sync=row.get("last_watched_sync"),
            last_favorites_sync=row.get("last_favorites_sync"),
        )

    def to_row(self) -> dict[str, Any]:
        return {f.name: copy.deepcopy(getattr(self, f.name)) for f in fields(self)}

    def merged(self, patch: dict[str, Any]) -> "UserRecord":
        known = {f.name for f in fields(self)}
        changes = {k: copy.deepcopy(v) for k, v in patch.items() if k in known and k != "username"}
        return replace(copy.deepcopy(self), **changes)


@dataclass
class SessionRecord:
    token: str
    username: str
    created_at: str | None = None
    last_active_at: str | None = None
    last_preferences_sync: str | None = None
    last_watched_sync: str | None = None
    last_favorites_sync: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SessionRecord":
        return cls(
            token=str(row.get("token") or ""),
            username=str(row.get("username") or ""),
            created_at=row.get("created_at"),
            last_active_at=row.get("last_active_at"),
            last_preferences_sync=row.get("last_preferences_sync"),
            last_watched_sync=row.get("last_watched_sync"),
            last_favorites_sync=row.get("last_favorites_sync"),
        )

    def to_row(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    def merged(self, patch: dict[str, Any]) -> "SessionRecord":
        known = {f.name for f in fields(self)}
        changes = {k: v for k, v in patch.items() if k in known and k not in ("token", "username")}
        return replace(self, **changes)


def session_view(user: UserRecord, session: SessionRecord) -> dict[str, Any]:
    """Vista pública de la sesión (camelCase), lo que recibe el frontend."""
    return {
        "token": session.token,
        "username": user.username,
        "displayName": user.display_name or user.username,
        "createdAt": user.created_at,
        "lastLoginAt": user.last_login_at or None,
        "lastPreferencesSync": user.last_preferences_sync or None,
        "lastWatchedSync": user.last_watched_sync or None,
        "lastFavoritesSync": user.last_favorites_sync or None,
        "avatarUrl": user.avatar_url or None,
        "preferencesSnapshot": copy.deepcopy(user.preferences_snapshot) if user.preferences_snapshot else None,
        "watchedHistory": copy.deepcopy(user.watched_history) if isinstance(user.watched_history, list) else [],
        "favoritesList": copy.deepcopy(user.favorites_list) if isinstance(user.favorites_list, list) else [],
    }
