from __future__ import annotations

"""
moviematch/api/services/auth.py

Gestor de credenciales y sesiones: un único punto de entrada
`AuthService.handle(action, payload, authorization)` despachado por `action`.

Acciones
--------
signup, login, session, syncPreferences, syncWatched, syncFavorites,
updateProfile, changePassword, logout, requestPasswordReset.

Reglas
------
- username canónico = trim + lower; es la única identidad y no cambia nunca.
- Una sola sesión viva por usuario: signup/login/changePassword crean sesión
  nueva y borran las anteriores (AuthStore.create_session).
- Login no distingue "no existe" de "contraseña incorrecta" (401 genérico).
- Token: cabecera `Authorization: Bearer <token>` o campo `token` del body.
- Los `patch_*` que no encuentran fila devuelven None: construimos el registro
  en memoria de forma optimista y seguimos.
- Fallos de avatar nunca rompen signup/updateProfile (ver avatars.first_success).
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from moviematch.api.errors import Conflict, Forbidden, Unauthorized, ValidationError
from moviematch.api.services import metrics
from moviematch.api.services.avatars import AvatarRequest, AvatarResolver
from moviematch.api.services.passwords import hash_password, new_salt, verify_password
from moviematch.api.storage.auth_store import AuthStore
from moviematch.api.storage.records import SessionRecord, UserRecord, session_view

logger = logging.getLogger(__name__)

MIN_USERNAME_LENGTH = 3
MIN_PASSWORD_LENGTH = 6
MIN_NEW_PASSWORD_LENGTH = 8
MAX_DISPLAY_NAME = 120
MAX_WATCHED = 50
MAX_FAVORITES = 100

_BAD_CREDENTIALS = "Incorrect username or password. Sign up if you’re new here."
_SESSION_EXPIRED = "Session expired. Sign in again."


def utc_now_iso() -> str:
    """Timestamp ISO-8601 UTC con milisegundos y sufijo Z."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class AuthResult:
    body: dict[str, Any]
    status: int = 200


@dataclass(frozen=True)
class _Authenticated:
    user: UserRecord
    session: SessionRecord


# ---------------------------------------------------------------------------
# Saneado de entrada
# ---------------------------------------------------------------------------


def sanitize_username(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


def canonical_username(value: object) -> str:
    return sanitize_username(value).lower()


def sanitize_display_name(value: object) -> str:
    return value.strip()[:MAX_DISPLAY_NAME] if isinstance(value, str) else ""


def sanitize_preferences(value: object) -> dict[str, Any] | None:
    if not isinstance(value, Mapping):
        return None
    safe = dict(value)
    genres = value.get("selectedGenres")
    if isinstance(genres, list):
        safe["selectedGenres"] = [g for g in genres if isinstance(g, str) and g][:12]
    if isinstance(value.get("name"), str):
        safe["name"] = value["name"][:120]
    if isinstance(value.get("likesText"), str):
        safe["likesText"] = value["likesText"][:500]
    return safe


def sanitize_watched(value: object) -> list[Any]:
    return list(value[-MAX_WATCHED:]) if isinstance(value, list) else []


def _sanitize_favorite(entry: object) -> dict[str, Any] | None:
    if not isinstance(entry, Mapping):
        return None
    title = entry.get("title").strip() if isinstance(entry.get("title"), str) else ""
    if not title:
        return None

    def _str(key: str, limit: int, default: str | None) -> str | None:
        raw = entry.get(key)
        return raw[:limit] if isinstance(raw, str) else default

    genres_raw = entry.get("genres")
    genres = (
        [g.strip() for g in genres_raw if isinstance(g, str) and g.strip()][:10]
        if isinstance(genres_raw, list)
        else []
    )
    return {
        "imdbID": _str("imdbID", 32, None),
        "title": title,
        "year": _str("year", 16, ""),
        "poster": _str("poster", 512, None),
        "overview": _str("overview", 2000, ""),
        "genres": genres,
    }


def sanitize_favorites(value: object) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    cleaned = [fav for fav in (_sanitize_favorite(e) for e in value) if fav is not None]
    return cleaned[-MAX_FAVORITES:]


def validate_credentials(username: str, password: str) -> None:
    if len(username) < MIN_USERNAME_LENGTH:
        raise ValidationError("Usernames need at least 3 characters.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError("Passwords must include 6 or more characters.")


def extract_token(authorization: str | None, payload: Mapping[str, Any]) -> str | None:
    header = authorization or ""
    if header.startswith("Bearer "):
        return header[len("Bearer "):]
    token = payload.get("token")
    return token if isinstance(token, str) and token else None


def _avatar_request(username: str, payload: Mapping[str, Any]) -> AvatarRequest:
    """
    Acepta `avatarBase64`/`avatarFileName` en el body, o `profile.avatar` con
    forma `{base64|data, fileName|name}` (lo que envía el cliente).
    """
    b64 = payload.get("avatarBase64")
    name = payload.get("avatarFileName")
    profile = payload.get("profile")
    nested = profile.get("avatar") if isinstance(profile, Mapping) else None
    if isinstance(nested, Mapping):
        b64 = nested.get("base64") or nested.get("data") or b64
        name = nested.get("fileName") or nested.get("name") or name
    return AvatarRequest(
        username=username,
        upload_base64=b64 if isinstance(b64, str) else None,
        upload_filename=name if isinstance(name, str) else None,
    )


# ---------------------------------------------------------------------------
# Servicio
# ---------------------------------------------------------------------------


class AuthService:
    def __init__(
        self,
        store: AuthStore,
        avatars: AvatarResolver | None = None,
        *,
        clock: Callable[[], str] = utc_now_iso,
    ) -> None:
        self._store = store
        self._avatars = avatars
        self._clock = clock
        self._actions: dict[str, Callable[[Mapping[str, Any], str | None], AuthResult]] = {
            "signup": self.signup,
            "login": self.login,
            "session": self.session_info,
            "syncPreferences": self.sync_preferences,
            "syncWatched": self.sync_watched,
            "syncFavorites": self.sync_favorites,
            "updateProfile": self.update_profile,
            "changePassword": self.change_password,
            "logout": self.logout,
            "requestPasswordReset": self.request_password_reset,
        }

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(self._actions)

    def handle(self, action: object, payload: Mapping[str, Any], authorization: str | None = None) -> AuthResult:
        if not isinstance(action, str) or not action:
            raise ValidationError("Missing action")
        handler = self._actions.get(action)
        if handler is None:
            raise ValidationError("Unsupported action")

        metrics.inc("auth_actions_total", 1)
        logger.debug("auth_action", extra={"action": action})
        return handler(payload, authorization)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _authenticate(self, payload: Mapping[str, Any], authorization: str | None) -> _Authenticated:
        token = extract_token(authorization, payload)
        if not token:
            raise Unauthorized("Missing session token.")

        session = self._store.find_session(token)
        if session is None:
            raise Unauthorized(_SESSION_EXPIRED)

        user = self._store.find_user(session.username)
        if user is None:
            try:
                self._store.delete_session(token)
            except Exception as exc:
                logger.warning("orphan_session_cleanup_failed", extra={"error": repr(exc)})
            raise Unauthorized(_SESSION_EXPIRED)

        return _Authenticated(user=user, session=session)

    def _patch_user(self, user: UserRecord, patch: dict[str, Any]) -> UserRecord:
        updated = self._store.patch_user(user.username, patch)
        return updated if updated is not None else user.merged(patch)

    def _patch_session(self, session: SessionRecord, patch: dict[str, Any]) -> SessionRecord:
        updated = self._store.patch_session(session.token, patch)
        return updated if updated is not None else session.merged(patch)

    def _sync(
        self,
        payload: Mapping[str, Any],
        authorization: str | None,
        *,
        user_patch: dict[str, Any],
        sync_field: str,
    ) -> AuthResult:
        auth = self._authenticate(payload, authorization)
        now = self._clock()
        user = self._patch_user(auth.user, {**user_patch, sync_field: now})
        session = self._patch_session(auth.session, {sync_field: now, "last_active_at": now})
        return AuthResult(body={"ok": True, "session": session_view(user, session)})

    # ------------------------------------------------------------------
    # acciones
    # ------------------------------------------------------------------

    def signup(self, payload: Mapping[str, Any], authorization: str | None = None) -> AuthResult:
        username_input = sanitize_username(payload.get("username"))
        password = payload.get("password") if isinstance(payload.get("password"), str) else ""
        display_name = sanitize_display_name(payload.get("name"))

        validate_credentials(username_input, password)

        canonical = username_input.lower()
        if self._store.find_user(canonical) is not None:
            raise Conflict("That username is already registered. Try signing in.")

        now = self._clock()
        salt = new_salt()
        avatar = self._avatars.resolve(_avatar_request(canonical, payload)) if self._avatars else None

        user = self._store.create_user(
            UserRecord(
                username=canonical,
                display_name=display_name or username_input,
                password_hash=hash_password(password, salt),
                salt=salt,
                created_at=now,
                last_login_at=now,
                avatar_path=avatar.path if avatar else None,
                avatar_url=avatar.url if avatar else None,
            )
        )
        session = self._store.create_session(user, now)
        logger.info("user_signed_up", extra={"username": canonical})
        return AuthResult(status=201, body={"session": session_view(user, session)})

    def login(self, payload: Mapping[str, Any], authorization: str | None = None) -> AuthResult:
        username_input = sanitize_username(payload.get("username"))
        password = payload.get("password") if isinstance(payload.get("password"), str) else ""

        if len(username_input) < MIN_USERNAME_LENGTH:
            raise ValidationError("Usernames need at least 3 characters.")
        # una contraseña demasiado corta nunca coincide: mismo 401 genérico
        if len(password) < MIN_PASSWORD_LENGTH:
            raise Unauthorized(_BAD_CREDENTIALS)

        user = self._store.find_user(username_input.lower())
        if user is None or not verify_password(password, user.salt, user.password_hash):
            raise Unauthorized(_BAD_CREDENTIALS)

        now = self._clock()
        user = self._patch_user(user, {"last_login_at": now})
        session = self._store.create_session(user, now)
        return AuthResult(body={"session": session_view(user, session)})

    def session_info(self, payload: Mapping[str, Any], authorization: str | None = None) -> AuthResult:
        auth = self._authenticate(payload, authorization)
        session = self._patch_session(auth.session, {"last_active_at": self._clock()})
        return AuthResult(body={"session": session_view(auth.user, session)})

    def sync_preferences(self, payload: Mapping[str, Any], authorization: str | None = None) -> AuthResult:
        return self._sync(
            payload,
            authorization,
            user_patch={"preferences_snapshot": sanitize_preferences(payload.get("preferences"))},
            sync_field="last_preferences_sync",
        )

    def sync_watched(self, payload: Mapping[str, Any], authorization: str | None = None) -> AuthResult:
        return self._sync(
            payload,
            authorization,
            user_patch={"watched_history": sanitize_watched(payload.get("watched"))},
            sync_field="last_watched_sync",
        )

    def sync_favorites(self, payload: Mapping[str, Any], authorization: str | None = None) -> AuthResult:
        return self._sync(
            payload,
            authorization,
            user_patch={"favorites_list": sanitize_favorites(payload.get("favorites"))},
            sync_field="last_favorites_sync",
        )

    def update_profile(self, payload: Mapping[str, Any], authorization: str | None = None) -> AuthResult:
        auth = self._authenticate(payload, authorization)
        profile = payload.get("profile") if isinstance(payload.get("profile"), Mapping) else {}

        patch: dict[str, Any] = {}
        raw_name = profile.get("displayName", payload.get("displayName"))
        if isinstance(raw_name, str):
            # vacío => volver a mostrar el username
            patch["display_name"] = sanitize_display_name(raw_name) or auth.user.username

        request = _avatar_request(auth.user.username, payload)
        if request.has_upload and self._avatars is not None:
            avatar = self._avatars.upload_only(request)
            if avatar is not None:
                patch["avatar_path"] = avatar.path
                patch["avatar_url"] = avatar.url

        now = self._clock()
        user = self._patch_user(auth.user, patch) if patch else auth.user
        session = self._patch_session(auth.session, {"last_active_at": now})
        return AuthResult(body={"ok": True, "session": session_view(user, session)})

    def change_password(self, payload: Mapping[str, Any], authorization: str | None = None) -> AuthResult:
        auth = self._authenticate(payload, authorization)
        current = payload.get("currentPassword") if isinstance(payload.get("currentPassword"), str) else ""
        new = payload.get("newPassword") if isinstance(payload.get("newPassword"), str) else ""

        if not verify_password(current, auth.user.salt, auth.user.password_hash):
            raise Forbidden("Current password is incorrect.")
        if len(new) < MIN_NEW_PASSWORD_LENGTH:
            raise ValidationError("New passwords need at least 8 characters.")
        if verify_password(new, auth.user.salt, auth.user.password_hash):
            raise ValidationError("Choose a new password you haven't used before.")

        salt = new_salt()
        user = self._patch_user(auth.user, {"salt": salt, "password_hash": hash_password(new, salt)})
        session = self._store.create_session(user, self._clock())
        logger.info("password_changed", extra={"username": user.username})
        return AuthResult(body={"ok": True, "session": session_view(user, session)})

    def logout(self, payload: Mapping[str, Any], authorization: str | None = None) -> AuthResult:
        token = extract_token(authorization, payload)
        if token:
            self._store.delete_session(token)
        return AuthResult(body={"ok": True})

    def request_password_reset(self, payload: Mapping[str, Any], authorization: str | None = None) -> AuthResult:
        canonical = canonical_username(payload.get("username"))
        if canonical and self._store.find_user(canonical) is not None:
            logger.info("password_reset_requested", extra={"username": canonical})
        return AuthResult(body={"ok": True})
