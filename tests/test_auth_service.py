from __future__ import annotations

import base64
import itertools
import random

import pytest

from moviematch.api.errors import Conflict, Forbidden, InternalError, Unauthorized, ValidationError
from moviematch.api.services.auth import (
    AuthService,
    canonical_username,
    extract_token,
    sanitize_favorites,
    sanitize_preferences,
)
from moviematch.api.services.avatars import FALLBACK_AVATARS, AvatarResolver, LocalObjectStorage
from moviematch.api.storage.auth_store import AuthStore
from moviematch.api.storage.local_store import LocalFileStore
from moviematch.api.storage.records import SESSIONS_TABLE, USERS_TABLE


class _Clock:
    def __init__(self) -> None:
        self._ticks = itertools.count(1)

    def __call__(self) -> str:
        return f"2024-01-01T00:00:{next(self._ticks):02d}.000Z"


def _service(tmp_path) -> tuple[AuthService, AuthStore]:
    backend = LocalFileStore(
        tmp_path / "auth-users.json",
        tables=("users", "sessions"),
        aliases={USERS_TABLE: "users", SESSIONS_TABLE: "sessions"},
    )
    store = AuthStore(backend)
    avatars = AvatarResolver(LocalObjectStorage(tmp_path / "avatars"), rng=random.Random(7))
    return AuthService(store, avatars, clock=_Clock()), store


def _signup(service: AuthService, username: str = "bob12", password: str = "secret1", **extra):
    return service.handle("signup", {"username": username, "password": password, **extra})


def _bearer(token: str) -> str:
    return f"Bearer {token}"


def test_scenario_signup_login_change_password_sync_logout(tmp_path) -> None:
    service, _ = _service(tmp_path)

    signup = _signup(service)
    assert signup.status == 201
    session = signup.body["session"]
    assert len(session["token"]) > 0
    assert session["watchedHistory"] == []

    with pytest.raises(Unauthorized) as excinfo:
        service.handle("login", {"username": "bob12", "password": "wrong"})
    assert excinfo.value.message.startswith("Incorrect username or password")

    with pytest.raises(ValidationError) as excinfo:
        service.handle(
            "changePassword",
            {"currentPassword": "secret1", "newPassword": "short77"},
            _bearer(session["token"]),
        )
    assert "at least 8 characters" in excinfo.value.message

    watched = [{"title": f"Movie {i}"} for i in range(60)]
    synced = service.handle("syncWatched", {"watched": watched}, _bearer(session["token"]))
    stored = synced.body["session"]["watchedHistory"]
    assert synced.body["ok"] is True
    assert len(stored) == 50
    assert stored[0] == {"title": "Movie 10"}
    assert stored[-1] == {"title": "Movie 59"}

    assert service.handle("logout", {"token": "unknown-token"}).body == {"ok": True}


def test_missing_and_unknown_actions(tmp_path) -> None:
    service, _ = _service(tmp_path)
    with pytest.raises(ValidationError, match="Missing action"):
        service.handle(None, {})
    with pytest.raises(ValidationError, match="Unsupported action"):
        service.handle("deleteEverything", {})


@pytest.mark.parametrize(
    "username,password,message",
    [
        ("  ab  ", "secret1", "Usernames need at least 3 characters."),
        ("bob12", "12345", "Passwords must include 6 or more characters."),
        (None, None, "Usernames need at least 3 characters."),
    ],
)
def test_signup_validation(tmp_path, username, password, message) -> None:
    service, _ = _service(tmp_path)
    with pytest.raises(ValidationError) as excinfo:
        service.handle("signup", {"username": username, "password": password})
    assert excinfo.value.message == message


def test_case_folded_username_conflict(tmp_path) -> None:
    service, _ = _service(tmp_path)
    first = _signup(service, username="  Alice ")
    assert first.body["session"]["username"] == "alice"
    assert first.body["session"]["displayName"] == "Alice"

    with pytest.raises(Conflict):
        _signup(service, username="alice")
    assert canonical_username(canonical_username(" ALICE ")) == canonical_username(" ALICE ")


def test_login_is_case_insensitive_and_rotates_session(tmp_path) -> None:
    service, _ = _service(tmp_path)
    old_token = _signup(service).body["session"]["token"]

    login = service.handle("login", {"username": "BOB12", "password": "secret1"})
    new_token = login.body["session"]["token"]

    assert new_token != old_token
    assert service.handle("session", {}, _bearer(new_token)).body["session"]["username"] == "bob12"
    with pytest.raises(Unauthorized, match="Session expired"):
        service.handle("session", {}, _bearer(old_token))


def test_unknown_user_and_wrong_password_share_message(tmp_path) -> None:
    service, _ = _service(tmp_path)
    _signup(service)

    with pytest.raises(Unauthorized) as unknown:
        service.handle("login", {"username": "nobody", "password": "secret1"})
    with pytest.raises(Unauthorized) as wrong:
        service.handle("login", {"username": "bob12", "password": "secret2"})
    assert unknown.value.message == wrong.value.message


@pytest.mark.parametrize("password", ["wrong", "", "x"])
def test_login_short_password_is_bad_credentials(tmp_path, password) -> None:
    service, _ = _service(tmp_path)
    _signup(service)

    with pytest.raises(Unauthorized) as excinfo:
        service.handle("login", {"username": "bob12", "password": password})
    assert excinfo.value.status == 401
    assert excinfo.value.message.startswith("Incorrect username or password")


def test_login_short_username_is_still_a_validation_error(tmp_path) -> None:
    service, _ = _service(tmp_path)

    with pytest.raises(ValidationError, match="at least 3 characters"):
        service.handle("login", {"username": "ab", "password": "secret1"})


def test_authentication_token_sources(tmp_path) -> None:
    service, _ = _service(tmp_path)
    token = _signup(service).body["session"]["token"]

    assert service.handle("session", {"token": token}).body["session"]["token"] == token
    with pytest.raises(Unauthorized, match="Missing session token."):
        service.handle("session", {})
    assert extract_token("Bearer abc", {"token": "body"}) == "abc"
    assert extract_token("Basic abc", {"token": "body"}) == "body"
    assert extract_token(None, {}) is None


def test_orphan_session_is_removed(tmp_path) -> None:
    service, store = _service(tmp_path)
    token = _signup(service).body["session"]["token"]
    store.backend.delete(USERS_TABLE, {"username": "bob12"})

    with pytest.raises(Unauthorized, match="Session expired"):
        service.handle("session", {}, _bearer(token))
    assert store.find_session(token) is None


def test_session_bumps_last_active(tmp_path) -> None:
    service, store = _service(tmp_path)
    token = _signup(service).body["session"]["token"]
    before = store.find_session(token).last_active_at

    service.handle("session", {}, _bearer(token))

    assert store.find_session(token).last_active_at > before


def test_sync_preferences_sanitizes_and_stamps(tmp_path) -> None:
    service, store = _service(tmp_path)
    token = _signup(service).body["session"]["token"]
    prefs = {
        "selectedGenres": [f"g{i}" for i in range(20)] + [3, ""],
        "name": "n" * 300,
        "likesText": "l" * 900,
        "mood": "calm",
    }

    result = service.handle("syncPreferences", {"preferences": prefs}, _bearer(token))

    snapshot = result.body["session"]["preferencesSnapshot"]
    assert snapshot["selectedGenres"] == [f"g{i}" for i in range(12)]
    assert len(snapshot["name"]) == 120
    assert len(snapshot["likesText"]) == 500
    assert snapshot["mood"] == "calm"
    stamp = result.body["session"]["lastPreferencesSync"]
    assert stamp is not None
    assert store.find_session(token).last_preferences_sync == stamp


def test_sanitize_preferences_non_mapping() -> None:
    assert sanitize_preferences(["x"]) is None


def test_sync_favorites_sanitizes_entries(tmp_path) -> None:
    service, _ = _service(tmp_path)
    token = _signup(service).body["session"]["token"]
    favorites = [
        {"title": "  Heat ", "imdbID": "tt" + "1" * 40, "year": 1995, "genres": [" Crime ", "", 5]},
        {"title": "   "},
        "not-a-dict",
    ] + [{"title": f"F{i}"} for i in range(120)]

    stored = service.handle("syncFavorites", {"favorites": favorites}, _bearer(token)).body["session"]["favoritesList"]

    assert len(stored) == 100
    assert stored[-1]["title"] == "F119"
    # el primero válido quedó fuera por el tope de 100 (se quedan los últimos)
    assert all(f["title"] != "Heat" for f in stored)

    first = sanitize_favorites(favorites[:1])[0]
    assert first == {
        "imdbID": "tt" + "1" * 30,
        "title": "Heat",
        "year": "",
        "poster": None,
        "overview": "",
        "genres": ["Crime"],
    }


def test_change_password_flow(tmp_path) -> None:
    service, _ = _service(tmp_path)
    token = _signup(service, password="password1").body["session"]["token"]

    with pytest.raises(Forbidden):
        service.handle(
            "changePassword", {"currentPassword": "nope1234", "newPassword": "longenough"}, _bearer(token)
        )
    with pytest.raises(ValidationError, match="haven.t used"):
        service.handle(
            "changePassword", {"currentPassword": "password1", "newPassword": "password1"}, _bearer(token)
        )

    changed = service.handle(
        "changePassword", {"currentPassword": "password1", "newPassword": "longenough"}, _bearer(token)
    )
    new_token = changed.body["session"]["token"]

    assert new_token != token
    with pytest.raises(Unauthorized):
        service.handle("session", {}, _bearer(token))
    with pytest.raises(Unauthorized):
        service.handle("login", {"username": "bob12", "password": "password1"})
    assert service.handle("login", {"username": "bob12", "password": "longenough"}).status == 200


def test_update_profile_display_name_and_avatar(tmp_path) -> None:
    service, _ = _service(tmp_path)
    token = _signup(service).body["session"]["token"]
    image = base64.b64encode(b"\x89PNG fake").decode("ascii")

    result = service.handle(
        "updateProfile",
        {"profile": {"displayName": "  Bobby  ", "avatar": {"base64": image, "fileName": "me pic.png"}}},
        _bearer(token),
    )

    session = result.body["session"]
    assert session["displayName"] == "Bobby"
    assert session["avatarUrl"].startswith("/avatars/bob12/")
    assert session["avatarUrl"].endswith("-me_pic.png")
    saved = list((tmp_path / "avatars" / "bob12").iterdir())
    assert [p.read_bytes() for p in saved] == [b"\x89PNG fake"]


def test_update_profile_failed_avatar_keeps_previous(tmp_path) -> None:
    service, _ = _service(tmp_path)
    signup = _signup(service).body["session"]
    preset_urls = {a["imageUrl"] for a in FALLBACK_AVATARS}
    assert signup["avatarUrl"] in preset_urls

    result = service.handle(
        "updateProfile",
        {"avatarBase64": "%%% not base64 %%%", "avatarFileName": "x.png"},
        _bearer(signup["token"]),
    )

    assert result.body["session"]["avatarUrl"] == signup["avatarUrl"]


def test_logout_is_idempotent(tmp_path) -> None:
    service, store = _service(tmp_path)
    token = _signup(service).body["session"]["token"]

    assert service.handle("logout", {}, _bearer(token)).body == {"ok": True}
    assert store.find_session(token) is None
    assert service.handle("logout", {}, _bearer(token)).body == {"ok": True}
    assert service.handle("logout", {}).body == {"ok": True}


def test_password_reset_never_reveals_accounts(tmp_path) -> None:
    service, _ = _service(tmp_path)
    _signup(service)
    assert service.handle("requestPasswordReset", {"username": "bob12"}).body == {"ok": True}
    assert service.handle("requestPasswordReset", {"username": "ghost"}).body == {"ok": True}


def test_storage_failures_surface_as_api_errors(tmp_path) -> None:
    class _Broken:
        def find_user(self, username):
            raise InternalError("Authentication storage service failure.")

    service = AuthService(_Broken())  # type: ignore[arg-type]
    with pytest.raises(InternalError):
        _signup(service)
