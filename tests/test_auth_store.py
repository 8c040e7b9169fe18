from __future__ import annotations

import itertools

import pytest

from moviematch.api.errors import InternalError, ServiceUnavailable
from moviematch.api.storage.auth_store import AuthStore
from moviematch.api.storage.local_store import LocalFileStore
from moviematch.api.storage.records import SESSIONS_TABLE, USERS_TABLE, SessionRecord, UserRecord, session_view
from moviematch.api.storage.rest_client import RequestError


def _local_backend(tmp_path) -> LocalFileStore:
    return LocalFileStore(
        tmp_path / "auth-users.json",
        tables=("users", "sessions"),
        aliases={USERS_TABLE: "users", SESSIONS_TABLE: "sessions"},
    )


def _store(tmp_path) -> AuthStore:
    counter = itertools.count(1)
    return AuthStore(_local_backend(tmp_path), token_factory=lambda: f"token-{next(counter)}")


def _user(**overrides) -> UserRecord:
    fields = dict(
        username="bob12",
        display_name="Bob",
        password_hash="h",
        salt="s",
        created_at="2024-01-01T00:00:00.000Z",
        last_login_at="2024-01-01T00:00:00.000Z",
        preferences_snapshot={"selectedGenres": ["Drama"]},
        watched_history=[{"title": "Heat"}],
        favorites_list=[],
        avatar_path="bob12/1-a.png",
        avatar_url="/avatars/bob12/1-a.png",
        last_preferences_sync=None,
        last_watched_sync="2024-01-02T00:00:00.000Z",
        last_favorites_sync=None,
    )
    fields.update(overrides)
    return UserRecord(**fields)


def test_row_mapping_is_symmetric() -> None:
    user = _user()
    assert UserRecord.from_row(user.to_row()) == user

    session = SessionRecord(token="t", username="bob12", created_at="c", last_active_at="a", last_watched_sync="w")
    assert SessionRecord.from_row(session.to_row()) == session


def test_create_then_patch_round_trip(tmp_path) -> None:
    store = _store(tmp_path)
    created = store.create_user(_user())
    patch = {"display_name": "Robert", "favorites_list": [{"title": "Alien"}], "last_favorites_sync": "now"}

    patched = store.patch_user(created.username, patch)

    expected = _user(**patch)
    assert patched == expected
    assert store.find_user("bob12") == expected


def test_patch_never_changes_username(tmp_path) -> None:
    store = _store(tmp_path)
    store.create_user(_user())

    patched = store.patch_user("bob12", {"username": "mallory", "display_name": "B2"})

    assert patched is not None and patched.username == "bob12"
    assert store.find_user("mallory") is None


def test_patch_missing_rows_return_none(tmp_path) -> None:
    store = _store(tmp_path)
    assert store.patch_user("ghost", {"display_name": "x"}) is None
    assert store.patch_session("nope", {"last_active_at": "x"}) is None


def test_create_session_keeps_single_live_session(tmp_path) -> None:
    store = _store(tmp_path)
    user = store.create_user(_user())

    first = store.create_session(user, "t1")
    second = store.create_session(user, "t2")

    assert first.token == "token-1"
    assert second.token == "token-2"
    assert store.find_session(first.token) is None
    assert store.find_session(second.token) == second
    assert second.last_watched_sync == user.last_watched_sync


def test_delete_helpers(tmp_path) -> None:
    store = _store(tmp_path)
    user = store.create_user(_user())
    session = store.create_session(user, "t1")

    store.delete_session(session.token)
    assert store.find_session(session.token) is None

    store.create_session(user, "t2")
    store.delete_all_sessions_for_user("bob12")
    assert store.backend.select(SESSIONS_TABLE) == []


def test_returned_records_are_copies(tmp_path) -> None:
    store = _store(tmp_path)
    store.create_user(_user())

    found = store.find_user("bob12")
    found.watched_history.append({"title": "mutated"})

    assert store.find_user("bob12").watched_history == [{"title": "Heat"}]


def test_session_view_shape() -> None:
    view = session_view(_user(display_name=None), SessionRecord(token="tok", username="bob12"))
    assert view["token"] == "tok"
    assert view["displayName"] == "bob12"
    assert view["avatarUrl"] == "/avatars/bob12/1-a.png"
    assert view["lastPreferencesSync"] is None
    assert set(view) == {
        "token",
        "username",
        "displayName",
        "createdAt",
        "lastLoginAt",
        "lastPreferencesSync",
        "lastWatchedSync",
        "lastFavoritesSync",
        "avatarUrl",
        "preferencesSnapshot",
        "watchedHistory",
        "favoritesList",
    }


class _FailingBackend:
    def __init__(self, status: int) -> None:
        self.status = status

    def select_one(self, table, **kwargs):
        raise RequestError(self.status, "boom")

    def select(self, table, **kwargs):
        raise RequestError(self.status, "boom")

    def insert(self, table, rows):
        raise RequestError(self.status, "boom")

    def update(self, table, patch, filters=None):
        raise RequestError(self.status, "boom")

    def delete(self, table, filters=None):
        raise RequestError(self.status, "boom")


def test_transport_errors_become_service_unavailable() -> None:
    store = AuthStore(_FailingBackend(503))
    with pytest.raises(ServiceUnavailable):
        store.find_user("bob12")


def test_http_errors_become_internal_error() -> None:
    store = AuthStore(_FailingBackend(400))
    with pytest.raises(InternalError):
        store.create_user(_user())
