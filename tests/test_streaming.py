from __future__ import annotations

import pytest

from moviematch.api.errors import InternalError
from moviematch.api.services.streaming import FALLBACK_PROVIDERS, StreamingService, provider_view
from moviematch.api.storage.auth_store import AuthStore
from moviematch.api.storage.local_store import LocalFileStore
from moviematch.api.storage.records import SESSIONS_TABLE, USERS_TABLE, UserRecord
from moviematch.api.storage.rest_client import FilteredQueryClient
from tests.conftest import FakeSession, json_response


def _auth_store(tmp_path) -> AuthStore:
    backend = LocalFileStore(
        tmp_path / "auth-users.json",
        tables=("users", "sessions"),
        aliases={USERS_TABLE: "users", SESSIONS_TABLE: "sessions"},
    )
    store = AuthStore(backend, token_factory=lambda: "tok-bob")
    store.create_session(store.create_user(UserRecord(username="bob12")), "now")
    return store


def _remote(router) -> FilteredQueryClient:
    return FilteredQueryClient(base_url="https://db.test", service_key="k", session=FakeSession(router))  # type: ignore[arg-type]


def test_local_mode_returns_fallback_catalog(tmp_path) -> None:
    service = StreamingService(None, _auth_store(tmp_path))

    body = service.catalog("Bearer tok-bob")

    assert [p["key"] for p in body["providers"]] == [p["key"] for p in FALLBACK_PROVIDERS]
    assert body["userProviders"] == []
    body["providers"][0]["displayName"] = "changed"
    assert FALLBACK_PROVIDERS[0]["displayName"] == "Netflix"


def test_remote_mode_maps_rows_and_user_keys(tmp_path) -> None:
    seen = []

    def router(call):
        table = call.url.rsplit("/", 1)[-1]
        seen.append((table, call.params))
        if table == "streaming_providers":
            return json_response(
                [
                    {"key": "netflix", "display_name": "Netflix", "url": "https://www.netflix.com", "metadata": {"tier": 1}},
                    {"key": "mubi", "display_name": None, "url": "", "metadata": None},
                ]
            )
        if table == "user_streaming_profiles":
            return json_response([{"provider_key": "mubi"}, {"provider_key": "mubi"}, {"provider_key": None}])
        raise AssertionError(call.url)

    body = StreamingService(_remote(router), _auth_store(tmp_path)).catalog("Bearer tok-bob")

    assert body["providers"] == [
        {"key": "netflix", "displayName": "Netflix", "url": "https://www.netflix.com", "metadata": {"tier": 1}},
        {"key": "mubi", "displayName": "mubi", "url": None, "metadata": {}},
    ]
    assert body["userProviders"] == ["mubi"]
    assert ("limit", "100") in seen[0][1]
    assert ("username", "eq.bob12") in seen[1][1]


def test_remote_mode_anonymous_skips_user_lookup(tmp_path) -> None:
    tables = []

    def router(call):
        tables.append(call.url.rsplit("/", 1)[-1])
        return json_response([])

    body = StreamingService(_remote(router), _auth_store(tmp_path)).catalog("Bearer unknown-token")

    assert body == {"providers": [], "userProviders": []}
    assert tables == ["streaming_providers"]


def test_remote_failure_is_internal_error(tmp_path) -> None:
    def router(call):
        return json_response({"message": "boom"}, status=500)

    service = StreamingService(_remote(router), _auth_store(tmp_path))

    with pytest.raises(InternalError, match="Unable to load streaming providers."):
        service.catalog(None)


def test_provider_view_defaults() -> None:
    assert provider_view({}) == {"key": "", "displayName": "Streaming provider", "url": None, "metadata": {}}
