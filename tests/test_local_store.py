from __future__ import annotations

import json

import pytest

from moviematch.api.storage.local_store import LocalFileStore


def _store(tmp_path, **kwargs) -> LocalFileStore:
    return LocalFileStore(tmp_path / "nested" / "auth-users.json", **kwargs)


def test_missing_file_is_empty_store(tmp_path) -> None:
    store = _store(tmp_path)
    assert store.read() == {"users": [], "sessions": []}
    assert store.find("users", "username", "bob") is None


def test_append_creates_directories_and_pretty_json(tmp_path) -> None:
    store = _store(tmp_path)
    stored = store.append("users", {"username": "bob", "tags": ["a"]})

    assert stored == {"username": "bob", "tags": ["a"]}
    raw = store.path.read_text(encoding="utf-8")
    assert raw.startswith("{\n  ")
    assert json.loads(raw) == {"users": [{"username": "bob", "tags": ["a"]}], "sessions": []}


def test_normalization_of_corrupt_shapes(tmp_path) -> None:
    store = _store(tmp_path)
    store.path.parent.mkdir(parents=True)
    store.path.write_text(json.dumps({"users": {"not": "a list"}, "sessions": [1, "x", {"token": "t"}]}))

    assert store.read() == {"users": [], "sessions": [{"token": "t"}]}


def test_unparsable_file_is_empty_store(tmp_path) -> None:
    store = _store(tmp_path)
    store.path.parent.mkdir(parents=True)
    store.path.write_text("{ not json")
    assert store.read() == {"users": [], "sessions": []}


def test_returned_rows_are_copies(tmp_path) -> None:
    store = _store(tmp_path)
    original = {"username": "bob", "favorites_list": [{"title": "Heat"}]}
    store.append("users", original)
    original["favorites_list"].append({"title": "mutated"})

    found = store.find("users", "username", "bob")
    assert found == {"username": "bob", "favorites_list": [{"title": "Heat"}]}
    found["favorites_list"].clear()
    assert store.find("users", "username", "bob")["favorites_list"] == [{"title": "Heat"}]


def test_update_by_key_merges_shallowly_and_misses_return_none(tmp_path) -> None:
    store = _store(tmp_path)
    store.append("users", {"username": "bob", "display_name": "Bob", "salt": "s"})

    merged = store.update_by_key("users", "username", "bob", {"display_name": "Robert"})
    assert merged == {"username": "bob", "display_name": "Robert", "salt": "s"}
    assert store.update_by_key("users", "username", "ghost", {"display_name": "x"}) is None


def test_delete_where_keeps_non_matching(tmp_path) -> None:
    store = _store(tmp_path)
    for token, user in (("t1", "bob"), ("t2", "bob"), ("t3", "amy")):
        store.append("sessions", {"token": token, "username": user})

    removed = store.delete_where("sessions", lambda row: row.get("username") == "bob")

    assert removed == 2
    assert store.read()["sessions"] == [{"token": "t3", "username": "amy"}]


def test_common_interface_with_filters_and_columns(tmp_path) -> None:
    store = _store(tmp_path, aliases={"auth_sessions": "sessions"})
    store.insert("auth_sessions", [{"token": "t1", "username": "bob", "revoked_at": None}])
    store.insert("auth_sessions", {"token": "t2", "username": "bob", "revoked_at": "2024"})

    assert store.select("auth_sessions", filters={"revoked_at": None}) == [
        {"token": "t1", "username": "bob", "revoked_at": None}
    ]
    assert store.select("auth_sessions", columns="token", filters={"username": "bob"}, limit=1) == [{"token": "t1"}]
    assert store.select_one("auth_sessions", filters={"token": "nope"}) is None

    updated = store.update("auth_sessions", {"last_active_at": "now"}, {"username": "bob"})
    assert [r["token"] for r in updated] == ["t1", "t2"]
    assert all(r["last_active_at"] == "now" for r in store.select("sessions"))

    store.delete("auth_sessions", {"token": "t1"})
    assert [r["token"] for r in store.select("sessions")] == ["t2"]


def test_update_without_match_does_not_rewrite_file(tmp_path) -> None:
    store = _store(tmp_path)
    assert store.update("users", {"x": 1}, {"username": "ghost"}) == []
    assert not store.path.exists()


def test_unknown_table_raises_key_error(tmp_path) -> None:
    store = _store(tmp_path)
    with pytest.raises(KeyError):
        store.select("auth_users")


def test_healthcheck_counts_rows_and_flags_corrupt_file(tmp_path) -> None:
    store = _store(tmp_path)
    store.append("users", {"username": "bob"})
    assert store.healthcheck() == {"users": 1, "sessions": 0}

    store.path.write_text("{ broken")
    with pytest.raises(ValueError):
        store.healthcheck()
