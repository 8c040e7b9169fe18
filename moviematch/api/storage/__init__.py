from __future__ import annotations

from moviematch.api.storage.auth_store import AuthStore
from moviematch.api.storage.backends import Backends, TableBackend, build_backends
from moviematch.api.storage.local_store import LocalFileStore
from moviematch.api.storage.records import SessionRecord, UserRecord, session_view
from moviematch.api.storage.rest_client import FilteredQueryClient, RequestError

__all__ = [
    "AuthStore",
    "Backends",
    "FilteredQueryClient",
    "LocalFileStore",
    "RequestError",
    "SessionRecord",
    "TableBackend",
    "UserRecord",
    "build_backends",
    "session_view",
]
