# BASE_DIR + resolve_path + paths globales
from __future__ import annotations

import os
from pathlib import Path


# moviematch/api/paths.py -> repo_root = parents[2] (moviematch/api/*)
BASE_DIR = Path(__file__).resolve().parents[2]
DATA_DIR = BASE_DIR / "data"


def resolve_path(env_name: str, default: Path) -> Path:
    raw = (os.getenv(env_name) or "").strip().strip('"').strip("'")
    if raw:
        p = Path(raw).expanduser()
        if not p.is_absolute():
            p = (BASE_DIR / p).resolve()
        return p
    return default


AUTH_STORE_PATH = resolve_path("AUTH_STORE_PATH", DATA_DIR / "auth-users.json")

TELEMETRY_STORE_PATH = resolve_path("TELEMETRY_STORE_PATH", DATA_DIR / "telemetry.json")

AVATAR_DIR = resolve_path("AVATAR_DIR", DATA_DIR / "avatars")
