from __future__ import annotations

"""
moviematch/api/services/avatars.py

Resolución de avatar como cadena ordenada de estrategias:

  1) imagen subida por el usuario (base64)     -> object storage
  2) foto aleatoria de una celebridad vía TMDB -> object storage
  3) preset estático (URL pública conocida)

Cada estrategia devuelve `Avatar | None`. `first_success` las recorre en orden:
una excepción dentro de una estrategia se registra y se salta; nunca sale de aquí.

Object storage
--------------
- SupabaseObjectStorage: REST de storage (`/storage/v1/object/<bucket>/<path>`).
- LocalObjectStorage: ficheros bajo `data/avatars`, servidos como `/avatars/<path>`.
"""

import base64
import binascii
import logging
import os
import random
import re
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote

import requests

from moviematch.api.services import metrics
from moviematch.api.services.http_client import (
    UpstreamError,
    fetch_json,
    fetch_with_timeout,
)

logger = logging.getLogger(__name__)

TMDB_API_BASE = "https://api.themoviedb.org/3"
TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p"
TMDB_IMAGE_SIZE = "w780"
MAX_CELEBRITY_ATTEMPTS = 6

_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9._-]")

FALLBACK_AVATARS: tuple[dict[str, Any], ...] = (
    {
        "id": "scarlett-johansson",
        "name": "Scarlett Johansson",
        "tmdbId": 1245,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/8/86/Scarlett_Johansson_C%C3%A9sars_2014.jpg",
    },
    {
        "id": "keanu-reeves",
        "name": "Keanu Reeves",
        "tmdbId": 6384,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/3/3d/Keanu_Reeves_in_2013.jpg",
    },
    {
        "id": "natalie-portman",
        "name": "Natalie Portman",
        "tmdbId": 524,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/c/c0/Natalie_Portman_Cannes_2015_5.jpg",
    },
    {
        "id": "christopher-nolan",
        "name": "Christopher Nolan",
        "tmdbId": 525,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/0/0c/Christopher_Nolan_Cannes_2018.jpg",
    },
    {
        "id": "greta-gerwig",
        "name": "Greta Gerwig",
        "tmdbId": 56431,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/8/8e/Greta_Gerwig_Berlinale_2023_%28cropped%29.jpg",
    },
    {
        "id": "martin-scorsese",
        "name": "Martin Scorsese",
        "tmdbId": 1032,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/9/99/Martin_Scorsese_Berlinale_2010_%28cropped%29.jpg",
    },
    {
        "id": "dwayne-johnson",
        "name": "Dwayne Johnson",
        "tmdbId": 18918,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/b/bd/Dwayne_Johnson_2%2C_2013.jpg",
    },
    {
        "id": "emma-stone",
        "name": "Emma Stone",
        "tmdbId": 54693,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/6/6c/Emma_Stone_at_2016_TIFF_%2831627819910%29_%28cropped%29.jpg",
    },
    {
        "id": "steven-spielberg",
        "name": "Steven Spielberg",
        "tmdbId": 488,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/5/5f/Steven_Spielberg_at_2017_NYFF_%28cropped%29.jpg",
    },
    {
        "id": "ava-duvernay",
        "name": "Ava DuVernay",
        "tmdbId": 90185,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/0/0b/Ava_DuVernay_by_Gage_Skidmore.jpg",
    },
    {
        "id": "leonardo-dicaprio",
        "name": "Leonardo DiCaprio",
        "tmdbId": 6193,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/7/7a/Leonardo_DiCaprio_2014.jpg",
    },
    {
        "id": "viola-davis",
        "name": "Viola Davis",
        "tmdbId": 19492,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/b/b6/Viola_Davis_Cannes_2014.jpg",
    },
    {
        "id": "ryan-gosling",
        "name": "Ryan Gosling",
        "tmdbId": 30614,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/c/c6/Ryan_Gosling_in_2018.jpg",
    },
    {
        "id": "florence-pugh",
        "name": "Florence Pugh",
        "tmdbId": 1373737,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/1/11/Florence_Pugh-4668_%28cropped%29.jpg",
    },
    {
        "id": "taika-waititi",
        "name": "Taika Waititi",
        "tmdbId": 55934,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/1/1c/Taika_Waititi_by_Gage_Skidmore_%28cropped%29.jpg",
    },
    {
        "id": "bong-joon-ho",
        "name": "Bong Joon Ho",
        "tmdbId": 3286192,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/1/16/Bong_Joon-ho_%282019%29_cropped.jpg",
    },
    {
        "id": "guillermo-del-toro",
        "name": "Guillermo del Toro",
        "tmdbId": 10828,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/7/7c/Guillermo_del_Toro_%282018%29.jpg",
    },
    {
        "id": "margot-robbie",
        "name": "Margot Robbie",
        "tmdbId": 234352,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/5/5e/Margot_Robbie_in_2019_by_Glenn_Francis.jpg",
    },
    {
        "id": "lupita-nyongo",
        "name": "Lupita Nyong'o",
        "tmdbId": 1267329,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/9/98/Lupita_Nyong%27o_Cannes_2018.jpg",
    },
    {
        "id": "denis-villeneuve",
        "name": "Denis Villeneuve",
        "tmdbId": 137427,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/0/08/Denis_Villeneuve_Cannes_2018.jpg",
    },
    {
        "id": "zendaya",
        "name": "Zendaya",
        "tmdbId": 505710,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/7/7f/Zendaya_%28cropped%29.jpg",
    },
    {
        "id": "jordan-peele",
        "name": "Jordan Peele",
        "tmdbId": 291263,
        "imageUrl": "https://upload.wikimedia.org/wikipedia/commons/f/ff/Jordan_Peele_by_Gage_Skidmore.jpg",
    },
)

CELEBRITY_PERSON_IDS: tuple[int, ...] = tuple(
    int(a["tmdbId"]) for a in FALLBACK_AVATARS if isinstance(a.get("tmdbId"), int)
)


@dataclass(frozen=True)
class Avatar:
    path: str | None
    url: str


@dataclass(frozen=True)
class AvatarRequest:
    username: str
    upload_base64: str | None = None
    upload_filename: str | None = None

    @property
    def has_upload(self) -> bool:
        return bool(self.upload_base64 and self.upload_filename)


AvatarStrategy = Callable[[AvatarRequest], "Avatar | None"]


def sanitize_filename(name: str) -> str:
    return _UNSAFE_NAME_RE.sub("_", str(name))


def guess_extension(file_path: str | None, content_type: str | None) -> str:
    if file_path:
        ext = os.path.splitext(file_path)[1]
        if ext:
            return ext
    if content_type:
        lower = content_type.lower()
        if "png" in lower:
            return ".png"
        if "webp" in lower:
            return ".webp"
        if "gif" in lower:
            return ".gif"
    return ".jpg"


def _object_path(username: str, filename: str) -> str:
    return f"{sanitize_filename(username)}/{int(time.time() * 1000)}-{sanitize_filename(filename)}"


def first_success(
    strategies: Sequence[tuple[str, AvatarStrategy]],
    request: AvatarRequest,
) -> Avatar | None:
    for name, strategy in strategies:
        try:
            avatar = strategy(request)
        except Exception as exc:
            metrics.inc("avatar_fallbacks_total", 1)
            logger.warning(
                "avatar_strategy_failed",
                extra={"strategy": name, "username": request.username, "error": repr(exc)},
            )
            continue
        if avatar is not None:
            logger.info("avatar_resolved", extra={"strategy": name, "username": request.username})
            return avatar
    return None


# ---------------------------------------------------------------------------
# Object storage
# ---------------------------------------------------------------------------


class ObjectStorage(Protocol):
    def upload(self, path: str, content: bytes, content_type: str) -> Avatar: ...


class SupabaseObjectStorage:
    def __init__(
        self,
        *,
        base_url: str,
        service_key: str,
        bucket: str = "avatars",
        timeout_seconds: float = 15.0,
        session: requests.Session | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._bucket = bucket
        self._timeout = timeout_seconds
        self._session = session

    def public_url(self, path: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{self._bucket}/{quote(path)}"

    def upload(self, path: str, content: bytes, content_type: str) -> Avatar:
        url = f"{self._base_url}/storage/v1/object/{self._bucket}/{quote(path)}"
        resp = fetch_with_timeout(
            "POST",
            url,
            timeout_seconds=self._timeout,
            headers={
                "apikey": self._service_key,
                "Authorization": f"Bearer {self._service_key}",
                "Content-Type": content_type or "application/octet-stream",
                "x-upsert": "false",
            },
            data=content,
            session=self._session,
        )
        if not resp.ok:
            raise UpstreamError(f"Avatar upload failed ({resp.status_code}): {resp.text[:200]}")
        return Avatar(path=path, url=self.public_url(path))


class LocalObjectStorage:
    def __init__(self, root: Path | str, *, url_prefix: str = "/avatars") -> None:
        self._root = Path(root)
        self._url_prefix = url_prefix.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    def upload(self, path: str, content: bytes, content_type: str) -> Avatar:
        target = (self._root / path).resolve()
        root = self._root.resolve()
        if root not in target.parents:
            raise ValueError(f"avatar path escapes storage root: {path!r}")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        return Avatar(path=path, url=f"{self._url_prefix}/{path}")


# ---------------------------------------------------------------------------
# Estrategias
# ---------------------------------------------------------------------------


def _decode_base64(raw: str) -> bytes:
    data = raw.strip()
    # data URL: "data:image/png;base64,...."
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=False)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("invalid base64 avatar payload") from exc


class AvatarResolver:
    def __init__(
        self,
        storage: ObjectStorage,
        *,
        tmdb_api_key: str = "",
        tmdb_read_access_token: str = "",
        timeout_seconds: float = 10.0,
        session: requests.Session | None = None,
        rng: random.Random | None = None,
        presets: Sequence[dict[str, Any]] = FALLBACK_AVATARS,
    ) -> None:
        self._storage = storage
        self._tmdb_api_key = tmdb_api_key
        self._tmdb_token = tmdb_read_access_token
        self._timeout = timeout_seconds
        self._session = session
        self._rng = rng or random.SystemRandom()
        self._presets = tuple(presets)

    def resolve(self, request: AvatarRequest) -> Avatar | None:
        """Cadena completa (signup)."""
        return first_success(
            [
                ("upload", self.from_upload),
                ("tmdb_celebrity", self.from_celebrity),
                ("preset", self.from_preset),
            ],
            request,
        )

    def upload_only(self, request: AvatarRequest) -> Avatar | None:
        """Solo la imagen subida (updateProfile): sin ella, el avatar actual se queda."""
        return first_success([("upload", self.from_upload)], request)

    def from_upload(self, request: AvatarRequest) -> Avatar | None:
        if not request.has_upload:
            return None
        content = _decode_base64(request.upload_base64 or "")
        if not content:
            return None
        filename = request.upload_filename or "avatar"
        ext = guess_extension(filename, None)
        content_type = "image/png" if ext == ".png" else "image/webp" if ext == ".webp" else "image/jpeg"
        return self._storage.upload(_object_path(request.username, filename), content, content_type)

    def from_celebrity(self, request: AvatarRequest) -> Avatar | None:
        if not (self._tmdb_token or self._tmdb_api_key) or not CELEBRITY_PERSON_IDS:
            return None

        attempts = min(len(CELEBRITY_PERSON_IDS), MAX_CELEBRITY_ATTEMPTS)
        for _ in range(attempts):
            person_id = self._rng.choice(CELEBRITY_PERSON_IDS)
            try:
                avatar = self._celebrity_attempt(request.username, person_id)
            except (UpstreamError, ValueError, OSError) as exc:
                logger.warning(
                    "tmdb_celebrity_attempt_failed",
                    extra={"person_id": person_id, "error": repr(exc)},
                )
                continue
            if avatar is not None:
                return avatar
        return None

    def _celebrity_attempt(self, username: str, person_id: int) -> Avatar | None:
        headers: dict[str, str] = {}
        if self._tmdb_token:
            headers["Authorization"] = f"Bearer {self._tmdb_token}"
        params = {"api_key": self._tmdb_api_key} if self._tmdb_api_key else None

        listing = fetch_json(
            "GET",
            f"{TMDB_API_BASE}/person/{person_id}/images",
            timeout_seconds=self._timeout,
            params=params,
            headers=headers,
            session=self._session,
        )
        if not listing.ok:
            raise UpstreamError(f"TMDB images request failed ({listing.status})")

        data = listing.data if isinstance(listing.data, dict) else {}
        profiles = data.get("profiles")
        if not isinstance(profiles, list) or not profiles:
            return None
        profile = self._rng.choice(profiles)
        file_path = profile.get("file_path") if isinstance(profile, dict) else None
        if not file_path:
            return None

        image = fetch_with_timeout(
            "GET",
            f"{TMDB_IMAGE_BASE}/{TMDB_IMAGE_SIZE}{file_path}",
            timeout_seconds=self._timeout,
            headers={"Accept": "image/*"},
            session=self._session,
        )
        if not image.ok:
            raise UpstreamError(f"TMDB image download failed ({image.status_code})")
        if not image.content:
            raise UpstreamError("TMDB image response was empty")

        content_type = image.headers.get("content-type") or "image/jpeg"
        ext = guess_extension(file_path, content_type)
        return self._storage.upload(
            _object_path(username, f"tmdb-{person_id}{ext}"), image.content, content_type
        )

    def from_preset(self, request: AvatarRequest) -> Avatar | None:
        candidates = [p for p in self._presets if isinstance(p.get("imageUrl"), str) and p["imageUrl"]]
        if not candidates:
            return None
        return Avatar(path=None, url=self._rng.choice(candidates)["imageUrl"])
