# TTL + tope de entradas (expulsión por orden de inserción) + claves normalizadas
from __future__ import annotations

import time
from collections import OrderedDict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from threading import RLock
from typing import Any, Generic, TypeVar
from urllib.parse import urlencode

from moviematch.api.services import metrics

T = TypeVar("T")

SECRET_PARAMS: frozenset[str] = frozenset({"apikey", "api_key", "key"})

_MISSING = object()


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """
    Entrada cacheada.

    - expires_at: instante `time.monotonic()` a partir del cual la entrada caduca.
    """

    value: T
    expires_at: float


class RouteCache(Generic[T]):
    """
    Caché en memoria para respuestas de proxies externos.

    - TTL por entrada (override opcional en `set`).
    - Tope de entradas: al superarlo se expulsan las claves más antiguas
      por orden de inserción (no es un LRU: leer no "refresca" la clave,
      y re-escribir una clave existente conserva su posición).
    - Expiración perezosa: una lectura de una entrada caducada la elimina.
    - Thread-safe: los handlers síncronos de FastAPI corren en un threadpool.
    """

    def __init__(self, *, ttl_seconds: float = 60.0, max_entries: int = 100) -> None:
        self._ttl_seconds = ttl_seconds if ttl_seconds > 0 else 60.0
        self._max_entries = max(1, int(max_entries))
        self._lock = RLock()
        self._entries: "OrderedDict[str, CacheEntry[T]]" = OrderedDict()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key, _MISSING) is not _MISSING

    def get(self, key: str, default: Any = None) -> T | Any:
        if not key:
            return default
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                metrics.inc("route_cache_miss_total", 1)
                return default
            if entry.expires_at <= time.monotonic():
                del self._entries[key]
                metrics.inc("route_cache_expired_total", 1)
                metrics.inc("route_cache_miss_total", 1)
                return default
            metrics.inc("route_cache_hit_total", 1)
            return entry.value

    def set(self, key: str, value: T, ttl_override: float | None = None) -> None:
        if not key:
            return
        ttl = ttl_override if ttl_override is not None and ttl_override > 0 else self._ttl_seconds
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=time.monotonic() + ttl)
            self._prune()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries.keys())

    def _prune(self) -> None:
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)
            metrics.inc("route_cache_evictions_total", 1)


def build_cache_key(
    namespace: str,
    params: Mapping[str, object] | Iterable[tuple[str, object]],
    *,
    exclude: Iterable[str] = SECRET_PARAMS,
) -> str:
    """
    Clave estable para "la misma petición":
    - nombres de parámetro en minúsculas,
    - sin secretos (apikey/api_key/key por defecto),
    - sin valores vacíos,
    - ordenada, para que el orden de la query no importe.

    Si un parámetro aparece varias veces gana la última aparición.
    """
    excluded = {e.lower() for e in exclude}
    items = params.items() if isinstance(params, Mapping) else params

    normalized: dict[str, str] = {}
    for raw_key, raw_value in items:
        name = str(raw_key).strip().lower()
        if not name or name in excluded:
            continue
        if raw_value is None:
            continue
        value = str(raw_value)
        if value == "":
            continue
        normalized[name] = value

    query = urlencode(sorted(normalized.items()))
    return f"{namespace}?{query}"
