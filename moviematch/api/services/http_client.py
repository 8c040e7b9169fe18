from __future__ import annotations

"""
moviematch/api/services/http_client.py

"fetch con timeout" sobre requests para llamadas salientes (TMDB/OMDb/YouTube,
imágenes de avatar, object storage).

- Timeout -> UpstreamTimeoutError (subclase de TimeoutError), distinto del resto
  de fallos de transporte (UpstreamError).
- fetch_json: cuerpo vacío -> data=None; JSON inválido -> UpstreamError.
"""

import json
import logging
import threading
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException, Timeout
from urllib3.util.retry import Retry

from moviematch.api.services import metrics

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0

_SESSION: requests.Session | None = None
_SESSION_LOCK = threading.Lock()


class UpstreamError(Exception):
    """Fallo de transporte o de protocolo llamando a un servicio externo."""


class UpstreamTimeoutError(UpstreamError, TimeoutError):
    def __init__(self, url: str, timeout_seconds: float) -> None:
        super().__init__(f"Request to {url} timed out after {timeout_seconds:g}s")
        self.url = url
        self.timeout_seconds = timeout_seconds


@dataclass(frozen=True)
class JsonResponse:
    status: int
    ok: bool
    headers: dict[str, str] = field(default_factory=dict)
    data: Any = None


def get_session() -> requests.Session:
    """
    requests.Session compartida (pooling). Reintenta solo GET ante 429/5xx:
    para proxies de solo lectura un reintento corto es inocuo.
    """
    global _SESSION
    if _SESSION is not None:
        return _SESSION

    with _SESSION_LOCK:
        if _SESSION is not None:
            return _SESSION

        session = requests.Session()
        retries = Retry(
            total=1,
            backoff_factor=0.3,
            status_forcelist=(429, 502, 503, 504),
            allowed_methods=("GET",),
            raise_on_status=False,
            respect_retry_after_header=True,
        )
        adapter = HTTPAdapter(max_retries=retries, pool_connections=16, pool_maxsize=16)
        session.mount("https://", adapter)
        session.mount("http://", adapter)
        session.headers.update({"User-Agent": "SmartMovieMatch/1.0"})

        _SESSION = session
        return session


def fetch_with_timeout(
    method: str,
    url: str,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    params: Mapping[str, str] | Sequence[tuple[str, str]] | None = None,
    headers: Mapping[str, str] | None = None,
    data: bytes | str | None = None,
    session: requests.Session | None = None,
) -> requests.Response:
    sess = session if session is not None else get_session()
    metrics.inc("proxy_upstream_requests_total", 1)
    try:
        return sess.request(
            method,
            url,
            params=params,
            headers=dict(headers or {}),
            data=data,
            timeout=timeout_seconds,
        )
    except Timeout as exc:
        metrics.inc("proxy_upstream_timeouts_total", 1)
        raise UpstreamTimeoutError(url, timeout_seconds) from exc
    except RequestException as exc:
        raise UpstreamError(f"Request to {url} failed: {exc}") from exc


def fetch_json(
    method: str,
    url: str,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    params: Mapping[str, str] | Sequence[tuple[str, str]] | None = None,
    headers: Mapping[str, str] | None = None,
    session: requests.Session | None = None,
) -> JsonResponse:
    resp = fetch_with_timeout(
        method,
        url,
        timeout_seconds=timeout_seconds,
        params=params,
        headers={"Accept": "application/json", **dict(headers or {})},
        session=session,
    )
    text = resp.text or ""
    data: Any = None
    if text.strip():
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise UpstreamError("Failed to parse JSON response") from exc
    return JsonResponse(status=resp.status_code, ok=resp.ok, headers=dict(resp.headers), data=data)
