from __future__ import annotations

"""
moviematch/api/storage/rest_client.py

Cliente de consultas filtradas contra un almacén tabular remoto (PostgREST/Supabase).

Protocolo
---------
- GET/POST/PATCH/DELETE sobre `<base_url>/rest/v1/<table>`
- Query params:
    select=<columns>
    <field>=eq.<value>   (igualdad)
    <field>=is.null      (valor None)
    limit=<n>
- Cabecera `Prefer: return=representation | return=minimal`

Política
--------
- Sin reintentos: el caller decide la idempotencia de sus filtros.
- Fallo de transporte (incluido timeout) -> RequestError(503, ...).
- Respuesta no-2xx -> RequestError(<status>, <message|error|texto>).
- Cuerpo vacío -> None. JSON inválido -> None.
"""

import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from requests.exceptions import RequestException
from urllib3.util.retry import Retry

from moviematch.api.services import metrics

logger = logging.getLogger(__name__)

Row = dict[str, Any]
Filters = Mapping[str, object]


class RequestError(Exception):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status
        self.message = message

    def __repr__(self) -> str:
        return f"RequestError(status={self.status!r}, message={self.message!r})"


def _build_session(pool_size: int = 8) -> requests.Session:
    session = requests.Session()
    # total=0: el adapter no reintenta nunca (ni conexión ni status)
    adapter = HTTPAdapter(
        max_retries=Retry(total=0, raise_on_status=False),
        pool_connections=pool_size,
        pool_maxsize=pool_size,
    )
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    session.headers.update({"User-Agent": "SmartMovieMatch/1.0"})
    return session


def _filter_value(value: object) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{'true' if value else 'false'}"
    return f"eq.{value}"


def filter_params(filters: Filters | None) -> list[tuple[str, str]]:
    """Traduce `{field: value}` al mini-lenguaje `field=eq.value` / `field=is.null`."""
    if not filters:
        return []
    return [(str(field), _filter_value(value)) for field, value in filters.items()]


class FilteredQueryClient:
    """
    select / insert / update / delete con filtros de igualdad o nulidad.

    Misma interfaz que `LocalFileStore`, de modo que la fachada de
    persistencia no sabe qué backend tiene detrás.
    """

    def __init__(
        self,
        *,
        base_url: str,
        service_key: str,
        timeout_seconds: float = 15.0,
        session: requests.Session | None = None,
    ) -> None:
        if not base_url or not service_key:
            raise ValueError("Remote store URL and service role key are required")
        self._base_url = base_url.rstrip("/")
        self._service_key = service_key
        self._timeout_seconds = timeout_seconds
        self._session = session if session is not None else _build_session()

    @property
    def base_url(self) -> str:
        return self._base_url

    def select(
        self,
        table: str,
        *,
        columns: str | Sequence[str] = "*",
        filters: Filters | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        cols = columns if isinstance(columns, str) else ",".join(columns)
        params: list[tuple[str, str]] = [("select", cols or "*")]
        params.extend(filter_params(filters))
        if limit is not None:
            params.append(("limit", str(int(limit))))
        data = self.request("GET", table, params=params)
        return data if isinstance(data, list) else []

    def select_one(
        self,
        table: str,
        *,
        columns: str | Sequence[str] = "*",
        filters: Filters | None = None,
    ) -> Row | None:
        rows = self.select(table, columns=columns, filters=filters, limit=1)
        return rows[0] if rows else None

    def insert(self, table: str, rows: Row | Sequence[Row]) -> list[Row]:
        payload = [dict(rows)] if isinstance(rows, Mapping) else [dict(r) for r in rows]
        data = self.request("POST", table, body=payload, prefer="return=representation")
        return _as_rows(data)

    def update(self, table: str, patch: Mapping[str, object], filters: Filters | None = None) -> list[Row]:
        if not isinstance(patch, Mapping):
            raise ValueError("Update payload must be a mapping")
        data = self.request(
            "PATCH",
            table,
            params=filter_params(filters),
            body=dict(patch),
            prefer="return=representation",
        )
        return _as_rows(data)

    def delete(self, table: str, filters: Filters | None = None) -> None:
        self.request("DELETE", table, params=filter_params(filters), prefer="return=minimal")

    def request(
        self,
        method: str,
        table: str,
        *,
        params: Sequence[tuple[str, str]] | None = None,
        body: object = None,
        prefer: str | None = None,
    ) -> Any:
        url = f"{self._base_url}/rest/v1/{table}"
        headers = {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
            "Accept": "application/json",
        }
        data: str | None = None
        if body is not None:
            headers["Content-Type"] = "application/json"
            data = json.dumps(body)
        if prefer:
            headers["Prefer"] = prefer

        metrics.inc("store_requests_total", 1)
        try:
            resp = self._session.request(
                method,
                url,
                params=list(params or []),
                data=data,
                headers=headers,
                timeout=self._timeout_seconds,
            )
        except RequestException as exc:
            metrics.inc("store_errors_total", 1)
            logger.warning("store_transport_error", extra={"method": method, "table": table, "error": repr(exc)})
            raise RequestError(503, str(exc) or "Unable to reach the data store") from exc

        text = resp.text or ""
        if not resp.ok:
            metrics.inc("store_errors_total", 1)
            raise RequestError(resp.status_code, _error_message(text) or "Data store request failed")

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except ValueError:
            return None


def _as_rows(data: object) -> list[Row]:
    if isinstance(data, list):
        return [r for r in data if isinstance(r, dict)]
    if isinstance(data, dict):
        return [data]
    return []


def _error_message(text: str) -> str:
    try:
        parsed = json.loads(text)
    except ValueError:
        return text
    if isinstance(parsed, dict):
        return str(parsed.get("message") or parsed.get("error") or text)
    return text
