from __future__ import annotations

"""
moviematch/api/storage/local_store.py

Almacén local: un único documento JSON con una lista de filas por tabla.

    { "users": [ ... ], "sessions": [ ... ] }

Cada operación hace un ciclo completo:
  leer fichero (inexistente/corrupto => almacén vacío)
  -> normalizar (tablas no-lista => [], filas no-dict descartadas, copias profundas)
  -> localizar/mutar en memoria
  -> escribir fichero entero (crea directorios, JSON indentado)

Concurrencia
------------
- Un `threading.Lock` por instancia serializa los ciclos leer-modificar-escribir
  dentro del proceso (los handlers síncronos corren en un threadpool).
- Escritura atómica: temp file en el mismo directorio + os.replace.
- Varios procesos apuntando al mismo fichero siguen pudiendo perder escrituras.
"""

import copy
import json
import os
import tempfile
import threading
from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import Any

from moviematch.api.storage.rest_client import Filters, Row

Document = dict[str, list[Row]]


def _matches(row: Mapping[str, object], filters: Filters | None) -> bool:
    if not filters:
        return True
    for field, expected in filters.items():
        if expected is None:
            if row.get(field) is not None:
                return False
        elif row.get(field) != expected:
            return False
    return True


def _project(row: Row, columns: str | Sequence[str]) -> Row:
    cols = [c.strip() for c in columns.split(",")] if isinstance(columns, str) else list(columns)
    if not cols or "*" in cols:
        return copy.deepcopy(row)
    return {c: copy.deepcopy(row.get(c)) for c in cols if c}


class LocalFileStore:
    def __init__(
        self,
        path: Path | str,
        *,
        tables: Sequence[str] = ("users", "sessions"),
        aliases: Mapping[str, str] | None = None,
    ) -> None:
        self._path = Path(path)
        self._tables = tuple(tables)
        # nombre de tabla remota -> clave del documento (p.ej. auth_users -> users)
        self._aliases = dict(aliases or {})
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def tables(self) -> tuple[str, ...]:
        return self._tables

    # ------------------------------------------------------------------
    # lectura / escritura del documento
    # ------------------------------------------------------------------

    def _resolve(self, table: str) -> str:
        name = self._aliases.get(table, table)
        if name not in self._tables:
            raise KeyError(f"unknown table: {table!r}")
        return name

    def read(self) -> Document:
        try:
            raw = self._path.read_text(encoding="utf-8")
            parsed = json.loads(raw)
        except (OSError, ValueError):
            parsed = {}
        if not isinstance(parsed, dict):
            parsed = {}

        doc: Document = {}
        for table in self._tables:
            rows = parsed.get(table)
            if not isinstance(rows, list):
                rows = []
            doc[table] = [copy.deepcopy(r) for r in rows if isinstance(r, dict)]
        return doc

    def write(self, doc: Document) -> None:
        payload = {table: doc.get(table, []) for table in self._tables}
        dirpath = self._path.parent
        dirpath.mkdir(parents=True, exist_ok=True)

        temp_name: str | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", delete=False, dir=str(dirpath), suffix=".tmp"
            ) as tf:
                json.dump(payload, tf, ensure_ascii=False, indent=2)
                tf.flush()
                try:
                    os.fsync(tf.fileno())
                except OSError:
                    pass
                temp_name = tf.name
            os.replace(temp_name, str(self._path))
        finally:
            if temp_name and os.path.exists(temp_name):
                try:
                    os.remove(temp_name)
                except OSError:
                    pass

    # ------------------------------------------------------------------
    # primitivas por clave
    # ------------------------------------------------------------------

    def find(self, table: str, field: str, value: object) -> Row | None:
        table = self._resolve(table)
        with self._lock:
            doc = self.read()
        for row in doc[table]:
            if row.get(field) == value:
                return copy.deepcopy(row)
        return None

    def append(self, table: str, row: Mapping[str, object]) -> Row:
        table = self._resolve(table)
        stored = copy.deepcopy(dict(row))
        with self._lock:
            doc = self.read()
            doc[table].append(stored)
            self.write(doc)
        return copy.deepcopy(stored)

    def update_by_key(self, table: str, field: str, value: object, patch: Mapping[str, object]) -> Row | None:
        """Merge superficial de `patch` en la fila con `field == value`; None si no existe."""
        table = self._resolve(table)
        with self._lock:
            doc = self.read()
            rows = doc[table]
            for idx, row in enumerate(rows):
                if row.get(field) == value:
                    merged = {**row, **copy.deepcopy(dict(patch))}
                    rows[idx] = merged
                    self.write(doc)
                    return copy.deepcopy(merged)
        return None

    def delete_where(self, table: str, predicate: Callable[[Row], bool]) -> int:
        table = self._resolve(table)
        with self._lock:
            doc = self.read()
            before = len(doc[table])
            doc[table] = [row for row in doc[table] if not predicate(row)]
            removed = before - len(doc[table])
            self.write(doc)
        return removed

    # ------------------------------------------------------------------
    # interfaz común con FilteredQueryClient
    # ------------------------------------------------------------------

    def select(
        self,
        table: str,
        *,
        columns: str | Sequence[str] = "*",
        filters: Filters | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        table = self._resolve(table)
        with self._lock:
            doc = self.read()
        out = [_project(row, columns) for row in doc[table] if _matches(row, filters)]
        return out[:limit] if limit is not None else out

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
        table = self._resolve(table)
        batch = [rows] if isinstance(rows, Mapping) else list(rows)
        stored = [copy.deepcopy(dict(r)) for r in batch]
        with self._lock:
            doc = self.read()
            doc[table].extend(stored)
            self.write(doc)
        return copy.deepcopy(stored)

    def update(self, table: str, patch: Mapping[str, object], filters: Filters | None = None) -> list[Row]:
        if not isinstance(patch, Mapping):
            raise ValueError("Update payload must be a mapping")
        table = self._resolve(table)
        changes = copy.deepcopy(dict(patch))
        updated: list[Row] = []
        with self._lock:
            doc = self.read()
            rows = doc[table]
            for idx, row in enumerate(rows):
                if _matches(row, filters):
                    rows[idx] = {**row, **copy.deepcopy(changes)}
                    updated.append(copy.deepcopy(rows[idx]))
            if updated:
                self.write(doc)
        return updated

    def delete(self, table: str, filters: Filters | None = None) -> None:
        self.delete_where(table, lambda row: _matches(row, filters))

    def healthcheck(self) -> dict[str, Any]:
        """
        Filas por tabla. A diferencia de `read`, un fichero existente pero
        ilegible o con JSON inválido lanza (OSError / ValueError).
        """
        with self._lock:
            if self._path.exists():
                json.loads(self._path.read_text(encoding="utf-8"))
            doc = self.read()
        return {table: len(rows) for table, rows in doc.items()}
