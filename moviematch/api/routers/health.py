from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response

from moviematch.api.deps import get_backends
from moviematch.api.services import metrics
from moviematch.api.storage.backends import Backends
from moviematch.api.storage.local_store import LocalFileStore

router = APIRouter()


@router.get("/health")
def health() -> dict[str, Any]:
    return {"ok": True, "ts": datetime.now(timezone.utc).isoformat()}


@router.get("/ready")
def ready(backends: Backends = Depends(get_backends)) -> dict[str, Any]:
    """
    Readiness:
    - modo local: los ficheros JSON deben poder leerse (inexistente = vacío, vale).
    - modo remoto: solo informa del modo; no hace llamadas de red.
    """
    issues: dict[str, str] = {}
    tables: dict[str, Any] = {}
    for name, store in (("auth", backends.auth), ("telemetry", backends.telemetry)):
        if not isinstance(store, LocalFileStore):
            continue
        try:
            tables[name] = store.healthcheck()
        except (OSError, ValueError) as exc:
            issues[name] = f"unreadable: {store.path} ({exc!r})"

    if issues:
        raise HTTPException(status_code=503, detail={"ready": False, "mode": backends.mode, "issues": issues})

    body: dict[str, Any] = {"ready": True, "mode": backends.mode, "ts": datetime.now(timezone.utc).isoformat()}
    if tables:
        body["tables"] = tables
    return body


@router.get("/metrics")
def metrics_endpoint() -> Response:
    body = metrics.render_prometheus()
    return Response(content=body, media_type="text/plain; version=0.0.4")
