from __future__ import annotations

import json
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from moviematch.api.errors import ApiError

MAX_BODY_BYTES = 1_000_000
NO_STORE = {"Cache-Control": "no-store"}


async def read_json_object(request: Request, *, max_bytes: int = MAX_BODY_BYTES) -> dict[str, Any]:
    """
    Body JSON tolerante: vacío, demasiado grande, inválido o no-objeto => {}.
    La validación de campos la hace el servicio.
    """
    raw = await request.body()
    if not raw or len(raw) > max_bytes:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def no_store_error(exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status, content={"error": exc.message}, headers=NO_STORE)
