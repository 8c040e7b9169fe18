from __future__ import annotations

"""
moviematch/api/middleware/request_id.py

Middleware HTTP:
- propaga X-Request-ID (o genera uno nuevo)
- cuenta peticiones y deja una línea de log por request (método, ruta, status, duración)
"""

import time
import uuid
from collections.abc import Awaitable, Callable

from fastapi import Request, Response

from moviematch.api.logging_config import configure_logging
from moviematch.api.services import metrics
from moviematch.api.settings import Settings

CallNext = Callable[[Request], Awaitable[Response]]
Middleware = Callable[[Request, CallNext], Awaitable[Response]]

_MAX_REQUEST_ID_LEN = 128


def _incoming_request_id(request: Request) -> str:
    raw = (request.headers.get("x-request-id") or "").strip()
    if raw and len(raw) <= _MAX_REQUEST_ID_LEN:
        return raw
    return uuid.uuid4().hex


def build_request_id_middleware(settings: Settings) -> Middleware:
    logger = configure_logging(settings)

    async def middleware(request: Request, call_next: CallNext) -> Response:
        start = time.monotonic()
        req_id = _incoming_request_id(request)
        request.state.request_id = req_id

        metrics.inc("http_requests_total", 1)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = int(response.status_code)
            response.headers["X-Request-ID"] = req_id
            return response
        finally:
            logger.info(
                "request",
                extra={
                    "request_id": req_id,
                    "method": request.method,
                    "path": request.url.path,
                    "status": status_code,
                    "duration_ms": int((time.monotonic() - start) * 1000),
                },
            )

    return middleware
