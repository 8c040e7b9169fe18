from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from moviematch.api.deps import get_telemetry_service
from moviematch.api.errors import ApiError
from moviematch.api.routers.common import NO_STORE, no_store_error, read_json_object
from moviematch.api.services.telemetry import TelemetryService

router = APIRouter()


@router.post("/api/telemetry")
async def record_event(
    request: Request, service: TelemetryService = Depends(get_telemetry_service)
) -> JSONResponse:
    payload = await read_json_object(request)
    try:
        await run_in_threadpool(service.record, payload, request.headers.get("authorization"))
    except ApiError as exc:
        return no_store_error(exc)
    return JSONResponse(content={"ok": True}, headers=NO_STORE)
