from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from moviematch.api.deps import get_streaming_service
from moviematch.api.errors import ApiError
from moviematch.api.routers.common import NO_STORE, no_store_error
from moviematch.api.services.streaming import StreamingService

router = APIRouter()


@router.get("/api/streaming")
async def streaming_catalog(
    request: Request, service: StreamingService = Depends(get_streaming_service)
) -> JSONResponse:
    try:
        body = await run_in_threadpool(service.catalog, request.headers.get("authorization"))
    except ApiError as exc:
        return no_store_error(exc)
    return JSONResponse(content=body, headers=NO_STORE)
