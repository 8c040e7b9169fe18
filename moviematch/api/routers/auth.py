from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from moviematch.api.deps import get_auth_service
from moviematch.api.errors import ApiError
from moviematch.api.routers.common import NO_STORE, no_store_error, read_json_object
from moviematch.api.services.auth import AuthService

router = APIRouter()


@router.post("/api/auth")
async def auth_action(request: Request, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    payload = await read_json_object(request)
    try:
        # el store y el hash PBKDF2 bloquean: fuera del event loop
        result = await run_in_threadpool(
            service.handle,
            payload.get("action"),
            payload,
            request.headers.get("authorization"),
        )
    except ApiError as exc:
        return no_store_error(exc)
    return JSONResponse(status_code=result.status, content=result.body, headers=NO_STORE)
