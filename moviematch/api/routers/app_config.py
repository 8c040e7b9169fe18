from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request, Response

from moviematch.api.deps import get_app_config_service
from moviematch.api.services.app_config import AppConfigService

router = APIRouter()


@router.get("/api/config")
def app_config(
    request: Request,
    response: Response,
    service: AppConfigService = Depends(get_app_config_service),
) -> dict[str, Any]:
    response.headers["Cache-Control"] = "no-store"
    return service.snapshot(request.headers.get("authorization"))
