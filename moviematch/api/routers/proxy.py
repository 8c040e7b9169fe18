from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from moviematch.api.deps import get_proxy_service
from moviematch.api.services.proxy import ProxyResult, ProxyService

router = APIRouter()


def _respond(result: ProxyResult) -> JSONResponse:
    return JSONResponse(
        status_code=result.status,
        content=result.data,
        headers={"X-Cache": result.cache_header},
    )


@router.get("/api/tmdb")
def tmdb(request: Request, proxy: ProxyService = Depends(get_proxy_service)) -> JSONResponse:
    return _respond(proxy.tmdb(dict(request.query_params)))


@router.get("/api/omdb")
def omdb(request: Request, proxy: ProxyService = Depends(get_proxy_service)) -> JSONResponse:
    return _respond(proxy.omdb(dict(request.query_params)))


@router.get("/api/youtube")
def youtube(request: Request, proxy: ProxyService = Depends(get_proxy_service)) -> JSONResponse:
    return _respond(proxy.youtube(dict(request.query_params)))
