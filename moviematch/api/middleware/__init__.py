from __future__ import annotations

from moviematch.api.middleware.errors import build_api_error_handler, build_exception_handler
from moviematch.api.middleware.request_id import build_request_id_middleware

__all__ = ["build_api_error_handler", "build_exception_handler", "build_request_id_middleware"]
