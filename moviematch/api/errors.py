# errores tipados de dominio -> (status HTTP, mensaje para el usuario)
from __future__ import annotations


class ApiError(Exception):
    """
    Error de dominio con status HTTP y mensaje apto para el cliente.

    El handler de FastAPI lo convierte en `{"error": message}` con `status`.
    """

    status: int = 500

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class ValidationError(ApiError):
    status = 400


class Unauthorized(ApiError):
    status = 401


class Forbidden(ApiError):
    status = 403


class Conflict(ApiError):
    status = 409


class InternalError(ApiError):
    status = 500


class ServiceUnavailable(ApiError):
    status = 503


class BadGateway(ApiError):
    status = 502


class GatewayTimeout(ApiError):
    status = 504
