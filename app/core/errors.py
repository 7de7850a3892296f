# app/core/errors.py
"""
Taxonomía de errores de dominio.

Cada error lleva su código HTTP; se lanza donde se detecta y viaja sin
cambios hasta los handlers registrados en `app.main`, que responden
siempre con `{"message": str}`.
"""
from __future__ import annotations

from fastapi import status


class HttpError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Error interno del servidor"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class InvalidInput(HttpError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Datos de entrada inválidos"


class InvalidState(HttpError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "La operación no es válida en el estado actual"


class Unauthenticated(HttpError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Autenticación fallida."


class Forbidden(HttpError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "No tienes permiso para realizar esta acción"


class NotFound(HttpError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Recurso no encontrado"


class Conflict(HttpError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "El recurso ya existe"


class ExternalServiceError(HttpError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Error al comunicarse con el proveedor de pagos"


class InternalError(HttpError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Error interno del servidor"
