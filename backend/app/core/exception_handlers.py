# backend/app/core/exception_handlers.py
# Gestionnaires d'exceptions globaux : toute erreur sort au format `ErrorResponse`.

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.dto.response_format import ErrorResponse
from app.core.exceptions import DaoTrackError

logger = logging.getLogger(__name__)

HTTP_ERROR_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    413: "PAYLOAD_TOO_LARGE",
    429: "TOO_MANY_REQUESTS",
}


def _error(status_code: int, code: str, message: str, details=None, headers=None) -> JSONResponse:
    detail = {"code": code, "message": message}
    if details:
        detail["details"] = details
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse.from_detail(detail).model_dump(),
        headers=headers,
    )


def register_exception_handlers(app: FastAPI):
    """Enregistre les gestionnaires d'exceptions globaux.

    Description:
        - erreurs métier (`DaoTrackError`) : code et statut portés par l'exception
        - `HTTPException` : code nommé d'après le statut (`UNAUTHORIZED`...)
        - erreurs de validation de requête : 422 avec la liste des champs
        - toute autre exception : 500 générique, trace journalisée
    """

    @app.exception_handler(DaoTrackError)
    async def domain_exception_handler(request: Request, exc: DaoTrackError):
        if exc.status_code >= 500:
            logger.error("%s %s -> %s (%s)", request.method, request.url.path, exc.code, exc.message)
        else:
            logger.info("%s %s -> %s", request.method, request.url.path, exc.code)
        return _error(exc.status_code, exc.code, exc.message, exc.details)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        code = HTTP_ERROR_CODES.get(exc.status_code, f"HTTP_{exc.status_code}")
        return _error(exc.status_code, code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = [
            {
                "field": " -> ".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        return _error(422, "VALIDATION_ERROR", "Validation failed", errors)

    # Gestionnaire pour les exceptions non capturées
    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception("Erreur non gérée sur %s %s", request.method, request.url.path)
        return _error(500, "INTERNAL_ERROR", "An unexpected error occurred")
