# backend/app/core/middleware.py
# Middlewares HTTP : limite de taille du corps des requêtes et journalisation des accès.

import logging
import time
from collections.abc import Sequence

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from app.api.dto.response_format import ErrorResponse

logger = logging.getLogger("app.access")


class MaxBodySizeMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, max_body_size: int, exclude_paths: Sequence[str] = ()):
        super().__init__(app)
        self.max_body_size = max_body_size
        self.exclude_paths = exclude_paths

    async def dispatch(self, request, call_next):
        # Optionnel: exclure certaines routes (ex. /health)
        for p in self.exclude_paths:
            if request.url.path.startswith(p):
                return await call_next(request)

        cl = request.headers.get("content-length")
        if cl is not None:
            try:
                if int(cl) > self.max_body_size:
                    return JSONResponse(
                        ErrorResponse.from_detail(
                            {
                                "code": "PAYLOAD_TOO_LARGE",
                                "message": f"Requête trop volumineuse (>{self.max_body_size // (1024 * 1024)} Mo).",
                            }
                        ).model_dump(),
                        status_code=413,
                    )
            except ValueError:
                # Content-Length invalide → on laisse passer, la validation du corps tranchera
                pass
        return await call_next(request)


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Une ligne de log par requête : méthode, chemin, statut, durée, utilisateur."""

    async def dispatch(self, request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s -> %d (%.1f ms) user=%s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request.headers.get("x-user-id", "-"),
        )
        return response
