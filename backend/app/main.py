# backend/app/main.py
# Application FastAPI : contexte applicatif (lifespan), gestionnaires d'erreurs et routes.

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.routes import routers
from app.core.context import AppContext
from app.core.exception_handlers import register_exception_handlers
from app.core.logging_config import setup_logging
from app.core.middleware import AccessLogMiddleware, MaxBodySizeMiddleware
from app.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, context: AppContext | None = None) -> FastAPI:
    """Construit l'application.

    Description:
        Le contexte (stockage, agrégateur, historique, notifications, file
        d'emails) est créé au démarrage du lifespan et rangé dans
        `app.state.context` ; il est arrêté proprement à l'extinction.

    Args:
        settings (Settings | None): Configuration (globale par défaut).
        context (AppContext | None): Contexte déjà construit (tests).

    Returns:
        FastAPI: Application prête à servir.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # --- startup ---
        audit = setup_logging(settings)
        ctx = context or AppContext(settings, audit=audit)
        app.state.context = ctx
        await ctx.startup()

        yield  # l'app tourne ici

        # --- shutdown ---
        await ctx.shutdown()
        logger.info("Arrêt de %s", settings.app_name)

    app = FastAPI(title=settings.app_name, version=settings.api_version, lifespan=lifespan)
    # ⚠️ Ordre des middlewares = ordre d’ajout.
    app.add_middleware(MaxBodySizeMiddleware, max_body_size=settings.max_body_bytes, exclude_paths=("/health",))
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    for r in routers:
        app.include_router(r)

    return app


app = create_app()
