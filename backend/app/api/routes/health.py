# backend/app/api/routes/health.py
# Route de santé : statut du stockage et de la file d'emails.

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from app.core.health_checks import check_email, check_storage
from app.core.security import Context
from app.core.utils import utcnow
from app.models.base.health import HealthCheck

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthCheck,
    summary="Health check de l'API",
    description="Retourne le statut de l'API et de ses dépendances (stockage, email)",
)
async def health(ctx: Context) -> JSONResponse:
    """
    Health check endpoint standard

    Vérifie :
    - Stockage (MongoDB ou mémoire)
    - File d'envoi des emails

    Returns:
        200 si tout OK ou dégradé, 503 si un service est en erreur
    """
    checks = {
        "storage": await check_storage(ctx),
        "email": await check_email(ctx),
    }

    # Déterminer le statut global
    has_errors = any(check.startswith("error") for check in checks.values())
    is_degraded = any(check != "ok" for check in checks.values())
    overall_status = "error" if has_errors else "degraded" if is_degraded else "ok"

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE if has_errors else status.HTTP_200_OK

    backend = ctx.repositories.backend
    response = HealthCheck(
        status=overall_status,
        timestamp=utcnow(),
        version=ctx.settings.api_version,
        storage=backend.value if backend else None,
        checks=checks,
    )

    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))
