# backend/app/api/routes/admin.py
# Routes d'administration : réinitialisation des données et diagnostic de la file d'emails.

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Path

from app.api.dto.admin import RequeueResponse, ResetResponse
from app.core.exceptions import NotFoundError
from app.core.security import AdminUser, Context, get_current_user
from app.services.mail_queue import MailDiagnostics

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(get_current_user)],
)


@router.post(
    "/reset-app",
    response_model=ResetResponse,
    summary="Réinitialiser les données",
    description=(
        "Supprime DAO, commentaires, historique, notifications et emails en attente, "
        "et remet la numérotation à zéro. Les comptes utilisateurs sont conservés."
    ),
)
async def reset_app(ctx: Context, admin: AdminUser):
    return ResetResponse(**await ctx.reset_data(admin))


@router.get(
    "/mail-diagnostics",
    response_model=MailDiagnostics,
    summary="État de la file d'emails",
    description="Paramètres SMTP, nombre de jobs en attente et abandonnés, détail des jobs.",
)
async def mail_diagnostics(ctx: Context, admin: AdminUser):
    return ctx.mail_queue.diagnostics()


@router.post(
    "/mail-queue/{job_id}/requeue",
    response_model=RequeueResponse,
    summary="Relancer un email",
    description="Remet à zéro les tentatives d'un job (abandonné ou non) pour un envoi immédiat.",
)
async def requeue_mail(
    ctx: Context,
    admin: AdminUser,
    job_id: Annotated[str, Path(min_length=1, max_length=100)],
):
    if not ctx.mail_queue.requeue(job_id):
        raise NotFoundError("Job d'email introuvable", code="MAIL_JOB_NOT_FOUND")
    return RequeueResponse(job_id=job_id)
