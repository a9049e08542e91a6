# backend/app/api/routes/notifications.py
# Routes des notifications de l'utilisateur courant : liste et marquage comme lues.

from __future__ import annotations

from fastapi import APIRouter, Depends

from app.api.dto.dao import ReadAllResponse
from app.api.dto.response_format import SuccessResponse
from app.core.exceptions import NotFoundError
from app.core.security import Context, CurrentUser, get_current_user
from app.models.notification import ClientNotification

router = APIRouter(
    prefix="/api/notifications",
    tags=["notifications"],
    dependencies=[Depends(get_current_user)],
)


@router.get("", response_model=list[ClientNotification], summary="Mes notifications (plus récentes d'abord)")
async def list_notifications(ctx: Context, user: CurrentUser):
    return ctx.notifications.list_for_user(user.id)


@router.put("/read-all", response_model=ReadAllResponse, summary="Tout marquer comme lu")
async def read_all(ctx: Context, user: CurrentUser):
    return ReadAllResponse(updated=ctx.notifications.mark_all_read(user.id))


@router.put("/{notification_id}/read", response_model=SuccessResponse[None], summary="Marquer une notification comme lue")
async def read_one(ctx: Context, user: CurrentUser, notification_id: str):
    if not ctx.notifications.mark_read(user.id, notification_id):
        raise NotFoundError("Notification introuvable", code="NOTIFICATION_NOT_FOUND")
    return SuccessResponse[None](message="Notification lue")
