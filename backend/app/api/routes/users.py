# backend/app/api/routes/users.py
# Routes d'administration des utilisateurs et profil courant.

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from app.api.dto.response_format import SuccessResponse
from app.core.security import AdminUser, Context, CurrentUser, get_current_user
from app.models.user import UserCreate, UserOut, UserRoleUpdate

router = APIRouter(
    prefix="/api/users",
    tags=["users"],
    dependencies=[Depends(get_current_user)],
)


@router.get("/me", response_model=UserOut, summary="Utilisateur courant")
async def me(user: CurrentUser):
    return UserOut.model_validate(user.model_dump())


@router.get("", response_model=list[UserOut], summary="Lister les utilisateurs actifs (admin)")
async def list_users(ctx: Context, admin: AdminUser):
    return [UserOut.model_validate(u.model_dump()) for u in await ctx.users.list_users()]


@router.post(
    "",
    response_model=UserOut,
    status_code=status.HTTP_201_CREATED,
    summary="Créer un utilisateur (admin)",
    description="L'email est unique parmi les comptes actifs : un email existant met à jour le compte.",
)
async def create_user(ctx: Context, admin: AdminUser, payload: UserCreate):
    created = await ctx.users.create_user(payload, admin)
    return UserOut.model_validate(created.model_dump())


@router.put("/{user_id}/role", response_model=UserOut, summary="Changer le rôle (admin)")
async def update_role(ctx: Context, admin: AdminUser, user_id: str, payload: UserRoleUpdate):
    updated = await ctx.users.update_role(user_id, payload.role, admin)
    return UserOut.model_validate(updated.model_dump())


@router.delete("/{user_id}", response_model=SuccessResponse[None], summary="Désactiver un utilisateur (admin)")
async def deactivate_user(ctx: Context, admin: AdminUser, user_id: str):
    await ctx.users.deactivate_user(user_id, admin)
    return SuccessResponse[None](message="Utilisateur désactivé")
