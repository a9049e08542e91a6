# backend/app/api/routes/comments.py
# Routes des commentaires : lecture par DAO/tâche, récents, ajout, modification et suppression.

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Path, Query, status

from app.api.dto.response_format import SuccessResponse
from app.core.security import Context, CurrentUser, get_current_user
from app.models.comment import CommentCreate, CommentUpdate, TaskComment

router = APIRouter(
    prefix="/api/comments",
    tags=["comments"],
    dependencies=[Depends(get_current_user)],
)

DaoId = Annotated[str, Path(min_length=1, max_length=100)]


@router.get("/recent", response_model=list[TaskComment], summary="Commentaires récents")
async def recent_comments(ctx: Context, limit: int = Query(10, ge=1, le=100)):
    return await ctx.comments.get_recent_comments(limit)


@router.get("/dao/{dao_id}", response_model=list[TaskComment], summary="Commentaires d'un DAO")
async def dao_comments(ctx: Context, dao_id: DaoId):
    return await ctx.comments.get_dao_comments(dao_id)


@router.get("/dao/{dao_id}/task/{task_id}", response_model=list[TaskComment], summary="Commentaires d'une tâche")
async def task_comments(ctx: Context, dao_id: DaoId, task_id: Annotated[int, Path(ge=1)]):
    return await ctx.comments.get_task_comments(dao_id, task_id)


@router.get("/{comment_id}", response_model=TaskComment, summary="Détail d'un commentaire")
async def get_comment(ctx: Context, comment_id: str):
    return await ctx.comments.get_comment_by_id(comment_id)


@router.post(
    "",
    response_model=TaskComment,
    status_code=status.HTTP_201_CREATED,
    summary="Ajouter un commentaire",
    description="Le commentaire est notifié et agrégé comme changement de la tâche. En-tête `x-idempotency-key` supporté.",
)
async def add_comment(
    ctx: Context,
    user: CurrentUser,
    payload: CommentCreate,
    x_idempotency_key: Annotated[str | None, Header()] = None,
):
    key = f"comment:{user.id}:{x_idempotency_key.strip()}" if x_idempotency_key and x_idempotency_key.strip() else None
    cached = ctx.idempotency.get(key)
    if cached is not None:
        return cached
    comment = await ctx.comments.add_comment(payload, user)
    ctx.idempotency.set(key, comment)
    return comment


@router.put("/{comment_id}", response_model=TaskComment, summary="Modifier un commentaire (auteur)")
async def update_comment(ctx: Context, user: CurrentUser, comment_id: str, payload: CommentUpdate):
    return await ctx.comments.update_comment(comment_id, payload, user)


@router.delete("/{comment_id}", response_model=SuccessResponse[None], summary="Supprimer un commentaire (auteur ou admin)")
async def delete_comment(ctx: Context, user: CurrentUser, comment_id: str):
    await ctx.comments.delete_comment(comment_id, user)
    return SuccessResponse[None](message="Commentaire supprimé")
