# backend/app/api/routes/tasks.py
# Routes des tâches d'un DAO : ajout et renommage (admin) ; suppression refusée.

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Path, status

from app.core.security import AdminUser, Context, CurrentUser, get_current_user
from app.models.dao import DaoTask, TaskCreate, TaskRename

router = APIRouter(
    prefix="/api/dao/{dao_id}/tasks",
    tags=["tasks"],
    dependencies=[Depends(get_current_user)],
)

DaoId = Annotated[str, Path(min_length=1, max_length=100)]
TaskId = Annotated[int, Path(ge=1)]


@router.post(
    "",
    response_model=DaoTask,
    status_code=status.HTTP_201_CREATED,
    summary="Ajouter une tâche (admin)",
    description="Ajoute une tâche en fin de liste (id = max + 1). En-tête `x-idempotency-key` supporté.",
)
async def add_task(
    ctx: Context,
    admin: AdminUser,
    dao_id: DaoId,
    payload: TaskCreate,
    x_idempotency_key: Annotated[str | None, Header()] = None,
):
    key = f"task:{dao_id}:{x_idempotency_key.strip()}" if x_idempotency_key and x_idempotency_key.strip() else None
    cached = ctx.idempotency.get(key)
    if cached is not None:
        return cached
    task = await ctx.tasks.add_task(dao_id, payload, admin)
    ctx.idempotency.set(key, task)
    return task


@router.put("/{task_id}/name", response_model=DaoTask, summary="Renommer une tâche (admin)")
async def rename_task(ctx: Context, admin: AdminUser, dao_id: DaoId, task_id: TaskId, payload: TaskRename):
    return await ctx.tasks.rename_task(dao_id, task_id, payload, admin)


@router.delete("/{task_id}", summary="Suppression de tâche (désactivée)")
async def delete_task(ctx: Context, user: CurrentUser, dao_id: DaoId, task_id: TaskId):
    await ctx.tasks.delete_task(dao_id, task_id, user)
