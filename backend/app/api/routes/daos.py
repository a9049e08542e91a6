# backend/app/api/routes/daos.py
# Routes DAO : liste paginée, numéro suivant, historique, administration, CRUD, tâches et validation agrégée.

from __future__ import annotations

import datetime as dt
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Header, Path, Query, status

from app.api.dto.dao import (
    DaoListResponse,
    DaoOut,
    DeletedDaoResponse,
    HistoryResponse,
    LastDaoResponse,
    NextNumberResponse,
    TaskUpdateResponse,
)
from app.core.exceptions import NotFoundError, PermissionDeniedError
from app.core.security import AdminUser, Context, CurrentUser, get_current_user
from app.models.dao import DaoCreate, DaoUpdate, TaskReorder, TaskUpdate
from app.models.history import ValidationOutcome
from app.repositories.base import DaoQuery, DaoSortField

router = APIRouter(
    prefix="/api/dao",
    tags=["dao"],
    dependencies=[Depends(get_current_user)],
)

DaoId = Annotated[str, Path(min_length=1, max_length=100, description="Identifiant du DAO.")]


@router.get(
    "",
    response_model=DaoListResponse,
    summary="Lister les DAO",
    description=(
        "Liste paginée des DAO.\n\n"
        "- Recherche `search` insensible à la casse (numéro, objet, référence, autorité)\n"
        "- Filtre exact `autorite`, intervalle `date_from`/`date_to` sur la date de dépôt\n"
        "- Tri `sort` + `order`, pagination `page` / `page_size` (max 100)"
    ),
)
async def list_daos(
    ctx: Context,
    search: str | None = Query(default=None, max_length=200),
    autorite: str | None = Query(default=None, max_length=200),
    date_from: dt.date | None = Query(default=None, description="Date de dépôt minimale (incluse)."),
    date_to: dt.date | None = Query(default=None, description="Date de dépôt maximale (incluse)."),
    sort: DaoSortField = Query(default="updated_at", description="Champ de tri (champs scalaires uniquement)."),
    order: Literal["asc", "desc"] = Query(default="desc"),
    page: int = Query(1, ge=1, description="Numéro de page (≥1)."),
    page_size: int = Query(20, ge=1, le=100, description="Taille de page (1–100)."),
):
    query = DaoQuery(
        search=search,
        autorite=autorite,
        date_from=date_from,
        date_to=date_to,
        sort=sort,
        order=order,
        page=page,
        page_size=page_size,
    )
    result = await ctx.daos.get_daos(query)
    return DaoListResponse(**result.model_dump())


@router.get("/next-number", response_model=NextNumberResponse, summary="Prochain numéro de DAO (sans réservation)")
async def next_number(ctx: Context):
    return NextNumberResponse(next_number=await ctx.daos.peek_next_dao_number())


@router.get(
    "/history",
    response_model=HistoryResponse,
    summary="Historique des modifications",
    description=(
        "Entrées d'historique, plus récentes d'abord.\n\n"
        "- `date` : un jour UTC (`AAAA-MM-JJ`)\n"
        "- `date_from` / `date_to` : intervalle inclusif (bornes optionnelles)\n"
        "- sans filtre : tout l'historique"
    ),
)
async def history(
    ctx: Context,
    date: dt.date | None = Query(default=None),
    date_from: dt.date | None = Query(default=None),
    date_to: dt.date | None = Query(default=None),
):
    return HistoryResponse(items=ctx.daos.list_history(date=date, date_from=date_from, date_to=date_to))


@router.get("/admin/verify-integrity", summary="Vérifier l'intégrité du stockage (admin)")
async def verify_integrity(ctx: Context, admin: AdminUser):
    return await ctx.daos.verify_integrity(admin)


@router.get("/admin/last", response_model=LastDaoResponse, summary="Dernier DAO créé (admin)")
async def last_created(ctx: Context, admin: AdminUser):
    last = await ctx.daos.get_last_created_dao()
    if last is None:
        raise NotFoundError("Aucun DAO", code="NO_DAO")
    return LastDaoResponse(id=last.id, numero_liste=last.numero_liste, created_at=last.created_at)


@router.delete("/admin/delete-last", response_model=DeletedDaoResponse, summary="Supprimer le dernier DAO créé (admin)")
async def delete_last(ctx: Context, admin: AdminUser):
    deleted = await ctx.daos.delete_last_created_dao(admin)
    return DeletedDaoResponse(deleted_id=deleted.id, numero_liste=deleted.numero_liste)


@router.get("/{dao_id}", response_model=DaoOut, summary="Détail d'un DAO")
async def get_dao(ctx: Context, dao_id: DaoId):
    return await ctx.daos.get_dao_by_id(dao_id)


@router.post(
    "",
    response_model=DaoOut,
    status_code=status.HTTP_201_CREATED,
    summary="Créer un DAO (admin)",
    description=(
        "Crée un DAO ; le numéro `DAO-<année>-<seq>` est toujours attribué par le serveur.\n\n"
        "- En-tête `x-idempotency-key` : une requête rejouée renvoie le DAO déjà créé\n"
        "- Sans tâches fournies, la liste standard est utilisée"
    ),
)
async def create_dao(
    ctx: Context,
    admin: AdminUser,
    payload: DaoCreate,
    x_idempotency_key: Annotated[str | None, Header()] = None,
):
    key = f"dao:{x_idempotency_key.strip()}" if x_idempotency_key and x_idempotency_key.strip() else None
    cached = ctx.idempotency.get(key)
    if cached is not None:
        return cached
    created = await ctx.daos.create_dao(payload, admin)
    ctx.idempotency.set(key, created)
    return created


@router.put("/{dao_id}", response_model=DaoOut, summary="Mettre à jour un DAO (chef d'équipe ou admin)")
async def update_dao(ctx: Context, user: CurrentUser, dao_id: DaoId, payload: DaoUpdate):
    return await ctx.daos.update_dao(dao_id, payload, user)


@router.delete("/{dao_id}", summary="Suppression de DAO (désactivée)")
async def delete_dao(dao_id: DaoId):
    raise PermissionDeniedError("La suppression de DAO est désactivée", code="DAO_DELETE_DISABLED")


@router.put("/{dao_id}/tasks/reorder", response_model=DaoOut, summary="Réordonner les tâches")
async def reorder_tasks(ctx: Context, user: CurrentUser, dao_id: DaoId, payload: TaskReorder):
    return await ctx.tasks.reorder_tasks(dao_id, payload, user)


@router.put(
    "/{dao_id}/tasks/{task_id}",
    response_model=TaskUpdateResponse,
    summary="Mettre à jour une tâche",
    description=(
        "Progression, commentaire, applicabilité, assignations.\n\n"
        "- Un admin qui n'est pas chef d'équipe ne peut modifier ni la progression, "
        "ni l'applicabilité, ni les assignations\n"
        "- Le changement est notifié immédiatement et agrégé jusqu'à validation"
    ),
)
async def update_task(
    ctx: Context,
    user: CurrentUser,
    dao_id: DaoId,
    task_id: Annotated[int, Path(ge=1)],
    payload: TaskUpdate,
):
    dao, task = await ctx.tasks.update_task(dao_id, task_id, payload, user)
    return TaskUpdateResponse(dao=dao.model_dump(), task=task)


@router.post(
    "/{dao_id}/validate",
    response_model=ValidationOutcome,
    summary="Valider les modifications en attente",
    description="Vide les changements agrégés du DAO dans l'historique et diffuse une notification unique.",
)
async def validate_changes(ctx: Context, user: CurrentUser, dao_id: DaoId):
    return await ctx.daos.validate_changes(dao_id, user)
