# backend/app/repositories/base.py
# Contrats des dépôts (DAO, utilisateurs, commentaires, notifications) et options de requête DAO.

from __future__ import annotations

import datetime as dt
from typing import Any, Literal, Protocol

from pydantic import BaseModel, Field

from app.models.comment import TaskComment
from app.models.dao import Dao
from app.models.notification import PersistedNotification
from app.models.user import User

SEARCH_FIELDS = ("numero_liste", "objet_dossier", "reference", "autorite_contractante")

# Seuls les champs scalaires sont triables.
DaoSortField = Literal[
    "numero_liste",
    "objet_dossier",
    "reference",
    "autorite_contractante",
    "date_depot",
    "created_at",
    "updated_at",
]


class DaoQuery(BaseModel):
    """Options de filtrage, tri et pagination des DAO.

    Description:
        - `search` : sous-chaîne insensible à la casse sur numéro, objet, référence, autorité
        - `autorite` : égalité exacte sur l'autorité contractante
        - `date_from` / `date_to` : bornes inclusives sur la date de dépôt
        - pagination 1-indexée ; le plafond de `page_size` est appliqué par l'appelant
    """

    search: str | None = None
    autorite: str | None = None
    date_from: dt.date | None = None
    date_to: dt.date | None = None
    sort: DaoSortField = "updated_at"
    order: Literal["asc", "desc"] = "desc"
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1)

    @property
    def skip(self) -> int:
        return (max(1, self.page) - 1) * self.page_size


class DaoPage(BaseModel):
    items: list[Dao]
    total: int


class DaoRepository(Protocol):
    async def find_all(self) -> list[Dao]: ...

    async def find_by_id(self, dao_id: str) -> Dao | None: ...

    async def find_and_paginate(self, query: DaoQuery) -> DaoPage: ...

    async def find_by_numero_year(self, year: int | str) -> list[Dao]: ...

    async def get_last_created(self) -> Dao | None: ...

    async def count(self) -> int: ...

    async def insert(self, dao: Dao) -> Dao: ...

    async def insert_many(self, daos: list[Dao]) -> None: ...

    async def update(self, dao_id: str, updates: dict[str, Any]) -> Dao | None: ...

    async def delete_by_id(self, dao_id: str) -> bool: ...

    async def delete_all(self) -> None: ...


class UserRepository(Protocol):
    async def find_by_email(self, email: str) -> User | None: ...

    async def find_by_id(self, user_id: str) -> User | None: ...

    async def list_active(self) -> list[User]: ...

    async def create(self, user: User) -> User: ...

    async def update_by_id(self, user_id: str, updates: dict[str, Any]) -> User | None: ...

    async def deactivate_by_id(self, user_id: str) -> bool: ...

    async def delete_by_id(self, user_id: str) -> bool: ...

    async def delete_all(self) -> None: ...


class CommentRepository(Protocol):
    async def list_by_dao(self, dao_id: str) -> list[TaskComment]: ...

    async def list_by_task(self, dao_id: str, task_id: int) -> list[TaskComment]: ...

    async def get_by_id(self, comment_id: str) -> TaskComment | None: ...

    async def add(self, comment: TaskComment) -> TaskComment: ...

    async def update(self, comment_id: str, updates: dict[str, Any]) -> TaskComment | None: ...

    async def delete(self, comment_id: str) -> bool: ...

    async def list_recent(self, limit: int) -> list[TaskComment]: ...

    async def delete_all(self) -> None: ...


class NotificationRepository(Protocol):
    async def list_for_user(self, user_id: str) -> list[PersistedNotification]: ...

    async def add(self, notification: PersistedNotification) -> PersistedNotification: ...

    async def mark_read(self, user_id: str, notification_id: str) -> bool: ...

    async def mark_all_read(self, user_id: str) -> int: ...

    async def clear_all(self) -> None: ...


def dump_updates(updates: dict[str, Any]) -> dict[str, Any]:
    """Sérialise un dict de mise à jour (modèles Pydantic → dict Python)."""
    out: dict[str, Any] = {}
    for key, value in updates.items():
        if isinstance(value, BaseModel):
            out[key] = value.model_dump()
        elif isinstance(value, list):
            out[key] = [v.model_dump() if isinstance(v, BaseModel) else v for v in value]
        else:
            out[key] = value
    return out
