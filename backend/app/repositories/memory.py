# backend/app/repositories/memory.py
# Dépôts en mémoire (DAO, utilisateurs, commentaires, notifications), état local au processus.

from __future__ import annotations

import datetime as dt
from typing import Any

from app.core.exceptions import DuplicateKeyError
from app.core.utils import ensure_utc
from app.models.comment import TaskComment
from app.models.dao import Dao
from app.models.notification import PersistedNotification
from app.models.user import User
from app.repositories.base import SEARCH_FIELDS, DaoPage, DaoQuery, dump_updates
from app.repositories.dao_storage import DaoStorage, IntegrityReport

MEMORY_NOTIFICATIONS_MAX = 500


def _sort_key(value: Any) -> tuple[int, Any]:
    # None en dernier (asc), les datetimes naïfs alignés en UTC
    if value is None:
        return (1, "")
    if isinstance(value, dt.datetime):
        return (0, ensure_utc(value))
    if isinstance(value, str):
        return (0, value.lower())
    return (0, value)


def _matches(dao: Dao, query: DaoQuery) -> bool:
    if query.search:
        needle = query.search.lower()
        if not any(needle in str(getattr(dao, field, "") or "").lower() for field in SEARCH_FIELDS):
            return False
    if query.autorite and dao.autorite_contractante != query.autorite:
        return False
    depot = ensure_utc(dao.date_depot).date()
    if query.date_from and depot < query.date_from:
        return False
    if query.date_to and depot > query.date_to:
        return False
    return True


class MemoryDaoRepository:
    """Dépôt DAO adossé à `DaoStorage` (id et numéro de liste uniques)."""

    def __init__(self, storage: DaoStorage | None = None) -> None:
        self.storage = storage or DaoStorage()

    async def find_all(self) -> list[Dao]:
        return [d.model_copy(deep=True) for d in self.storage]

    async def find_by_id(self, dao_id: str) -> Dao | None:
        dao = self.storage.get(dao_id)
        return dao.model_copy(deep=True) if dao else None

    async def find_and_paginate(self, query: DaoQuery) -> DaoPage:
        """Filtre, trie puis pagine la liste mémoire.

        Args:
            query (DaoQuery): Recherche, filtres, tri et page.

        Returns:
            DaoPage: `items` de la page demandée, `total` filtré non paginé.
        """
        candidates = self.storage.find_by_autorite(query.autorite) if query.autorite else self.storage.all()
        filtered = [d for d in candidates if _matches(d, query)]
        filtered.sort(
            key=lambda d: _sort_key(getattr(d, query.sort, None)),
            reverse=query.order == "desc",
        )
        page = filtered[query.skip : query.skip + query.page_size]
        return DaoPage(items=[d.model_copy(deep=True) for d in page], total=len(filtered))

    async def find_by_numero_year(self, year: int | str) -> list[Dao]:
        prefix = f"DAO-{year}-"
        return [d.model_copy(deep=True) for d in self.storage if d.numero_liste.startswith(prefix)]

    async def get_last_created(self) -> Dao | None:
        items = self.storage.all()
        if not items:
            return None
        last = max(items, key=lambda d: ensure_utc(d.created_at))
        return last.model_copy(deep=True)

    async def count(self) -> int:
        return len(self.storage)

    def _check_unique(self, dao: Dao, ignore_id: str | None = None) -> None:
        for existing in self.storage:
            if existing.id == ignore_id:
                continue
            if existing.id == dao.id:
                raise DuplicateKeyError("id", dao.id)
            if existing.numero_liste == dao.numero_liste:
                raise DuplicateKeyError("numero_liste", dao.numero_liste)

    async def insert(self, dao: Dao) -> Dao:
        self._check_unique(dao)
        self.storage.add(dao.model_copy(deep=True))
        return dao

    async def insert_many(self, daos: list[Dao]) -> None:
        for dao in daos:
            await self.insert(dao)

    async def update(self, dao_id: str, updates: dict[str, Any]) -> Dao | None:
        position = self.storage.find_index_by_id(dao_id)
        if position < 0:
            return None
        current = self.storage.all()[position]
        merged = Dao.model_validate({**current.model_dump(), **dump_updates(updates), "id": dao_id})
        self._check_unique(merged, ignore_id=dao_id)
        self.storage.update_at_index(position, merged)
        return merged.model_copy(deep=True)

    async def delete_by_id(self, dao_id: str) -> bool:
        return self.storage.delete_by_id(dao_id)

    async def delete_all(self) -> None:
        self.storage.clear_all()

    def verify_integrity(self) -> IntegrityReport:
        return self.storage.verify_integrity()


class MemoryUserRepository:
    def __init__(self) -> None:
        self._users: dict[str, User] = {}

    async def find_by_email(self, email: str) -> User | None:
        wanted = email.strip().lower()
        for user in self._users.values():
            if user.is_active and user.email.lower() == wanted:
                return user.model_copy(deep=True)
        return None

    async def find_by_id(self, user_id: str) -> User | None:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def list_active(self) -> list[User]:
        return [u.model_copy(deep=True) for u in self._users.values() if u.is_active]

    async def create(self, user: User) -> User:
        """Crée un utilisateur, ou fusionne avec l'utilisateur actif de même email.

        Description:
            L'email reste unique parmi les utilisateurs actifs : en cas de
            collision, nom et rôle sont repris sur la fiche existante (son id est
            conservé) et c'est elle qui est retournée.

        Raises:
            DuplicateKeyError: Id déjà utilisé par un autre utilisateur.
        """
        existing = await self.find_by_email(user.email)
        if existing is not None:
            merged = existing.model_copy(update={"name": user.name, "role": user.role})
            self._users[merged.id] = merged
            return merged.model_copy(deep=True)
        if user.id in self._users:
            raise DuplicateKeyError("id", user.id)
        self._users[user.id] = user.model_copy(deep=True)
        return user

    async def update_by_id(self, user_id: str, updates: dict[str, Any]) -> User | None:
        user = self._users.get(user_id)
        if user is None:
            return None
        updated = User.model_validate({**user.model_dump(), **updates, "id": user_id})
        self._users[user_id] = updated
        return updated.model_copy(deep=True)

    async def deactivate_by_id(self, user_id: str) -> bool:
        return await self.update_by_id(user_id, {"is_active": False}) is not None

    async def delete_by_id(self, user_id: str) -> bool:
        return self._users.pop(user_id, None) is not None

    async def delete_all(self) -> None:
        self._users.clear()


class MemoryCommentRepository:
    def __init__(self) -> None:
        self._comments: list[TaskComment] = []

    def _newest_first(self, comments: list[TaskComment]) -> list[TaskComment]:
        return sorted(
            (c.model_copy(deep=True) for c in comments),
            key=lambda c: ensure_utc(c.created_at),
            reverse=True,
        )

    async def list_by_dao(self, dao_id: str) -> list[TaskComment]:
        return self._newest_first([c for c in self._comments if c.dao_id == dao_id])

    async def list_by_task(self, dao_id: str, task_id: int) -> list[TaskComment]:
        return self._newest_first(
            [c for c in self._comments if c.dao_id == dao_id and c.task_id == task_id]
        )

    async def get_by_id(self, comment_id: str) -> TaskComment | None:
        comment = next((c for c in self._comments if c.id == comment_id), None)
        return comment.model_copy(deep=True) if comment else None

    async def add(self, comment: TaskComment) -> TaskComment:
        if any(c.id == comment.id for c in self._comments):
            raise DuplicateKeyError("id", comment.id)
        self._comments.append(comment.model_copy(deep=True))
        return comment

    async def update(self, comment_id: str, updates: dict[str, Any]) -> TaskComment | None:
        for i, comment in enumerate(self._comments):
            if comment.id == comment_id:
                updated = TaskComment.model_validate({**comment.model_dump(), **updates, "id": comment_id})
                self._comments[i] = updated
                return updated.model_copy(deep=True)
        return None

    async def delete(self, comment_id: str) -> bool:
        before = len(self._comments)
        self._comments = [c for c in self._comments if c.id != comment_id]
        return len(self._comments) < before

    async def list_recent(self, limit: int) -> list[TaskComment]:
        return self._newest_first(self._comments)[:limit]

    async def delete_all(self) -> None:
        self._comments = []


class MemoryNotificationRepository:
    """Notifications persistées en mémoire, plus récentes d'abord, plafonnées."""

    def __init__(self, max_items: int = MEMORY_NOTIFICATIONS_MAX) -> None:
        self.max_items = max_items
        self._items: list[PersistedNotification] = []

    async def list_for_user(self, user_id: str) -> list[PersistedNotification]:
        return [n.model_copy(deep=True) for n in self._items if n.is_recipient(user_id)]

    async def add(self, notification: PersistedNotification) -> PersistedNotification:
        self._items.insert(0, notification.model_copy(deep=True))
        del self._items[self.max_items :]
        return notification

    async def mark_read(self, user_id: str, notification_id: str) -> bool:
        for item in self._items:
            if item.id == notification_id and item.is_recipient(user_id):
                if user_id not in item.read_by:
                    item.read_by.append(user_id)
                return True
        return False

    async def mark_all_read(self, user_id: str) -> int:
        count = 0
        for item in self._items:
            if item.is_recipient(user_id) and user_id not in item.read_by:
                item.read_by.append(user_id)
                count += 1
        return count

    async def clear_all(self) -> None:
        self._items = []
