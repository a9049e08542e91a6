# backend/app/repositories/mongo.py
# Dépôts MongoDB (motor) : mêmes contrats que les dépôts mémoire, autorité déléguée à la base.

from __future__ import annotations

import re
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import BulkWriteError
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError

from app.core.exceptions import DuplicateKeyError
from app.core.utils import end_of_day, start_of_day
from app.models.comment import TaskComment
from app.models.dao import Dao
from app.models.notification import ALL_RECIPIENTS, PersistedNotification
from app.models.user import User
from app.repositories.base import SEARCH_FIELDS, DaoPage, DaoQuery, dump_updates

NO_ID = {"_id": 0}
DUPLICATE_KEY_CODE = 11000


def _duplicate_from(exc: MongoDuplicateKeyError) -> DuplicateKeyError:
    """Convertit l'erreur E11000 du driver en erreur métier (clé en conflit)."""
    return _duplicate_from_details(exc.details or {})


def _duplicate_from_details(details: dict[str, Any]) -> DuplicateKeyError:
    key_value = details.get("keyValue") or {}
    key_pattern = details.get("keyPattern") or {}
    key = next(iter(key_value or key_pattern), "unknown")
    return DuplicateKeyError(key, key_value.get(key))


def _duplicate_from_bulk(exc: BulkWriteError) -> DuplicateKeyError | None:
    """Première violation E11000 d'une écriture groupée, `None` si l'échec a une autre cause."""
    for error in (exc.details or {}).get("writeErrors", []):
        if error.get("code") == DUPLICATE_KEY_CODE:
            return _duplicate_from_details(error)
    return None


def _dao_filter(query: DaoQuery) -> dict[str, Any]:
    """Construit le filtre Mongo d'une requête DAO.

    Description:
        - `search` : regex échappée, insensible à la casse, sur les champs de recherche
        - `autorite` : égalité exacte
        - bornes de date inclusives (fin de journée UTC pour `date_to`)
    """
    flt: dict[str, Any] = {}
    if query.search:
        pattern = {"$regex": re.escape(query.search), "$options": "i"}
        flt["$or"] = [{field: pattern} for field in SEARCH_FIELDS]
    if query.autorite:
        flt["autorite_contractante"] = query.autorite
    if query.date_from or query.date_to:
        bounds: dict[str, Any] = {}
        if query.date_from:
            bounds["$gte"] = start_of_day(query.date_from)
        if query.date_to:
            bounds["$lte"] = end_of_day(query.date_to)
        flt["date_depot"] = bounds
    return flt


class MongoDaoRepository:
    def __init__(self, db: AsyncIOMotorDatabase, collection: str = "daos") -> None:
        self.coll = db[collection]

    async def find_all(self) -> list[Dao]:
        return [Dao.model_validate(doc) async for doc in self.coll.find({}, NO_ID)]

    async def find_by_id(self, dao_id: str) -> Dao | None:
        doc = await self.coll.find_one({"id": dao_id}, NO_ID)
        return Dao.model_validate(doc) if doc else None

    async def find_and_paginate(self, query: DaoQuery) -> DaoPage:
        flt = _dao_filter(query)
        total = await self.coll.count_documents(flt)
        direction = ASCENDING if query.order == "asc" else DESCENDING
        cursor = (
            self.coll.find(flt, NO_ID)
            .sort([(query.sort, direction), ("id", direction)])
            .skip(query.skip)
            .limit(query.page_size)
        )
        items = [Dao.model_validate(doc) async for doc in cursor]
        return DaoPage(items=items, total=total)

    async def find_by_numero_year(self, year: int | str) -> list[Dao]:
        flt = {"numero_liste": {"$regex": f"^DAO-{re.escape(str(year))}-"}}
        return [Dao.model_validate(doc) async for doc in self.coll.find(flt, NO_ID)]

    async def get_last_created(self) -> Dao | None:
        doc = await self.coll.find_one({}, NO_ID, sort=[("created_at", DESCENDING)])
        return Dao.model_validate(doc) if doc else None

    async def count(self) -> int:
        return await self.coll.count_documents({})

    async def insert(self, dao: Dao) -> Dao:
        try:
            await self.coll.insert_one(dao.model_dump())
        except MongoDuplicateKeyError as e:
            raise _duplicate_from(e) from e
        return dao

    async def insert_many(self, daos: list[Dao]) -> None:
        if not daos:
            return
        try:
            await self.coll.insert_many([d.model_dump() for d in daos], ordered=True)
        except MongoDuplicateKeyError as e:
            raise _duplicate_from(e) from e
        except BulkWriteError as e:
            duplicate = _duplicate_from_bulk(e)
            if duplicate is None:
                raise
            raise duplicate from e

    async def update(self, dao_id: str, updates: dict[str, Any]) -> Dao | None:
        payload = {k: v for k, v in dump_updates(updates).items() if k != "id"}
        try:
            doc = await self.coll.find_one_and_update(
                {"id": dao_id},
                {"$set": payload},
                projection=NO_ID,
                return_document=ReturnDocument.AFTER,
            )
        except MongoDuplicateKeyError as e:
            raise _duplicate_from(e) from e
        return Dao.model_validate(doc) if doc else None

    async def delete_by_id(self, dao_id: str) -> bool:
        res = await self.coll.delete_one({"id": dao_id})
        return res.deleted_count > 0

    async def delete_all(self) -> None:
        await self.coll.delete_many({})


class MongoUserRepository:
    def __init__(self, db: AsyncIOMotorDatabase, collection: str = "users") -> None:
        self.coll = db[collection]

    async def find_by_email(self, email: str) -> User | None:
        pattern = {"$regex": f"^{re.escape(email.strip())}$", "$options": "i"}
        doc = await self.coll.find_one({"email": pattern, "is_active": True}, NO_ID)
        return User.model_validate(doc) if doc else None

    async def find_by_id(self, user_id: str) -> User | None:
        doc = await self.coll.find_one({"id": user_id}, NO_ID)
        return User.model_validate(doc) if doc else None

    async def list_active(self) -> list[User]:
        cursor = self.coll.find({"is_active": True}, NO_ID).sort("created_at", ASCENDING)
        return [User.model_validate(doc) async for doc in cursor]

    async def create(self, user: User) -> User:
        existing = await self.find_by_email(user.email)
        if existing is not None:
            merged = await self.update_by_id(existing.id, {"name": user.name, "role": user.role})
            return merged or existing
        try:
            await self.coll.insert_one(user.model_dump())
        except MongoDuplicateKeyError as e:
            raise _duplicate_from(e) from e
        return user

    async def update_by_id(self, user_id: str, updates: dict[str, Any]) -> User | None:
        payload = {k: v for k, v in updates.items() if k != "id"}
        doc = await self.coll.find_one_and_update(
            {"id": user_id},
            {"$set": payload},
            projection=NO_ID,
            return_document=ReturnDocument.AFTER,
        )
        return User.model_validate(doc) if doc else None

    async def deactivate_by_id(self, user_id: str) -> bool:
        res = await self.coll.update_one({"id": user_id}, {"$set": {"is_active": False}})
        return res.matched_count > 0

    async def delete_by_id(self, user_id: str) -> bool:
        res = await self.coll.delete_one({"id": user_id})
        return res.deleted_count > 0

    async def delete_all(self) -> None:
        await self.coll.delete_many({})


class MongoCommentRepository:
    def __init__(self, db: AsyncIOMotorDatabase, collection: str = "comments") -> None:
        self.coll = db[collection]

    async def _list(self, flt: dict[str, Any], limit: int = 0) -> list[TaskComment]:
        cursor = self.coll.find(flt, NO_ID).sort("created_at", DESCENDING)
        if limit:
            cursor = cursor.limit(limit)
        return [TaskComment.model_validate(doc) async for doc in cursor]

    async def list_by_dao(self, dao_id: str) -> list[TaskComment]:
        return await self._list({"dao_id": dao_id})

    async def list_by_task(self, dao_id: str, task_id: int) -> list[TaskComment]:
        return await self._list({"dao_id": dao_id, "task_id": task_id})

    async def get_by_id(self, comment_id: str) -> TaskComment | None:
        doc = await self.coll.find_one({"id": comment_id}, NO_ID)
        return TaskComment.model_validate(doc) if doc else None

    async def add(self, comment: TaskComment) -> TaskComment:
        try:
            await self.coll.insert_one(comment.model_dump())
        except MongoDuplicateKeyError as e:
            raise _duplicate_from(e) from e
        return comment

    async def update(self, comment_id: str, updates: dict[str, Any]) -> TaskComment | None:
        doc = await self.coll.find_one_and_update(
            {"id": comment_id},
            {"$set": {k: v for k, v in updates.items() if k != "id"}},
            projection=NO_ID,
            return_document=ReturnDocument.AFTER,
        )
        return TaskComment.model_validate(doc) if doc else None

    async def delete(self, comment_id: str) -> bool:
        res = await self.coll.delete_one({"id": comment_id})
        return res.deleted_count > 0

    async def list_recent(self, limit: int) -> list[TaskComment]:
        return await self._list({}, limit=limit)

    async def delete_all(self) -> None:
        await self.coll.delete_many({})


class MongoNotificationRepository:
    def __init__(self, db: AsyncIOMotorDatabase, collection: str = "notifications") -> None:
        self.coll = db[collection]

    @staticmethod
    def _for_user(user_id: str) -> dict[str, Any]:
        # `recipients` vaut "all" ou un tableau d'ids (égalité sur élément)
        return {"$or": [{"recipients": ALL_RECIPIENTS}, {"recipients": user_id}]}

    async def list_for_user(self, user_id: str) -> list[PersistedNotification]:
        cursor = self.coll.find(self._for_user(user_id), NO_ID).sort("created_at", DESCENDING)
        return [PersistedNotification.model_validate(doc) async for doc in cursor]

    async def add(self, notification: PersistedNotification) -> PersistedNotification:
        try:
            await self.coll.insert_one(notification.model_dump())
        except MongoDuplicateKeyError as e:
            raise _duplicate_from(e) from e
        return notification

    async def mark_read(self, user_id: str, notification_id: str) -> bool:
        res = await self.coll.update_one(
            {"id": notification_id, **self._for_user(user_id)},
            {"$addToSet": {"read_by": user_id}},
        )
        return res.matched_count > 0

    async def mark_all_read(self, user_id: str) -> int:
        res = await self.coll.update_many(
            {**self._for_user(user_id), "read_by": {"$ne": user_id}},
            {"$addToSet": {"read_by": user_id}},
        )
        return res.modified_count

    async def clear_all(self) -> None:
        await self.coll.delete_many({})
