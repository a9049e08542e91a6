# backend/app/db/seed_indexes.py
"""
Idempotent index seeding for the DAO tracker.

- Uses the connected database passed by the caller (no client creation here).
- Matching by KEYS: if an index with same keys exists, keep it when options match.
- If options differ (unique / partialFilterExpression / collation), drop & recreate.
- Users: case-insensitive unique index (collation strength=2) on email, active users only.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.collation import Collation
from pymongo.operations import IndexModel

logger = logging.getLogger(__name__)

KeySpec = List[Tuple[str, int]]

# Case-insensitive (accent-sensitive) collation for users
COLLATION_CI = Collation(locale="en", strength=2)


def _normalize_key_from_mongo(key_doc: Dict[str, Any]) -> KeySpec:
    return [(k, int(v)) for k, v in key_doc.items()]


async def _find_existing_by_keys(coll, keys: KeySpec) -> Optional[Dict[str, Any]]:
    async for ix in coll.list_indexes():
        if "key" in ix and _normalize_key_from_mongo(ix["key"]) == keys:
            return ix
    return None


def _same_options(existing: Dict[str, Any], *, unique: Optional[bool], partial: Optional[Dict[str, Any]], collation: Optional[Collation]) -> bool:
    if bool(unique) != bool(existing.get("unique", False)):
        return False
    if (partial or None) != (existing.get("partialFilterExpression") or None):
        return False
    ex_collation = existing.get("collation") or {}
    if collation is None:
        return not ex_collation
    wanted = collation.document
    return all(ex_collation.get(k) == v for k, v in wanted.items())


async def ensure_index(
    db: AsyncIOMotorDatabase,
    coll_name: str,
    keys: KeySpec,
    *,
    name: Optional[str] = None,
    unique: Optional[bool] = None,
    partial: Optional[Dict[str, Any]] = None,
    collation: Optional[Collation] = None,
) -> None:
    coll = db[coll_name]
    existing = await _find_existing_by_keys(coll, keys)
    if existing and _same_options(existing, unique=unique, partial=partial, collation=collation):
        return
    if existing:
        await coll.drop_index(existing["name"])
    opts: Dict[str, Any] = {}
    if name:
        opts["name"] = name
    if unique is not None:
        opts["unique"] = unique
    if partial:
        opts["partialFilterExpression"] = partial
    if collation is not None:
        opts["collation"] = collation
    await coll.create_indexes([IndexModel(keys, **opts)])


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    # ---------- daos ----------
    await ensure_index(db, "daos", [("id", ASCENDING)], name="uniq_dao_id", unique=True)
    await ensure_index(db, "daos", [("numero_liste", ASCENDING)], name="uniq_dao_numero", unique=True)
    await ensure_index(db, "daos", [("autorite_contractante", ASCENDING)])
    await ensure_index(db, "daos", [("date_depot", ASCENDING)])
    await ensure_index(db, "daos", [("updated_at", DESCENDING)])
    await ensure_index(db, "daos", [("created_at", DESCENDING)])

    # ---------- users (CI unique via collation) ----------
    await ensure_index(db, "users", [("id", ASCENDING)], name="uniq_user_id", unique=True)
    await ensure_index(db, "users", [("email", ASCENDING)], name="uniq_email_ci", unique=True, partial={"is_active": True}, collation=COLLATION_CI)
    await ensure_index(db, "users", [("is_active", ASCENDING)])

    # ---------- comments ----------
    await ensure_index(db, "comments", [("id", ASCENDING)], name="uniq_comment_id", unique=True)
    await ensure_index(db, "comments", [("dao_id", ASCENDING), ("task_id", ASCENDING)])
    await ensure_index(db, "comments", [("created_at", DESCENDING)])

    # ---------- notifications ----------
    await ensure_index(db, "notifications", [("id", ASCENDING)], name="uniq_notification_id", unique=True)
    await ensure_index(db, "notifications", [("created_at", DESCENDING)])

    logger.info("Index MongoDB vérifiés")
