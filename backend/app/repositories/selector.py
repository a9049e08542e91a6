# backend/app/repositories/selector.py
# Choix unique (par processus) du stockage : MongoDB si demandé et joignable, sinon mémoire.

from __future__ import annotations

import enum
import logging
from typing import Any, Awaitable, Callable

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.exceptions import StorageUnavailableError
from app.core.settings import Settings
from app.db.mongodb import connect_to_database, disconnect_from_database
from app.db.seed_indexes import ensure_indexes
from app.repositories.base import CommentRepository, DaoRepository, NotificationRepository, UserRepository
from app.repositories.memory import (
    MemoryCommentRepository,
    MemoryDaoRepository,
    MemoryNotificationRepository,
    MemoryUserRepository,
)
from app.repositories.mongo import (
    MongoCommentRepository,
    MongoDaoRepository,
    MongoNotificationRepository,
    MongoUserRepository,
)

logger = logging.getLogger(__name__)

ConnectFn = Callable[[Settings], Awaitable[AsyncIOMotorDatabase]]


class StorageBackend(str, enum.Enum):
    MEMORY = "memory"
    MONGO = "mongo"


_MEMORY_FACTORIES: dict[str, Callable[[], Any]] = {
    "dao": MemoryDaoRepository,
    "user": MemoryUserRepository,
    "comment": MemoryCommentRepository,
    "notification": MemoryNotificationRepository,
}

_MONGO_FACTORIES: dict[str, Callable[[AsyncIOMotorDatabase], Any]] = {
    "dao": MongoDaoRepository,
    "user": MongoUserRepository,
    "comment": MongoCommentRepository,
    "notification": MongoNotificationRepository,
}


class RepositoryProvider:
    """Résout le stockage une seule fois et fournit un dépôt par entité.

    Description:
        - `use_mongo` désactivé : mémoire, sans aucune tentative de connexion
        - connexion réussie : MongoDB (index vérifiés au passage)
        - échec + `strict_db_mode` sans `fallback_on_db_error` : erreur levée,
          rien n'est mémorisé
        - échec sinon : avertissement puis mémoire pour toute la durée du
          processus (pas de nouvelle tentative)
        Des premiers appels concurrents peuvent chacun tenter une connexion ; le
        premier résultat mémorisé l'emporte et les suivants sont ignorés.

    Args:
        settings (Settings): Drapeaux de sélection et politique d'échec.
        connect (Callable): Ouvre la connexion MongoDB, lève en cas d'échec.
        prepare (Callable | None): Préparation de la base après connexion (index).
    """

    def __init__(
        self,
        settings: Settings,
        connect: ConnectFn = connect_to_database,
        prepare: Callable[[AsyncIOMotorDatabase], Awaitable[None]] | None = ensure_indexes,
    ) -> None:
        self.settings = settings
        self._connect = connect
        self._prepare = prepare
        self._backend: StorageBackend | None = None
        self._db: AsyncIOMotorDatabase | None = None
        self._repos: dict[str, Any] = {}
        self.connect_attempts = 0

    @property
    def backend(self) -> StorageBackend | None:
        return self._backend

    @property
    def degraded(self) -> bool:
        return self.settings.use_mongo and self._backend is StorageBackend.MEMORY

    def _settle(self, backend: StorageBackend, db: AsyncIOMotorDatabase | None = None) -> StorageBackend:
        if self._backend is None:
            self._backend = backend
            self._db = db
        return self._backend

    async def resolve(self) -> StorageBackend:
        if self._backend is not None:
            return self._backend
        if not self.settings.use_mongo:
            return self._settle(StorageBackend.MEMORY)

        self.connect_attempts += 1
        try:
            db = await self._connect(self.settings)
        except Exception as e:
            if self._backend is not None:
                return self._backend
            if self.settings.strict_db_mode and not self.settings.fallback_on_db_error:
                logger.error("MongoDB injoignable en mode strict: %s", e)
                raise StorageUnavailableError(f"MongoDB unavailable: {e}") from e
            logger.warning("MongoDB injoignable (%s), bascule sur le stockage mémoire", e)
            return self._settle(StorageBackend.MEMORY)

        if self._prepare is not None and self._backend is None:
            try:
                await self._prepare(db)
            except Exception as e:
                logger.warning("Préparation des index MongoDB impossible: %s", e)
        return self._settle(StorageBackend.MONGO, db)

    async def _get(self, entity: str) -> Any:
        backend = await self.resolve()
        repo = self._repos.get(entity)
        if repo is None:
            if backend is StorageBackend.MONGO:
                repo = _MONGO_FACTORIES[entity](self._db)
            else:
                repo = _MEMORY_FACTORIES[entity]()
            self._repos[entity] = repo
        return repo

    async def get_dao_repository(self) -> DaoRepository:
        return await self._get("dao")

    async def get_user_repository(self) -> UserRepository:
        return await self._get("user")

    async def get_comment_repository(self) -> CommentRepository:
        return await self._get("comment")

    async def get_notification_repository(self) -> NotificationRepository:
        return await self._get("notification")

    async def check(self) -> str:
        """Statut du stockage pour le health check."""
        backend = await self.resolve()
        if backend is StorageBackend.MEMORY:
            return "degraded: memory fallback" if self.degraded else "ok"
        await self._db.command("ping")
        return "ok"

    def close(self) -> None:
        if self._backend is StorageBackend.MONGO:
            disconnect_from_database()
