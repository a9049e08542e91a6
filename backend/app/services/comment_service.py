# backend/app/services/comment_service.py
# Commentaires de tâches : lecture, ajout, modification (auteur) et suppression (auteur ou admin).

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from app.core.exceptions import NotFoundError, PermissionDeniedError
from app.core.utils import new_id, sanitize_string, utcnow
from app.models.comment import CommentCreate, CommentUpdate, TaskComment
from app.models.dao import Dao, DaoTask
from app.models.user import User
from app.repositories.base import CommentRepository
from app.services.access import require_writer
from app.services.dao_service import DaoService
from app.services.notification_templates import tpl_task_notification

logger = logging.getLogger(__name__)


class CommentService:
    """Service des commentaires.

    Args:
        get_repository (Callable): Dépôt de commentaires actif.
        daos (DaoService): Accès aux DAO, agrégateur et notifications.
    """

    def __init__(self, get_repository: Callable[[], Awaitable[CommentRepository]], daos: DaoService):
        self._get_repository = get_repository
        self.daos = daos

    async def _task(self, dao_id: str, task_id: int) -> tuple[Dao, DaoTask]:
        dao = await self.daos.get_dao_by_id(dao_id)
        task = dao.find_task(task_id)
        if task is None:
            raise NotFoundError("Tâche introuvable", code="TASK_NOT_FOUND")
        return dao, task

    def _announce(self, dao: Dao, task: DaoTask, content: str | None) -> None:
        # Le commentaire est vu comme un changement du champ `comment` de la tâche
        snapshot = task.model_copy(update={"comment": content})
        self.daos.safely("agrégation commentaire", self.daos.aggregator.record_task_change, dao, snapshot, ["comment"])
        self.daos.safely(
            "notification commentaire",
            self.daos.notifications.notify,
            tpl_task_notification(dao, snapshot, "comment", comment=content),
        )

    async def get_task_comments(self, dao_id: str, task_id: int) -> list[TaskComment]:
        repo = await self._get_repository()
        return await repo.list_by_task(dao_id, task_id)

    async def get_dao_comments(self, dao_id: str) -> list[TaskComment]:
        repo = await self._get_repository()
        return await repo.list_by_dao(dao_id)

    async def get_comment_by_id(self, comment_id: str) -> TaskComment:
        repo = await self._get_repository()
        comment = await repo.get_by_id(comment_id)
        if comment is None:
            raise NotFoundError("Commentaire introuvable", code="COMMENT_NOT_FOUND")
        return comment

    async def get_recent_comments(self, limit: int = 10) -> list[TaskComment]:
        repo = await self._get_repository()
        return await repo.list_recent(limit)

    async def add_comment(self, payload: CommentCreate, actor: User) -> TaskComment:
        """Ajoute un commentaire sur une tâche existante.

        Args:
            payload (CommentCreate): DAO, tâche et contenu.
            actor (User): Auteur (rôle non lecteur).

        Returns:
            TaskComment: Commentaire enregistré.
        """
        require_writer(actor)
        dao, task = await self._task(payload.dao_id, payload.task_id)
        comment = TaskComment(
            id=new_id("comment_"),
            dao_id=dao.id,
            task_id=task.id,
            user_id=actor.id,
            user_name=actor.name,
            content=sanitize_string(payload.content),
            created_at=utcnow(),
        )
        repo = await self._get_repository()
        created = await repo.add(comment)
        self._announce(dao, task, created.content)
        return created

    async def update_comment(self, comment_id: str, payload: CommentUpdate, actor: User) -> TaskComment:
        """Modifie un commentaire : seul son auteur y est autorisé."""
        current = await self.get_comment_by_id(comment_id)
        if current.user_id != actor.id:
            raise PermissionDeniedError("Seul l'auteur peut modifier ce commentaire", code="NOT_COMMENT_AUTHOR")
        repo = await self._get_repository()
        updated = await repo.update(comment_id, {"content": sanitize_string(payload.content)})
        if updated is None:
            raise NotFoundError("Commentaire introuvable", code="COMMENT_NOT_FOUND")
        dao, task = await self._task(updated.dao_id, updated.task_id)
        self._announce(dao, task, updated.content)
        return updated

    async def delete_comment(self, comment_id: str, actor: User) -> None:
        current = await self.get_comment_by_id(comment_id)
        if current.user_id != actor.id and not actor.is_admin:
            raise PermissionDeniedError("Suppression réservée à l'auteur ou à un administrateur", code="NOT_COMMENT_AUTHOR")
        repo = await self._get_repository()
        if not await repo.delete(comment_id):
            raise NotFoundError("Commentaire introuvable", code="COMMENT_NOT_FOUND")
        dao = await self.daos.find_dao(current.dao_id)
        task = dao.find_task(current.task_id) if dao else None
        if dao is not None and task is not None:
            self.daos.safely(
                "notification suppression commentaire",
                self.daos.notifications.notify,
                tpl_task_notification(dao, task, "comment"),
            )
        logger.info("Commentaire %s supprimé par %s", comment_id, actor.id)
