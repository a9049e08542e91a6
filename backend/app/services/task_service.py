# backend/app/services/task_service.py
# Opérations sur les tâches d'un DAO : ajout, renommage, mise à jour et réordonnancement.

from __future__ import annotations

import logging

from app.core.exceptions import NotFoundError, PermissionDeniedError, ValidationFailedError
from app.core.utils import sanitize_string, utcnow
from app.models.dao import Dao, DaoTask, TaskCreate, TaskRename, TaskReorder, TaskUpdate
from app.models.user import User
from app.services.access import check_leader_only_fields, require_admin, require_leader_or_admin, require_writer
from app.services.dao_service import DaoService, primary_change_type, task_changes
from app.services.notification_templates import tpl_task_notification

logger = logging.getLogger(__name__)

CLEARABLE_TASK_FIELDS = ("progress", "comment")


class TaskService:
    """Service des tâches.

    Description:
        Les changements de tâches sont enregistrés sur l'agrégateur (résumé
        diffusé à la validation) et notifiés immédiatement. La suppression de
        tâche n'est pas autorisée : une tâche inutile est marquée non applicable.

    Args:
        daos (DaoService): Accès aux DAO et aux effets de bord partagés.
    """

    def __init__(self, daos: DaoService):
        self.daos = daos

    @property
    def aggregator(self):
        return self.daos.aggregator

    async def add_task(self, dao_id: str, payload: TaskCreate, actor: User) -> DaoTask:
        """Ajoute une tâche en fin de liste (admin), id = max + 1."""
        require_admin(actor)
        dao = await self.daos.get_dao_by_id(dao_id)
        next_id = max((t.id for t in dao.tasks), default=0) + 1
        task = DaoTask(
            id=next_id,
            name=sanitize_string(payload.name),
            is_applicable=payload.is_applicable,
            progress=payload.progress if payload.is_applicable else None,
            comment=sanitize_string(payload.comment) if payload.comment else None,
            assigned_to=[sanitize_string(a) for a in payload.assigned_to],
            last_updated_by=actor.id,
            last_updated_at=utcnow(),
        )
        updated = await self.daos.save_tasks(dao, [*dao.tasks, task])
        self.daos.safely(
            "historique ajout tâche",
            self.aggregator.record_event,
            updated,
            "Ajout d'une tâche",
            [f"Numéro de liste : {updated.numero_liste}", f"Tâche {task.id} : {task.name}"],
            "dao_task_update",
        )
        self.daos.log_action("ADD_TASK", actor, {"dao_id": dao_id, "task_id": task.id})
        return task

    async def rename_task(self, dao_id: str, task_id: int, payload: TaskRename, actor: User) -> DaoTask:
        require_admin(actor)
        dao = await self.daos.get_dao_by_id(dao_id)
        task = dao.find_task(task_id)
        if task is None:
            raise NotFoundError("Tâche introuvable", code="TASK_NOT_FOUND")
        old_name = task.name
        renamed = task.model_copy(update={"name": sanitize_string(payload.name), "last_updated_by": actor.id, "last_updated_at": utcnow()})
        updated = await self.daos.save_tasks(dao, [renamed if t.id == task_id else t for t in dao.tasks])
        self.daos.safely(
            "historique renommage",
            self.aggregator.record_event,
            updated,
            "Renommage d'une tâche",
            [
                f"Numéro de liste : {updated.numero_liste}",
                f"Tâche {task_id}",
                f"Ancien nom : {old_name}",
                f"Nouveau nom : {renamed.name}",
            ],
            "dao_task_update",
        )
        return renamed

    async def update_task(self, dao_id: str, task_id: int, payload: TaskUpdate, actor: User) -> tuple[Dao, DaoTask]:
        """Met à jour une tâche (chef d'équipe ou admin).

        Description:
            Seuls les champs présents dans le payload sont appliqués. Une
            progression sur une tâche non applicable est ignorée. Les champs
            effectivement modifiés sont enregistrés sur l'agrégateur.

        Args:
            dao_id (str): DAO parent.
            task_id (int): Tâche à modifier.
            payload (TaskUpdate): Champs à modifier.
            actor (User): Auteur.

        Returns:
            tuple[Dao, DaoTask]: DAO et tâche après mise à jour.

        Raises:
            NotFoundError: DAO ou tâche introuvable.
            PermissionDeniedError: Ni chef ni admin, ou admin non chef sur un champ réservé.
        """
        require_writer(actor)
        dao = await self.daos.get_dao_by_id(dao_id)
        require_leader_or_admin(dao, actor)
        task = dao.find_task(task_id)
        if task is None:
            raise NotFoundError("Tâche introuvable", code="TASK_NOT_FOUND")

        fields = payload.model_dump(exclude_unset=True)
        # `null` est ignoré pour l'applicabilité et l'assignation, mais efface progression et commentaire
        applied = {k for k, v in fields.items() if v is not None or k in CLEARABLE_TASK_FIELDS}
        check_leader_only_fields(dao, actor, applied)

        values = task.model_dump()
        if "is_applicable" in fields and fields["is_applicable"] is not None:
            values["is_applicable"] = fields["is_applicable"]
        if "progress" in fields:
            values["progress"] = fields["progress"]
        if "comment" in fields:
            values["comment"] = sanitize_string(fields["comment"]) if fields["comment"] else None
        if "assigned_to" in fields and fields["assigned_to"] is not None:
            values["assigned_to"] = [sanitize_string(a) for a in fields["assigned_to"]]
        values["last_updated_by"] = actor.id
        values["last_updated_at"] = utcnow()
        new_task = DaoTask.model_validate(values)

        changed = task_changes(task, new_task)
        updated = await self.daos.save_tasks(dao, [new_task if t.id == task_id else t for t in dao.tasks])
        if changed:
            self.daos.safely("agrégation tâche", self.aggregator.record_task_change, updated, new_task, changed)
            self.daos.safely(
                "notification tâche",
                self.daos.notifications.notify,
                tpl_task_notification(
                    updated,
                    new_task,
                    primary_change_type(changed),
                    added=sorted(set(new_task.assigned_to) - set(task.assigned_to)),
                    removed=sorted(set(task.assigned_to) - set(new_task.assigned_to)),
                    comment=new_task.comment if "comment" in changed else None,
                ),
            )
        self.daos.log_action("UPDATE_TASK", actor, {"dao_id": dao_id, "task_id": task_id, "changed": sorted(changed)})
        return updated, new_task

    async def reorder_tasks(self, dao_id: str, payload: TaskReorder, actor: User) -> Dao:
        """Réordonne les tâches : la liste doit contenir chaque id existant une seule fois."""
        require_writer(actor)
        dao = await self.daos.get_dao_by_id(dao_id)
        require_leader_or_admin(dao, actor)
        by_id = {t.id: t for t in dao.tasks}
        if len(payload.task_ids) != len(set(payload.task_ids)) or any(i not in by_id for i in payload.task_ids):
            raise ValidationFailedError("Identifiants de tâches invalides", code="INVALID_TASK_IDS")
        if len(payload.task_ids) != len(by_id):
            raise ValidationFailedError("La liste doit contenir toutes les tâches", code="INCOMPLETE_TASK_LIST")
        return await self.daos.save_tasks(dao, [by_id[i] for i in payload.task_ids])

    async def delete_task(self, dao_id: str, task_id: int, actor: User) -> None:
        raise PermissionDeniedError(
            "La suppression de tâches est désactivée : marquez la tâche non applicable",
            code="TASK_DELETE_DISABLED",
        )
