# backend/app/services/dao_service.py
# Orchestration DAO : lecture paginée, création numérotée avec reprise, mise à jour, suppression et validation.

from __future__ import annotations

import logging
from typing import Any, Callable

from pydantic import BaseModel

from app.core.exceptions import DuplicateKeyError, NotFoundError, SequenceExhaustedError, ValidationFailedError
from app.core.logging_config import AuditLogger
from app.core.settings import Settings
from app.core.utils import new_id, sanitize_string, utcnow, utcnow_iso
from app.models.dao import Dao, DaoCreate, DaoTask, DaoUpdate, default_tasks
from app.models.history import DaoHistoryEntry, ValidationOutcome
from app.models.user import User
from app.repositories.base import DaoQuery, DaoRepository
from app.repositories.selector import RepositoryProvider
from app.services.access import check_leader_only_fields, require_admin, require_leader_or_admin, require_writer
from app.services.change_log import DaoChangeAggregator
from app.services.dao_numbering import DaoNumberGenerator
from app.services.notification_service import NotificationService
from app.services.notification_templates import (
    TaskChangeType,
    tpl_dao_aggregated_update,
    tpl_dao_created,
    tpl_dao_deleted,
    tpl_dao_updated,
    tpl_leader_changed,
    tpl_task_notification,
    tpl_team_changed,
)

logger = logging.getLogger(__name__)

SCALAR_FIELDS = ("objet_dossier", "reference", "autorite_contractante", "date_depot")
TEAM_KEYS = {"chef", "membres"}


class DaoListResult(BaseModel):
    items: list[Dao]
    total: int
    page: int
    page_size: int


def task_changes(previous: DaoTask, current: DaoTask) -> set[str]:
    """Champs effectivement modifiés entre deux états d'une tâche."""
    changed: set[str] = set()
    if previous.is_applicable != current.is_applicable:
        changed.add("is_applicable")
    if previous.progress != current.progress:
        changed.add("progress")
    if (previous.comment or "") != (current.comment or ""):
        changed.add("comment")
    if sorted(previous.assigned_to) != sorted(current.assigned_to):
        changed.add("assigned_to")
    return changed


def primary_change_type(changed: set[str]) -> TaskChangeType:
    if "is_applicable" in changed:
        return "applicability"
    if "progress" in changed:
        return "progress"
    if "assigned_to" in changed:
        return "assignees"
    if "comment" in changed:
        return "comment"
    return "general"


def clean_task(task: DaoTask, actor_id: str, now=None) -> DaoTask:
    """Nettoie les champs texte d'une tâche et horodate la modification."""
    return DaoTask(
        id=task.id,
        name=sanitize_string(task.name),
        progress=task.progress if task.is_applicable else None,
        comment=sanitize_string(task.comment) if task.comment else None,
        is_applicable=task.is_applicable,
        assigned_to=[sanitize_string(a) for a in task.assigned_to],
        last_updated_by=actor_id,
        last_updated_at=now or utcnow(),
    )


class DaoService:
    """Service principal des DAO.

    Description:
        Orchestre le dépôt actif, la numérotation, l'agrégateur de changements
        et les notifications. Les effets de bord (notifications, historique,
        audit) sont best-effort : un échec est journalisé sans faire échouer
        l'opération métier.

    Args:
        settings (Settings): Plafonds (pagination, reprises, lignes de résumé).
        repositories (RepositoryProvider): Sélection du stockage.
        numbering (DaoNumberGenerator): Générateur de numéros de liste.
        aggregator (DaoChangeAggregator): Changements en attente et historique.
        notifications (NotificationService): Diffusion.
        audit (AuditLogger | None): Journal d'audit.
    """

    def __init__(
        self,
        settings: Settings,
        repositories: RepositoryProvider,
        numbering: DaoNumberGenerator,
        aggregator: DaoChangeAggregator,
        notifications: NotificationService,
        audit: AuditLogger | None = None,
    ):
        self.settings = settings
        self.repositories = repositories
        self.numbering = numbering
        self.aggregator = aggregator
        self.notifications = notifications
        self.audit = audit

    async def _repo(self) -> DaoRepository:
        return await self.repositories.get_dao_repository()

    def safely(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except Exception:
            logger.exception("%s : échec ignoré", label)
            return None

    def log_action(self, action: str, actor: User | None, data: dict[str, Any] | None = None) -> None:
        if self.audit is not None:
            self.safely("audit", self.audit.log_audit, action, actor.id if actor else None, data)

    # --- Lecture ---------------------------------------------------------------

    async def get_all_daos(self) -> list[Dao]:
        repo = await self._repo()
        daos = await repo.find_all()
        return sorted(daos, key=lambda d: d.updated_at, reverse=True)

    async def get_daos(self, query: DaoQuery) -> DaoListResult:
        """Liste paginée (taille de page plafonnée à `page_size_max`)."""
        page_size = max(1, min(query.page_size, self.settings.page_size_max))
        query = query.model_copy(update={"page_size": page_size, "page": max(1, query.page)})
        repo = await self._repo()
        page = await repo.find_and_paginate(query)
        return DaoListResult(items=page.items, total=page.total, page=query.page, page_size=page_size)

    async def find_dao(self, dao_id: str) -> Dao | None:
        repo = await self._repo()
        return await repo.find_by_id(dao_id)

    async def get_dao_by_id(self, dao_id: str) -> Dao:
        dao = await self.find_dao(dao_id)
        if dao is None:
            raise NotFoundError("DAO introuvable", code="DAO_NOT_FOUND")
        return dao

    async def get_last_created_dao(self) -> Dao | None:
        repo = await self._repo()
        return await repo.get_last_created()

    async def peek_next_dao_number(self) -> str:
        return await self.numbering.peek_next()

    def list_history(self, date=None, date_from=None, date_to=None) -> list[DaoHistoryEntry]:
        return self.aggregator.list_history(date=date, date_from=date_from, date_to=date_to)

    # --- Création --------------------------------------------------------------

    async def create_dao(self, payload: DaoCreate, actor: User) -> Dao:
        """Crée un DAO avec un numéro généré côté serveur.

        Description:
            Le numéro est régénéré et l'insertion retentée (au plus
            `create_max_attempts` fois) lorsque le dépôt signale un doublon de
            `numero_liste` ; tout autre échec est propagé. Sans tâches fournies,
            la liste standard est utilisée.

        Args:
            payload (DaoCreate): Données du DAO.
            actor (User): Administrateur créateur.

        Returns:
            Dao: DAO inséré.

        Raises:
            PermissionDeniedError: Acteur non administrateur.
            ValidationFailedError: Ids de tâches en double.
            SequenceExhaustedError: Reprises épuisées.
        """
        require_admin(actor)
        now = utcnow()
        source_tasks = payload.tasks or default_tasks()
        ids = [t.id for t in source_tasks]
        if len(ids) != len(set(ids)):
            raise ValidationFailedError("Identifiants de tâches en double", code="DUPLICATE_TASK_ID")
        tasks = [clean_task(t, actor.id, now) for t in source_tasks]
        equipe = [m.model_copy(update={"name": sanitize_string(m.name)}) for m in payload.equipe]

        repo = await self._repo()
        dao_id = new_id("dao_")
        created: Dao | None = None
        for attempt in range(1, self.settings.create_max_attempts + 1):
            numero = await self.numbering.generate_next(now.year)
            candidate = Dao(
                id=dao_id,
                numero_liste=numero,
                objet_dossier=sanitize_string(payload.objet_dossier),
                reference=sanitize_string(payload.reference),
                autorite_contractante=sanitize_string(payload.autorite_contractante),
                date_depot=payload.date_depot,
                equipe=equipe,
                tasks=tasks,
                created_at=now,
                updated_at=now,
            )
            try:
                created = await repo.insert(candidate)
                break
            except DuplicateKeyError as e:
                if e.key != "numero_liste":
                    raise
                logger.warning("Numéro %s déjà pris (tentative %d), nouvelle génération", numero, attempt)
        if created is None:
            raise SequenceExhaustedError("Numéro de DAO déjà existant")

        template = tpl_dao_created(created)
        self.safely("notification création", self.notifications.notify, template)
        self.safely(
            "historique création",
            self.aggregator.record_event,
            created,
            template.title,
            template.message.split("\n"),
            "dao_created",
        )
        self.log_action("CREATE_DAO", actor, {"dao_id": created.id, "numero_liste": created.numero_liste})
        logger.info("DAO %s créé par %s", created.numero_liste, actor.id)
        return created

    # --- Mise à jour -----------------------------------------------------------

    async def save_tasks(self, dao: Dao, tasks: list[DaoTask]) -> Dao:
        repo = await self._repo()
        updated = await repo.update(dao.id, {"tasks": tasks, "updated_at": utcnow()})
        if updated is None:
            raise NotFoundError("DAO introuvable", code="DAO_NOT_FOUND")
        return updated

    async def update_dao(self, dao_id: str, payload: DaoUpdate, actor: User) -> Dao:
        """Met à jour un DAO (chef d'équipe ou admin).

        Description:
            - chaînes nettoyées (balises HTML retirées)
            - un admin non chef ne peut modifier ni progression, ni
              applicabilité, ni assignation des tâches
            - changement de chef : enregistré sur l'agrégateur et notifié
              immédiatement (sans miroir email)
            - changements de tâches : enregistrés sur l'agrégateur et notifiés
            - historique `dao_updated`, `dao_team_update` ou `dao_task_update`

        Args:
            dao_id (str): DAO à modifier.
            payload (DaoUpdate): Champs à modifier.
            actor (User): Auteur de la modification.

        Returns:
            Dao: DAO après mise à jour.
        """
        before = await self.get_dao_by_id(dao_id)
        require_writer(actor)
        require_leader_or_admin(before, actor)

        updates: dict[str, Any] = {}
        for key in ("objet_dossier", "reference", "autorite_contractante"):
            value = getattr(payload, key)
            if value is not None:
                updates[key] = sanitize_string(value)
        if payload.date_depot is not None:
            updates["date_depot"] = payload.date_depot
        if payload.equipe is not None:
            updates["equipe"] = [m.model_copy(update={"name": sanitize_string(m.name)}) for m in payload.equipe]
        if payload.tasks is not None:
            ids = [t.id for t in payload.tasks]
            if len(ids) != len(set(ids)):
                raise ValidationFailedError("Identifiants de tâches en double", code="DUPLICATE_TASK_ID")
            previous_tasks = {t.id: t for t in before.tasks}
            touched: set[str] = set()
            for task in payload.tasks:
                if task.id in previous_tasks:
                    touched |= task_changes(previous_tasks[task.id], task)
            check_leader_only_fields(before, actor, touched)
            updates["tasks"] = [clean_task(t, actor.id) for t in payload.tasks]
        updates["updated_at"] = utcnow()

        repo = await self._repo()
        updated = await repo.update(dao_id, updates)
        if updated is None:
            raise NotFoundError("DAO introuvable", code="DAO_NOT_FOUND")

        team_changed = False
        if payload.equipe is not None:
            team_changed = self.safely("équipe", self._notify_team_changes, before, updated) or False

        has_task_changes = False
        if payload.tasks is not None:
            has_task_changes = self.safely("tâches", self._record_task_changes, before, updated) or False

        changed_keys = {k for k in SCALAR_FIELDS if getattr(before, k) != getattr(updated, k)}
        if team_changed:
            changed_keys |= TEAM_KEYS
        if changed_keys:
            template = tpl_dao_updated(updated, changed_keys)
            self.safely("notification mise à jour", self.notifications.notify, template)
            event_type = "dao_team_update" if changed_keys <= TEAM_KEYS else "dao_updated"
            self.safely(
                "historique mise à jour",
                self.aggregator.record_event,
                updated,
                template.title,
                template.message.split("\n"),
                event_type,
            )
        elif has_task_changes:
            self.safely(
                "historique tâches",
                self.aggregator.record_event,
                updated,
                "Mise à jour des tâches du DAO",
                [
                    f"Numéro de liste : {updated.numero_liste}",
                    f"Le DAO {updated.numero_liste} a reçu des mises à jour de tâches.",
                ],
                "dao_task_update",
            )

        self.log_action("UPDATE_DAO", actor, {"dao_id": dao_id, "changed": sorted(changed_keys)})
        return updated

    def _notify_team_changes(self, before: Dao, after: Dao) -> bool:
        before_map = {m.id: m for m in before.equipe}
        after_map = {m.id: m for m in after.equipe}
        changes: list[str] = []
        for member_id, member in after_map.items():
            previous = before_map.get(member_id)
            if previous is None:
                changes.append(f"{member.name} ajouté")
            elif previous.role != member.role:
                changes.append(f"{member.name}: {previous.role} → {member.role}")
        for member_id, previous in before_map.items():
            if member_id not in after_map:
                changes.append(f"{previous.name} retiré")

        old_leader, new_leader = before.leader, after.leader
        if (old_leader.id if old_leader else None) != (new_leader.id if new_leader else None):
            old_name = old_leader.name if old_leader else None
            new_name = new_leader.name if new_leader else None
            self.aggregator.record_leader_change(after, old_name, new_name)
            self.notifications.notify(tpl_leader_changed(after, old_name, new_name))

        if changes:
            self.notifications.notify(tpl_team_changed(after, changes))
        return bool(changes)

    def _record_task_changes(self, before: Dao, after: Dao) -> bool:
        previous_tasks = {t.id: t for t in before.tasks}
        found = False
        for task in after.tasks:
            previous = previous_tasks.get(task.id)
            if previous is None:
                continue
            changed = task_changes(previous, task)
            if not changed:
                continue
            found = True
            self.aggregator.record_task_change(after, task, changed)
            self.notifications.notify(
                tpl_task_notification(after, task, primary_change_type(changed), comment=task.comment if "comment" in changed else None)
            )
        return found

    # --- Suppression -----------------------------------------------------------

    async def delete_dao(self, dao_id: str, actor: User) -> Dao:
        """Supprime un DAO (admin) et recalcule la marque observée de son année."""
        require_admin(actor)
        dao = await self.get_dao_by_id(dao_id)
        repo = await self._repo()
        if not await repo.delete_by_id(dao_id):
            raise NotFoundError("DAO introuvable", code="DAO_NOT_FOUND")
        await self.numbering.on_deleted(dao.numero_liste)
        self.aggregator.clear_pending(dao_id)
        self.safely("notification suppression", self.notifications.notify, tpl_dao_deleted(dao))
        self.log_action("DELETE_DAO", actor, {"dao_id": dao_id, "numero_liste": dao.numero_liste})
        return dao

    async def delete_last_created_dao(self, actor: User) -> Dao:
        require_admin(actor)
        last = await self.get_last_created_dao()
        if last is None:
            raise NotFoundError("Aucun DAO à supprimer", code="NO_DAO")
        return await self.delete_dao(last.id, actor)

    async def clear_all(self, actor: User) -> None:
        require_admin(actor)
        repo = await self._repo()
        await repo.delete_all()
        self.numbering.reset()
        self.aggregator.clear_all_pending()
        self.log_action("CLEAR_ALL_DAOS", actor)

    async def verify_integrity(self, actor: User) -> dict[str, Any]:
        """Vérifie l'intégrité du stockage mémoire (no-op pour MongoDB)."""
        require_admin(actor)
        repo = await self._repo()
        check = getattr(repo, "verify_integrity", None)
        report = check() if check is not None else None
        daos = await self.get_all_daos()
        self.log_action("VERIFY_INTEGRITY", actor, {"ok": report.ok if report else True})
        return {
            "integrity_check": "PASSÉ" if report is None or report.ok else "ÉCHOUÉ",
            "backend": self.repositories.backend.value if self.repositories.backend else None,
            "report": report.model_dump() if report else None,
            "total_daos": len(daos),
            "daos": [
                {"id": d.id, "numero_liste": d.numero_liste, "objet_dossier": d.objet_dossier[:50]}
                for d in daos
            ],
            "timestamp": utcnow_iso(),
        }

    # --- Validation ------------------------------------------------------------

    async def validate_changes(self, dao_id: str, actor: User) -> ValidationOutcome:
        """Vide les changements en attente du DAO et diffuse une notification unique.

        Returns:
            ValidationOutcome: Résumé et id d'historique, ou « Aucune modification ».
        """
        require_writer(actor)
        dao = await self.get_dao_by_id(dao_id)
        result = self.aggregator.aggregate_and_clear(dao, self.settings.aggregate_max_lines)
        if result is None:
            return ValidationOutcome(ok=True, message="Aucune modification")

        template = tpl_dao_aggregated_update(dao, result.summary.lines)
        self.safely("notification validation", self.notifications.notify, template)
        self.log_action("VALIDATE_DAO_CHANGES", actor, {"dao_id": dao_id, "history_id": result.history.id})
        return ValidationOutcome(ok=True, summary=result.summary, history_id=result.history.id)
