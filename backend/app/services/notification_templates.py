# backend/app/services/notification_templates.py
# Gabarits (français) des notifications DAO, tâches, équipe et système.

from __future__ import annotations

import datetime as dt
from typing import Any, Iterable, Literal

from pydantic import BaseModel, Field

from app.core.utils import ensure_utc, utcnow
from app.models.dao import Dao, DaoTask
from app.models.notification import NotificationType

TaskChangeType = Literal["progress", "applicability", "assignees", "comment", "general"]

# Accord des libellés modifiés (féminin / pluriel)
_FEMININE = {"reference", "autorite_contractante", "date_depot"}
_PLURAL = {"membres"}


class NotificationTemplate(BaseModel):
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)


def format_date_fr(value: dt.datetime | None = None) -> str:
    """Date/heure `JJ/MM/AAAA - HHhMM` (UTC)."""
    value = ensure_utc(value or utcnow())
    return value.strftime("%d/%m/%Y - %Hh%M")


def format_date_fr_date_only(value: dt.datetime | None = None) -> str:
    return ensure_utc(value or utcnow()).strftime("%d/%m/%Y")


def _team(dao: Dao) -> tuple[str, str]:
    leader = dao.leader
    members = [m.name for m in dao.equipe if m.role != "chef_equipe"]
    return (leader.name if leader else "Non défini", ", ".join(members) if members else "Aucun")


def dao_summary_lines(dao: Dao, changed: Iterable[str] = ()) -> list[str]:
    """Lignes de présentation d'un DAO, les champs modifiés étant signalés."""
    changed = set(changed)
    chef, membres = _team(dao)

    def tag(key: str, label: str) -> str:
        if key not in changed:
            return f"{label} :"
        suffix = " modifiée" if key in _FEMININE else " modifiés" if key in _PLURAL else " modifié"
        return f"{label}{suffix} :"

    return [
        f"{tag('numero_liste', 'Numéro de liste')} {dao.numero_liste}",
        f"{tag('reference', 'Référence')} {dao.reference}",
        f"{tag('objet_dossier', 'Objet du dossier')} {dao.objet_dossier}",
        f"{tag('autorite_contractante', 'Autorité contractante')} {dao.autorite_contractante}",
        f"{tag('chef', 'Chef d’équipe')} {chef}",
        f"{tag('membres', 'Membres')} {membres}",
        f"{tag('date_depot', 'Date de dépôt')} {format_date_fr_date_only(dao.date_depot)}",
    ]


def tpl_dao_created(dao: Dao) -> NotificationTemplate:
    return NotificationTemplate(
        type="dao_created",
        title="Création d’un DAO",
        message="\n".join(dao_summary_lines(dao)),
        data={"event": "dao_created", "dao_id": dao.id},
    )


def tpl_dao_updated(dao: Dao, changed: Iterable[str]) -> NotificationTemplate:
    changed = sorted(set(changed))
    return NotificationTemplate(
        type="dao_updated",
        title="Mise à jour d’un DAO",
        message="\n".join(dao_summary_lines(dao, changed)),
        data={"event": "dao_updated", "dao_id": dao.id, "changed": changed},
    )


def tpl_dao_deleted(dao: Dao) -> NotificationTemplate:
    return NotificationTemplate(
        type="dao_deleted",
        title="Suppression DAO",
        message="\n".join(dao_summary_lines(dao)),
        data={"event": "dao_deleted", "dao_id": dao.id},
    )


def tpl_dao_aggregated_update(dao: Dao, lines: list[str]) -> NotificationTemplate:
    return NotificationTemplate(
        type="dao_updated",
        title="Mise à jour DAO",
        message="\n".join(lines),
        data={"event": "dao_aggregated_update", "dao_id": dao.id},
    )


def tpl_leader_changed(dao: Dao, old_leader: str | None, new_leader: str | None) -> NotificationTemplate:
    lines = [
        f"Numéro de liste : {dao.numero_liste}",
        f"Ancien Chef d'équipe : {old_leader or 'Non défini'}",
        f"Nouveau Chef d'équipe : {new_leader or 'Non défini'}",
    ]
    return NotificationTemplate(
        type="role_update",
        title="Changement de chef d'équipe",
        message="\n".join(lines),
        data={"event": "leader_changed", "dao_id": dao.id, "skip_email_mirror": True},
    )


def tpl_team_changed(dao: Dao, changes: list[str]) -> NotificationTemplate:
    lines = [f"Numéro de liste : {dao.numero_liste}", ", ".join(changes)]
    return NotificationTemplate(
        type="role_update",
        title="Modification de l'équipe",
        message="\n".join(lines),
        data={"event": "team_changed", "dao_id": dao.id, "changes": changes, "skip_email_mirror": True},
    )


def tpl_task_notification(
    dao: Dao,
    task: DaoTask,
    change_type: TaskChangeType,
    added: list[str] | None = None,
    removed: list[str] | None = None,
    comment: str | None = None,
) -> NotificationTemplate:
    """Notification immédiate de mise à jour d'une tâche.

    Args:
        dao (Dao): DAO parent.
        task (DaoTask): Tâche après modification.
        change_type (str): Nature principale du changement.
        added (list[str] | None): Membres assignés ajoutés.
        removed (list[str] | None): Membres assignés retirés.
        comment (str | None): Commentaire à citer.

    Returns:
        NotificationTemplate: Type `task_notification`.
    """
    lines = [
        "Mise à jour d’une tâche",
        f"Numéro de liste : {dao.numero_liste}",
        f"Autorité contractante : {dao.autorite_contractante}",
        f"Date de dépôt : {format_date_fr_date_only(dao.date_depot)}",
        f"Nom de la Tâche : {task.name}",
        f"Numéro de la Tâche : {task.id}",
    ]
    if isinstance(task.progress, int):
        label = "Progression modifiée" if change_type == "progress" else "Progression"
        lines.append(f"{label} : {task.progress}%")

    applicable = "Oui" if task.is_applicable else "Non"
    label = "Applicabilité modifiée" if change_type == "applicability" else "Applicabilité"
    lines.append(f"{label} : {applicable}")

    if change_type == "assignees":
        names = {m.id: m.name for m in dao.equipe}
        lines.append(f"Membres assignés modifiés: {', '.join(names.get(i, i) for i in task.assigned_to)}")

    if comment and comment.strip():
        lines.append(f'Commentaire : "{comment.strip()}"')

    return NotificationTemplate(
        type="task_notification",
        title="Mise à jour d’une tâche",
        message="\n".join(lines),
        data={
            "event": "task_notification",
            "dao_id": dao.id,
            "task_id": task.id,
            "change_type": change_type,
            "added": added or [],
            "removed": removed or [],
        },
    )


def tpl_mail_failure(subject: str, error: str) -> NotificationTemplate:
    return NotificationTemplate(
        type="system",
        title="Erreur d'envoi d'email",
        message=f"Sujet : {subject}\nErreur : {error}",
        data={"event": "mail_failure", "skip_email_mirror": True},
    )


def tpl_user_created(user_name: str, actor_name: str) -> NotificationTemplate:
    return NotificationTemplate(
        type="user_created",
        title="Création d’un utilisateur",
        message=f"Utilisateur : {user_name}\nAction effectuée par : {actor_name}\nDate : {format_date_fr()}",
        data={"event": "user_created", "skip_email_mirror": True},
    )


def tpl_mail_job_failed(job_id: str, recipients_count: int, last_error: str | None) -> NotificationTemplate:
    return NotificationTemplate(
        type="system",
        title="Erreur d'envoi d'email",
        message=f"Échec d'envoi d'email vers {recipients_count} destinataire(s). Voir logs.",
        data={
            "event": "mail_failure",
            "skip_email_mirror": True,
            "job_id": job_id,
            "last_error": last_error,
        },
    )
