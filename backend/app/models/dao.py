# backend/app/models/dao.py
# Schémas DAO : membres d'équipe, tâches, document DAO, payloads de création/mise à jour et helpers de progression.

from __future__ import annotations

import datetime as dt
import math
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from app.core.utils import ensure_utc, utcnow

TeamRole = Literal["chef_equipe", "membre_equipe"]
DaoStatus = Literal["completed", "urgent", "safe", "default"]

NUMERO_PREFIX = "DAO"


class TeamMember(BaseModel):
    """Membre d'équipe d'un DAO.

    Attributes:
        id (str): Identifiant utilisateur du membre.
        name (str): Nom affiché.
        role (str): `chef_equipe` ou `membre_equipe`.
        email (EmailStr | None): Email optionnel.
    """

    id: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1, max_length=100)
    role: TeamRole = "membre_equipe"
    email: EmailStr | None = None


class DaoTask(BaseModel):
    """Tâche d'un DAO.

    Description:
        La progression (0–100) n'a de sens que si la tâche est applicable ;
        elle est forcée à `None` sinon.

    Attributes:
        id (int): Identifiant unique dans le DAO.
        name (str): Libellé.
        progress (int | None): Avancement, `None` si non applicable.
        comment (str | None): Commentaire court.
        is_applicable (bool): Applicabilité.
        assigned_to (list[str]): Membres assignés.
        last_updated_by (str | None): Auteur de la dernière modification.
        last_updated_at (datetime | None): Date de la dernière modification.
    """

    id: int = Field(ge=1)
    name: str = Field(min_length=1, max_length=200)
    progress: int | None = Field(default=None, ge=0, le=100)
    comment: str | None = Field(default=None, max_length=1000)
    is_applicable: bool = True
    assigned_to: list[str] = Field(default_factory=list)
    last_updated_by: str | None = None
    last_updated_at: dt.datetime | None = None

    @model_validator(mode="after")
    def _progress_only_when_applicable(self) -> DaoTask:
        if not self.is_applicable:
            self.progress = None
        return self


def _check_single_leader(equipe: list[TeamMember]) -> list[TeamMember]:
    leaders = [m for m in equipe if m.role == "chef_equipe"]
    if len(leaders) > 1:
        raise ValueError("Une équipe ne peut avoir qu'un seul chef d'équipe")
    return equipe


def _as_utc(value: dt.datetime | None) -> dt.datetime | None:
    return ensure_utc(value) if value is not None else None


class Dao(BaseModel):
    """Document DAO (Dossier d'Appel d'Offres).

    Attributes:
        id (str): Identifiant technique.
        numero_liste (str): Numéro lisible `DAO-<année>-<seq>`, unique.
        objet_dossier (str): Objet du dossier.
        reference (str): Référence.
        autorite_contractante (str): Autorité contractante.
        date_depot (datetime): Date de dépôt (UTC).
        equipe (list[TeamMember]): Équipe (0 ou 1 chef).
        tasks (list[DaoTask]): Tâches ordonnées.
        created_at (datetime): Création (UTC).
        updated_at (datetime): Dernière mise à jour (UTC).
    """

    id: str
    numero_liste: str
    objet_dossier: str
    reference: str
    autorite_contractante: str
    date_depot: dt.datetime
    equipe: list[TeamMember] = Field(default_factory=list)
    tasks: list[DaoTask] = Field(default_factory=list)
    created_at: dt.datetime = Field(default_factory=utcnow)
    updated_at: dt.datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("equipe")
    @classmethod
    def _one_leader(cls, v: list[TeamMember]) -> list[TeamMember]:
        return _check_single_leader(v)

    @field_validator("date_depot", "created_at", "updated_at")
    @classmethod
    def _utc(cls, v: dt.datetime) -> dt.datetime:
        return ensure_utc(v)

    @property
    def leader(self) -> TeamMember | None:
        return next((m for m in self.equipe if m.role == "chef_equipe"), None)

    def is_leader(self, user_id: str) -> bool:
        leader = self.leader
        return leader is not None and leader.id == user_id

    def find_task(self, task_id: int) -> DaoTask | None:
        return next((t for t in self.tasks if t.id == task_id), None)


class DaoCreate(BaseModel):
    """Payload de création d'un DAO (le numéro est toujours généré côté serveur)."""

    objet_dossier: str = Field(min_length=1, max_length=500)
    reference: str = Field(min_length=1, max_length=200)
    autorite_contractante: str = Field(min_length=1, max_length=200)
    date_depot: dt.datetime
    equipe: list[TeamMember] = Field(min_length=1, max_length=20)
    tasks: list[DaoTask] | None = Field(default=None, max_length=50)

    @field_validator("equipe")
    @classmethod
    def _one_leader(cls, v: list[TeamMember]) -> list[TeamMember]:
        return _check_single_leader(v)

    @field_validator("date_depot")
    @classmethod
    def _utc(cls, v: dt.datetime) -> dt.datetime:
        return ensure_utc(v)


class DaoUpdate(BaseModel):
    """Payload de mise à jour partielle d'un DAO."""

    objet_dossier: str | None = Field(default=None, min_length=1, max_length=500)
    reference: str | None = Field(default=None, min_length=1, max_length=200)
    autorite_contractante: str | None = Field(default=None, min_length=1, max_length=200)
    date_depot: dt.datetime | None = None
    equipe: list[TeamMember] | None = Field(default=None, min_length=1, max_length=20)
    tasks: list[DaoTask] | None = Field(default=None, max_length=50)

    @field_validator("equipe")
    @classmethod
    def _one_leader(cls, v: list[TeamMember] | None) -> list[TeamMember] | None:
        return _check_single_leader(v) if v is not None else v

    @field_validator("date_depot")
    @classmethod
    def _utc(cls, v: dt.datetime | None) -> dt.datetime | None:
        return _as_utc(v)


class TaskCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    is_applicable: bool = True
    progress: int | None = Field(default=None, ge=0, le=100)
    comment: str | None = Field(default=None, max_length=1000)
    assigned_to: list[str] = Field(default_factory=list)


class TaskUpdate(BaseModel):
    """Mise à jour d'une tâche : seuls les champs fournis sont appliqués."""

    progress: int | None = Field(default=None, ge=0, le=100)
    comment: str | None = Field(default=None, max_length=1000)
    is_applicable: bool | None = None
    assigned_to: list[str] | None = None


class TaskRename(BaseModel):
    name: str = Field(min_length=1, max_length=200)


class TaskReorder(BaseModel):
    task_ids: list[int] = Field(min_length=1)


DEFAULT_TASK_NAMES: list[str] = [
    "Résumé sommaire DAO et Création du drive",
    "Demande de caution et garanties",
    "Identification et renseignement des profils dans le drive",
    "Identification et renseignement des ABE dans le drive",
    "Légalisation des ABE, diplômes, certificats, attestations et pièces administratives requis",
    "Indication directive d'élaboration de l'offre financier",
    "Elaboration de la méthodologie",
    "Planification prévisionnelle",
    "Identification des références précises des équipements et matériels",
    "Demande de cotation",
    "Elaboration du squelette des offres",
    "Rédaction du contenu des OF et OT",
    "Contrôle et validation des offres",
    "Impression et présentation des offres (Valider l'étiquette)",
    "Dépôt des offres et clôture",
]


def default_tasks() -> list[DaoTask]:
    """Liste de tâches standard d'un nouveau DAO (toutes applicables, sans progression)."""
    return [DaoTask(id=i, name=name) for i, name in enumerate(DEFAULT_TASK_NAMES, start=1)]


def calculate_dao_progress(tasks: list[DaoTask]) -> int:
    """Progression moyenne des tâches applicables (None compte 0), arrondie."""
    applicable = [t for t in tasks if t.is_applicable]
    if not applicable:
        return 0
    average = sum(t.progress or 0 for t in applicable) / len(applicable)
    # Arrondi « half up » comme côté client
    return int(math.floor(average + 0.5))


def calculate_dao_status(date_depot: dt.datetime, progress: int, now: dt.datetime | None = None) -> DaoStatus:
    """Statut d'échéance d'un DAO.

    Description:
        - `completed` si progression ≥ 100
        - `safe` si dépôt dans 5 jours ou plus
        - `urgent` si dépôt dans 3 jours ou moins
        - `default` sinon

    Args:
        date_depot (datetime): Date de dépôt.
        progress (int): Progression globale (0–100).
        now (datetime | None): Instant de référence (UTC par défaut).

    Returns:
        str: Statut calculé.
    """
    if progress >= 100:
        return "completed"
    reference = now or utcnow()
    days = math.ceil((ensure_utc(date_depot) - ensure_utc(reference)).total_seconds() / 86400)
    if days >= 5:
        return "safe"
    if days <= 3:
        return "urgent"
    return "default"
