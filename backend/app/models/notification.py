# backend/app/models/notification.py
# Schémas des notifications serveur (mémoire, persistées et vue client).

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

NotificationType = Literal[
    "role_update",
    "task_notification",
    "dao_created",
    "dao_updated",
    "dao_deleted",
    "user_created",
    "system",
]

ALL_RECIPIENTS = "all"
Recipients = Literal["all"] | list[str]


class ServerNotification(BaseModel):
    """Notification conservée dans l'anneau mémoire.

    Description:
        Seul l'ensemble `read_by` évolue après création ; les autres champs
        ne sont jamais modifiés.

    Attributes:
        id (str): Identifiant (`srv_notif_...`).
        type (str): Type de notification.
        title (str): Titre.
        message (str): Corps (lignes séparées par `\\n`).
        data (dict): Données structurées (ex. `skip_email_mirror`).
        recipients (str | list[str]): "all" ou liste d'ids utilisateurs.
        read_by (set[str]): Utilisateurs l'ayant lue.
        created_at (str): Horodatage ISO-8601 UTC.
    """

    id: str
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    recipients: Recipients = ALL_RECIPIENTS
    read_by: set[str] = Field(default_factory=set)
    created_at: str

    def is_recipient(self, user_id: str) -> bool:
        return self.recipients == ALL_RECIPIENTS or user_id in self.recipients

    @property
    def skip_email_mirror(self) -> bool:
        return bool(self.data.get("skip_email_mirror"))


class PersistedNotification(BaseModel):
    """Forme stockée par les dépôts (ensemble `read_by` sérialisé en liste)."""

    id: str
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    recipients: Recipients = ALL_RECIPIENTS
    read_by: list[str] = Field(default_factory=list)
    created_at: str

    @classmethod
    def from_server(cls, item: ServerNotification) -> PersistedNotification:
        return cls(**item.model_dump(exclude={"read_by"}), read_by=sorted(item.read_by))

    def is_recipient(self, user_id: str) -> bool:
        return self.recipients == ALL_RECIPIENTS or user_id in self.recipients


class ClientNotification(BaseModel):
    """Vue d'une notification pour un utilisateur donné."""

    id: str
    type: NotificationType
    title: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    created_at: str
    read: bool
