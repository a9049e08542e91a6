# backend/app/models/comment.py
# Schémas des commentaires de tâches.

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field

from app.core.utils import utcnow


class TaskComment(BaseModel):
    """Commentaire posté sur une tâche d'un DAO.

    Attributes:
        id (str): Identifiant (`comment_...`).
        task_id (int): Tâche concernée.
        dao_id (str): DAO concerné.
        user_id (str): Auteur.
        user_name (str): Nom de l'auteur au moment de l'écriture.
        content (str): Contenu.
        created_at (datetime): Création (UTC).
    """

    id: str
    task_id: int
    dao_id: str
    user_id: str
    user_name: str
    content: str
    created_at: dt.datetime = Field(default_factory=utcnow)


class CommentCreate(BaseModel):
    dao_id: str = Field(min_length=1, max_length=100)
    task_id: int = Field(ge=1)
    content: str = Field(min_length=1, max_length=1000)


class CommentUpdate(BaseModel):
    content: str = Field(min_length=1, max_length=1000)
