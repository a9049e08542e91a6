# backend/app/services/access.py
# Règles d'autorisation métier : admin, lecture seule, chef d'équipe d'un DAO.

from __future__ import annotations

from typing import Iterable

from app.core.exceptions import PermissionDeniedError
from app.models.dao import Dao
from app.models.user import User

LEADER_ONLY_TASK_FIELDS = ("progress", "is_applicable", "assigned_to")


def require_admin(user: User) -> None:
    if not user.is_admin:
        raise PermissionDeniedError("Accès réservé aux administrateurs", code="ADMIN_REQUIRED")


def require_writer(user: User) -> None:
    if user.role == "viewer":
        raise PermissionDeniedError("Compte en lecture seule", code="READ_ONLY")


def require_leader_or_admin(dao: Dao, user: User) -> None:
    """Autorise le chef d'équipe du DAO ou un administrateur."""
    if user.is_admin or dao.is_leader(user.id):
        return
    raise PermissionDeniedError("Réservé au chef d'équipe ou à un administrateur", code="LEADER_REQUIRED")


def is_admin_not_leader(dao: Dao, user: User) -> bool:
    return user.is_admin and not dao.is_leader(user.id)


def check_leader_only_fields(dao: Dao, user: User, touched: Iterable[str]) -> None:
    """Un admin qui n'est pas chef ne peut toucher ni progression, ni applicabilité, ni assignation."""
    if not is_admin_not_leader(dao, user):
        return
    if not set(touched) & set(LEADER_ONLY_TASK_FIELDS):
        return
    raise PermissionDeniedError(
        "Seul le chef d'équipe peut modifier la progression, l'applicabilité ou l'assignation",
        code="ADMIN_NOT_LEADER_FORBIDDEN",
    )
