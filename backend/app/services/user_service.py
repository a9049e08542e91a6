# backend/app/services/user_service.py
# Gestion des utilisateurs : lecture, création/rôle/désactivation (admin), admin de bootstrap et résolution d'emails.

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from app.core.exceptions import NotFoundError, ValidationFailedError
from app.core.settings import Settings
from app.core.utils import new_id, sanitize_string
from app.models.notification import ALL_RECIPIENTS, Recipients
from app.models.user import User, UserCreate, UserRole
from app.repositories.base import UserRepository
from app.services.access import require_admin
from app.services.notification_service import NotificationService
from app.services.notification_templates import tpl_user_created

logger = logging.getLogger(__name__)


class UserService:
    """Service utilisateurs.

    Args:
        settings (Settings): Identité de l'administrateur de bootstrap.
        get_repository (Callable): Dépôt utilisateurs actif.
        notifications (NotificationService | None): Diffusion des créations.
    """

    def __init__(
        self,
        settings: Settings,
        get_repository: Callable[[], Awaitable[UserRepository]],
        notifications: NotificationService | None = None,
    ):
        self.settings = settings
        self._get_repository = get_repository
        self.notifications = notifications

    async def list_users(self) -> list[User]:
        repo = await self._get_repository()
        return await repo.list_active()

    async def find_user(self, user_id: str) -> User | None:
        repo = await self._get_repository()
        return await repo.find_by_id(user_id)

    async def get_user(self, user_id: str) -> User:
        user = await self.find_user(user_id)
        if user is None:
            raise NotFoundError("Utilisateur introuvable", code="USER_NOT_FOUND")
        return user

    async def create_user(self, payload: UserCreate, actor: User) -> User:
        """Crée un utilisateur (admin).

        Description:
            L'email est unique parmi les comptes actifs : une création sur un
            email existant met à jour le compte en place.

        Args:
            payload (UserCreate): Nom, email, rôle, id optionnel.
            actor (User): Administrateur à l'origine de l'action.

        Returns:
            User: Utilisateur créé (ou fusionné).
        """
        require_admin(actor)
        repo = await self._get_repository()
        user = User(
            id=payload.id or new_id("user_"),
            name=sanitize_string(payload.name),
            email=payload.email.lower(),
            role=payload.role,
            is_super_admin=payload.is_super_admin,
        )
        created = await repo.create(user)
        if self.notifications is not None:
            self.notifications.notify(tpl_user_created(created.name, actor.name))
        return created

    async def update_role(self, user_id: str, role: UserRole, actor: User) -> User:
        require_admin(actor)
        if user_id == actor.id and role != "admin":
            raise ValidationFailedError("Un administrateur ne peut pas retirer son propre rôle")
        repo = await self._get_repository()
        updated = await repo.update_by_id(user_id, {"role": role})
        if updated is None:
            raise NotFoundError("Utilisateur introuvable", code="USER_NOT_FOUND")
        return updated

    async def deactivate_user(self, user_id: str, actor: User) -> None:
        require_admin(actor)
        if user_id == actor.id:
            raise ValidationFailedError("Un administrateur ne peut pas se désactiver lui-même")
        repo = await self._get_repository()
        if not await repo.deactivate_by_id(user_id):
            raise NotFoundError("Utilisateur introuvable", code="USER_NOT_FOUND")

    async def ensure_admin(self) -> User:
        """Garantit la présence de l'administrateur configuré (idempotent)."""
        repo = await self._get_repository()
        existing = await repo.find_by_id(self.settings.admin_id)
        if existing is not None:
            return existing
        admin = User(
            id=self.settings.admin_id,
            name=self.settings.admin_name,
            email=self.settings.admin_email,
            role="admin",
            is_super_admin=True,
        )
        created = await repo.create(admin)
        logger.info("Administrateur de bootstrap créé (%s)", created.id)
        return created

    async def emails_for(self, recipients: Recipients) -> list[str]:
        """Adresses email des destinataires actifs ("all" ou liste d'ids)."""
        users = await self.list_users()
        if recipients != ALL_RECIPIENTS:
            wanted = set(recipients)
            users = [u for u in users if u.id in wanted]
        return [u.email for u in users if u.email]
