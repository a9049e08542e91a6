# backend/app/services/notification_service.py
# Diffusion des notifications : anneau mémoire, persistance et miroir email en tâches de fond.

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from app.core.settings import Settings
from app.core.utils import new_id, utcnow_iso
from app.models.notification import (
    ALL_RECIPIENTS,
    ClientNotification,
    NotificationType,
    PersistedNotification,
    Recipients,
    ServerNotification,
)
from app.repositories.base import NotificationRepository
from app.services.notification_templates import NotificationTemplate, tpl_mail_failure

logger = logging.getLogger(__name__)

EnqueueFn = Callable[[list[str], str, str, str | None], Awaitable[Any]]
ResolveEmailsFn = Callable[[Recipients], Awaitable[list[str]]]
RepoGetter = Callable[[], Awaitable[NotificationRepository]]


class NotificationService:
    """Anneau de notifications serveur avec effets de bord non bloquants.

    Description:
        `add` insère la notification en tête de l'anneau (plafonné à
        `notifications_max_items`) et rend la main immédiatement. La
        persistance puis le miroir email sont lancés dans une tâche détachée ;
        leurs échecs sont journalisés et ne remontent jamais à l'appelant. Un
        échec du miroir produit une notification `system` marquée
        `skip_email_mirror`, qui ne peut donc pas boucler.

    Args:
        settings (Settings): Plafonds, taille des lots et diffusion globale.
        get_repository (Callable | None): Dépôt de persistance.
        enqueue_mail (Callable | None): Mise en file d'un email.
        resolve_emails (Callable | None): Destinataires → adresses email.
    """

    def __init__(
        self,
        settings: Settings,
        get_repository: RepoGetter | None = None,
        enqueue_mail: EnqueueFn | None = None,
        resolve_emails: ResolveEmailsFn | None = None,
    ):
        self.settings = settings
        self.max_items = settings.notifications_max_items
        self._get_repository = get_repository
        self._enqueue_mail = enqueue_mail
        self._resolve_emails = resolve_emails
        self._items: list[ServerNotification] = []
        self._tasks: set[asyncio.Task] = set()

    @property
    def items(self) -> list[ServerNotification]:
        return list(self._items)

    # --- Effets de bord ------------------------------------------------------

    def _spawn(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Attend la fin des tâches détachées (y compris celles qu'elles créent)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _persist(self, item: ServerNotification) -> None:
        if self._get_repository is None:
            return
        try:
            repo = await self._get_repository()
            await repo.add(PersistedNotification.from_server(item))
        except Exception as e:
            logger.warning("Persistance de la notification %s impossible: %s", item.id, e)

    async def _mirror(self, item: ServerNotification) -> None:
        if item.skip_email_mirror or self._enqueue_mail is None:
            return
        try:
            emails = await self._resolve_emails(item.recipients) if self._resolve_emails else []
            if not emails:
                logger.info("Miroir email : aucun destinataire (%s)", item.type)
                return
            batch_size = max(1, self.settings.smtp_batch_size)
            for i in range(0, len(emails), batch_size):
                await self._enqueue_mail(emails[i : i + batch_size], item.title, item.message, item.type)
            logger.info("Miroir email en file (%s, %d destinataire(s))", item.type, len(emails))
        except Exception as e:
            logger.error("Échec du miroir email (%s): %s", item.type, e)
            self.notify(tpl_mail_failure(item.title, str(e)))

    async def _side_effects(self, item: ServerNotification) -> None:
        await self._persist(item)
        await self._mirror(item)

    # --- API -----------------------------------------------------------------

    def add(
        self,
        type: NotificationType,
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
        recipients: Recipients = ALL_RECIPIENTS,
    ) -> ServerNotification:
        """Ajoute une notification et déclenche persistance et miroir email.

        Args:
            type (str): Type de notification.
            title (str): Titre (sujet de l'email miroir).
            message (str): Corps.
            data (dict | None): Données structurées (`skip_email_mirror`...).
            recipients (str | list[str]): "all" ou ids utilisateurs.

        Returns:
            ServerNotification: Notification créée.
        """
        item = ServerNotification(
            id=new_id("srv_notif_"),
            type=type,
            title=title,
            message=message,
            data=dict(data or {}),
            recipients=ALL_RECIPIENTS if self.settings.email_broadcast_all else recipients,
            created_at=utcnow_iso(),
        )
        self._items.insert(0, item)
        del self._items[self.max_items :]
        self._spawn(self._side_effects(item))
        return item

    def broadcast(
        self,
        type: NotificationType,
        title: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> ServerNotification:
        return self.add(type, title, message, data, recipients=ALL_RECIPIENTS)

    def notify(self, template: NotificationTemplate, recipients: Recipients = ALL_RECIPIENTS) -> ServerNotification:
        return self.add(template.type, template.title, template.message, template.data, recipients)

    def list_for_user(self, user_id: str) -> list[ClientNotification]:
        visible = [n for n in self._items if n.is_recipient(user_id)]
        visible.sort(key=lambda n: n.created_at, reverse=True)
        return [
            ClientNotification(
                id=n.id,
                type=n.type,
                title=n.title,
                message=n.message,
                data=n.data,
                created_at=n.created_at,
                read=user_id in n.read_by,
            )
            for n in visible[: self.settings.notifications_list_limit]
        ]

    async def _persist_call(self, label: str, call: Callable[[NotificationRepository], Awaitable[Any]]) -> None:
        if self._get_repository is None:
            return
        try:
            await call(await self._get_repository())
        except Exception as e:
            logger.warning("Persistance (%s) impossible: %s", label, e)

    def mark_read(self, user_id: str, notification_id: str) -> bool:
        item = next((n for n in self._items if n.id == notification_id), None)
        if item is None or not item.is_recipient(user_id):
            return False
        item.read_by.add(user_id)
        self._spawn(self._persist_call("lecture", lambda repo: repo.mark_read(user_id, notification_id)))
        return True

    def mark_all_read(self, user_id: str) -> int:
        count = 0
        for item in self._items:
            if item.is_recipient(user_id) and user_id not in item.read_by:
                item.read_by.add(user_id)
                count += 1
        self._spawn(self._persist_call("lecture globale", lambda repo: repo.mark_all_read(user_id)))
        return count

    def clear_all(self) -> None:
        self._items = []
        self._spawn(self._persist_call("vidage", lambda repo: repo.clear_all()))
