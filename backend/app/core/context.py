# backend/app/core/context.py
# Contexte applicatif de durée de vie du processus : stockage, agrégation, notifications et services.

from __future__ import annotations

import logging

from fastapi import Request

from app.core.idempotency import IdempotencyCache
from app.core.logging_config import AuditLogger
from app.core.settings import Settings
from app.models.user import User
from app.repositories.selector import RepositoryProvider
from app.services.change_log import DaoChangeAggregator
from app.services.comment_service import CommentService
from app.services.dao_numbering import DaoNumberGenerator
from app.services.dao_service import DaoService
from app.services.history_store import DaoHistoryStore
from app.services.mail_queue import MailJob, MailQueue, SendFn
from app.services.notification_service import NotificationService
from app.services.notification_templates import tpl_mail_job_failed
from app.services.task_service import TaskService
from app.services.user_service import UserService

logger = logging.getLogger(__name__)


class AppContext:
    """État partagé construit une fois au démarrage.

    Description:
        Regroupe les objets à état (changements en attente, historique,
        anneau de notifications, file d'emails, cache d'idempotence) et les
        services qui les utilisent. Rien n'est stocké au niveau module :
        l'état vit et meurt avec le contexte.

    Args:
        settings (Settings): Configuration.
        repositories (RepositoryProvider | None): Sélecteur de stockage
            (construit depuis les settings par défaut).
        audit (AuditLogger | None): Journal d'audit.
        mail_sender (Callable | None): Envoi effectif des emails (SMTP par défaut).
    """

    def __init__(
        self,
        settings: Settings,
        repositories: RepositoryProvider | None = None,
        audit: AuditLogger | None = None,
        mail_sender: SendFn | None = None,
    ):
        self.settings = settings
        self.audit = audit
        self.repositories = repositories or RepositoryProvider(settings)

        self.history = DaoHistoryStore(max_per_day=settings.history_max_per_day)
        self.aggregator = DaoChangeAggregator(self.history, max_lines=settings.aggregate_max_lines)
        self.numbering = DaoNumberGenerator(self.repositories.get_dao_repository)
        self.idempotency = IdempotencyCache(ttl_s=settings.idempotency_ttl_s)

        self.mail_queue = MailQueue(settings, sender=mail_sender, on_final_failure=self._on_mail_failed)
        self.users = UserService(settings, self.repositories.get_user_repository)
        self.notifications = NotificationService(
            settings,
            get_repository=self.repositories.get_notification_repository,
            enqueue_mail=self.mail_queue.enqueue,
            resolve_emails=self.users.emails_for,
        )
        self.users.notifications = self.notifications

        self.daos = DaoService(
            settings,
            self.repositories,
            self.numbering,
            self.aggregator,
            self.notifications,
            audit=audit,
        )
        self.tasks = TaskService(self.daos)
        self.comments = CommentService(self.repositories.get_comment_repository, self.daos)

    async def _on_mail_failed(self, job: MailJob) -> None:
        self.notifications.notify(tpl_mail_job_failed(job.id, len(job.to), job.last_error))

    async def reset_data(self, actor: User) -> dict[str, int]:
        """Réinitialise les données applicatives (admin).

        Description:
            Supprime DAO, commentaires, historique, notifications, jobs d'emails
            et clés d'idempotence, et remet la numérotation à zéro. Les comptes
            utilisateurs sont conservés.

        Args:
            actor (User): Administrateur à l'origine de la demande.

        Returns:
            dict[str, int]: Volumes supprimés par catégorie.

        Raises:
            PermissionDeniedError: Si `actor` n'est pas admin.
        """
        daos = len(await self.daos.get_all_daos())
        await self.daos.clear_all(actor)
        comments = await self.repositories.get_comment_repository()
        await comments.delete_all()
        history = self.history.count()
        self.history.clear()
        notifications = len(self.notifications.items)
        self.notifications.clear_all()
        mails = self.mail_queue.clear()
        self.idempotency.clear()
        logger.warning("Données réinitialisées par %s", actor.id)
        return {"daos": daos, "history": history, "notifications": notifications, "mail_jobs": mails}

    async def startup(self) -> None:
        backend = await self.repositories.resolve()
        await self.users.ensure_admin()
        self.mail_queue.start()
        logger.info("Contexte prêt (stockage : %s)", backend.value)

    async def shutdown(self) -> None:
        await self.mail_queue.stop()
        await self.notifications.drain()
        self.repositories.close()


def get_context(request: Request) -> AppContext:
    """Dépendance FastAPI : contexte applicatif courant."""
    return request.app.state.context
