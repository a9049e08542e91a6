# backend/app/services/mail_queue.py
# File d'envoi d'emails en mémoire : tentatives avec backoff exponentiel et boucle de traitement en tâche de fond.

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from pydantic import BaseModel, Field

from app.core.email import send_email
from app.core.settings import Settings
from app.core.utils import new_id, utcnow_iso

logger = logging.getLogger(__name__)

SendFn = Callable[[list[str], str, str], Awaitable[None]]
FailureFn = Callable[["MailJob"], Awaitable[None]]


class MailJob(BaseModel):
    """Email en attente d'envoi.

    Attributes:
        id (str): Identifiant du job.
        to (list[str]): Destinataires.
        subject (str): Sujet.
        body (str): Corps.
        type (str | None): Type de notification à l'origine du job.
        attempts (int): Tentatives déjà effectuées.
        last_error (str | None): Dernière erreur d'envoi.
        created_at (str): Création (ISO UTC).
        next_attempt_at (float): Prochaine tentative (horloge de la file).
        failed (bool): Abandonné après le nombre maximal de tentatives.
    """

    id: str
    to: list[str]
    subject: str
    body: str
    type: str | None = None
    attempts: int = 0
    last_error: str | None = None
    created_at: str = Field(default_factory=utcnow_iso)
    next_attempt_at: float = 0.0
    failed: bool = False


class MailDiagnostics(BaseModel):
    """État de la file d'envoi pour l'administration."""

    smtp_host: str
    smtp_port: int
    pending: int
    failed: int
    jobs: list[MailJob]


class MailQueue:
    """File d'envoi avec reprise.

    Description:
        - `enqueue` ajoute un job prêt immédiatement
        - `process` envoie les jobs prêts ; en cas d'échec le délai suivant est
          `base * 2^(tentatives-1)` plafonné à `mail_max_delay_s`
        - après `mail_max_attempts` échecs, le job est marqué `failed` et conservé
          pour inspection, et `on_final_failure` est appelé
        - seuls les `mail_failed_jobs_max` derniers jobs abandonnés sont conservés
        - `start` / `stop` pilotent la boucle périodique

    Args:
        settings (Settings): Politique de reprise et paramètres SMTP.
        sender (Callable | None): Envoi effectif (SMTP par défaut).
        on_final_failure (Callable | None): Rappel après abandon d'un job.
        clock (Callable): Horloge en secondes.
    """

    def __init__(
        self,
        settings: Settings,
        sender: SendFn | None = None,
        on_final_failure: FailureFn | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self._sender = sender or self._smtp_send
        self.on_final_failure = on_final_failure
        self._clock = clock
        self._jobs: list[MailJob] = []
        self._processing = False
        self._loop_task: asyncio.Task | None = None

    async def _smtp_send(self, to: list[str], subject: str, body: str) -> None:
        await send_email(self.settings, to, subject, body)

    def backoff_delay(self, attempts: int) -> float:
        delay = self.settings.mail_base_delay_s * (2 ** max(0, attempts - 1))
        return min(delay, self.settings.mail_max_delay_s)

    async def enqueue(
        self,
        recipients: list[str] | str,
        subject: str,
        body: str,
        type: str | None = None,
    ) -> str | None:
        """Ajoute un email à la file.

        Returns:
            str | None: Id du job, None si aucun destinataire.
        """
        to = [recipients] if isinstance(recipients, str) else [r for r in recipients if r]
        if not to:
            return None
        job = MailJob(
            id=new_id("mail_"),
            to=to,
            subject=subject,
            body=body,
            type=type,
            next_attempt_at=self._clock(),
        )
        self._jobs.append(job)
        return job.id

    def jobs(self) -> list[MailJob]:
        return [j.model_copy(deep=True) for j in self._jobs]

    async def process(self) -> int:
        """Traite les jobs prêts, retourne le nombre d'emails envoyés."""
        if self._processing:
            return 0
        self._processing = True
        sent = 0
        try:
            now = self._clock()
            for job in list(self._jobs):
                if job.failed or job.next_attempt_at > now:
                    continue
                try:
                    await self._sender(job.to, job.subject, job.body)
                except Exception as e:
                    await self._on_error(job, e)
                    continue
                self._jobs = [j for j in self._jobs if j.id != job.id]
                sent += 1
                logger.info("Mail %s envoyé (%d destinataire(s))", job.id, len(job.to))
        finally:
            self._processing = False
        return sent

    async def _on_error(self, job: MailJob, error: Exception) -> None:
        job.attempts += 1
        job.last_error = str(error)
        job.next_attempt_at = self._clock() + self.backoff_delay(job.attempts)
        logger.error("Échec d'envoi du mail %s (tentative %d): %s", job.id, job.attempts, error)

        if job.attempts >= self.settings.mail_max_attempts:
            job.failed = True
            self._trim_failed()
            if self.on_final_failure is not None:
                try:
                    await self.on_final_failure(job)
                except Exception as e:
                    logger.warning("Notification d'échec d'envoi impossible: %s", e)

    def _trim_failed(self) -> None:
        failed = [j for j in self._jobs if j.failed]
        excess = len(failed) - max(0, self.settings.mail_failed_jobs_max)
        if excess <= 0:
            return
        dropped = {j.id for j in failed[:excess]}
        self._jobs = [j for j in self._jobs if j.id not in dropped]
        logger.warning("%d job(s) de mail abandonné(s) purgé(s)", excess)

    def clear(self) -> int:
        """Vide la file, retourne le nombre de jobs supprimés."""
        count = len(self._jobs)
        self._jobs = []
        return count

    def diagnostics(self) -> MailDiagnostics:
        failed = sum(1 for j in self._jobs if j.failed)
        return MailDiagnostics(
            smtp_host=self.settings.smtp_host,
            smtp_port=self.settings.smtp_port,
            pending=len(self._jobs) - failed,
            failed=failed,
            jobs=self.jobs(),
        )

    def requeue(self, job_id: str) -> bool:
        """Remet un job à zéro (tentatives, erreur) pour un envoi immédiat."""
        job = next((j for j in self._jobs if j.id == job_id), None)
        if job is None:
            return False
        job.attempts = 0
        job.last_error = None
        job.failed = False
        job.next_attempt_at = self._clock()
        return True

    async def _run(self) -> None:
        while True:
            try:
                await self.process()
            except Exception:
                logger.exception("Erreur de la boucle d'envoi des mails")
            await asyncio.sleep(self.settings.mail_poll_interval_s)

    def start(self) -> None:
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self._run())
            logger.info("File d'envoi des mails démarrée")

    async def stop(self) -> None:
        if self._loop_task is None:
            return
        self._loop_task.cancel()
        try:
            await self._loop_task
        except asyncio.CancelledError:
            pass
        self._loop_task = None
        logger.info("File d'envoi des mails arrêtée")
