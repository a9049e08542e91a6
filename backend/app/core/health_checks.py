# backend/app/core/health_checks.py
# Vérifications de santé : stockage actif et configuration SMTP.

import logging

from app.core.context import AppContext

logger = logging.getLogger(__name__)


async def check_storage(ctx: AppContext) -> str:
    """
    Vérifie le stockage actif (ping MongoDB, ou mémoire)

    Returns:
        "ok" si disponible, "degraded: ..." en repli mémoire, message d'erreur sinon
    """
    try:
        return await ctx.repositories.check()

    except Exception as e:
        logger.error(f"Storage health check failed: {e}")
        return f"error: {str(e)}"


async def check_email(ctx: AppContext) -> str:
    """
    Vérifie la file d'envoi des emails

    Returns:
        "ok" si aucun job abandonné, "degraded: ..." sinon
    """
    if not ctx.settings.smtp_host:
        return "error: smtp_host not configured"
    failed = [job for job in ctx.mail_queue.jobs() if job.failed]
    if failed:
        return f"degraded: {len(failed)} failed mail job(s)"
    return "ok"
