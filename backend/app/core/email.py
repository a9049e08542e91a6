# backend/app/core/email.py
# Utilitaire d'envoi d'email (SMTP async) utilisé par la file d'envoi des notifications.

from email.message import EmailMessage

from aiosmtplib import send

from app.core.settings import Settings


async def send_email(settings: Settings, to: list[str], subject: str, body: str) -> None:
    """Envoie un email texte à une liste de destinataires.

    Description:
        Un seul destinataire est placé en `To`. Pour un lot, l'expéditeur est mis
        en `To` et les destinataires en copie cachée afin de ne pas exposer les
        adresses entre eux.

    Args:
        settings (Settings): Paramètres SMTP et expéditeur.
        to (list[str]): Adresses destinataires (non vide).
        subject (str): Sujet.
        body (str): Corps texte brut.

    Returns:
        None: Coroutine terminée après envoi.

    Raises:
        aiosmtplib.errors.SMTPException: En cas d'échec d'envoi SMTP.
    """
    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = settings.mail_from
    if len(to) == 1:
        msg["To"] = to[0]
    else:
        msg["To"] = settings.mail_from
        msg["Bcc"] = ", ".join(to)
    msg.set_content(body)

    await send(
        msg,
        hostname=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username or None,
        password=settings.smtp_password or None,
        start_tls=settings.smtp_start_tls,
    )
