import smtplib
from email.message import EmailMessage

from marketplace.core.config import settings
from marketplace.core.logging import get_logger

logger = get_logger("marketplace.email")


def deliver_email(to_email: str, subject: str, body: str) -> None:
    """Send one plain-text message; SMTP errors propagate so the task can retry."""
    if not settings.EMAILS_ENABLED or not settings.SMTP_HOST:
        logger.info("Email delivery disabled, message logged only", extra={"to": to_email, "subject": subject})
        logger.debug(body)
        return

    msg = EmailMessage()
    msg["From"] = settings.EMAIL_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg.set_content(body)

    with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT, timeout=30) as server:
        if settings.SMTP_TLS:
            server.starttls()
        if settings.SMTP_USER and settings.SMTP_PASSWORD:
            server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
        server.send_message(msg)
    logger.info("Email sent", extra={"to": to_email, "subject": subject})
