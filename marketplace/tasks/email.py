from __future__ import annotations

from marketplace.core.celery_app import celery_app
from marketplace.core.logging import get_logger
from marketplace.services.email_delivery import deliver_email

logger = get_logger("marketplace.email")


@celery_app.task(name="email.send_plain", bind=True, max_retries=3, default_retry_delay=60)
def send_email_task(self, to_email: str, subject: str, body: str) -> None:
    """Deliver a plain-text email, retrying transient SMTP failures."""
    try:
        deliver_email(to_email, subject, body)
    except OSError as exc:
        logger.warning(
            "Email delivery failed, will retry",
            extra={"to": to_email, "attempt": self.request.retries + 1, "error_type": type(exc).__name__},
        )
        raise self.retry(exc=exc)
