from datetime import datetime, timezone

from marketplace.core.celery_app import celery_app
from marketplace.core.config import settings
from marketplace.core.logging import get_logger
from marketplace.domain.enums import AccountRole

logger = get_logger("marketplace.email")

_LOGIN_SUBJECTS = {
    AccountRole.user: "Your {project} login activity",
    AccountRole.seller: "Seller portal access detected",
}


def _enqueue_email(to_email: str, subject: str, body: str) -> None:
    task = celery_app.tasks.get("email.send_plain")
    if task is None:
        raise RuntimeError("Email task not registered")
    task.apply_async((to_email, subject, body), queue=settings.EMAIL_QUEUE)


def send_login_alert(
    *,
    to_email: str,
    name: str,
    role: AccountRole,
    client_ip: str | None = None,
    user_agent: str | None = None,
) -> bool:
    """Queue a login notification. Never raises; returns whether it was queued."""
    template = _LOGIN_SUBJECTS.get(role)
    if template is None or not settings.LOGIN_ALERTS_ENABLED:
        return False

    when = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
    body = (
        f"Hello {name},\n\n"
        f"A new sign-in to your {settings.PROJECT_NAME} account was detected.\n\n"
        f"Time: {when}\n"
        f"IP address: {client_ip or 'unknown'}\n"
        f"Device: {user_agent or 'unknown'}\n\n"
        "If this was not you, please reset your password."
    )
    try:
        _enqueue_email(to_email, template.format(project=settings.PROJECT_NAME), body)
    except Exception:
        logger.exception("Login alert could not be queued", extra={"to": to_email, "role": role.value})
        return False
    return True
