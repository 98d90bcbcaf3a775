from __future__ import annotations

from celery import Celery
from kombu import Queue

from marketplace.core.config import settings


celery_app = Celery("marketplace")

celery_app.conf.update(
    broker_url=settings.CELERY_BROKER_URL,
    # Nothing reads task results.
    task_ignore_result=True,
    task_always_eager=settings.CELERY_TASK_ALWAYS_EAGER,
    task_eager_propagates=True,
    task_default_queue=settings.CELERY_TASK_DEFAULT_QUEUE,
    broker_connection_retry_on_startup=True,
)

celery_app.conf.task_queues = (
    Queue(settings.CELERY_TASK_DEFAULT_QUEUE),
    Queue(settings.EMAIL_QUEUE),
)

celery_app.conf.task_routes = {
    "email.send_plain": {"queue": settings.EMAIL_QUEUE},
}

celery_app.autodiscover_tasks(["marketplace"])
