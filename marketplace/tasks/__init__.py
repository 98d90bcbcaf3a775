"""Celery task definitions package."""

from marketplace.tasks import email  # noqa: F401

__all__ = ["email"]
