"""Session helpers shared by routers and services."""

from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.logging import get_logger
from marketplace.services.exceptions import PersistenceFailure

logger = get_logger("marketplace.db")


async def commit_async(session: AsyncSession) -> None:
    """Commit the unit of work; storage errors become ``PersistenceFailure``."""
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await rollback_async(session)
        logger.exception("Commit failed", extra={"error_type": type(exc).__name__})
        raise PersistenceFailure("Could not persist changes") from exc


async def rollback_async(session: AsyncSession) -> None:
    if session.in_transaction():
        await session.rollback()


async def flush_async(session: AsyncSession) -> None:
    await session.flush()


async def refresh_async(session: AsyncSession, *instances: Any, attribute_names: list[str] | None = None) -> None:
    for instance in instances:
        if attribute_names:
            await session.refresh(instance, attribute_names=attribute_names)
        else:
            await session.refresh(instance)
