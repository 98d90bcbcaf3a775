# marketplace/initial_data.py
from contextlib import asynccontextmanager

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import settings
from marketplace.core.logging import get_logger
from marketplace.db.session_async import AsyncSessionLocal
from marketplace.domain.enums import AccountRole
from marketplace.models.account import Account
from marketplace.services import account_service

logger = get_logger("marketplace.bootstrap")

_ADMIN_LOCK_KEY = 4242001


@asynccontextmanager
async def _advisory_lock(session: AsyncSession):
    """Serialises admin bootstrap across workers on PostgreSQL; no-op elsewhere."""
    dialect = session.bind.dialect.name if session.bind else "unknown"
    got_lock = False
    try:
        if dialect == "postgresql":
            res = await session.execute(text("SELECT pg_try_advisory_lock(:k)"), {"k": _ADMIN_LOCK_KEY})
            got_lock = bool(res.scalar())
            if not got_lock:
                logger.info("Another worker is bootstrapping the admin account")
                yield False
                return
        yield True
    finally:
        if got_lock:
            await session.execute(text("SELECT pg_advisory_unlock(:k)"), {"k": _ADMIN_LOCK_KEY})


async def create_initial_admin() -> Account | None:
    """Create the first admin from settings when no admin exists yet. Idempotent."""
    if not settings.INITIAL_ADMIN_EMAIL or not settings.INITIAL_ADMIN_PASSWORD:
        logger.info("Skipping admin bootstrap: INITIAL_ADMIN_EMAIL or INITIAL_ADMIN_PASSWORD not set")
        return None

    async with AsyncSessionLocal() as session:
        async with _advisory_lock(session) as proceed:
            if proceed is False:
                return None

            stmt = select(func.count()).select_from(Account).where(Account.role == AccountRole.admin)
            if ((await session.execute(stmt)).scalar() or 0) > 0:
                logger.info("An admin account already exists")
                return None

            existing = await account_service.get_by_email(session, str(settings.INITIAL_ADMIN_EMAIL))
            if existing:
                # Email is globally unique, so a buyer or seller holding it blocks the bootstrap.
                logger.warning(
                    "Initial admin email belongs to a non-admin account; bootstrap skipped",
                    extra={"account_id": str(existing.id), "role": existing.role.value},
                )
                return None

            admin = await account_service.create_admin(
                session,
                name="Initial Admin",
                email=str(settings.INITIAL_ADMIN_EMAIL),
                password=settings.INITIAL_ADMIN_PASSWORD,
            )
            await session.commit()
            logger.info("Initial admin created", extra={"account_id": str(admin.id)})
            return admin
