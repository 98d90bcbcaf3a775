from __future__ import annotations

import random
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.config import settings
from marketplace.core.logging import get_logger
from marketplace.core.security import get_password_hash, verify_password
from marketplace.db.operations import flush_async, refresh_async
from marketplace.domain.enums import AccountRole
from marketplace.models.account import Account
from marketplace.schemas.account import BuyerCreate, SellerCreate
from marketplace.services.exceptions import (
    AccountDisabledError,
    ConflictError,
    InvalidInputError,
    NotFoundError,
    PersistenceFailure,
)

logger = get_logger("marketplace.accounts")

_rng = random.SystemRandom()


def _normalize_email(email: str) -> str:
    return email.strip().lower()


async def get_by_email(db: AsyncSession, email: str) -> Account | None:
    stmt = select(Account).where(Account.email == _normalize_email(email)).limit(1)
    result = await db.execute(stmt)
    return result.scalars().first()


async def get_by_id(db: AsyncSession, account_id: uuid.UUID) -> Account | None:
    return await db.get(Account, account_id)


async def _license_taken(db: AsyncSession, license_id: int) -> bool:
    stmt = select(Account.id).where(Account.license_id == license_id).limit(1)
    return (await db.execute(stmt)).first() is not None


async def generate_license_id(db: AsyncSession) -> int:
    for _ in range(settings.LICENSE_ID_MAX_ATTEMPTS):
        candidate = _rng.randint(settings.LICENSE_ID_MIN, settings.LICENSE_ID_MAX)
        if not await _license_taken(db, candidate):
            return candidate
    raise PersistenceFailure(
        f"Failed to generate unique license id after {settings.LICENSE_ID_MAX_ATTEMPTS} attempts"
    )


async def _create(db: AsyncSession, account: Account) -> Account:
    if await get_by_email(db, account.email):
        raise ConflictError("Email already registered")
    db.add(account)
    try:
        await flush_async(db)
    except IntegrityError as exc:
        # Lost a race on the email or license id unique index.
        raise ConflictError("Email already registered") from exc
    await refresh_async(db, account)
    logger.info(
        "Account created",
        extra={"account_id": str(account.id), "role": account.role.value},
    )
    return account


async def create_buyer(db: AsyncSession, data: BuyerCreate) -> Account:
    account = Account(
        role=AccountRole.user,
        name=data.name,
        email=_normalize_email(data.email),
        hashed_password=get_password_hash(data.password),
        mobile=data.mobile,
        address=data.address,
        is_active=True,
    )
    return await _create(db, account)


async def create_seller(db: AsyncSession, data: SellerCreate) -> Account:
    account = Account(
        role=AccountRole.seller,
        name=data.name,
        email=_normalize_email(data.email),
        hashed_password=get_password_hash(data.password),
        license_id=await generate_license_id(db),
        is_active=True,
    )
    return await _create(db, account)


async def create_admin(db: AsyncSession, *, name: str, email: str, password: str) -> Account:
    account = Account(
        role=AccountRole.admin,
        name=name,
        email=_normalize_email(email),
        hashed_password=get_password_hash(password),
        is_active=True,
    )
    return await _create(db, account)


async def authenticate(db: AsyncSession, email: str, password: str) -> Account | None:
    """Returns ``None`` on bad credentials; raises if the account is disabled."""
    account = await get_by_email(db, email)
    if not account or not verify_password(password, account.hashed_password):
        return None
    if not account.is_active:
        raise AccountDisabledError("Account is disabled")
    return account


async def mark_login(db: AsyncSession, account: Account) -> Account:
    account.last_login_at = datetime.now(timezone.utc)
    db.add(account)
    await flush_async(db)
    return account


async def list_accounts(
    db: AsyncSession,
    *,
    role: AccountRole | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Account]:
    stmt = select(Account).order_by(Account.created_at.desc())
    if role is not None:
        stmt = stmt.where(Account.role == role)
    stmt = stmt.offset(int(offset)).limit(int(limit))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def set_active(db: AsyncSession, account_id: str | uuid.UUID, is_active: bool) -> Account:
    try:
        aid = account_id if isinstance(account_id, uuid.UUID) else uuid.UUID(str(account_id))
    except ValueError as exc:
        raise InvalidInputError("Invalid identifier for account_id") from exc

    account = await get_by_id(db, aid)
    if account is None:
        raise NotFoundError("Account not found")
    if account.role == AccountRole.admin and not is_active:
        raise InvalidInputError("Admin accounts cannot be disabled")

    account.is_active = is_active
    db.add(account)
    await flush_async(db)
    await refresh_async(db, account)
    logger.info(
        "Account status changed",
        extra={"account_id": str(account.id), "is_active": is_active},
    )
    return account
