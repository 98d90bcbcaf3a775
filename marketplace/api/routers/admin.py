from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.api.deps import get_current_admin
from marketplace.db.operations import commit_async, rollback_async
from marketplace.db.session_async import get_async_db
from marketplace.domain.enums import AccountRole
from marketplace.models.account import Account
from marketplace.schemas.account import AccountRead, AccountStatusUpdate
from marketplace.schemas.analytics import DailySales, ProductStatistics, UserStatistics
from marketplace.services import account_service, analytics_service
from marketplace.services.exceptions import ServiceError

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/accounts", response_model=List[AccountRead])
async def list_accounts(
    role: Optional[AccountRole] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_async_db),
    _: Account = Depends(get_current_admin),
):
    return await account_service.list_accounts(db, role=role, limit=limit, offset=offset)


@router.patch("/accounts/{account_id}/status", response_model=AccountRead)
async def set_account_status(
    account_id: str,
    payload: AccountStatusUpdate,
    db: AsyncSession = Depends(get_async_db),
    _: Account = Depends(get_current_admin),
):
    try:
        account = await account_service.set_active(db, account_id, payload.is_active)
        await commit_async(db)
    except ServiceError:
        await rollback_async(db)
        raise
    return account


@router.get("/analytics/sales", response_model=List[DailySales])
async def sales_data(
    db: AsyncSession = Depends(get_async_db),
    _: Account = Depends(get_current_admin),
):
    return await analytics_service.sales_by_day(db)


@router.get("/analytics/users", response_model=UserStatistics)
async def user_statistics(
    db: AsyncSession = Depends(get_async_db),
    _: Account = Depends(get_current_admin),
):
    return await analytics_service.user_statistics(db)


@router.get("/analytics/products", response_model=ProductStatistics)
async def product_statistics(
    db: AsyncSession = Depends(get_async_db),
    _: Account = Depends(get_current_admin),
):
    return await analytics_service.product_statistics(db)
