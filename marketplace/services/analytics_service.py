from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.logging import get_logger
from marketplace.domain.enums import AccountRole, OrderStatus
from marketplace.models.account import Account
from marketplace.models.order import Order
from marketplace.models.product import Product
from marketplace.schemas.analytics import DailySales, ProductStatistics, UserStatistics

logger = get_logger("marketplace.analytics")

NEW_USER_WINDOW = timedelta(days=30)


async def sales_by_day(db: AsyncSession) -> list[DailySales]:
    """Daily order totals, oldest first. Cancelled orders are not sales."""
    day = func.date(Order.created_at)
    stmt = (
        select(
            day.label("day"),
            func.coalesce(func.sum(Order.total_amount), 0).label("total_sales"),
            func.count(Order.id).label("orders_count"),
        )
        .where(Order.status != OrderStatus.cancelled)
        .group_by(day)
        .order_by(day)
    )
    rows = (await db.execute(stmt)).all()
    logger.info("Sales data computed", extra={"days": len(rows)})
    return [
        DailySales(date=row.day, total_sales=float(row.total_sales), orders_count=row.orders_count)
        for row in rows
    ]


async def user_statistics(db: AsyncSession, *, now: datetime | None = None) -> UserStatistics:
    since = (now or datetime.now(timezone.utc)) - NEW_USER_WINDOW
    stmt = select(
        func.count(Account.id),
        func.coalesce(func.sum(case((Account.is_active.is_(True), 1), else_=0)), 0),
        func.coalesce(func.sum(case((Account.created_at >= since, 1), else_=0)), 0),
    ).where(Account.role == AccountRole.user)
    total, active, recent = (await db.execute(stmt)).one()
    return UserStatistics(total_users=total, active_users=int(active), registered_last_month=int(recent))


async def product_statistics(db: AsyncSession) -> ProductStatistics:
    stmt = select(
        func.count(Product.id),
        func.coalesce(func.sum(case((Product.is_active.is_(True), 1), else_=0)), 0),
        func.coalesce(func.sum(Product.stock), 0),
        func.avg(Product.price),
    )
    total, active, stock, average_price = (await db.execute(stmt)).one()
    return ProductStatistics(
        total_products=total,
        active_products=int(active),
        total_stock=int(stock),
        average_price=round(float(average_price), 2) if average_price is not None else 0.0,
    )
