import datetime as dt

from marketplace.schemas.base import CamelModel


class DailySales(CamelModel):
    date: dt.date
    total_sales: float
    orders_count: int


class UserStatistics(CamelModel):
    total_users: int
    active_users: int
    registered_last_month: int


class ProductStatistics(CamelModel):
    total_products: int
    active_products: int
    total_stock: int
    average_price: float
