# tests/conftest.py
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import os
import uuid
from decimal import Decimal

import pytest
import pytest_asyncio
import httpx
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Generator

os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("ASYNC_DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("CELERY_TASK_ALWAYS_EAGER", "true")

from marketplace.main import app
from marketplace.db.session import Base
from marketplace.db.session_async import AsyncSessionLocal
from marketplace.core.security import get_password_hash
from marketplace.domain.enums import AccountRole
from marketplace.models.account import Account
from marketplace.models.product import Product

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"

sync_engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=sync_engine)

BUYER_PASSWORD = "Buyer1234"
SELLER_PASSWORD = "Seller1234"
ADMIN_PASSWORD = "Admin1234"


# ---------- Fixtures ----------
@pytest.fixture(scope="session", autouse=True)
def setup_database():
    """Build the SQLite schema once per test session."""
    import marketplace.models.account  # noqa: F401
    import marketplace.models.product  # noqa: F401
    import marketplace.models.cart  # noqa: F401
    import marketplace.models.order  # noqa: F401

    Base.metadata.create_all(bind=sync_engine)
    yield
    Base.metadata.drop_all(bind=sync_engine)


@pytest.fixture(autouse=True)
def clean_tables():
    yield
    with sync_engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest_asyncio.fixture(scope="function")
async def client():
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def async_db_session() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.rollback()


def auth(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def stock_of(product_id) -> int:
    """Stock as committed in the database, bypassing any session cache."""
    with sync_engine.connect() as connection:
        return connection.execute(select(Product.stock).where(Product.id == product_id)).scalar_one()


async def in_own_transaction(operation):
    """Run ``operation`` in a fresh session and commit it, like a separate request would."""
    async with AsyncSessionLocal() as session:
        try:
            result = await operation(session)
            await session.commit()
            return result
        except Exception:
            await session.rollback()
            raise


# --- Account fixtures ---

def _make_account(db: Session, role: AccountRole, password: str, **fields) -> Account:
    account = Account(
        role=role,
        name=fields.pop("name", f"Test {role.value.title()}"),
        email=fields.pop("email", f"{role.value}-{uuid.uuid4()}@example.com"),
        hashed_password=get_password_hash(password),
        is_active=True,
        **fields,
    )
    db.add(account)
    db.commit()
    db.refresh(account)
    return account


@pytest.fixture(scope="function")
def make_account(db_session: Session):
    def _factory(role: AccountRole = AccountRole.user, password: str = BUYER_PASSWORD, **fields) -> Account:
        return _make_account(db_session, role, password, **fields)

    return _factory


@pytest.fixture(scope="function")
def buyer(make_account) -> Account:
    return make_account(AccountRole.user, BUYER_PASSWORD, name="Asha Buyer")


@pytest.fixture(scope="function")
def other_buyer(make_account) -> Account:
    return make_account(AccountRole.user, BUYER_PASSWORD, name="Ravi Buyer")


@pytest.fixture(scope="function")
def seller(make_account) -> Account:
    return make_account(AccountRole.seller, SELLER_PASSWORD, name="Meera Traders", license_id=12345)


@pytest.fixture(scope="function")
def other_seller(make_account) -> Account:
    return make_account(AccountRole.seller, SELLER_PASSWORD, name="Kiran Goods", license_id=54321)


@pytest.fixture(scope="function")
def admin(make_account) -> Account:
    return make_account(AccountRole.admin, ADMIN_PASSWORD, name="Test Admin")


@pytest.fixture(scope="function")
def make_product(db_session: Session, seller: Account):
    def _factory(*, owner: Account | None = None, **fields) -> Product:
        product = Product(
            seller_id=(owner or seller).id,
            name=fields.pop("name", f"Product {uuid.uuid4().hex[:8]}"),
            description=fields.pop("description", "A product"),
            category=fields.pop("category", "general"),
            price=Decimal(str(fields.pop("price", 100))),
            stock=fields.pop("stock", 10),
            images=fields.pop("images", ["https://img.example.com/p.png"]),
            is_active=fields.pop("is_active", True),
        )
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product

    return _factory


# --- Token fixtures (log in through the API) ---

async def login(client: httpx.AsyncClient, email: str, password: str) -> str:
    resp = await client.post(
        "/api/v1/auth/login",
        data={"username": email, "password": password},
        headers={"Content-Type": "application/x-www-form-urlencoded"},
    )
    assert resp.status_code == 200, resp.text
    return resp.json()["access_token"]


@pytest_asyncio.fixture(scope="function")
async def buyer_token(client: httpx.AsyncClient, buyer: Account) -> str:
    return await login(client, buyer.email, BUYER_PASSWORD)


@pytest_asyncio.fixture(scope="function")
async def other_buyer_token(client: httpx.AsyncClient, other_buyer: Account) -> str:
    return await login(client, other_buyer.email, BUYER_PASSWORD)


@pytest_asyncio.fixture(scope="function")
async def seller_token(client: httpx.AsyncClient, seller: Account) -> str:
    return await login(client, seller.email, SELLER_PASSWORD)


@pytest_asyncio.fixture(scope="function")
async def other_seller_token(client: httpx.AsyncClient, other_seller: Account) -> str:
    return await login(client, other_seller.email, SELLER_PASSWORD)


@pytest_asyncio.fixture(scope="function")
async def admin_token(client: httpx.AsyncClient, admin: Account) -> str:
    return await login(client, admin.email, ADMIN_PASSWORD)
