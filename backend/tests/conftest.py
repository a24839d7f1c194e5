"""
Pytest configuration and shared fixtures for the marketplace lifecycle tests.

Provides in-memory and file-backed SQLite sessions, seeded users of every
role, and an httpx client bound to the FastAPI app.
"""
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from config import settings
from database import Base, get_db
from db_models import DeliveryAgency, Product, User, VendorProfile
from domain.enums import UserRole
from domain.policy import LifecyclePolicy, PERMISSIVE_SELF_SERVICE, STRICT_SELF_SERVICE
from tests.factories import create_user

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
if not settings.jwt_secret:
    settings.jwt_secret = "test-jwt-secret-for-pytest-only"


# ── Database Fixtures ────────────────────────────────────────────────


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create an in-memory SQLite database session for each test.

    Uses StaticPool to allow in-memory SQLite with async SQLAlchemy.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_maker = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with async_session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture(scope="function")
async def session_factory(tmp_path):
    """
    File-backed SQLite so several sessions (connections) can race on the
    same rows.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


# ── Policy Fixtures ──────────────────────────────────────────────────


@pytest.fixture
def policy() -> LifecyclePolicy:
    """Vendor-only self service (riders onboarded by administrators)."""
    return LifecyclePolicy(self_service_roles=STRICT_SELF_SERVICE)


@pytest.fixture
def permissive_policy() -> LifecyclePolicy:
    return LifecyclePolicy(self_service_roles=PERMISSIVE_SELF_SERVICE)


# ── Test Data Fixtures ───────────────────────────────────────────────

@pytest.fixture
async def customer(db_session: AsyncSession) -> User:
    return await create_user(db_session, UserRole.CUSTOMER, "Alice Customer")


@pytest.fixture
async def other_customer(db_session: AsyncSession) -> User:
    return await create_user(db_session, UserRole.CUSTOMER, "Bob Customer")


@pytest.fixture
async def admin(db_session: AsyncSession) -> User:
    return await create_user(db_session, UserRole.ADMIN, "Ada Admin")


@pytest.fixture
async def vendor(db_session: AsyncSession) -> User:
    """A VENDOR user with a profile and no products yet."""
    user = await create_user(db_session, UserRole.VENDOR, "Victor Vendor")
    db_session.add(VendorProfile(user_id=user.id, business_name="Victor Goods", business_address="Nairobi"))
    await db_session.commit()
    return user


@pytest.fixture
async def product(db_session: AsyncSession, vendor: User) -> Product:
    profile_id = await db_session.scalar(
        select(VendorProfile.id).where(VendorProfile.user_id == vendor.id)
    )
    item = Product(vendor_profile_id=profile_id, name="Kikoy", price=12.5, stock=10)
    db_session.add(item)
    await db_session.commit()
    await db_session.refresh(item)
    return item


@pytest.fixture
async def rider(db_session: AsyncSession) -> User:
    return await create_user(db_session, UserRole.RIDER, "Rita Rider")


@pytest.fixture
async def agency_user(db_session: AsyncSession, admin: User) -> User:
    """A DELIVERY_AGENCY user with an active agency record."""
    user = await create_user(db_session, UserRole.DELIVERY_AGENCY, "Swift Couriers")
    db_session.add(
        DeliveryAgency(
            user_id=user.id,
            name="Swift Couriers",
            phone=user.phone,
            cities_covered=["Nairobi"],
            is_active=True,
            created_by_admin_id=admin.id,
        )
    )
    await db_session.commit()
    return user


# ── API Client ───────────────────────────────────────────────────────


@pytest.fixture
async def client(db_session: AsyncSession):
    """httpx client against the app, sharing the test DB session."""
    from main import app
    from middleware.rate_limit import limiter

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    limiter.reset()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
    limiter.reset()
