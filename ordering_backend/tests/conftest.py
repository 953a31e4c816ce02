"""
Centralized Test Configuration.
"""

import pytest
from datetime import date
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from ordering_backend.app.main import app
from ordering_backend.app.db.session import get_db, Base
from ordering_backend.app.core.redis_client import get_redis
from ordering_backend.app.core.jwt import create_access_token
from ordering_backend.app.core.money import to_money
import ordering_backend.app.core.redis_client as redis_client_module

from ordering_backend.app.models.tenant import Tenant
from ordering_backend.app.models.user import User
from ordering_backend.app.models.enums import UserRole
from ordering_backend.app.models.order import Order
from ordering_backend.app.models.order_enums import OrderStatus, DeliveryType
from ordering_backend.app.models.customer_relationship import CustomerRelationship
from ordering_backend.app.models.ledger_enums import RelationshipStatus
from ordering_backend.app.domain.routing.route_assignment import RouteAssignmentService

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.published = []
        self._closed = False

    async def ping(self):
        return not self._closed

    async def get(self, key):
        if self._closed:
            return None
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self._closed:
            return False
        self.store[key] = value
        return True

    async def delete(self, *keys):
        if self._closed:
            return 0
        removed = 0
        for key in keys:
            if key in self.store:
                del self.store[key]
                removed += 1
        return removed

    async def publish(self, channel, message):
        if self._closed:
            return 0
        self.published.append((channel, message))
        return 1

    async def flushdb(self):
        if not self._closed:
            self.store = {}
            self.published = []

    async def aclose(self):
        self._closed = True
        self.store = {}


@pytest.fixture
def mock_redis():
    return MockRedis()


# Fresh in-memory database per test
@pytest.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture(autouse=True)
def apply_overrides(session_factory, mock_redis):
    """Route the app (and the invalidation hook) to the test database and Redis."""
    original_client = redis_client_module.redis_client
    redis_client_module.redis_client = mock_redis

    async def override_get_db():
        async with session_factory() as session:
            yield session

    async def override_get_redis():
        return mock_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    yield

    # Restore and clear
    app.dependency_overrides = {}
    redis_client_module.redis_client = original_client


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Shared session for fixture data creation
@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# Tenants and users

@pytest.fixture
async def tenant(db_session):
    row = Tenant(slug="acme", name="Acme Distribution")
    db_session.add(row)
    await db_session.commit()
    await db_session.refresh(row)
    return row


@pytest.fixture
async def other_tenant(db_session):
    row = Tenant(slug="globex", name="Globex Supply")
    db_session.add(row)
    await db_session.commit()
    await db_session.refresh(row)
    return row


@pytest.fixture
def make_user(db_session):
    async def _make(username: str, role: UserRole, tenant_id=None, is_active: bool = True) -> User:
        user = User(
            email=f"{username}@example.com",
            username=username,
            full_name=username.replace("_", " ").title(),
            role=role,
            tenant_id=tenant_id,
            is_active=is_active,
        )
        db_session.add(user)
        await db_session.commit()
        await db_session.refresh(user)
        return user
    return _make


@pytest.fixture
async def staff(make_user, tenant):
    return await make_user("staff_sam", UserRole.STAFF, tenant.id)


@pytest.fixture
async def driver(make_user, tenant):
    return await make_user("driver_dan", UserRole.DRIVER, tenant.id)


@pytest.fixture
async def other_driver(make_user, tenant):
    return await make_user("driver_olga", UserRole.DRIVER, tenant.id)


@pytest.fixture
async def customer(make_user):
    return await make_user("customer_carla", UserRole.CUSTOMER)


def auth_headers(user: User) -> dict:
    token = create_access_token(data={
        "sub": user.username,
        "user_id": user.id,
        "role": user.role.value,
        "tenant_id": user.tenant_id,
    })
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def staff_headers(staff):
    return auth_headers(staff)


@pytest.fixture
def driver_headers(driver):
    return auth_headers(driver)


@pytest.fixture
def other_driver_headers(other_driver):
    return auth_headers(other_driver)


# Orders, ledgers and routes

@pytest.fixture
def make_order(db_session, tenant, customer):
    counter = {"n": 0}

    async def _make(
        status: OrderStatus = OrderStatus.APPROVED,
        total=Decimal("100.00"),
        balance_due=None,
        delivery_type: DeliveryType = DeliveryType.DELIVERY,
        tenant_id: int = None,
        customer_id: int = None,
    ) -> Order:
        counter["n"] += 1
        order = Order(
            order_number=f"ORD-{counter['n']:04d}",
            tenant_id=tenant_id or tenant.id,
            customer_id=customer_id or customer.id,
            delivery_type=delivery_type,
            status=status,
            total_amount=to_money(total),
            balance_due=to_money(total if balance_due is None else balance_due),
        )
        db_session.add(order)
        await db_session.commit()
        await db_session.refresh(order)
        return order
    return _make


@pytest.fixture
def make_ledger(db_session, tenant, customer):
    async def _make(
        credit_limit=Decimal("500.00"),
        current_debt=Decimal("0.00"),
        status: RelationshipStatus = RelationshipStatus.ACTIVE,
        tenant_id: int = None,
        customer_id: int = None,
    ) -> CustomerRelationship:
        row = CustomerRelationship(
            tenant_id=tenant_id or tenant.id,
            customer_id=customer_id or customer.id,
            credit_limit=to_money(credit_limit),
            current_debt=to_money(current_debt),
            payment_terms_days=30,
            status=status,
        )
        db_session.add(row)
        await db_session.commit()
        await db_session.refresh(row)
        return row
    return _make


@pytest.fixture
def make_route(db_session, tenant, driver, staff):
    async def _make(order_ids, driver_id: int = None):
        return await RouteAssignmentService.create_route(
            db_session,
            tenant_id=tenant.id,
            driver_id=driver_id or driver.id,
            order_ids=order_ids,
            planned_date=date(2026, 10, 19),
            actor_id=staff.id,
        )
    return _make


@pytest.fixture
def headers_for():
    """Bearer headers for an arbitrary user."""
    return auth_headers
