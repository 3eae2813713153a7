"""
Centralized Test Configuration.
"""

from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from poultry_backend.app.main import app
from poultry_backend.app.db.session import Base
from poultry_backend.app.core.clock import FixedClock
from poultry_backend.app.core.config import LockBackend, settings
from poultry_backend.app.core.dependencies import get_coordinator, get_queries
from poultry_backend.app.core.locking import KeyedLockManager
from poultry_backend.app.services.ledger_queries import LedgerQueries
from poultry_backend.app.services.transaction_coordinator import TransactionCoordinator
from poultry_backend.tests.support import FIXED_NOW, TODAY, TestingSessionLocal, engine, file_engine


@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def clock():
    return FixedClock(FIXED_NOW)


@pytest.fixture
def test_settings():
    return settings.model_copy(update={
        "lock_backend": LockBackend.MEMORY,
        "read_retry_delay_seconds": 0.0,
    })


@pytest.fixture
def coordinator(clock, test_settings):
    return TransactionCoordinator(
        TestingSessionLocal, config=test_settings, clock=clock, locks=KeyedLockManager(timeout=5)
    )


@pytest.fixture
def queries(clock, test_settings):
    return LedgerQueries(TestingSessionLocal, config=test_settings, clock=clock)


@pytest.fixture
async def client(coordinator, queries):
    """Async client for testing, wired to the test coordinator and queries."""
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_queries] = lambda: queries
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides = {}


# Shared session for direct reads in assertions
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


@pytest.fixture
async def customer(coordinator):
    return await coordinator.create_customer("Al Noor Restaurant", phone_number="0599000001", actor="tester")


@pytest.fixture
async def truck(coordinator):
    return await coordinator.register_truck("TRK-101", "Sami", actor="tester")


@pytest.fixture
async def truck_load(coordinator, truck):
    registration = await coordinator.register_truck_load(truck.id, TODAY, Decimal("1000"), 40, actor="tester")
    return registration.truck_load


@pytest.fixture
async def file_session_factory(tmp_path):
    """Sessions on separate connections, for races that read outside the unit's locks."""
    engine_on_file = file_engine(tmp_path / "pos.db")
    async with engine_on_file.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine_on_file, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine_on_file.dispose()


@pytest.fixture
def file_coordinator(file_session_factory, clock, test_settings):
    return TransactionCoordinator(
        file_session_factory, config=test_settings, clock=clock, locks=KeyedLockManager(timeout=5)
    )
