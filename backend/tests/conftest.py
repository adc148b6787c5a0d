"""Shared fixtures: an in-memory SQLite database per test and a lease factory."""

from datetime import date
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import Base
from app import models  # noqa: F401
from app.services.rentals.installments import generate_installments
from app.services.rentals.leases import create_lease

TENANT_ID = 1
OTHER_TENANT_ID = 2
ACTOR_ID = 42


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite/aiosqlite emit their own BEGIN lazily, which breaks SAVEPOINT.
    @event.listens_for(engine.sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def lease_factory(db):
    """Create a lease with sensible defaults; keyword arguments override them."""

    async def _make(tenant_id: int = TENANT_ID, **overrides):
        data = dict(
            property_id=10,
            primary_renter_id=20,
            start_date=date(2025, 1, 1),
            end_date=date(2025, 3, 31),
            rent_amount=Decimal("150000"),
            due_day_of_month=5,
            currency="FCFA",
            actor_user_id=ACTOR_ID,
        )
        data.update(overrides)
        return await create_lease(db, tenant_id, **data)

    return _make


@pytest.fixture
def lease_with_installments(db, lease_factory):
    """Lease Jan–Mar 2025 (rent 150,000, due on the 5th) with its 3 installments."""

    async def _make(tenant_id: int = TENANT_ID, **overrides):
        lease = await lease_factory(tenant_id, **overrides)
        installments = await generate_installments(db, tenant_id, lease.id, actor_user_id=ACTOR_ID)
        return lease, installments

    return _make
