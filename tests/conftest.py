from __future__ import annotations

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from apps.helpdesk.metrics import MetricsRegistry, register_default_metrics
from apps.helpdesk.services.settings import SettingsStore
from apps.helpdesk.tickets.clock import ManualClock
from apps.helpdesk.tickets.repository import TicketRepository
from apps.helpdesk.tickets.service import TicketService


@pytest_asyncio.fixture
async def engine() -> AsyncEngine:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def metrics() -> MetricsRegistry:
    return register_default_metrics(MetricsRegistry())


@pytest.fixture
def repository(session_factory: async_sessionmaker, engine: AsyncEngine) -> TicketRepository:
    return TicketRepository(session_factory, engine=engine)


@pytest.fixture
def settings_store(session_factory: async_sessionmaker, clock: ManualClock) -> SettingsStore:
    return SettingsStore(session_factory, clock=clock)


@pytest.fixture
def service(repository: TicketRepository, clock: ManualClock, metrics: MetricsRegistry) -> TicketService:
    return TicketService(repository, clock=clock, metrics=metrics)
