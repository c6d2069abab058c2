import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from apps.helpdesk.api.routes import metrics, ping, settings as settings_routes, tickets
from apps.helpdesk.core.config import Settings, get_settings
from apps.helpdesk.core.logging import configure_logging, start_telemetry
from apps.helpdesk.services.settings import DEFAULT_SETTINGS, SettingsStore
from apps.helpdesk.tickets.clock import SystemClock
from apps.helpdesk.tickets.repository import TicketRepository
from apps.helpdesk.tickets.service import TicketService
from apps.helpdesk.tickets.state import TicketStateCatalog
from apps.helpdesk.tickets.timestamps import TimestampDeriver

logger = logging.getLogger(__name__)


def to_async_dsn(dsn: str) -> str:
    """Ensure a PostgreSQL DSN uses the asyncpg driver."""

    if dsn.startswith("postgresql+asyncpg://"):
        return dsn
    if dsn.startswith("postgresql://"):
        return "postgresql+asyncpg://" + dsn[len("postgresql://") :]
    if dsn.startswith("postgres://"):
        return "postgresql+asyncpg://" + dsn[len("postgres://") :]
    return dsn


def _seed_settings(settings: Settings) -> dict:
    seeded = dict(DEFAULT_SETTINGS)
    _, description = seeded["ticket_default_state"]
    seeded["ticket_default_state"] = (settings.default_ticket_state, description)
    return seeded


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    app.state.logger = configure_logging(settings)
    telemetry = start_telemetry(settings)
    app.state.telemetry = telemetry

    db_engine = create_async_engine(to_async_dsn(settings.database_dsn), future=True)
    session_factory = async_sessionmaker(db_engine, expire_on_commit=False)
    try:
        repository = TicketRepository(session_factory, engine=db_engine)
        await repository.ensure_schema()
        clock = SystemClock()
        settings_store = SettingsStore(session_factory, clock=clock)
        await settings_store.ensure_defaults(_seed_settings(settings))

        catalog = TicketStateCatalog(initial=settings.default_ticket_state)
        app.state.settings_store = settings_store
        app.state.ticket_service = TicketService(
            repository,
            deriver=TimestampDeriver(catalog),
            clock=clock,
            settings=settings_store,
            tracer=telemetry.tracer("apps.helpdesk.tickets.service"),
        )
        app.state.db_engine = db_engine
        app.state.db_session_factory = session_factory
        logger.info("%s started (%s)", settings.app_name, settings.environment)
        yield
    finally:
        await db_engine.dispose()
        telemetry.shutdown()


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(metrics.router)
    app.include_router(settings_routes.router)
    app.include_router(tickets.router)
    return app


app = create_app()
