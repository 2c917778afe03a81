from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.routes import attachments, ping, reports, tickets
from app.core.config import Settings, get_settings
from app.core.logging import configure_logging, init_tracer, shutdown_tracer
from app.services.postgres import PostgresDatabase
from app.tickets.attachments import LocalBlobStore
from app.tickets.directory import PostgresAgentDirectory
from app.tickets.engine import TicketLifecycleEngine
from app.tickets.repository import TicketRepository
from app.tickets.service import TicketService
from app.tickets.sla import SlaPolicy


def build_ticket_service(settings: Settings, pool) -> TicketService:
    """Wire the ticket service from settings and an asyncpg pool."""

    return TicketService(
        repository=TicketRepository(pool, command_timeout=settings.db_command_timeout_seconds),
        directory=PostgresAgentDirectory(pool),
        blob_store=LocalBlobStore(
            settings.attachment_root,
            url_base=settings.attachment_url_base,
            signing_secret=settings.attachment_signing_secret,
        ),
        engine=TicketLifecycleEngine(
            ticket_number_prefix=settings.ticket_number_prefix,
            whatsapp_country_code=settings.whatsapp_country_code,
        ),
        sla_policy=SlaPolicy.from_hours(settings.sla_green_limit_hours, settings.sla_red_limit_hours),
        max_update_attempts=settings.ticket_update_max_retries,
        attachment_url_ttl=settings.attachment_url_ttl_seconds,
        max_attachment_mb=settings.max_attachment_mb,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    database = PostgresDatabase(
        dsn=settings.postgres_dsn,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
        command_timeout=settings.db_command_timeout_seconds,
    )
    app.state.logger = logger
    app.state.database = database
    app.state.ticket_service = None
    try:
        pool = await database.get_pool()
        service = build_ticket_service(settings, pool)
        await service.ensure_schema()
        await service.directory.ensure_schema()
        app.state.ticket_service = service
    except Exception:
        logger.exception("Ticket service initialisation failed; ticket routes will return 503")
    try:
        yield
    finally:
        await database.close()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router)
    app.include_router(tickets.router)
    app.include_router(reports.router)
    app.include_router(attachments.router)
    return app


app = create_app()
