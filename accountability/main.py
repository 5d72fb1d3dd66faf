import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from accountability.api.routes.events import router as events_router
from accountability.api.routes.health import router as health_router
from accountability.api.routes.reminders import router as reminders_router
from accountability.config import settings
from accountability.logging_config import setup_logging
from accountability.services import build_services
from accountability.tasks.dispatcher import start_dispatcher, stop_dispatcher

logger = logging.getLogger("accountability")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging(log_level=settings.LOG_LEVEL, log_dir=settings.LOG_DIR)
    logger.info("Accountability agent starting up...")

    services = build_services(settings)

    async with services.engine.connect() as conn:
        await conn.execute(text("SELECT 1"))
    logger.info("Database connected")

    await services.redis.ping()
    logger.info("Redis connected")

    app.state.engine = services.engine
    app.state.redis = services.redis
    app.state.session_factory = services.session_factory
    app.state.repository = services.repository
    app.state.orchestrator = services.orchestrator
    app.state.push_sender = services.push_sender

    if settings.SKIP_SCHEDULING:
        dispatch_scheduler = None
        logger.info("SKIP_SCHEDULING set — notifications will not be scheduled or dispatched")
    else:
        dispatch_scheduler = start_dispatcher(services.dispatcher, settings.DISPATCH_INTERVAL_SECONDS)

    logger.info("Accountability agent ready")
    yield

    if dispatch_scheduler is not None:
        stop_dispatcher(dispatch_scheduler)
    await services.close()
    logger.info("Accountability agent shut down")


app = FastAPI(title="Accountability Agent", version="0.1.0", lifespan=lifespan)

app.include_router(health_router)
app.include_router(events_router)
app.include_router(reminders_router)
