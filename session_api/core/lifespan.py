"""
Startup and shutdown for the session API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from shared.config.logging import app_logger as logger, setup_logging
from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal, engine
from shared.infrastructure.events import close_redis_pool
from session_api.models import Base
from session_api.seed import seed
from session_api.services.session_sweeper import start_session_sweeper, stop_session_sweeper


def _check_configuration() -> None:
    problems = settings.validate_production_secrets()
    for problem in problems:
        logger.error("Configuration error", error=problem)
    if not problems:
        return
    if settings.environment == "production":
        raise RuntimeError(
            "Refusing to start with insecure production configuration: " + "; ".join(problems)
        )
    logger.warning("Running with insecure defaults", environment=settings.environment)


def _prepare_database() -> None:
    if settings.auto_create_schema:
        Base.metadata.create_all(bind=engine)
        logger.info("Schema ensured", url=engine.url.render_as_string(hide_password=True))
    if settings.seed_on_startup:
        with SessionLocal() as db:
            seed(db)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    _check_configuration()
    logger.info("Starting session API", port=settings.api_port, env=settings.environment)

    _prepare_database()
    if settings.session_sweeper_enabled:
        await start_session_sweeper()

    yield

    logger.info("Shutting down session API")
    if settings.session_sweeper_enabled:
        await stop_session_sweeper()
    if settings.events_backend == "redis":
        await close_redis_pool()
