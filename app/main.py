"""
Application entry point: settings, logging, database lifecycle and routers
"""
from contextlib import asynccontextmanager
from typing import Optional

from atams.api import health_router
from atams.logging import get_logger, setup_logging_from_settings
from fastapi import FastAPI

from app.api.errors import register_exception_handlers
from app.api.v1.api import api_router
from app.core.config import Settings, settings as default_settings
from app.db.session import build_engine, build_session_factory, create_schema
from app.services.clock_service import build_clock_service

logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings
    setup_logging_from_settings(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine = build_engine(settings)
        await create_schema(engine)
        session_factory = build_session_factory(engine)
        app.state.engine = engine
        app.state.session_factory = session_factory
        app.state.clock_service = build_clock_service(settings, session_factory)
        logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)
        try:
            yield
        finally:
            await engine.dispose()
            logger.info("%s stopped", settings.APP_NAME)

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
    )
    app.state.settings = settings
    register_exception_handlers(app)
    app.include_router(health_router, prefix="/health", tags=["Health"])
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()
