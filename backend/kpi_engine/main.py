"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kpi_engine.api.dependencies.services import EngineServices, build_services
from kpi_engine.api.routes import api_router
from kpi_engine.config import AppSettings, get_settings
from kpi_engine.core.errors import KpiEngineError
from kpi_engine.core.logging import setup_logging
from kpi_engine.core.telemetry import setup_telemetry
from kpi_engine.db.database import Database

logger = logging.getLogger(__name__)

# Local development origins for the dashboard
ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost",
    "http://127.0.0.1",
]


async def _handle_engine_error(request: Request, exc: KpiEngineError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


def create_app(
    settings: AppSettings | None = None,
    *,
    services: EngineServices | None = None,
) -> FastAPI:
    """Build the API.

    Passing ``services`` skips database setup entirely, which is how tests run
    the app against in-memory stores and static adapters.
    """

    settings = settings or (services.settings if services is not None else get_settings())
    database = Database(settings.database_url) if services is None else services.database
    engine_services = services or build_services(settings, database=database)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if database is not None:
            await database.create_all()
        logger.info("KPI engine started with settings %s", settings.dict_for_logging())
        yield
        if database is not None:
            await database.dispose()

    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=lifespan)
    app.state.services = engine_services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["traceparent", "tracestate", "x-request-id"],
    )
    app.add_exception_handler(KpiEngineError, _handle_engine_error)
    app.include_router(api_router)

    setup_telemetry(app, settings, engine=database.engine if database is not None else None)
    return app


def get_app() -> FastAPI:
    """ASGI app factory with logging configured from the environment."""

    settings = get_settings()
    setup_logging(settings.log_level)
    return create_app(settings)


__all__ = ["create_app", "get_app"]
