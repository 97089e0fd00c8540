import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from usage_counter.config import Settings, get_settings
from usage_counter.logging_setup import setup_logging
from usage_counter.routes.dashboard import router as dashboard_router
from usage_counter.routes.stats import router as stats_router
from usage_counter.schemas.response import ErrorResponse, NotFoundResponse
from usage_counter.services.dispatcher import Clock, RequestDispatcher, utc_now
from usage_counter.services.persistence import JsonFileStore, PersistenceError
from usage_counter.services.stats_store import StatsStore

logger = logging.getLogger(__name__)

AVAILABLE_ROUTES = [
    "/api/count.js",
    "/api/counter.js",
    "/api/stats.js",
    "/api/heartbeat.js",
    "/api/script.js",
]


def create_app(settings: Settings | None = None, clock: Clock = utc_now) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings)

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        store = JsonFileStore(settings.snapshot_path)
        stats_store = await StatsStore.create(settings, store, now=clock())
        application.state.dispatcher = RequestDispatcher(stats_store, clock=clock)
        logger.info("Aggregator '%s' ready (%s)", settings.instance_name, store.path)
        try:
            yield
        finally:
            await application.state.dispatcher.aclose()

    application = FastAPI(
        title="Usage Counter API",
        version="1.0.0",
        description="Totals, daily counts, online sessions and hourly/daily history for a client population.",
        lifespan=lifespan,
    )
    application.state.settings = settings

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
        max_age=86400,
    )

    application.include_router(stats_router)
    application.include_router(dashboard_router)

    @application.exception_handler(StarletteHTTPException)
    async def not_found_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code != 404:
            return await http_exception_handler(request, exc)
        body = NotFoundResponse(error="Endpoint not found", available=AVAILABLE_ROUTES)
        return JSONResponse(status_code=404, content=body.model_dump())

    @application.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error("Persistence failure on %s: %s", request.url.path, exc)
        body = ErrorResponse(error="Persistence failure", message=str(exc))
        return JSONResponse(status_code=503, content=body.model_dump())

    @application.exception_handler(Exception)
    async def internal_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s", request.url.path)
        body = ErrorResponse(error="Internal error", message=str(exc))
        return JSONResponse(status_code=500, content=body.model_dump())

    return application


def run() -> None:
    import uvicorn

    uvicorn.run("usage_counter.main:create_app", factory=True, host="0.0.0.0", port=8000, log_config=None)


if __name__ == "__main__":
    run()
