from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from app.shared.core.app_routes import register_api_routers, register_lifecycle_routes
from app.shared.core.config import get_settings, reload_settings_from_environment
from app.shared.core.exceptions import CirrusException
from app.shared.core.logging import setup_logging
from app.shared.db.session import async_session_maker, get_engine

setup_logging()
settings = get_settings()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    global settings
    settings = reload_settings_from_environment()
    logger.info("app_starting", app_name=settings.APP_NAME, environment=settings.ENVIRONMENT)

    scheduler = None
    if settings.TESTING:
        logger.info("scheduler_skipped_in_testing")
    elif settings.REFRESH_CRON:
        from app.services.scheduler import RefreshOrchestrator, RefreshScheduler

        scheduler = RefreshScheduler(
            RefreshOrchestrator(async_session_maker), settings.REFRESH_CRON
        )
        scheduler.start()
    else:
        logger.info("scheduler_disabled", msg="Set REFRESH_CRON to enable scheduled refresh")
    app.state.scheduler = scheduler

    yield

    logger.info("app_shutting_down")
    if scheduler is not None:
        scheduler.stop()
    await get_engine().dispose()
    logger.info("db_engine_disposed")


cirrus_app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    lifespan=lifespan,
)
app: FastAPI = cirrus_app

__all__ = ["app", "cirrus_app", "lifespan"]


@cirrus_app.exception_handler(CirrusException)
async def cirrus_exception_handler(request: Request, exc: CirrusException) -> JSONResponse:
    """Map application exceptions to `{error, code}` with their status code."""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "api_error",
        path=request.url.path,
        method=request.method,
        code=exc.code,
        status_code=exc.status_code,
        error=exc.message,
    )
    content = {"error": exc.message, "code": exc.code}
    if exc.details and not settings.is_production:
        content["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=content)


register_lifecycle_routes(cirrus_app, app_name=settings.APP_NAME, version=settings.VERSION)
register_api_routers(cirrus_app)
cirrus_app.mount("/metrics", make_asgi_app())
