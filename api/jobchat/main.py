from contextlib import asynccontextmanager
import asyncio
import logging
import time

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.requests import Request

from jobchat.api.router import api_router
from jobchat.api.routes.messages import SERVER_ERROR_DETAIL
from jobchat.core.config import get_settings
from jobchat.core.telemetry import (
    TelemetryRuntime,
    configure_api_logging,
    setup_api_telemetry,
    shutdown_api_telemetry,
)
from jobchat.services.access_cache import get_access_cache, run_access_cache_sweeper
from jobchat.services.read_state import get_read_state_tracker
from jobchat.services.repository import get_repository

settings = get_settings()
_telemetry_runtime: TelemetryRuntime | None = None
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    current = get_settings()
    sweeper = asyncio.create_task(
        run_access_cache_sweeper(get_access_cache(), current.access_cache_sweep_interval_seconds)
    )
    try:
        yield
    finally:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
        await get_read_state_tracker().drain()
        if _telemetry_runtime is not None:
            shutdown_api_telemetry(app, _telemetry_runtime)
        # Ensure asyncpg pool shuts down on app teardown.
        await get_repository().close()
        get_repository.cache_clear()


configure_api_logging(settings)
app = FastAPI(title=settings.app_name, lifespan=lifespan)
_telemetry_runtime = setup_api_telemetry(app, settings)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    started_at = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started_at) * 1000.0
    logger.info(
        "http request method=%s path=%s status=%s duration_ms=%.2f",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
    )
    return response


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled error method=%s path=%s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": SERVER_ERROR_DETAIL})


app.include_router(api_router)
