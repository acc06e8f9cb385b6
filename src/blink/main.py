"""FastAPI entrypoint for the public request-runner service."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from blink import __version__
from blink.config import get_settings, validate_settings_for_env
from blink.db.migrations.runner import run_migrations
from blink.errors import BlinkError
from blink.execution.engine import build_service_engine
from blink.logging import configure_logging
from blink.ratelimit import TokenBucketLimiter
from blink.routes.api import router as api_router
from blink.routes.errors import blink_error_handler, request_validation_handler
from blink.routes.health import router as health_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    validate_settings_for_env(settings)
    configure_logging(settings.log_level)
    applied = run_migrations()
    if applied:
        logger.info("Applied %d migrations: %s", len(applied), ", ".join(applied))
    logger.info(
        "Blink %s ready (timeout=%gs max_redirects=%d rate=%g/s burst=%d)",
        __version__,
        settings.request_timeout,
        settings.max_redirects,
        settings.rate_limit_rps,
        settings.rate_limit_burst,
    )
    yield


settings = get_settings()

app = FastAPI(title="Blink Request Runner", version=__version__, lifespan=lifespan)
app.state.execute_limiter = TokenBucketLimiter.from_settings(settings)
app.state.engine = build_service_engine(settings)

app.add_exception_handler(BlinkError, blink_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_handler)

cors_origins = [item.strip() for item in settings.web_cors_origins.split(",") if item.strip()]
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
app.include_router(health_router)
app.include_router(api_router)
