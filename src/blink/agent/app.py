"""Local agent: executes requests from the user's own machine.

The agent binds to loopback only and runs the shared execution engine
without the SSRF policy, so a browser UI can reach ``localhost`` and private
network targets the public service refuses.
"""

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from blink import __version__
from blink.execution.engine import (
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_MAX_RESPONSE_BYTES,
    DEFAULT_TIMEOUT_SECONDS,
    ExecutionEngine,
)
from blink.execution.types import ExecuteInput

logger = logging.getLogger(__name__)

AGENT_HOST = "127.0.0.1"
DEFAULT_AGENT_PORT = 5555


def build_agent_engine() -> ExecutionEngine:
    """Engine with fixed limits and no URL policy; only the hop count is enforced."""
    return ExecutionEngine(
        timeout_s=DEFAULT_TIMEOUT_SECONDS,
        max_response_bytes=DEFAULT_MAX_RESPONSE_BYTES,
        max_redirects=DEFAULT_MAX_REDIRECTS,
        url_policy=None,
    )


def _invalid_request(errors: list[dict[str, object]]) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ())[1:]) or 'body'}: {error.get('msg')}"
        for error in errors
    )
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {details}"})


def create_agent_app(engine: ExecutionEngine | None = None) -> FastAPI:
    agent = FastAPI(title="Blink Agent", version=__version__)
    agent.state.engine = engine or build_agent_engine()

    agent.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Accept"],
        expose_headers=["Content-Length"],
        max_age=12 * 3600,
    )

    @agent.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s - %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    @agent.exception_handler(RequestValidationError)
    async def _validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        return _invalid_request(list(exc.errors()))

    @agent.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__, "message": "Agent is running"}

    @agent.post("/execute")
    async def execute(payload: ExecuteInput, request: Request) -> JSONResponse:
        # execution failures are still a 200: the error travels in the payload
        result = await request.app.state.engine.execute(payload.to_descriptor())
        return JSONResponse(status_code=200, content=result.to_payload())

    return agent


app = create_agent_app()
