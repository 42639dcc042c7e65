"""
bgresearch.server — The research API (FastAPI).

Endpoints:

    GET  /               Service descriptor
    GET  /health         Liveness
    POST /analyze        Query → summary
    POST /api/summarize  Alias of /analyze used by the web frontend

Sessions are handled by the identity gateway in front of this service;
anything that reaches us is trusted.

Runs on ``http://127.0.0.1:8080`` by default (``bgresearch serve``).
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from bgresearch import __version__
from bgresearch.core.errors import ConfigurationError, QueryValidationError
from bgresearch.core.models import (
    AnalyzeResponse,
    ErrorResponse,
    Failure,
    FailureKind,
    ProviderConfig,
    ServerConfig,
    Success,
)
from bgresearch.operations.orchestrator import CompletionOrchestrator
from bgresearch.validation import validate

logger = logging.getLogger("bgresearch.server")

SERVICE_ID = "background-research-backend"

# One table from failure kind to HTTP status
FAILURE_STATUS: dict[FailureKind, int] = {
    FailureKind.QUOTA_EXCEEDED: 429,
    FailureKind.AUTH_CONFIGURATION: 500,
    FailureKind.TIMEOUT: 408,
    FailureKind.UPSTREAM_UNAVAILABLE: 502,
    FailureKind.EMPTY_RESPONSE: 502,
    FailureKind.UNKNOWN: 500,
}

# How often a running analysis checks whether its client is still there
DISCONNECT_POLL_INTERVAL = 0.5

_SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "X-DNS-Prefetch-Control": "off",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
}


def _timestamp() -> str:
    """UTC ISO-8601 with millisecond precision and a ``Z`` suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _error(status_code: int, error: str, message: str, *, with_timestamp: bool = False,
           headers: dict[str, str] | None = None) -> JSONResponse:
    body = ErrorResponse(
        error=error,
        message=message,
        timestamp=_timestamp() if with_timestamp else None,
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


async def _run_until_disconnect(
    request: Request, work: Awaitable[Success | Failure]
) -> Success | Failure | None:
    """
    Await *work*, cancelling it if the client goes away first.

    Returns ``None`` when the client disconnected.
    """
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=DISCONNECT_POLL_INTERVAL)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info("Client disconnected — cancelling upstream call")
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
                return None
    finally:
        if not task.done():
            task.cancel()


# ---------------------------------------------------------------------------
# FastAPI App
# ---------------------------------------------------------------------------

def create_app(
    config: ProviderConfig | None = None,
    server_config: ServerConfig | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    Build the application.

    *config* defaults to ``ProviderConfig.from_env()`` resolved at start-up;
    *transport* replaces the upstream HTTP transport (tests).
    """
    server_config = server_config or ServerConfig.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Load the provider config once and build the orchestrator."""
        provider_config = config or ProviderConfig.from_env()
        app.state.provider_config = provider_config
        app.state.orchestrator = None
        app.state.config_error = None

        try:
            app.state.orchestrator = CompletionOrchestrator.from_config(
                provider_config, transport=transport
            )
        except ConfigurationError as exc:
            # Keep serving /health so the deployment stays observable
            logger.error("Model provider not configured: %s", exc.message)
            app.state.config_error = exc.message

        logger.info(
            "Research API started — provider=%s model=%s base_url=%s timeout=%dms",
            provider_config.provider,
            provider_config.model,
            provider_config.base_url,
            provider_config.timeout_ms,
        )

        yield

        # Teardown
        if app.state.orchestrator is not None:
            await app.state.orchestrator.close()
        logger.info("Research API shut down.")

    app = FastAPI(
        title="Background Research API",
        description="Company and investment research summaries backed by an LLM.",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(server_config.cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        response = await call_next(request)
        for name, value in _SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response

    _register_error_handlers(app, server_config)
    _register_routes(app)
    return app


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

def _register_error_handlers(app: FastAPI, server_config: ServerConfig) -> None:
    origins = server_config.cors_origins

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        # Unknown path and wrong method on a known path are both "not found"
        if exc.status_code in (404, 405):
            return _error(
                404,
                "Not found",
                f"Endpoint {request.method} {request.url.path} not found",
            )
        return _error(exc.status_code, "Request failed", str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        # Answered outside the middleware stack, so the headers it adds are set here
        headers = dict(_SECURITY_HEADERS)
        origin = request.headers.get("origin")
        if "*" in origins:
            headers["Access-Control-Allow-Origin"] = "*"
        elif origin in origins:
            headers["Access-Control-Allow-Origin"] = origin
            headers["Vary"] = "Origin"
        return _error(500, "Internal server error", "An unexpected error occurred", headers=headers)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

def _register_routes(app: FastAPI) -> None:

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {
            "status": "healthy",
            "timestamp": _timestamp(),
            "service": SERVICE_ID,
            "version": __version__,
        }

    @app.get("/")
    async def describe() -> dict[str, Any]:
        return {
            "service": "Background Research Backend",
            "version": __version__,
            "description": "Backend API for company and investment research analysis",
            "endpoints": {
                "GET /health": "Health check endpoint",
                "POST /analyze": "Main research analysis endpoint",
                "POST /api/summarize": "Alias of /analyze",
            },
        }

    @app.post("/analyze", response_model=None)
    @app.post("/api/summarize", response_model=None)
    async def analyze(request: Request) -> JSONResponse:
        """
        Validate, orchestrate, and map the outcome to HTTP.

        Validation runs before the configuration check, so a malformed
        request is a 400 even on a misconfigured deployment.
        """
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None

        try:
            query = validate(body)
        except QueryValidationError as exc:
            return _error(400, exc.error, exc.message)

        orchestrator: CompletionOrchestrator | None = request.app.state.orchestrator
        if orchestrator is None:
            return _error(
                500,
                ConfigurationError.error,
                request.app.state.config_error or ConfigurationError().message,
            )

        logger.info("Received query: %d chars", len(query.text))
        logger.debug("Query text: %s", query.text)

        outcome = await _run_until_disconnect(request, orchestrator.run(query))

        if outcome is None:
            return _error(499, "Client closed request", "The client disconnected before completion")

        if isinstance(outcome, Failure):
            headers = {"Retry-After": outcome.retry_after} if outcome.retry_after else None
            return _error(
                FAILURE_STATUS[outcome.kind],
                "Analysis failed",
                outcome.message,
                with_timestamp=True,
                headers=headers,
            )

        response = AnalyzeResponse(
            summary=outcome.summary,
            query=outcome.query,
            timestamp=_timestamp(),
            metadata=outcome.metadata,
        )
        return JSONResponse(content=response.model_dump())


app = create_app()
