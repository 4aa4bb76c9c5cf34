"""FastAPI application wiring for ReplyDesk.

The HTTP surface is intentionally small: it hosts the access logging
middleware, applies the request throttle and exposes the draft pipeline.

- ``GET /api/health``: liveness probe.
- ``GET /api/version``: build information.
- ``GET /api/metrics``: Prometheus metrics.
- ``POST /api/ai/generate-response``: draft a reply to a stored message.

Collaborators are injected through :func:`create_app` so the app can be
served against real storage or exercised in tests with in-memory fakes.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

from fastapi import FastAPI, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry
from prometheus_fastapi_instrumentator import Instrumentator
from pydantic import ValidationError as PydanticValidationError

from .__version__ import __build_date__, __commit_sha__, __version__
from .app_logging import init_logging
from .config import Settings, get_settings
from .drafts import schemas
from .drafts.service import DraftPipeline
from .errors import NotFoundError, ThrottleExceeded, ValidationError
from .security.state_tokens import StateTokenStore
from .security.sweeper import PeriodicSweeper
from .security.throttle import RequestThrottle, api_throttle, throttle_token
from .security.vault import CredentialVault

logger = logging.getLogger(__name__)

SettingsLoader = Callable[[UUID], Any]


def _client_token(request: Request) -> str:
    """Derive the throttle token: authenticated user first, then client IP."""

    client = request.client
    return throttle_token(
        request.headers.get("X-User-Id"),
        request.headers.get("X-Forwarded-For"),
        client.host if client is not None else None,
    )


def _load_settings(
    loader: SettingsLoader, conversation_id: UUID
) -> schemas.OrganizationSettings:
    raw = loader(conversation_id)
    if isinstance(raw, schemas.OrganizationSettings):
        return raw
    return schemas.load_organization_settings(dict(raw) if raw else None)


def create_app(
    pipeline_factory: Callable[[], DraftPipeline],
    settings_loader: SettingsLoader,
    throttle: RequestThrottle | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the FastAPI app around an injected draft pipeline.

    The credential vault is built here, so a missing or malformed
    ``ENCRYPTION_KEY`` stops startup with :class:`IntegrityError`. While the
    app runs, a background sweeper prunes the throttle and state tokens every
    ``sweep_interval_seconds``.
    """

    settings = settings or get_settings()
    vault = CredentialVault(settings.encryption_key)
    limiter = throttle or api_throttle()
    state_tokens = StateTokenStore(ttl_seconds=settings.state_token_ttl_seconds)
    sweeper = PeriodicSweeper(settings.sweep_interval_seconds, limiter, state_tokens)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        sweeper.start()
        logger.info("Sweeper started (every %ss)", settings.sweep_interval_seconds)
        try:
            yield
        finally:
            sweeper.stop()
            logger.info("Sweeper stopped")

    app = FastAPI(title="ReplyDesk", version=__version__, lifespan=lifespan)
    init_logging(app)
    app.state.settings = settings
    app.state.vault = vault
    app.state.throttle = limiter
    app.state.state_tokens = state_tokens
    app.state.sweeper = sweeper

    # Expose Prometheus metrics; each app gets its own registry.
    Instrumentator(registry=CollectorRegistry()).instrument(app).expose(
        app, include_in_schema=False, endpoint="/api/metrics"
    )

    @app.exception_handler(ThrottleExceeded)
    async def _throttled(request: Request, exc: ThrottleExceeded) -> JSONResponse:
        retry_after = max(1, int(round(exc.retry_after)))
        return JSONResponse(
            status_code=429,
            content={"detail": "Too many requests"},
            headers={"Retry-After": str(retry_after)},
        )

    @app.get("/api/health")
    async def health():
        """Liveness/readiness probe with a minimal JSON body."""
        return {"status": "ok"}

    @app.get("/api/version")
    async def version():
        """Return version information for the application."""
        return {
            "version": __version__,
            "build_date": __build_date__,
            "commit_sha": __commit_sha__,
        }

    @app.post("/api/ai/generate-response", response_model=schemas.GenerateDraftResponse)
    async def generate_response(request: Request) -> schemas.GenerateDraftResponse:
        """Draft, score and route a reply to one stored customer message."""

        token = _client_token(request)
        request.state.throttle_token = token
        result = limiter.enforce(token)

        try:
            body = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Request body must be JSON") from exc
        try:
            payload = schemas.GenerateDraftRequest.model_validate(body)
        except PydanticValidationError as exc:
            raise HTTPException(
                status_code=400,
                detail="conversation_id and message_id are required",
            ) from exc

        try:
            settings = _load_settings(settings_loader, payload.conversation_id)
            pipeline = pipeline_factory()
            record = await run_in_threadpool(
                pipeline.run, payload.conversation_id, payload.message_id, settings
            )
        except NotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except Exception as exc:
            logger.exception(
                "Generate response failed for conversation %s", payload.conversation_id
            )
            raise HTTPException(status_code=500, detail="Failed to generate response") from exc

        return schemas.GenerateDraftResponse(draft=record, remaining=result.remaining)

    return app


__all__ = ["create_app"]
