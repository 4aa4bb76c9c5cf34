"""Logging for the ReplyDesk service.

Two loggers are wired to timed rotating files under ``LOG_DIR``:

``replydesk`` -> ``app.log``
    Parent of every module logger in the package (``logging.getLogger(__name__)``).
``uvicorn.access`` -> ``access.log``
    One JSON document per HTTP request, written by the middleware installed
    through :func:`init_logging`. Credentials, provider tokens and state
    values are masked before anything reaches disk.

Environment variables: LOG_DIR, LOG_LEVEL, LOG_JSON, LOG_REQUEST_BODIES,
LOG_RETENTION_DAYS, LOG_ROTATE_UTC.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from logging.handlers import TimedRotatingFileHandler
from typing import Any, cast
from uuid import uuid4

from fastapi import FastAPI, Request

APP_LOGGER_NAME = "replydesk"
ACCESS_LOGGER_NAME = "uvicorn.access"
MASK = "***"

# Header and body keys whose values never reach the access log.
SENSITIVE_FIELDS = {
    "authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "password",
    "token",
    "access_token",
    "refresh_token",
    "encrypted_access_token",
    "encrypted_refresh_token",
    "state",
}

_UNLOGGED_PATHS = frozenset({"/api/health", "/api/metrics"})


def _env_flag(name: str) -> bool:
    return os.getenv(name, "false").lower() == "true"


@dataclass(frozen=True)
class LogSettings:
    directory: str
    level: int
    json: bool
    retention_days: int
    rotate_utc: bool

    @classmethod
    def from_env(cls) -> "LogSettings":
        level_name = os.getenv("LOG_LEVEL", "INFO").upper()
        return cls(
            directory=os.getenv("LOG_DIR", "logs"),
            level=getattr(logging, level_name, logging.INFO),
            json=_env_flag("LOG_JSON"),
            retention_days=int(os.getenv("LOG_RETENTION_DAYS", "7")),
            rotate_utc=_env_flag("LOG_ROTATE_UTC"),
        )


class JsonFormatter(logging.Formatter):
    """One JSON object per record; used when LOG_JSON=true."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def _formatter(settings: LogSettings) -> logging.Formatter:
    if settings.json:
        return JsonFormatter()
    return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")


def _rotating_handler(settings: LogSettings, filename: str) -> TimedRotatingFileHandler:
    handler = TimedRotatingFileHandler(
        os.path.join(settings.directory, filename),
        when="midnight",
        backupCount=settings.retention_days,
        utc=settings.rotate_utc,
    )
    handler.setFormatter(_formatter(settings))
    return handler


def _scrub(data: object) -> object:
    """Mask sensitive keys at any depth of a JSON-like structure."""

    if isinstance(data, dict):
        return {
            key: MASK if key.lower() in SENSITIVE_FIELDS else _scrub(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [_scrub(item) for item in data]
    return data


async def _captured_body(request: Request) -> object | None:
    """Read the body for logging and replay it to the route handler."""

    raw = await request.body()

    async def replay() -> dict:  # pragma: no cover - internal
        return {"type": "http.request", "body": raw, "more_body": False}

    request._receive = replay  # type: ignore[attr-defined]
    if not raw:
        return None
    try:
        return _scrub(json.loads(raw))
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def _install_access_logging(app: FastAPI) -> None:
    """Attach the access log middleware to ``app``.

    Every request except health probes and metrics scrapes gets an
    ``X-Request-Id`` (the caller's own value when supplied) which is echoed
    on the response and recorded in the log line together with the throttle
    identity when the route set one.
    """

    capture_bodies = _env_flag("LOG_REQUEST_BODIES")
    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        if request.url.path in _UNLOGGED_PATHS:
            return await call_next(request)

        request_id = request.headers.get("X-Request-Id") or uuid4().hex
        request.state.request_id = request_id
        started = time.perf_counter()
        body = await _captured_body(request) if capture_bodies else None

        response = await call_next(request)

        peer = request.client.host if request.client is not None else None
        entry: dict[str, Any] = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "latency_ms": round((time.perf_counter() - started) * 1000, 2),
            "client_ip": request.headers.get("X-Forwarded-For") or peer,
            "headers": _scrub(dict(request.headers)),
        }
        caller = getattr(request.state, "throttle_token", None)
        if caller:
            entry["caller"] = caller
        if body is not None:
            entry["body"] = body

        response.headers["X-Request-Id"] = request_id
        access_logger.info(json.dumps(entry, default=str))
        return response


def init_logging(app: FastAPI | None = None) -> None:
    """Configure the package and access loggers, then hook up ``app``.

    The package logger keeps handlers added by an earlier call; access log
    handlers are always replaced so uvicorn's console handler does not
    duplicate lines.
    """

    settings = LogSettings.from_env()
    os.makedirs(settings.directory, exist_ok=True)

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    if not app_logger.handlers:
        app_logger.addHandler(_rotating_handler(settings, "app.log"))
    app_logger.setLevel(settings.level)

    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
    access_logger.handlers.clear()
    access_logger.addHandler(_rotating_handler(settings, "access.log"))
    access_logger.setLevel(settings.level)

    if app is not None:
        cast(Any, app).logger = app_logger
        _install_access_logging(app)


__all__ = ["APP_LOGGER_NAME", "JsonFormatter", "LogSettings", "init_logging"]
