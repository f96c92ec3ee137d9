"""Loguru setup plus the request logging middleware."""

from __future__ import annotations

import logging
import secrets
import sys
import time
from contextvars import ContextVar

from fastapi import FastAPI, Request
from loguru import logger as _logger

_FMT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<lvl>{level:<8}</lvl> | "
    "<magenta>{extra[correlation_id]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<lvl>{message}</lvl>"
)

_CORRELATION_ID: ContextVar[str] = ContextVar("correlation_id", default="-")


class _InterceptHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = _logger.level(record.levelname).name
        except ValueError:
            level = str(record.levelno)
        _logger.bind(correlation_id=_CORRELATION_ID.get()).opt(
            depth=6, exception=record.exc_info
        ).log(level, record.getMessage())


class ContextualLogger:
    """Proxy for loguru that injects correlation ids via ContextVar."""

    def __getattr__(self, name):  # pragma: no cover
        bound = _logger.bind(correlation_id=_CORRELATION_ID.get())
        return getattr(bound, name)


def set_correlation_id(value: str | None) -> None:
    _CORRELATION_ID.set(value or "-")


def clear_correlation_id() -> None:
    _CORRELATION_ID.set("-")


def setup_logging(level: str = "INFO") -> None:
    _logger.remove()
    _logger.configure(extra={"correlation_id": "-"})
    _logger.add(
        sys.stderr,
        level=level.upper(),
        format=_FMT,
        colorize=True,
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)


def bind_request_logging(app: FastAPI) -> None:
    # Only method, path and status are logged; headers carry bearer tokens
    @app.middleware("http")
    async def _log_requests(request: Request, call_next):
        set_correlation_id(request.headers.get("X-Request-ID") or secrets.token_urlsafe(8))
        started = time.perf_counter()
        try:
            response = await call_next(request)
            elapsed = (time.perf_counter() - started) * 1000.0
            logger.info(f"{request.method} {request.url.path} -> {response.status_code} in {elapsed:.1f} ms")
            return response
        finally:
            clear_correlation_id()


logger = ContextualLogger()

__all__ = [
    "logger",
    "setup_logging",
    "bind_request_logging",
    "set_correlation_id",
    "clear_correlation_id",
]
