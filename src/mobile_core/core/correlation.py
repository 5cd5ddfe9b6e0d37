"""
Request Correlation for Mobile Core.

Carries a per-request correlation ID through gate decisions, lifecycle
operations and outbound cluster calls so their log lines can be joined.

Usage:
    with correlation_context(method="POST", path="/apps") as cid:
        service.create(app)   # logs carry cid

    logger = CorrelatedLogger(logging.getLogger(__name__))
    logger.info("App created")
"""

from __future__ import annotations

import contextvars
import uuid
from contextlib import contextmanager
from typing import Any, Generator, Mapping

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "mobile_core_correlation_id", default=None
)
_request_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "mobile_core_request_context", default={}
)

CORRELATION_HEADER = "X-Correlation-ID"
# Checked in priority order
INBOUND_HEADERS = (CORRELATION_HEADER, "X-Request-ID")


def generate_correlation_id() -> str:
    """New correlation ID, format mc-<16 hex chars>."""
    return f"mc-{uuid.uuid4().hex[:16]}"


def get_correlation_id() -> str | None:
    """Correlation ID of the current context, if any."""
    return _correlation_id.get()


def get_request_context() -> dict[str, Any]:
    """Extra request context recorded with correlation_context()."""
    context = dict(_request_context.get())
    context["correlation_id"] = _correlation_id.get()
    return context


def correlation_id_from_headers(headers: Mapping[str, str]) -> str | None:
    """Pick an inbound correlation ID out of request headers."""
    normalized = {k.lower(): v for k, v in headers.items()}
    for header in INBOUND_HEADERS:
        value = normalized.get(header.lower())
        if value:
            return value
    return None


@contextmanager
def correlation_context(
    correlation_id: str | None = None,
    **extra: Any,
) -> Generator[str, None, None]:
    """
    Scope a correlation ID (and optional request context) to a block.

    The previous values are restored on exit, so nesting is safe.
    """
    cid = correlation_id or generate_correlation_id()
    id_token = _correlation_id.set(cid)
    context_token = _request_context.set({**_request_context.get(), **extra})
    try:
        yield cid
    finally:
        _request_context.reset(context_token)
        _correlation_id.reset(id_token)


class CorrelatedLogger:
    """
    Logger wrapper that stamps the correlation ID on every record.

    The ID lands in the record's ``extra`` as ``correlation_id`` along with
    any request context (method, path, client_ip).
    """

    def __init__(self, logger: Any) -> None:
        self._logger = logger

    def _with_context(self, kwargs: dict[str, Any]) -> dict[str, Any]:
        extra = dict(kwargs.get("extra") or {})
        extra.update(get_request_context())
        kwargs["extra"] = extra
        return kwargs

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._logger.debug(msg, *args, **self._with_context(kwargs))

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._logger.info(msg, *args, **self._with_context(kwargs))

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._logger.warning(msg, *args, **self._with_context(kwargs))

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._logger.error(msg, *args, **self._with_context(kwargs))

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._logger.exception(msg, *args, **self._with_context(kwargs))
