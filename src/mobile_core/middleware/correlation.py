"""Correlation ID middleware."""

from __future__ import annotations

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from mobile_core.core.correlation import (
    CORRELATION_HEADER,
    correlation_context,
    correlation_id_from_headers,
)


class CorrelationMiddleware(BaseHTTPMiddleware):
    """
    Scopes a correlation ID to each request.

    Reuses X-Correlation-ID / X-Request-ID when the caller sends one,
    otherwise generates a new ID. The ID is echoed in the response headers
    and stored on request.state.correlation_id.

    Add it after AccessGate so it wraps the gate and gate logs carry the ID.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        with correlation_context(
            correlation_id_from_headers(request.headers),
            method=request.method,
            path=str(request.url.path),
            client_ip=request.client.host if request.client else None,
        ) as cid:
            request.state.correlation_id = cid
            response = await call_next(request)
            response.headers[CORRELATION_HEADER] = cid
            return response
