"""Starlette/FastAPI middleware."""

from mobile_core.middleware.access import (
    EXEMPT_PATTERNS,
    AccessGate,
    default_token_retriever,
    is_exempt,
)
from mobile_core.middleware.correlation import CorrelationMiddleware

__all__ = [
    "AccessGate",
    "EXEMPT_PATTERNS",
    "is_exempt",
    "default_token_retriever",
    "CorrelationMiddleware",
]
