"""Core domain models and request correlation."""

from mobile_core.core.app import CLIENT_ICONS, App, ClientType, icon_for
from mobile_core.core.correlation import (
    CorrelatedLogger,
    correlation_context,
    correlation_id_from_headers,
    generate_correlation_id,
    get_correlation_id,
)
from mobile_core.core.identity import AuthorizationDecision, User

__all__ = [
    "App",
    "ClientType",
    "CLIENT_ICONS",
    "icon_for",
    "User",
    "AuthorizationDecision",
    # Correlation
    "correlation_context",
    "correlation_id_from_headers",
    "generate_correlation_id",
    "get_correlation_id",
    "CorrelatedLogger",
]
