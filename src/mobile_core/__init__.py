"""
Mobile Core - Mobile App Control Plane.

Tracks registered mobile App tenants, issues and revokes their API keys,
and gates administrative access behind cluster permission checks.
"""

from mobile_core.audit import AuditEvent, AuditEventType, AuditLogger
from mobile_core.config import Settings, build_store
from mobile_core.core.app import App, ClientType, icon_for
from mobile_core.core.correlation import (
    CorrelatedLogger,
    correlation_context,
    get_correlation_id,
)
from mobile_core.core.identity import AuthorizationDecision, User
from mobile_core.engines.lifecycle import AppLifecycleService, ReconcileReport
from mobile_core.engines.permission import (
    ClusterConfig,
    ClusterUserRepo,
    NamespaceAuthorizer,
    PermissionChecker,
    ResolvedUserRepo,
    UserRepo,
    check_user,
)
from mobile_core.engines.registry import APIKeyRegistry
from mobile_core.engines.repository import AppRepository, AppValidator, DefaultAppValidator
from mobile_core.errors import (
    AuthenticationError,
    ConflictError,
    MobileCoreError,
    NotFoundError,
    PartialFailureError,
    TransportError,
    UnexpectedResponseError,
    ValidationError,
    VersionConflictError,
)
from mobile_core.middleware.access import AccessGate, is_exempt
from mobile_core.middleware.correlation import CorrelationMiddleware
from mobile_core.store import InMemoryObjectStore, ObjectStore, Record

__version__ = "0.1.0"

__all__ = [
    # Models
    "App",
    "ClientType",
    "icon_for",
    "User",
    "AuthorizationDecision",
    # Store
    "ObjectStore",
    "Record",
    "InMemoryObjectStore",
    # Apps
    "AppRepository",
    "AppValidator",
    "DefaultAppValidator",
    "APIKeyRegistry",
    "AppLifecycleService",
    "ReconcileReport",
    # Permissions
    "ClusterConfig",
    "UserRepo",
    "ClusterUserRepo",
    "ResolvedUserRepo",
    "PermissionChecker",
    "NamespaceAuthorizer",
    "check_user",
    # Middleware
    "AccessGate",
    "is_exempt",
    "CorrelationMiddleware",
    # Errors
    "MobileCoreError",
    "NotFoundError",
    "ConflictError",
    "VersionConflictError",
    "ValidationError",
    "TransportError",
    "AuthenticationError",
    "UnexpectedResponseError",
    "PartialFailureError",
    # Ambient
    "Settings",
    "build_store",
    "AuditLogger",
    "AuditEvent",
    "AuditEventType",
    "CorrelatedLogger",
    "correlation_context",
    "get_correlation_id",
]
