"""App lifecycle and permission engines."""

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
from mobile_core.engines.registry import API_KEY_MAP_NAME, APIKeyRegistry
from mobile_core.engines.repository import AppRepository, AppValidator, DefaultAppValidator

__all__ = [
    # Apps
    "AppRepository",
    "AppValidator",
    "DefaultAppValidator",
    "APIKeyRegistry",
    "API_KEY_MAP_NAME",
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
]
