"""
App Lifecycle Service for Mobile Core.

Keeps an App record and its API key registry entry in step:

    create: absent -> created -> key-registered
    delete: key-registered -> deleted-from-repo -> key-unregistered

The two steps are not transactional. When the second step fails after the
first committed, the service raises PartialFailureError and leaves the
committed step in place; reconcile() brings the registry back in line with
the App records.
"""

from __future__ import annotations

import hmac
import logging
import uuid
from dataclasses import dataclass, field

from mobile_core.audit import AuditLogger
from mobile_core.core.app import App, icon_for
from mobile_core.core.correlation import CorrelatedLogger
from mobile_core.engines.registry import APIKeyRegistry
from mobile_core.engines.repository import AppRepository
from mobile_core.errors import (
    AuthenticationError,
    MobileCoreError,
    NotFoundError,
    PartialFailureError,
)

logger = CorrelatedLogger(logging.getLogger(__name__))


def generate_api_key() -> str:
    """New opaque API key (UUID4)."""
    return str(uuid.uuid4())


@dataclass
class ReconcileReport:
    """What a reconcile pass changed in the registry."""

    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


class AppLifecycleService:
    """
    Creates and deletes Apps together with their API keys.

    Usage:
        service = AppLifecycleService(AppRepository(store), APIKeyRegistry(store))
        app = service.create(App(name="shop", client_type="ios"))
        service.delete(app.id)
    """

    def __init__(
        self,
        repository: AppRepository,
        registry: APIKeyRegistry,
        *,
        auditor: AuditLogger | None = None,
    ) -> None:
        self._repository = repository
        self._registry = registry
        self._auditor = auditor or AuditLogger()

    @property
    def repository(self) -> AppRepository:
        return self._repository

    def create(self, app: App) -> App:
        """
        Create an App and register its freshly issued API key.

        Raises:
            ValidationError, ConflictError: From the repository; nothing was written
            PartialFailureError: The App was stored but its key is not registered
        """
        app = app.model_copy(update={"api_key": generate_api_key()})
        icon = icon_for(app.client_type)
        if icon:
            app = app.with_metadata(icon=icon)

        created = self._repository.create(app)

        try:
            self._registry.add_entry(created.id, created.api_key)
        except MobileCoreError as e:
            self._auditor.log_partial_failure(
                operation="create",
                app_id=created.id,
                completed_step="app-created",
                error=str(e),
            )
            raise PartialFailureError(
                f"app create: {created.id} was stored but its API key could not be registered",
                operation="create",
                app_id=created.id,
                completed_step="app-created",
            ) from e

        logger.info("Created mobile app %s (%s)", created.id, created.client_type)
        self._auditor.log_app_event("created", app_id=created.id, client_type=created.client_type)
        return created

    def delete(self, app_id: str) -> None:
        """
        Delete an App and unregister its API key.

        Raises:
            NotFoundError: The App does not exist; nothing was changed
            PartialFailureError: The App is gone but its key is still registered
        """
        self._repository.delete_by_name(app_id)

        try:
            self._registry.remove_entry(app_id)
        except MobileCoreError as e:
            self._auditor.log_partial_failure(
                operation="delete",
                app_id=app_id,
                completed_step="app-deleted",
                error=str(e),
            )
            raise PartialFailureError(
                f"app delete: {app_id} was removed but its API key is still registered",
                operation="delete",
                app_id=app_id,
                completed_step="app-deleted",
            ) from e

        logger.info("Deleted mobile app %s", app_id)
        self._auditor.log_app_event("deleted", app_id=app_id)

    def reconcile(self) -> ReconcileReport:
        """
        Repair drift between App records and the API key registry.

        Registers keys of Apps missing from the registry and drops entries
        whose App no longer exists. Entries of existing Apps are left as
        they are.

        Safe to run alongside create and delete: the registry is read
        before the Apps, and every App is re-read before its entry is
        touched.
        """
        # Registry snapshot must be taken before the App snapshot
        entries = self._registry.entries()
        apps = {app.id: app for app in self._repository.list()}
        report = ReconcileReport()

        for app_id, app in apps.items():
            if app_id in entries or not app.api_key:
                continue
            if not self._app_exists(app_id):
                continue
            self._registry.add_entry(app_id, app.api_key)
            report.added.append(app_id)

        for app_id in entries:
            if app_id in apps or self._app_exists(app_id):
                continue
            self._registry.remove_entry(app_id)
            report.removed.append(app_id)

        if report.changed:
            logger.warning(
                "Reconciled API key registry: added %s, removed %s",
                report.added,
                report.removed,
            )
            self._auditor.log_reconcile(added=report.added, removed=report.removed)
        return report

    def _app_exists(self, app_id: str) -> bool:
        try:
            self._repository.read_by_name(app_id)
        except NotFoundError:
            return False
        return True

    def verify_api_key(self, app_id: str, api_key: str | None) -> App:
        """
        Check the API key an SDK client presented for an App.

        Raises:
            NotFoundError: If the App does not exist
            AuthenticationError: If the key is missing or does not match
        """
        if not api_key:
            raise AuthenticationError("missing api key", status_code=401)
        app = self._repository.read_by_name(app_id)
        if not app.api_key or not hmac.compare_digest(app.api_key, api_key):
            raise AuthenticationError("unauthorised", status_code=401)
        return app
