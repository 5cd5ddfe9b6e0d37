"""
App Repository for Mobile Core.

CRUD over App records kept in the object store. One record per App, named
by the App id and labelled group=mobileapp.

Every mutating call does at most one store read and exactly one store
write. There are no retries: a store error is wrapped with the operation
and raised immediately.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Protocol, runtime_checkable

from mobile_core.core.app import (
    APP_GROUP,
    APP_GROUP_LABEL,
    APP_NAME_LABEL,
    App,
    ClientType,
)
from mobile_core.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)
from mobile_core.store.base import ObjectStore, Record

logger = logging.getLogger(__name__)

CREATED_FORMAT = "%Y-%m-%d %H:%M:%S"
APP_SELECTOR = f"{APP_GROUP_LABEL}={APP_GROUP}"

# App ids become record names, so names must be DNS-1123 labels with room
# left for the "-<epoch seconds>" suffix
_NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
MAX_NAME_LENGTH = 40


@runtime_checkable
class AppValidator(Protocol):
    """Pluggable checks run before an App is written."""

    def pre_create(self, app: App) -> None:
        """
        Validate an App about to be created.

        Raises:
            ValidationError: If the App is not acceptable
        """
        ...

    def pre_update(self, old: App, new: App) -> None:
        """
        Validate an update of old into new.

        Raises:
            ValidationError: If the update is not acceptable
        """
        ...


class DefaultAppValidator:
    """Validation applied when no custom validator is injected."""

    def pre_create(self, app: App) -> None:
        self._check_name(app.name)
        self._check_client_type(app.client_type)

    def pre_update(self, old: App, new: App) -> None:
        if new.id and new.id != old.id:
            raise ValidationError(f"app id is immutable ({old.id!r} -> {new.id!r})")
        self._check_name(new.name)
        self._check_client_type(new.client_type)

    @staticmethod
    def _check_name(name: str) -> None:
        if not name:
            raise ValidationError("app name is required")
        if len(name) > MAX_NAME_LENGTH:
            raise ValidationError(
                f"app name {name!r} is longer than {MAX_NAME_LENGTH} characters"
            )
        if not _NAME_PATTERN.match(name):
            raise ValidationError(
                f"app name {name!r} must be lowercase alphanumerics and '-'"
            )

    @staticmethod
    def _check_client_type(client_type: str) -> None:
        allowed = {c.value for c in ClientType}
        if client_type not in allowed:
            raise ValidationError(
                f"unknown client type {client_type!r}, expected one of {sorted(allowed)}"
            )


def app_from_record(record: Record) -> App:
    """Convert a stored record into an App."""
    return App(
        id=record.name,
        name=record.data.get("name", ""),
        display_name=record.data.get("displayName", ""),
        client_type=record.data.get("clientType", ""),
        api_key=record.data.get("apiKey", ""),
        description=record.data.get("description", ""),
        labels=dict(record.labels),
        metadata={
            "icon": record.annotations.get("icon", ""),
            "created": record.annotations.get("created", ""),
        },
    )


def record_from_app(app: App) -> Record:
    """Convert an App into a record ready to be stored."""
    return Record(
        name=app.id,
        labels={APP_GROUP_LABEL: APP_GROUP, APP_NAME_LABEL: app.name},
        annotations={
            "icon": app.metadata.get("icon", ""),
            "created": app.metadata.get("created", ""),
        },
        data={
            "name": app.name,
            "displayName": app.display_name,
            "clientType": app.client_type,
            "apiKey": app.api_key,
            "description": app.description,
        },
    )


class AppRepository:
    """
    Reads and writes App records.

    Usage:
        repo = AppRepository(InMemoryObjectStore())
        created = repo.create(App(name="shop", client_type="ios"))
        repo.read_by_name(created.id)
    """

    def __init__(
        self,
        store: ObjectStore,
        validator: AppValidator | None = None,
    ) -> None:
        """
        Initialize repository.

        Args:
            store: Backing object store
            validator: Pre-create/pre-update checks (DefaultAppValidator if None)
        """
        self._store = store
        self._validator = validator or DefaultAppValidator()

    def read_by_name(self, name: str) -> App:
        """
        Read an App by its record name (the App id).

        Raises:
            NotFoundError: If there is no such App
        """
        try:
            record = self._store.get(name)
        except NotFoundError as e:
            raise NotFoundError(f"failed to retrieve mobile app {name!r}") from e
        return app_from_record(record)

    def create(self, app: App) -> App:
        """
        Create an App, assigning its id and creation timestamp.

        Args:
            app: App to create; id and metadata["created"] are overwritten

        Returns:
            The App as stored

        Raises:
            ValidationError: If the validator rejects the App
            ConflictError: If an App with the same name was already stored when
                create ran, or the generated id is taken
        """
        try:
            self._validator.pre_create(app)
        except ValidationError as e:
            raise ValidationError(f"validation failed during create: {e.message}") from e

        # Check-then-act: two concurrent creates of one name in different
        # seconds both pass. Only the id is unique in the store.
        existing = self._store.list(f"{APP_SELECTOR},{APP_NAME_LABEL}={app.name}")
        if existing:
            raise ConflictError(
                f"mobile app {app.name!r} already exists as {existing[0].name!r}"
            )

        now = time.time()
        app = app.model_copy(
            update={
                "id": f"{app.name}-{int(now)}",
                "metadata": {
                    **app.metadata,
                    "created": time.strftime(CREATED_FORMAT, time.localtime(now)),
                },
            }
        )
        try:
            stored = self._store.create(record_from_app(app))
        except ConflictError as e:
            raise ConflictError(
                f"failed to create underlying record for mobile app {app.id!r}"
            ) from e
        logger.debug("Created record %s for mobile app %s", stored.name, app.name)
        return app_from_record(stored)

    def update(self, app: App) -> App:
        """
        Update an App's name and client type.

        Only name and clientType are merged into the stored record; every
        other stored field is kept as it is.

        Raises:
            NotFoundError: If the App does not exist (or was deleted meanwhile)
            ValidationError: If the validator rejects the update
            VersionConflictError: If the record changed since it was read
        """
        try:
            record = self._store.get(app.id)
        except NotFoundError as e:
            raise NotFoundError(f"failed to read underlying record for app {app.id!r}") from e

        old = app_from_record(record)
        try:
            self._validator.pre_update(old, app)
        except ValidationError as e:
            raise ValidationError(f"validation failed before update: {e.message}") from e

        record.data["name"] = app.name
        record.data["clientType"] = app.client_type
        # Keep the name label in step, duplicate detection lists by it
        record.labels[APP_NAME_LABEL] = app.name
        try:
            stored = self._store.update(record)
        except NotFoundError as e:
            raise NotFoundError(f"failed to update mobile app {app.id!r}: {e.message}") from e
        except VersionConflictError as e:
            raise VersionConflictError(
                f"failed to update mobile app {app.id!r}: {e.message}"
            ) from e
        return app_from_record(stored)

    def delete_by_name(self, name: str) -> None:
        """
        Delete the record backing an App.

        Raises:
            NotFoundError: If there is no such App
        """
        try:
            self._store.delete(name)
        except NotFoundError as e:
            raise NotFoundError(f"failed to delete mobile app {name!r}") from e

    def list(self) -> list[App]:
        """All Apps, in store order."""
        return [app_from_record(r) for r in self._store.list(APP_SELECTOR)]
