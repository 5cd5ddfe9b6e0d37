"""Unit tests for AppLifecycleService."""

import re

import pytest

from mobile_core.audit import AuditLogger
from mobile_core.core.app import App
from mobile_core.engines.lifecycle import AppLifecycleService, generate_api_key
from mobile_core.engines.registry import APIKeyRegistry
from mobile_core.engines.repository import AppRepository
from mobile_core.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PartialFailureError,
    TransportError,
)
from mobile_core.store import InMemoryObjectStore


class FailingRegistry(APIKeyRegistry):
    """Registry whose writes fail while `failing` is set."""

    def __init__(self, store: InMemoryObjectStore) -> None:
        super().__init__(store)
        self.failing = True

    def add_entry(self, app_id: str, api_key: str) -> None:
        if self.failing:
            raise TransportError("adding API key to map: connection reset")
        super().add_entry(app_id, api_key)

    def remove_entry(self, app_id: str) -> None:
        if self.failing:
            raise TransportError("removing API key from map: connection reset")
        super().remove_entry(app_id)


class TestAppLifecycleService:
    """Tests for AppLifecycleService."""

    @pytest.fixture
    def store(self) -> InMemoryObjectStore:
        return InMemoryObjectStore()

    @pytest.fixture
    def registry(self, store: InMemoryObjectStore) -> APIKeyRegistry:
        reg = APIKeyRegistry(store)
        reg.ensure_map_exists()
        return reg

    @pytest.fixture
    def service(self, store: InMemoryObjectStore, registry: APIKeyRegistry) -> AppLifecycleService:
        return AppLifecycleService(AppRepository(store), registry)

    def test_create_ios_app(self, service: AppLifecycleService, registry: APIKeyRegistry) -> None:
        """Creating an iOS App stores it with an icon and registers its key."""
        created = service.create(App(name="shop", client_type="ios"))

        assert re.fullmatch(r"shop-\d+", created.id)
        assert created.metadata["icon"] == "fa-apple"
        assert created.api_key
        assert registry.entries() == {created.id: created.api_key}

        read = service.repository.read_by_name(created.id)
        assert read.name == "shop"
        assert read.client_type == "ios"
        assert read.api_key == created.api_key

    @pytest.mark.parametrize(
        "client_type,icon",
        [("android", "fa-android"), ("cordova", "icon-cordova"), ("other", "")],
    )
    def test_icon_by_client_type(
        self, service: AppLifecycleService, client_type: str, icon: str
    ) -> None:
        """Icons follow the client type; other gets none."""
        created = service.create(App(name="app", client_type=client_type))
        assert created.metadata["icon"] == icon

    def test_caller_api_key_is_replaced(self, service: AppLifecycleService) -> None:
        """The service always issues the API key itself."""
        created = service.create(App(name="shop", client_type="ios", api_key="chosen"))
        assert created.api_key != "chosen"

    def test_keys_are_distinct(self, service: AppLifecycleService, registry: APIKeyRegistry) -> None:
        """Each App gets its own key."""
        shop = service.create(App(name="shop", client_type="ios"))
        news = service.create(App(name="news", client_type="android"))

        assert shop.api_key != news.api_key
        assert registry.entries() == {shop.id: shop.api_key, news.id: news.api_key}

    def test_generate_api_key_unique(self) -> None:
        """Generated keys do not repeat."""
        assert len({generate_api_key() for _ in range(100)}) == 100

    def test_create_conflict_writes_nothing(
        self, service: AppLifecycleService, registry: APIKeyRegistry
    ) -> None:
        """A duplicate name fails before any key is registered."""
        first = service.create(App(name="shop", client_type="ios"))

        with pytest.raises(ConflictError):
            service.create(App(name="shop", client_type="android"))

        assert registry.entries() == {first.id: first.api_key}

    def test_create_partial_failure(self, store: InMemoryObjectStore) -> None:
        """A registry failure after the App was stored is reported as partial."""
        registry = FailingRegistry(store)
        service = AppLifecycleService(AppRepository(store), registry)

        with pytest.raises(PartialFailureError) as exc_info:
            service.create(App(name="shop", client_type="ios"))

        err = exc_info.value
        assert err.operation == "create"
        assert err.completed_step == "app-created"
        assert isinstance(err.__cause__, TransportError)
        assert service.repository.read_by_name(err.app_id).name == "shop"
        assert registry.entries() == {}

    def test_reconcile_registers_missing_key(self, store: InMemoryObjectStore) -> None:
        """Reconcile registers the key of an App left unregistered."""
        registry = FailingRegistry(store)
        service = AppLifecycleService(AppRepository(store), registry)
        with pytest.raises(PartialFailureError) as exc_info:
            service.create(App(name="shop", client_type="ios"))
        app_id = exc_info.value.app_id

        registry.failing = False
        report = service.reconcile()

        app = service.repository.read_by_name(app_id)
        assert report.added == [app_id]
        assert report.removed == []
        assert registry.entries() == {app_id: app.api_key}

    def test_delete(self, service: AppLifecycleService, registry: APIKeyRegistry) -> None:
        """Deleting removes both the App and its key."""
        shop = service.create(App(name="shop", client_type="ios"))
        news = service.create(App(name="news", client_type="android"))

        service.delete(shop.id)

        with pytest.raises(NotFoundError):
            service.repository.read_by_name(shop.id)
        assert registry.entries() == {news.id: news.api_key}

    def test_delete_missing(self, service: AppLifecycleService, registry: APIKeyRegistry) -> None:
        """Deleting an unknown App raises NotFoundError and changes nothing."""
        shop = service.create(App(name="shop", client_type="ios"))

        with pytest.raises(NotFoundError):
            service.delete("nope-1")
        assert registry.entries() == {shop.id: shop.api_key}

    def test_delete_partial_failure_then_reconcile(self, store: InMemoryObjectStore) -> None:
        """A key left behind by a failed delete is removed by reconcile."""
        registry = FailingRegistry(store)
        registry.failing = False
        service = AppLifecycleService(AppRepository(store), registry)
        shop = service.create(App(name="shop", client_type="ios"))

        registry.failing = True
        with pytest.raises(PartialFailureError) as exc_info:
            service.delete(shop.id)
        assert exc_info.value.completed_step == "app-deleted"
        assert registry.entries() == {shop.id: shop.api_key}

        registry.failing = False
        report = service.reconcile()

        assert report.removed == [shop.id]
        assert registry.entries() == {}

    def test_reconcile_noop(self, service: AppLifecycleService) -> None:
        """Reconcile on a consistent registry changes nothing."""
        service.create(App(name="shop", client_type="ios"))
        report = service.reconcile()
        assert not report.changed

    def test_verify_api_key(self, service: AppLifecycleService) -> None:
        """The App's own key verifies; anything else is rejected."""
        shop = service.create(App(name="shop", client_type="ios"))

        assert service.verify_api_key(shop.id, shop.api_key).id == shop.id
        with pytest.raises(AuthenticationError) as exc_info:
            service.verify_api_key(shop.id, "wrong")
        assert exc_info.value.status_code == 401
        with pytest.raises(AuthenticationError):
            service.verify_api_key(shop.id, None)
        with pytest.raises(NotFoundError):
            service.verify_api_key("nope-1", shop.api_key)

    def test_audit_events(self, store: InMemoryObjectStore, tmp_path) -> None:
        """Lifecycle changes are written to the audit log."""
        auditor = AuditLogger(log_path=tmp_path / "audit.jsonl")
        registry = APIKeyRegistry(store)
        service = AppLifecycleService(AppRepository(store), registry, auditor=auditor)

        shop = service.create(App(name="shop", client_type="ios"))
        service.delete(shop.id)
        auditor.close()

        lines = (tmp_path / "audit.jsonl").read_text().splitlines()
        assert len(lines) == 2
        assert '"app.created"' in lines[0]
        assert '"app.deleted"' in lines[1]
