"""
HTTP application for Mobile Core.

Wires the store, repository, registry and lifecycle service behind the
access gate and exposes the App routes.

Usage:
    uvicorn --factory mobile_core.server:create_app
"""

from __future__ import annotations

import functools
import logging
from typing import Annotated, Any

from fastapi import APIRouter, Depends, FastAPI, Header, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from mobile_core.audit import AuditLogger
from mobile_core.config import Settings, build_store
from mobile_core.core.app import App, ClientType
from mobile_core.engines.lifecycle import AppLifecycleService
from mobile_core.engines.permission import NamespaceAuthorizer, check_user
from mobile_core.engines.registry import APIKeyRegistry
from mobile_core.engines.repository import APP_SELECTOR, AppRepository, AppValidator
from mobile_core.errors import (
    AuthenticationError,
    ConflictError,
    MobileCoreError,
    NotFoundError,
    PartialFailureError,
    TransportError,
    UnexpectedResponseError,
    ValidationError,
)
from mobile_core.middleware.access import AccessGate, Authorizer, UserCheck
from mobile_core.middleware.correlation import CorrelationMiddleware
from mobile_core.store.base import ObjectStore

logger = logging.getLogger(__name__)

API_KEY_HEADER = "X-Mobile-Api-Key"

# Most specific first; the first isinstance match wins
EXCEPTION_STATUS: tuple[tuple[type[MobileCoreError], int], ...] = (
    (PartialFailureError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (TransportError, status.HTTP_502_BAD_GATEWAY),
    (UnexpectedResponseError, status.HTTP_502_BAD_GATEWAY),
)


class AppCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    display_name: str = Field(default="", alias="displayName")
    client_type: str = Field(default=ClientType.OTHER.value, alias="clientType")
    description: str = ""


class AppUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    client_type: str = Field(alias="clientType")


def _render(app: App) -> dict[str, Any]:
    return app.model_dump(by_alias=True)


def handle_mobile_core_error(request: Request, exc: Exception) -> JSONResponse:
    """Map a MobileCoreError onto an HTTP response."""
    code = status.HTTP_500_INTERNAL_SERVER_ERROR
    for exc_type, exc_status in EXCEPTION_STATUS:
        if isinstance(exc, exc_type):
            code = exc_status
            break

    content: dict[str, Any] = {"message": str(exc)}
    if isinstance(exc, PartialFailureError):
        content.update(
            partial=True,
            operation=exc.operation,
            appId=exc.app_id,
            completedStep=exc.completed_step,
        )
        logger.error(
            "Partial failure on %s %s: %s (cause: %s)",
            request.method,
            request.url.path,
            exc,
            exc.__cause__,
        )
    elif code >= 500:
        logger.error("Request %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content=content)


def get_service(request: Request) -> AppLifecycleService:
    return request.app.state.service


ServiceDep = Annotated[AppLifecycleService, Depends(get_service)]

router = APIRouter()


@router.get("/sys/info/ping")
def ping() -> str:
    return "OK"


@router.get("/sys/info/health")
def health(request: Request) -> JSONResponse:
    """Healthy when the object store answers a list."""
    store: ObjectStore = request.app.state.store
    try:
        store.list(APP_SELECTOR)
    except MobileCoreError as e:
        logger.error("Health check failed: %s", e)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unhealthy", "reason": str(e)},
        )
    return JSONResponse(content={"status": "ok"})


@router.get("/apps")
def list_apps(service: ServiceDep) -> list[dict[str, Any]]:
    return [_render(app) for app in service.repository.list()]


@router.get("/apps/{app_id}")
def read_app(app_id: str, service: ServiceDep) -> dict[str, Any]:
    return _render(service.repository.read_by_name(app_id))


@router.post("/apps", status_code=status.HTTP_201_CREATED)
def create_app_route(body: AppCreateRequest, service: ServiceDep) -> dict[str, Any]:
    app = App(
        name=body.name,
        display_name=body.display_name,
        client_type=body.client_type,
        description=body.description,
    )
    return _render(service.create(app))


@router.post("/apps/reconcile")
def reconcile_apps(service: ServiceDep) -> dict[str, list[str]]:
    report = service.reconcile()
    return {"added": report.added, "removed": report.removed}


@router.put("/apps/{app_id}")
def update_app(app_id: str, body: AppUpdateRequest, service: ServiceDep) -> dict[str, Any]:
    app = App(id=app_id, name=body.name, client_type=body.client_type)
    return _render(service.repository.update(app))


@router.delete("/apps/{app_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_app(app_id: str, service: ServiceDep) -> Response:
    service.delete(app_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/sdk/mobileapp/{app_id}/config")
def sdk_config(
    app_id: str,
    service: ServiceDep,
    api_key: Annotated[str | None, Header(alias=API_KEY_HEADER)] = None,
) -> dict[str, Any]:
    """App identity for an SDK client holding the App's API key."""
    app = service.verify_api_key(app_id, api_key)
    return {"id": app.id, "name": app.name, "clientType": app.client_type}


def create_app(
    settings: Settings | None = None,
    *,
    store: ObjectStore | None = None,
    user_check: UserCheck | None = None,
    authorizer: Authorizer | None = None,
    validator: AppValidator | None = None,
    auditor: AuditLogger | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration (Settings.from_env() if None)
        store: Object store (built from settings if None)
        user_check: Gate user check (cluster users/~ lookup if None)
        authorizer: Gate write authorizer (namespace check when
            settings.namespace is set and None is given)
        validator: App validator (DefaultAppValidator if None)
        auditor: Audit sink (writes to settings.audit_log_path if None)
    """
    settings = settings or Settings.from_env()
    if store is None:
        store = build_store(settings)
    if auditor is None:
        auditor = AuditLogger(log_path=settings.audit_log_path)

    registry = APIKeyRegistry(store, max_retries=settings.registry_retries)
    registry.ensure_map_exists()
    service = AppLifecycleService(
        AppRepository(store, validator), registry, auditor=auditor
    )

    if user_check is None:
        user_check = functools.partial(check_user, timeout=settings.request_timeout)
    if authorizer is None and settings.namespace:
        authorizer = NamespaceAuthorizer(settings.cluster_config(), settings.namespace)

    app = FastAPI(title="Mobile Core")
    app.state.settings = settings
    app.state.store = store
    app.state.service = service

    app.add_middleware(
        AccessGate,
        host=settings.cluster_host,
        user_check=user_check,
        skip_tls_verify=settings.skip_tls_verify,
        authorizer=authorizer,
        auditor=auditor,
    )
    # Added last so it runs first and the gate logs carry the correlation ID
    app.add_middleware(CorrelationMiddleware)
    app.add_exception_handler(MobileCoreError, handle_mobile_core_error)
    app.include_router(router)

    logger.info(
        "Mobile Core ready (store=%s, namespace check=%s)",
        settings.store_backend,
        "on" if authorizer is not None else "off",
    )
    return app
