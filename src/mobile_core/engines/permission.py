"""
Cluster Permission Checks for Mobile Core.

The "Can you write here?" logic. Whether a caller may change Apps is
decided by the cluster, not by us: we ask for a local resource access review
in the namespace and look for the caller among the users and groups allowed
to update deploymentconfigs there.

A denial is a normal return value (AuthorizationDecision.allowed is False).
Anything that prevents a decision raises: AuthenticationError for rejected
credentials, TransportError for network and decoding problems,
UnexpectedResponseError for any other status.

Usage:
    config = ClusterConfig(host="https://openshift.example.com")
    checker = PermissionChecker(config.with_token(token), ClusterUserRepo(config.with_token(token)))
    if checker.check("mobile-project"):
        ...
"""

from __future__ import annotations

import dataclasses
import json
import logging
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx
import pydantic
from pydantic import BaseModel, ConfigDict

from mobile_core.core.correlation import CORRELATION_HEADER, get_correlation_id
from mobile_core.core.identity import AuthorizationDecision, User
from mobile_core.errors import (
    AuthenticationError,
    TransportError,
    UnexpectedResponseError,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_RESOURCE = "deploymentconfigs"
REVIEW_PATH = "/oapi/v1/namespaces/{namespace}/localresourceaccessreviews"
CURRENT_USER_PATH = "/oapi/v1/users/~"


class AccessReviewResponse(BaseModel):
    """Body of a 201 localresourceaccessreviews answer. Null lists mean empty."""

    model_config = ConfigDict(strict=True)

    users: list[str] | None = None
    groups: list[str] | None = None


class UserMetadata(BaseModel):
    model_config = ConfigDict(strict=True)

    name: str


class UserDocument(BaseModel):
    """Body of a users/~ answer."""

    model_config = ConfigDict(strict=True)

    metadata: UserMetadata
    groups: list[str] | None = None


@dataclass(frozen=True)
class ClusterConfig:
    """
    How to reach the cluster API.

    Frozen: with_token() and ignore_certs() return new values, so a token
    set for one request can never leak into another.
    """

    host: str
    token: str = ""
    skip_tls_verify: bool = False
    timeout: float = DEFAULT_TIMEOUT

    def with_token(self, token: str) -> ClusterConfig:
        return dataclasses.replace(self, token=token)

    def ignore_certs(self) -> ClusterConfig:
        return dataclasses.replace(self, skip_tls_verify=True)

    def url(self, path: str) -> str:
        """Absolute URL for an API path (replaces any path on host)."""
        try:
            return str(httpx.URL(self.host).copy_with(path=path))
        except httpx.InvalidURL as e:
            raise TransportError(f"failed to parse cluster host {self.host!r}") from e

    def headers(self) -> dict[str, str]:
        headers = {
            "authorization": f"bearer {self.token}",
            "Content-Type": "application/json",
        }
        cid = get_correlation_id()
        if cid:
            headers[CORRELATION_HEADER] = cid
        return headers


def open_client(
    config: ClusterConfig,
    transport: httpx.BaseTransport | None = None,
) -> httpx.Client:
    """HTTP client honouring the config's TLS and timeout settings."""
    return httpx.Client(
        verify=not config.skip_tls_verify,
        timeout=config.timeout,
        transport=transport,
    )


@runtime_checkable
class UserRepo(Protocol):
    """Resolves the user behind the current token."""

    def get_user(self) -> User:
        """
        Resolve the current user.

        Raises:
            AuthenticationError: If the token is rejected
            TransportError: If the user cannot be fetched
        """
        ...


class ClusterUserRepo:
    """Resolves the current user from the cluster's users/~ endpoint."""

    def __init__(
        self,
        config: ClusterConfig,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config
        self._transport = transport

    def get_user(self) -> User:
        url = self._config.url(CURRENT_USER_PATH)
        try:
            with open_client(self._config, self._transport) as client:
                response = client.get(url, headers=self._config.headers())
        except httpx.HTTPError as e:
            raise TransportError(f"failed to make request to read user: {e}") from e

        status = response.status_code
        if status in (httpx.codes.UNAUTHORIZED, httpx.codes.FORBIDDEN):
            raise AuthenticationError(
                f"({status}) access was denied reading user", status_code=status
            )
        if status != httpx.codes.OK:
            raise UnexpectedResponseError(
                f"unexpected response code from cluster reading user: {status}",
                status_code=status,
            )

        try:
            doc = UserDocument.model_validate_json(response.content)
        except pydantic.ValidationError as e:
            raise TransportError("error decoding user response") from e
        return User(username=doc.metadata.name, groups=frozenset(doc.groups or ()))


class ResolvedUserRepo:
    """UserRepo for a user that has already been resolved."""

    def __init__(self, user: User) -> None:
        self._user = user

    def get_user(self) -> User:
        return self._user


def check_user(
    host: str,
    token: str,
    skip_tls_verify: bool,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.BaseTransport | None = None,
) -> User:
    """
    Resolve the user behind token.

    This is the user check the access gate runs on every guarded request.
    """
    config = ClusterConfig(
        host=host, token=token, skip_tls_verify=skip_tls_verify, timeout=timeout
    )
    return ClusterUserRepo(config, transport=transport).get_user()


class PermissionChecker:
    """
    Asks the cluster whether the current user may write in a namespace.

    Stateless apart from its configuration; build one per token.
    """

    def __init__(
        self,
        config: ClusterConfig,
        user_repo: UserRepo,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize checker.

        Args:
            config: Cluster config carrying the caller's token
            user_repo: Resolves the caller
            transport: Optional httpx transport (tests, proxies)
        """
        self._config = config
        self._user_repo = user_repo
        self._transport = transport

    def check(
        self,
        namespace: str,
        resource: str = DEFAULT_RESOURCE,
    ) -> AuthorizationDecision:
        """
        Check that the current user can update resource in namespace.

        Args:
            namespace: Namespace to check
            resource: Resource type named in the access review

        Returns:
            AuthorizationDecision (allowed False on a 403 from the cluster)

        Raises:
            AuthenticationError: On 401 from the cluster
            UnexpectedResponseError: On any other non-201 status
            TransportError: On network or decoding failures
        """
        if not namespace:
            raise ValidationError("namespace is required for a permission check")

        user = self._user_repo.get_user()
        url = self._config.url(REVIEW_PATH.format(namespace=namespace))
        payload = json.dumps({"verb": "update", "resource": resource})

        try:
            with open_client(self._config, self._transport) as client:
                response = client.post(url, content=payload, headers=self._config.headers())
        except httpx.HTTPError as e:
            raise TransportError(f"failed to make request to check authorization: {e}") from e

        status = response.status_code
        if status == httpx.codes.FORBIDDEN:
            # Not allowed to create the access review in this namespace
            return AuthorizationDecision(
                allowed=False,
                reason=f"{user.username} may not review access in {namespace}",
            )
        if status != httpx.codes.CREATED:
            if status == httpx.codes.UNAUTHORIZED:
                raise AuthenticationError(
                    f"({status}) access was denied", status_code=status
                )
            raise UnexpectedResponseError(
                f"unexpected response code from cluster {status}", status_code=status
            )

        try:
            review = AccessReviewResponse.model_validate_json(response.content)
        except pydantic.ValidationError as e:
            raise TransportError("error decoding response to auth check") from e
        users = review.users or []
        groups = review.groups or []

        if user.username in users:
            return AuthorizationDecision(allowed=True, reason=f"user {user.username}")
        matched = sorted(user.groups.intersection(groups))
        if matched:
            return AuthorizationDecision(allowed=True, reason=f"group {matched[0]}")
        logger.debug("%s not allowed to update %s in %s", user.username, resource, namespace)
        return AuthorizationDecision(
            allowed=False,
            reason=f"{user.username} may not update {resource} in {namespace}",
        )


class NamespaceAuthorizer:
    """
    Gate authorizer: runs a PermissionChecker for the request's token.

    Called with (token, user) by the access gate on write requests.
    """

    def __init__(
        self,
        config: ClusterConfig,
        namespace: str,
        *,
        resource: str = DEFAULT_RESOURCE,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self._config = config
        self._namespace = namespace
        self._resource = resource
        self._transport = transport

    def __call__(self, token: str, user: User) -> AuthorizationDecision:
        checker = PermissionChecker(
            self._config.with_token(token),
            ResolvedUserRepo(user),
            transport=self._transport,
        )
        return checker.check(self._namespace, self._resource)
