"""
Access Gate for Mobile Core.

Every request either matches the exemption list or must carry a bearer
token the cluster accepts. Write requests can additionally be held to a
namespace permission check.

    exempt                      -> pass through
    no token                    -> 401
    user check AuthenticationError -> 401
    user check other error      -> 500
    authorizer denies           -> 403
    otherwise                   -> pass through, request.state.user set

Nothing is cached: every guarded request runs the full check.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, Mapping

from fastapi import Request, Response, status
from fastapi.responses import PlainTextResponse
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from mobile_core.audit import AuditLogger
from mobile_core.core.correlation import CorrelatedLogger
from mobile_core.core.identity import AuthorizationDecision, User
from mobile_core.errors import is_authentication_error

logger = CorrelatedLogger(logging.getLogger(__name__))

UserCheck = Callable[[str, str, bool], User]
Authorizer = Callable[[str, User], AuthorizationDecision]
TokenRetriever = Callable[[Mapping[str, str]], str]

# Matched against "<METHOD>:<path>"; built once, read-only afterwards
EXEMPT_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p)
    for p in (
        r"GET:/build/.*/download",
        r"GET:/config\.js",
        r"GET:/sdk/mobileapp/.*/config",
        r"GET:/sys/info/ping",
        r"GET:/sys/info/health",
        r"GET:/metrics",
    )
)

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
FORWARDED_TOKEN_HEADER = "x-forwarded-access-token"


def is_exempt(method: str, path: str) -> bool:
    """True if METHOD:path fully matches an exemption pattern."""
    target = f"{method.upper()}:{path}"
    return any(p.fullmatch(target) for p in EXEMPT_PATTERNS)


def default_token_retriever(headers: Mapping[str, str]) -> str:
    """
    Bearer token from the request headers, or "".

    Checks "Authorization: Bearer <token>" first, then the token an
    OAuth proxy forwards in X-Forwarded-Access-Token.
    """
    authorization = headers.get("authorization", "")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return headers.get(FORWARDED_TOKEN_HEADER, "").strip()


class AccessGate(BaseHTTPMiddleware):
    """
    Middleware that authenticates (and optionally authorizes) each request.

    The user check and authorizer block on the cluster API, so they run on
    the threadpool.

    Usage:
        app.add_middleware(
            AccessGate,
            host="https://openshift.example.com",
            user_check=check_user,
            authorizer=NamespaceAuthorizer(config, "mobile-project"),
        )
    """

    def __init__(
        self,
        app: Any,
        *,
        host: str,
        user_check: UserCheck,
        skip_tls_verify: bool = False,
        authorizer: Authorizer | None = None,
        token_retriever: TokenRetriever = default_token_retriever,
        auditor: AuditLogger | None = None,
    ) -> None:
        super().__init__(app)
        self.host = host
        self.user_check = user_check
        self.skip_tls_verify = skip_tls_verify
        self.authorizer = authorizer
        self.token_retriever = token_retriever
        self.auditor = auditor or AuditLogger()

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        method = request.method
        path = request.url.path
        token = self.token_retriever(request.headers)

        if is_exempt(method, path):
            self.auditor.log_exempt(method=method, path=path)
            return await call_next(request)

        if not token:
            self.auditor.log_auth_failure(
                reason="no token", method=method, path=path, status_code=401
            )
            return PlainTextResponse(
                "no token provided access denied",
                status_code=status.HTTP_401_UNAUTHORIZED,
            )

        try:
            user = await run_in_threadpool(
                self.user_check, self.host, token, self.skip_tls_verify
            )
        except Exception as e:
            return self._reject(e, method, path, stage="checking user is authenticated")
        self.auditor.log_auth_success(user.username, method=method, path=path)

        if self.authorizer is not None and method.upper() in WRITE_METHODS:
            try:
                decision = await run_in_threadpool(self.authorizer, token, user)
            except Exception as e:
                return self._reject(e, method, path, stage="checking write permission")
            self.auditor.log_authz(
                user.username,
                allowed=decision.allowed,
                method=method,
                path=path,
                reason=decision.reason,
            )
            if not decision.allowed:
                return PlainTextResponse(
                    "access denied", status_code=status.HTTP_403_FORBIDDEN
                )

        request.state.user = user
        return await call_next(request)

    def _reject(self, exc: Exception, method: str, path: str, *, stage: str) -> Response:
        """Map a failed check to 401 (authentication) or 500 (anything else)."""
        if is_authentication_error(exc):
            code = status.HTTP_401_UNAUTHORIZED
            logger.error("access check: %s: %s", stage, exc)
        else:
            code = status.HTTP_500_INTERNAL_SERVER_ERROR
            logger.exception("access check: %s failed: %s", stage, exc)
        self.auditor.log_auth_failure(
            reason=str(exc), method=method, path=path, status_code=code
        )
        return PlainTextResponse(str(exc), status_code=code)
