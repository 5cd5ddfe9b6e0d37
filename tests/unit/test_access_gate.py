"""Unit tests for the AccessGate middleware."""

import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from mobile_core.core.identity import AuthorizationDecision, User
from mobile_core.errors import AuthenticationError, TransportError
from mobile_core.middleware.access import AccessGate, default_token_retriever, is_exempt

HOST = "https://cluster.example.com"


class FakeUserCheck:
    """User check that records calls and resolves (or rejects) tokens."""

    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, str, bool]] = []

    def __call__(self, host: str, token: str, skip_tls_verify: bool) -> User:
        self.calls.append((host, token, skip_tls_verify))
        if self.error is not None:
            raise self.error
        return User(username=f"user-{token}")


class FakeAuthorizer:
    """Authorizer returning a fixed decision."""

    def __init__(self, allowed: bool) -> None:
        self.allowed = allowed
        self.calls: list[tuple[str, str]] = []

    def __call__(self, token: str, user: User) -> AuthorizationDecision:
        self.calls.append((token, user.username))
        return AuthorizationDecision(allowed=self.allowed, reason="fixed")


def build_app(user_check, authorizer=None, skip_tls_verify: bool = False) -> FastAPI:
    app = FastAPI()
    app.add_middleware(
        AccessGate,
        host=HOST,
        user_check=user_check,
        skip_tls_verify=skip_tls_verify,
        authorizer=authorizer,
    )

    @app.get("/sys/info/ping")
    def ping() -> str:
        return "OK"

    @app.get("/apps")
    def list_apps(request: Request) -> dict:
        return {"user": request.state.user.username}

    @app.post("/apps")
    def create(request: Request) -> dict:
        return {"user": request.state.user.username}

    return app


class TestAccessGate:
    """Tests for AccessGate."""

    def test_exempt_path_without_token(self) -> None:
        """Exempt paths pass through without a token or a user check."""
        check = FakeUserCheck()
        client = TestClient(build_app(check))

        response = client.get("/sys/info/ping")

        assert response.status_code == 200
        assert check.calls == []

    def test_missing_token(self) -> None:
        """A guarded path without a token is rejected with 401."""
        check = FakeUserCheck()
        client = TestClient(build_app(check))

        response = client.post("/apps")

        assert response.status_code == 401
        assert response.text == "no token provided access denied"
        assert check.calls == []

    def test_valid_token(self) -> None:
        """An accepted token reaches the handler with the user attached."""
        check = FakeUserCheck()
        client = TestClient(build_app(check, skip_tls_verify=True))

        response = client.get("/apps", headers={"Authorization": "Bearer abc"})

        assert response.status_code == 200
        assert response.json() == {"user": "user-abc"}
        assert check.calls == [(HOST, "abc", True)]

    def test_forwarded_token(self) -> None:
        """The OAuth proxy's forwarded token is accepted."""
        client = TestClient(build_app(FakeUserCheck()))

        response = client.get("/apps", headers={"X-Forwarded-Access-Token": "fwd"})

        assert response.json() == {"user": "user-fwd"}

    def test_authentication_error(self) -> None:
        """A rejected token is 401."""
        check = FakeUserCheck(AuthenticationError("(401) access was denied reading user"))
        client = TestClient(build_app(check))

        response = client.get("/apps", headers={"Authorization": "Bearer bad"})

        assert response.status_code == 401
        assert "access was denied" in response.text

    def test_wrapped_authentication_error(self) -> None:
        """An authentication error anywhere in the cause chain is 401."""
        try:
            try:
                raise AuthenticationError("token expired")
            except AuthenticationError as inner:
                raise TransportError("user check failed") from inner
        except TransportError as outer:
            error = outer
        client = TestClient(build_app(FakeUserCheck(error)))

        response = client.get("/apps", headers={"Authorization": "Bearer bad"})

        assert response.status_code == 401

    def test_other_error(self) -> None:
        """Any other user check failure is 500."""
        client = TestClient(build_app(FakeUserCheck(TransportError("connection refused"))))

        response = client.get("/apps", headers={"Authorization": "Bearer abc"})

        assert response.status_code == 500
        assert response.text == "connection refused"

    def test_authorizer_denies_write(self) -> None:
        """A denied write is 403."""
        authorizer = FakeAuthorizer(allowed=False)
        client = TestClient(build_app(FakeUserCheck(), authorizer))

        response = client.post("/apps", headers={"Authorization": "Bearer abc"})

        assert response.status_code == 403
        assert authorizer.calls == [("abc", "user-abc")]

    def test_authorizer_allows_write(self) -> None:
        """An allowed write reaches the handler."""
        client = TestClient(build_app(FakeUserCheck(), FakeAuthorizer(allowed=True)))

        response = client.post("/apps", headers={"Authorization": "Bearer abc"})

        assert response.status_code == 200

    def test_authorizer_skipped_on_read(self) -> None:
        """Reads are not held to the namespace check."""
        authorizer = FakeAuthorizer(allowed=False)
        client = TestClient(build_app(FakeUserCheck(), authorizer))

        response = client.get("/apps", headers={"Authorization": "Bearer abc"})

        assert response.status_code == 200
        assert authorizer.calls == []

    def test_every_request_is_checked(self) -> None:
        """Decisions are not cached between requests."""
        check = FakeUserCheck()
        client = TestClient(build_app(check))

        client.get("/apps", headers={"Authorization": "Bearer abc"})
        client.get("/apps", headers={"Authorization": "Bearer abc"})

        assert len(check.calls) == 2


class TestExemptions:
    """Tests for the exemption list."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/sys/info/ping"),
            ("GET", "/sys/info/health"),
            ("GET", "/metrics"),
            ("GET", "/config.js"),
            ("GET", "/build/abc/download"),
            ("GET", "/sdk/mobileapp/shop-1/config"),
            ("get", "/sys/info/ping"),
        ],
    )
    def test_exempt(self, method: str, path: str) -> None:
        """Listed method and path pairs are exempt."""
        assert is_exempt(method, path) is True

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/sys/info/ping"),
            ("GET", "/apps"),
            ("GET", "/metricsfoo"),
            ("GET", "/prefix/sys/info/ping"),
            ("GET", "/configxjs"),
        ],
    )
    def test_not_exempt(self, method: str, path: str) -> None:
        """Anything else must be authenticated."""
        assert is_exempt(method, path) is False


class TestTokenRetriever:
    """Tests for default_token_retriever."""

    def test_bearer(self) -> None:
        assert default_token_retriever({"authorization": "Bearer abc"}) == "abc"

    def test_bearer_case_insensitive(self) -> None:
        assert default_token_retriever({"authorization": "bearer abc"}) == "abc"

    def test_bearer_preferred_over_forwarded(self) -> None:
        headers = {"authorization": "Bearer abc", "x-forwarded-access-token": "fwd"}
        assert default_token_retriever(headers) == "abc"

    def test_other_scheme_ignored(self) -> None:
        assert default_token_retriever({"authorization": "Basic dXNlcg=="}) == ""

    def test_no_token(self) -> None:
        assert default_token_retriever({}) == ""
