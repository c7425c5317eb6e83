"""Shared test fixtures for cloudctl.

Provides isolated settings, a stub OIDC issuer and a stub cloud API (both
served through :class:`httpx.MockTransport`), a browser stand-in that
follows the authorization redirect over a real loopback socket, and the
CLI runner. These fixtures are automatically discovered by pytest and
available to all test modules without explicit imports.
"""

from __future__ import annotations

import base64
import hashlib
import itertools
import json
from http.client import HTTPConnection
from pathlib import Path
from typing import Any, Optional
from urllib.parse import parse_qs, urlencode, urlparse

import httpx
import pytest

from cloudctl.auth.lifecycle import CredentialManager
from cloudctl.auth.login import login
from cloudctl.auth.oidc import OIDCClient
from cloudctl.client import ApiClient
from cloudctl.models import AuthSettings
from cloudctl.output import OutputFormat, OutputManager, reset_output, set_output

ISSUER = "https://auth.test"
API_HOST = "https://api.test/api/v2"
CLIENT_ID = "cloudctl-test"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test and the test finishes, the cached references become stale.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop CLOUDCTL_* and CI variables that would leak into tests."""
    for var in [
        "CLOUDCTL_CONFIG_DIR",
        "CLOUDCTL_OAUTH_HOST",
        "CLOUDCTL_CLIENT_ID",
        "CLOUDCTL_API_HOST",
        "CLOUDCTL_API_KEY",
        "CLOUDCTL_TIMEOUT",
        "CLOUDCTL_CALLBACK_TIMEOUT",
        "CI",
        "GITHUB_ACTIONS",
        "GITLAB_CI",
        "BUILDKITE",
        "CIRCLECI",
        "JENKINS_URL",
        "TF_BUILD",
        "TEAMCITY_VERSION",
    ]:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet PLAIN output manager for tests that ignore output."""
    output = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    path = tmp_path / "config"
    path.mkdir()
    return path


@pytest.fixture
def settings(config_dir: Path) -> AuthSettings:
    """Settings pointing at the stub issuer and API, with short timeouts."""
    return AuthSettings(
        config_dir=config_dir,
        oauth_host=ISSUER,
        client_id=CLIENT_ID,
        api_host=API_HOST,
        timeout=5.0,
        callback_timeout=5.0,
    )


# ---------------------------------------------------------------------------
# Stub OIDC issuer
# ---------------------------------------------------------------------------


def _s256(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class StubIssuer:
    """In-memory OIDC provider speaking discovery, auth-code and refresh.

    The token endpoint enforces PKCE: a code is only redeemed when
    ``sha256(code_verifier)`` matches the challenge the authorization
    request carried.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.discovery_status = 200
        self.fail_refresh = False
        self.expires_in: Optional[int] = 3600
        self.next_code: Optional[str] = None
        self.next_tokens: list[dict[str, Any]] = []
        self.pending: dict[str, dict[str, str]] = {}
        self.refresh_tokens: set[str] = set()
        self._counter = itertools.count(1)
        self.transport = httpx.MockTransport(self.handle)

    # --- browser side ---

    def authorize(self, auth_url: str) -> dict[str, str]:
        """Accept an authorization request and return the redirect query."""
        query = {k: v[0] for k, v in parse_qs(urlparse(auth_url).query).items()}
        code = self.next_code or f"code{next(self._counter)}"
        self.next_code = None
        self.pending[code] = {
            "challenge": query["code_challenge"],
            "redirect_uri": query["redirect_uri"],
            "client_id": query["client_id"],
        }
        return {"code": code, "state": query["state"]}

    # --- HTTP side ---

    def token_posts(self, grant_type: Optional[str] = None) -> list[dict[str, str]]:
        forms = [
            {k: v[0] for k, v in parse_qs(r.content.decode()).items()}
            for r in self.requests
            if r.method == "POST"
        ]
        if grant_type is None:
            return forms
        return [f for f in forms if f.get("grant_type") == grant_type]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/.well-known/openid-configuration":
            if self.discovery_status != 200:
                return httpx.Response(self.discovery_status, text="unavailable")
            return httpx.Response(
                200,
                json={
                    "issuer": ISSUER,
                    "authorization_endpoint": f"{ISSUER}/oauth2/auth",
                    "token_endpoint": f"{ISSUER}/oauth2/token",
                    "userinfo_endpoint": f"{ISSUER}/userinfo",
                },
            )
        if path == "/oauth2/token":
            form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            if form.get("grant_type") == "authorization_code":
                return self._redeem_code(form)
            if form.get("grant_type") == "refresh_token":
                return self._refresh(form)
            return httpx.Response(400, json={"error": "unsupported_grant_type"})
        return httpx.Response(404)

    def _redeem_code(self, form: dict[str, str]) -> httpx.Response:
        pending = self.pending.pop(form.get("code", ""), None)
        if pending is None:
            return httpx.Response(400, json={"error": "invalid_grant"})
        if _s256(form.get("code_verifier", "")) != pending["challenge"]:
            return httpx.Response(
                400,
                json={"error": "invalid_grant", "error_description": "PKCE verification failed"},
            )
        if form.get("redirect_uri") != pending["redirect_uri"]:
            return httpx.Response(400, json={"error": "invalid_grant"})
        if form.get("client_id") != pending["client_id"]:
            return httpx.Response(401, json={"error": "invalid_client"})
        return httpx.Response(200, json=self._issue())

    def _refresh(self, form: dict[str, str]) -> httpx.Response:
        token = form.get("refresh_token")
        if self.fail_refresh or token not in self.refresh_tokens:
            return httpx.Response(400, json={"error": "invalid_grant"})
        self.refresh_tokens.discard(token)
        return httpx.Response(200, json=self._issue())

    def _issue(self) -> dict[str, Any]:
        if self.next_tokens:
            body = self.next_tokens.pop(0)
        else:
            n = next(self._counter)
            body = {
                "access_token": f"access{n}",
                "refresh_token": f"refresh{n}",
                "token_type": "bearer",
            }
            if self.expires_in is not None:
                body["expires_in"] = self.expires_in
        if "refresh_token" in body:
            self.refresh_tokens.add(body["refresh_token"])
        return body


class StubApi:
    """Cloud API stub answering ``GET /users/me``."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.user: dict[str, Any] = {"id": "u1", "email": "dev@example.com"}
        self.status = 200
        self.transport = httpx.MockTransport(self.handle)

    @property
    def bearer_tokens(self) -> list[str]:
        return [r.headers["Authorization"].removeprefix("Bearer ") for r in self.requests]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path != "/api/v2/users/me":
            return httpx.Response(404)
        if self.status != 200:
            return httpx.Response(self.status, json={"message": "nope"})
        return httpx.Response(200, json=self.user)


class FakeBrowser:
    """Stands in for :func:`webbrowser.open`.

    Lets the stub issuer approve the request, then follows the redirect to
    the loopback receiver over a real socket. ``callback_query`` overrides
    what is sent back (e.g. a wrong ``state``).
    """

    def __init__(self, issuer: StubIssuer) -> None:
        self.issuer = issuer
        self.opened: list[str] = []
        self.callback_query: Optional[dict[str, str]] = None
        self.callback_status: Optional[int] = None
        self.succeed = True

    def __call__(self, url: str) -> bool:
        self.opened.append(url)
        if not self.succeed:
            return False
        query = self.issuer.authorize(url)
        if self.callback_query is not None:
            query = self.callback_query
        redirect = urlparse(parse_qs(urlparse(url).query)["redirect_uri"][0])
        conn = HTTPConnection(redirect.hostname, redirect.port, timeout=5)
        try:
            conn.request("GET", f"{redirect.path}?{urlencode(query)}")
            response = conn.getresponse()
            response.read()
            self.callback_status = response.status
        finally:
            conn.close()
        return True


@pytest.fixture
def issuer() -> StubIssuer:
    return StubIssuer()


@pytest.fixture
def api() -> StubApi:
    return StubApi()


@pytest.fixture
def browser(issuer: StubIssuer) -> FakeBrowser:
    return FakeBrowser(issuer)


@pytest.fixture
def oidc_factory(issuer: StubIssuer):
    def factory(settings: AuthSettings) -> OIDCClient:
        return OIDCClient(settings, transport=issuer.transport)

    return factory


@pytest.fixture
def api_client_factory(api: StubApi):
    def factory(settings: AuthSettings, api_key: str) -> ApiClient:
        return ApiClient.from_settings(settings, api_key, transport=api.transport)

    return factory


@pytest.fixture
def make_manager(settings, oidc_factory, api_client_factory, browser):
    """Build a :class:`CredentialManager` wired to the stubs.

    Keyword arguments override ``unattended`` and ``clock``.
    """

    def factory(**kwargs: Any) -> CredentialManager:
        kwargs.setdefault("unattended", lambda: False)
        return CredentialManager(
            settings,
            oidc_factory=oidc_factory,
            api_client_factory=api_client_factory,
            login_flow=lambda s, oidc: login(s, oidc, open_browser=browser),
            **kwargs,
        )

    return factory


@pytest.fixture
def write_credentials(settings: AuthSettings):
    """Place a credentials file as a previous run would have left it."""

    def write(**fields: Any) -> Path:
        path = settings.config_dir / "credentials.json"
        path.write_text(json.dumps(fields))
        path.chmod(0o700)
        return path

    return write


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
