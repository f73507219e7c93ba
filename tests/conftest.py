# tests/conftest.py
"""
Shared fixtures for SessionGate tests.

Provides a test secret, settings isolated from the host environment,
an app wired to a development identity exchange and helpers to mint
session cookies directly with the codec.
"""

from http.cookies import SimpleCookie
from typing import Dict, Optional

import pytest
from fastapi.testclient import TestClient
from starlette.requests import Request

from sessiongate.core.config import Settings
from sessiongate.core.security import (
    SecretSource,
    SessionAccessor,
    SessionSecretProvider,
    default_codec
)
from sessiongate.main import create_app
from sessiongate.models.session_record import SessionIdentity, SessionRecord
from sessiongate.services.identity_service import DevelopmentIdentityExchange

TEST_SECRET = "test-session-secret-with-at-least-32-characters"
SECRET_NAME = "SESSIONGATE_TEST_SESSION_SECRET"
COOKIE_NAME = "weblogin-auth-session"


class StaticSecretSource(SecretSource):
    """Secret source with a fixed value that counts lookups"""

    source_name = "static"

    def __init__(self, value: Optional[str]):
        self.value = value
        self.calls = 0

    def lookup(self, name: str) -> Optional[str]:
        self.calls += 1
        return self.value


@pytest.fixture
def identity():
    return SessionIdentity(
        uid="jdoe",
        name="Jane Doe",
        email="jdoe@example.org",
        affiliations=["staff", "member"],
    )


@pytest.fixture
def test_settings(tmp_path):
    """Settings that ignore .env and point the runtime store at an empty dir"""
    return Settings(
        _env_file=None,
        SESSION_SECRET_NAME=SECRET_NAME,
        RUNTIME_SECRETS_DIR=str(tmp_path / "secrets"),
        SESSION_COOKIE_NAME=COOKIE_NAME,
        RATE_LIMIT_ENABLED=False,
    )


@pytest.fixture
def secret_env(monkeypatch):
    monkeypatch.setenv(SECRET_NAME, TEST_SECRET)
    return TEST_SECRET


@pytest.fixture
def secret_provider():
    return SessionSecretProvider(SECRET_NAME, sources=[StaticSecretSource(TEST_SECRET)])


@pytest.fixture
def accessor(secret_provider):
    return SessionAccessor(secret_provider, cookie_name=COOKIE_NAME)


@pytest.fixture
def identity_exchange(identity):
    return DevelopmentIdentityExchange(identity)


@pytest.fixture
def app(test_settings, secret_env, identity_exchange):
    return create_app(test_settings, identity_exchange=identity_exchange)


@pytest.fixture
def client(app):
    return TestClient(app, base_url="https://testserver", follow_redirects=False)


def seal_session(
    identity: Optional[SessionIdentity] = None,
    metadata: Optional[Dict] = None,
    secret: str = TEST_SECRET,
) -> str:
    """Mint a sealed cookie value the way the identity callback would"""
    record = SessionRecord(identity=identity, metadata=metadata or {})
    return default_codec.seal(record, secret)


def cookie_header(token: str) -> Dict[str, str]:
    return {"Cookie": f"{COOKIE_NAME}={token}"}


def open_session(token: str, secret: str = TEST_SECRET) -> SessionRecord:
    return default_codec.open(token, secret)


def make_request(cookie: Optional[str] = None, path: str = "/", method: str = "GET") -> Request:
    """Bare Starlette request carrying an optional session cookie"""
    headers = []
    if cookie is not None:
        headers.append((b"cookie", f"{COOKIE_NAME}={cookie}".encode("latin-1")))
    return Request({
        "type": "http",
        "method": method,
        "scheme": "https",
        "server": ("testserver", 443),
        "root_path": "",
        "path": path,
        "query_string": b"",
        "headers": headers,
    })


def set_cookie_token(response, name: str = COOKIE_NAME) -> Optional[str]:
    """Value of the last Set-Cookie for name on a Starlette or httpx response, or None"""
    headers = response.headers
    if hasattr(headers, "get_list"):
        values = headers.get_list("set-cookie")
    else:
        values = headers.getlist("set-cookie")
    token = None
    for header in values:
        jar = SimpleCookie()
        jar.load(header)
        if name in jar:
            token = jar[name].value
    return token
