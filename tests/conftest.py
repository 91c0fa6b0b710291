"""
Shared fixtures: an in-memory database, a stubbed provider side and a fixed clock.
"""

import time

import httpx
import pytest
from cryptography.fernet import Fernet
from jose import jwt

from aura_connect.accounts.models import User
from aura_connect.config import Settings
from aura_connect.context import ServiceContext
from aura_connect.infrastructure.database import build_engine
from aura_connect.main import create_app

STATE_SECRET = "test-state-secret"
JWT_SECRET = "test-jwt-secret"
AUTOMATION_SECRET = "automation-secret"
NOW_MS = 1_760_000_000_000


class FakeRedis:
    def __init__(self):
        self.store = {}

    async def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    async def aclose(self):
        pass


class Clock:
    def __init__(self, now: int):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class ProviderStub:
    """Answers outbound provider requests with canned responses and records every request."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def on(self, method: str, url: str, status: int = 200, json=None):
        self.routes[(method, url)] = (status, json if json is not None else {})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = (request.method, f"{request.url.scheme}://{request.url.host}{request.url.path}")
        if key not in self.routes:
            return httpx.Response(404, json={"error": {"message": "not stubbed"}})
        status, body = self.routes[key]
        return httpx.Response(status, json=body)

    def calls_to(self, url: str):
        return [c for c in self.calls if f"{c.url.scheme}://{c.url.host}{c.url.path}" == url]


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        environment="test",
        database_url="sqlite+aiosqlite://",
        app_base_url="https://app.example.com",
        auth_jwt_secret=JWT_SECRET,
        oauth_state_secret=STATE_SECRET,
        token_encryption_key=Fernet.generate_key().decode(),
        automation_base_url="https://automation.example.com",
        automation_shared_secret=AUTOMATION_SECRET,
        enabled_platforms="instagram,gmail,facebook",
        instagram_client_id="ig-client",
        instagram_client_secret="ig-secret",
        instagram_redirect_uri="https://api.example.com/auth/instagram/callback",
        instagram_verify_token="verify-me",
        gmail_client_id="google-client",
        gmail_client_secret="google-secret",
        gmail_redirect_uri="https://api.example.com/auth/gmail/callback",
        facebook_client_id="fb-client",
        facebook_client_secret="fb-secret",
        facebook_redirect_uri="https://api.example.com/auth/facebook/callback",
    )


@pytest.fixture
def clock():
    return Clock(NOW_MS)


@pytest.fixture
def provider():
    return ProviderStub()


@pytest.fixture
async def ctx(settings, provider, clock):
    context = ServiceContext(
        settings,
        engine=build_engine(settings.database_url),
        redis_client=FakeRedis(),
        http=httpx.AsyncClient(transport=httpx.MockTransport(provider.handler)),
        clock=clock,
    )
    await context.init()
    yield context
    await context.dispose()


@pytest.fixture
async def session(ctx):
    async with ctx.session() as s:
        yield s


@pytest.fixture
async def client(ctx):
    app = create_app(ctx)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://testserver") as c:
        yield c


@pytest.fixture
def add_user(ctx):
    async def _add(user_id: str, email: str = None) -> User:
        async with ctx.session() as s:
            user = User(id=user_id, email=email or f"{user_id}@example.com")
            s.add(user)
            await s.commit()
            return user
    return _add


@pytest.fixture
def auth_headers():
    def _headers(user_id: str) -> dict:
        token = jwt.encode({"sub": user_id, "exp": int(time.time()) + 3600}, JWT_SECRET, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}
    return _headers
