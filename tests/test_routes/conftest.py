# tests/test_routes/conftest.py
from datetime import datetime, timedelta, timezone

import httpx
import jwt
import pytest

from plastik.core.config import get_settings
from plastik.dependencies import get_db, get_session_factory
from plastik.main import app
from tests.conftest import SHOPPER_TOKEN_SECRET

ADMIN_AUTH = ("admin", "test-password")


def shopper_headers(user_id: str, secret: str = SHOPPER_TOKEN_SECRET, expires_in: int = 3600) -> dict:
    """Authorization header carrying a shopper token like the sign-in provider issues."""
    claims = {"sub": user_id, "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in)}
    return {"Authorization": f"Bearer {jwt.encode(claims, secret, algorithm='HS256')}"}


@pytest.fixture
async def client(settings, session_factory, memory_cache, inventory_service):
    """HTTP client against the app, wired to the test database and fake Discogs."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.state.cache = memory_cache
    app.state.inventory_service = inventory_service
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client

    app.dependency_overrides.clear()
