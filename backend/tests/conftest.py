"""Pytest configuration and fixtures for Changeflow permission tests.

Provides permission-set builders, an in-memory store, a dict-backed
resolution cache, the PermissionService, and an HTTP client.
"""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from changeflow.auth.permission_set import PermissionSet
from changeflow.auth.service import PermissionService
from changeflow.auth.stores import InMemoryPermissionStore
from changeflow.config import settings
from changeflow.main import create_app
from changeflow.utils.cache import (
    _encode,
    dump_resolution,
    load_resolution,
    resolution_key,
)


def make_set(**granted: bool) -> PermissionSet:
    """Total set: everything False except the keyword capabilities given."""
    return PermissionSet.none().with_override(granted)


class InMemoryResolutionCache:
    """Resolution cache double with the same key and JSON format as Redis."""

    def __init__(self):
        self.entries: dict[str, str] = {}
        self.hits = 0
        self.misses = 0

    def key_for(self, role_id, group_ids, override_version):
        return resolution_key(role_id, group_ids, override_version, prefix="test")

    async def get(self, key):
        raw = self.entries.get(key)
        if raw is None:
            self.misses += 1
            return None
        self.hits += 1
        return load_resolution(raw)

    async def set(self, key, resolution):
        self.entries[key] = dump_resolution(resolution)

    async def invalidate_role(self, role_id):
        prefix = f"test:r:{_encode(role_id)}:"
        self.entries = {k: v for k, v in self.entries.items() if not k.startswith(prefix)}

    async def invalidate_group(self, group_id):
        needle = f"|{_encode(group_id)}|"
        self.entries = {k: v for k, v in self.entries.items() if needle not in k}

    async def invalidate_all(self):
        self.entries.clear()


# ── Store & service fixtures ─────────────────────────────────────

@pytest.fixture
def store() -> InMemoryPermissionStore:
    """Roles: viewer, admin. Groups: editors, auditors (inactive). Users: alice, bob, root."""
    s = InMemoryPermissionStore()
    s.set_role("viewer", make_set(canSeeUsers=True, canSeeProjects=True))
    s.set_role("admin", PermissionSet.all())
    s.set_group("editors", make_set(canEditUsers=True, canSeeGroups=True), name="Editors")
    s.set_group("auditors", make_set(canSeeSecuritySettings=True), is_active=False)

    s.assign_role("alice", "viewer")
    s.assign_role("bob", "viewer")
    s.assign_role("root", "admin")
    s.add_member("alice", "editors")
    s.add_member("alice", "auditors")
    return s


@pytest.fixture
def resolution_cache() -> InMemoryResolutionCache:
    return InMemoryResolutionCache()


@pytest.fixture
def service(store, resolution_cache) -> PermissionService:
    return PermissionService(store, store, store, cache=resolution_cache)


# ── HTTP fixtures ────────────────────────────────────────────────

@pytest_asyncio.fixture
async def client(service) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client; the `X-User-Id` header stands in for the host's auth layer."""
    app = create_app(service)

    @app.middleware("http")
    async def fake_auth(request, call_next):
        user_id = request.headers.get("x-user-id")
        if user_id:
            request.state.user_id = user_id
        return await call_next(request)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ── Redis Fixtures ───────────────────────────────────────────────

@pytest_asyncio.fixture
async def redis_client():
    """Create Redis client for tests."""
    import redis.asyncio as redis

    from changeflow.utils import cache

    client = redis.from_url(settings.redis_url, decode_responses=True)
    try:
        await client.ping()
    except redis.ConnectionError:
        await client.aclose()
        pytest.skip(f"Redis not reachable at {settings.redis_url}")

    yield client

    # Cleanup: flush test database and drop the module-level pool
    await client.flushdb()
    await client.aclose()
    await cache.close_redis()


# ── Test Markers ─────────────────────────────────────────────────

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (need Redis)")
    config.addinivalue_line("markers", "cache: Cache tests")
