"""Tests for the permission HTTP endpoints."""

from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from changeflow.auth.permission_set import PermissionSet
from changeflow.config import settings
from changeflow.main import create_app


@pytest.mark.asyncio
class TestPermissionEndpoints:
    async def test_requires_identity(self, client: AsyncClient):
        response = await client.get("/api/users/me/permissions")

        assert response.status_code == 401
        assert response.json()["error"]["code"] == "HTTP_401"

    async def test_my_permissions(self, client: AsyncClient):
        response = await client.get("/api/users/me/permissions", headers={"X-User-Id": "alice"})

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == "alice"
        assert data["permissions"]["canEditUsers"] is True
        assert data["provenance"]["canEditUsers"] == "group:editors"
        assert "canEditUsers" in data["granted"]
        assert data["degraded"] is False

    async def test_other_user_requires_can_see_users(self, client: AsyncClient, store):
        store.set_role("nothing", PermissionSet.none())
        store.assign_role("eve", "nothing")

        response = await client.get("/api/users/alice/permissions", headers={"X-User-Id": "eve"})

        assert response.status_code == 403
        body = response.json()["error"]
        assert body["code"] == "PERMISSION_DENIED"
        assert body["details"]["capability"] == "canSeeUsers"

    async def test_other_user_permissions(self, client: AsyncClient):
        response = await client.get("/api/users/root/permissions", headers={"X-User-Id": "bob"})

        assert response.status_code == 200
        assert response.json()["permissions"]["canManageSystem"] is True

    async def test_single_capability_check(self, client: AsyncClient):
        response = await client.get(
            "/api/users/alice/permissions/canSeeGroups", headers={"X-User-Id": "bob"}
        )

        assert response.status_code == 200
        assert response.json() == {
            "user_id": "alice",
            "capability": "canSeeGroups",
            "granted": True,
            "source": "group:editors",
        }

    async def test_unknown_capability(self, client: AsyncClient):
        response = await client.get(
            "/api/users/alice/permissions/canFlyPlanes", headers={"X-User-Id": "bob"}
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "INVALID_PERMISSION_SET"

    async def test_security_summary(self, client: AsyncClient):
        response = await client.get("/api/users/alice/security-summary", headers={"X-User-Id": "root"})

        assert response.status_code == 200
        data = response.json()
        assert data["role_id"] == "viewer"
        assert list(data["group_permissions"]) == ["editors"]
        assert data["individual_permissions"] is None
        assert data["resolved"]["permissions"]["canSeeGroups"] is True

    async def test_security_summary_requires_capability(self, client: AsyncClient):
        response = await client.get("/api/users/alice/security-summary", headers={"X-User-Id": "bob"})

        assert response.status_code == 403

    async def test_missing_role_is_server_error(self, client: AsyncClient):
        response = await client.get("/api/users/me/permissions", headers={"X-User-Id": "ghost"})

        assert response.status_code == 500
        assert response.json()["error"]["code"] == "MISSING_ROLE"

    async def test_capability_list(self, client: AsyncClient):
        response = await client.get("/api/capabilities")

        assert response.status_code == 200
        assert "canSeeSecuritySettings" in response.json()["capabilities"]

    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    async def test_invalid_organization_header(self, client: AsyncClient):
        response = await client.get(
            "/api/capabilities", headers={"X-Organization-Id": "org:*"}
        )

        assert response.status_code == 400


@pytest.mark.asyncio
class TestUnconfiguredApp:
    @pytest.fixture
    def bare_app(self, monkeypatch) -> FastAPI:
        monkeypatch.setattr(settings, "permission_cache_enabled", False)
        app = create_app()

        @app.middleware("http")
        async def fake_auth(request, call_next):
            request.state.user_id = request.headers.get("x-user-id")
            return await call_next(request)

        return app

    @pytest_asyncio.fixture
    async def bare_client(self, bare_app) -> AsyncGenerator[AsyncClient, None]:
        async with AsyncClient(transport=ASGITransport(app=bare_app), base_url="http://test") as c:
            yield c

    async def test_guarded_route_is_unavailable(self, bare_client: AsyncClient):
        response = await bare_client.get("/api/users/me/permissions", headers={"X-User-Id": "alice"})

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "SERVICE_NOT_CONFIGURED"

    async def test_vocabulary_still_served(self, bare_client: AsyncClient):
        response = await bare_client.get("/api/capabilities")

        assert response.status_code == 200

    async def test_not_ready(self, bare_client: AsyncClient):
        response = await bare_client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["checks"]["service"] == "not configured"

    async def test_ready_once_service_attached(self, bare_app, bare_client: AsyncClient, service):
        bare_app.state.permission_service = service

        response = await bare_client.get("/health/ready")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

        response = await bare_client.get("/api/users/me/permissions", headers={"X-User-Id": "alice"})
        assert response.status_code == 200


@pytest.mark.asyncio
class TestCapabilityDependencies:
    async def test_require_any_capability(self):
        from changeflow.auth.deps import require_any_capability
        from changeflow.auth.resolver import resolve_permissions
        from changeflow.middleware.exceptions import AuthorizationError

        check = require_any_capability("canEditUsers", "canDeleteUsers")
        allowed = resolve_permissions(PermissionSet.from_granted(["canDeleteUsers"]))
        denied = resolve_permissions(PermissionSet.from_granted(["canSeeUsers"]))

        assert await check(resolution=allowed) is allowed
        with pytest.raises(AuthorizationError) as exc_info:
            await check(resolution=denied)
        assert "canEditUsers" in exc_info.value.message
        assert exc_info.value.details == {
            "capability": "canEditUsers",
            "required": ["canEditUsers", "canDeleteUsers"],
        }

    async def test_require_any_capability_needs_a_capability(self):
        from changeflow.auth.deps import require_any_capability

        with pytest.raises(ValueError):
            require_any_capability()

    async def test_single_capability_denial_details(self):
        from changeflow.middleware.exceptions import AuthorizationError

        error = AuthorizationError("canEditUsers")

        assert error.details == {"capability": "canEditUsers"}
        assert error.required == ["canEditUsers"]
