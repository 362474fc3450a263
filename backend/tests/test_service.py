"""Tests for PermissionService: store fetches, caching, invalidation, summary."""

import pytest

from changeflow.auth.permission_set import PermissionSet
from changeflow.auth.service import PermissionService
from changeflow.middleware.exceptions import ResolutionError, ResolutionErrorKind

from conftest import make_set


@pytest.mark.asyncio
class TestResolveForUser:
    async def test_role_and_active_groups(self, service):
        result = await service.resolve_for_user("alice")

        assert result.resolved.granted() == [
            "canEditUsers", "canSeeGroups", "canSeeProjects", "canSeeUsers",
        ]
        assert result.source_of("canEditUsers") == "group:editors"
        # auditors is inactive
        assert result.resolved.get("canSeeSecuritySettings") is False

    async def test_missing_role(self, service):
        with pytest.raises(ResolutionError) as exc_info:
            await service.resolve_for_user("nobody")

        assert exc_info.value.kind is ResolutionErrorKind.MISSING_ROLE

    async def test_role_reference_to_deleted_role(self, service, store):
        store.assign_role("carol", "ghost")

        with pytest.raises(ResolutionError) as exc_info:
            await service.resolve_for_user("carol")

        assert exc_info.value.kind is ResolutionErrorKind.MISSING_ROLE

    async def test_membership_of_deleted_group_is_ignored(self, store):
        store.add_member("bob", "vanished")
        service = PermissionService(store, store, store)

        result = await service.resolve_for_user("bob")

        assert result.resolved.granted() == ["canSeeProjects", "canSeeUsers"]

    async def test_override_replaces(self, service, store):
        store.set_override("root", make_set(canSeeUsers=True))

        result = await service.resolve_for_user("root")

        assert result.resolved.granted() == ["canSeeUsers"]
        assert result.source_of("canManageSystem") == "individual"

    async def test_check(self, service):
        assert await service.check("alice", "canEditUsers") is True
        assert await service.check("bob", "canEditUsers") is False


@pytest.mark.asyncio
class TestCaching:
    async def test_second_call_is_a_hit(self, service, resolution_cache):
        first = await service.resolve_for_user("bob")
        second = await service.resolve_for_user("bob")

        assert first == second
        assert resolution_cache.misses == 1
        assert resolution_cache.hits == 1

    async def test_users_with_same_inputs_share_entry(self, service, resolution_cache, store):
        store.assign_role("dave", "viewer")

        await service.resolve_for_user("bob")
        await service.resolve_for_user("dave")

        assert resolution_cache.hits == 1
        assert len(resolution_cache.entries) == 1

    async def test_membership_change_takes_effect_immediately(self, service, store):
        assert await service.check("alice", "canEditUsers") is True

        store.remove_member("alice", "editors")

        assert await service.check("alice", "canEditUsers") is False

    async def test_override_change_takes_effect_immediately(self, service, store):
        store.set_override("bob", PermissionSet.all())
        assert await service.check("bob", "canDeleteUsers") is True

        store.set_override("bob", PermissionSet.none())
        assert await service.check("bob", "canDeleteUsers") is False

        store.clear_override("bob")
        assert await service.check("bob", "canSeeUsers") is True

    async def test_role_edit_needs_invalidation(self, service, store):
        assert await service.check("bob", "canDeleteUsers") is False

        store.set_role("viewer", make_set(canSeeUsers=True, canDeleteUsers=True))
        # Key unchanged: stale until invalidated or TTL expiry
        assert await service.check("bob", "canDeleteUsers") is False

        await service.on_role_changed("viewer")
        assert await service.check("bob", "canDeleteUsers") is True

    async def test_group_edit_invalidation(self, service, store):
        assert await service.check("alice", "canEditUsers") is True

        store.set_group("editors", make_set(canSeeGroups=True))
        await service.on_group_changed("editors")

        assert await service.check("alice", "canEditUsers") is False

    async def test_group_id_containing_separator_gets_its_own_entry(self, service, store):
        store.set_group("a", make_set(canDeleteUsers=True))
        store.set_group("b", PermissionSet.none())
        store.set_group("a|b", PermissionSet.none())
        store.add_member("bob", "a")
        store.add_member("bob", "b")
        store.assign_role("eve", "viewer")
        store.add_member("eve", "a|b")

        assert await service.check("bob", "canDeleteUsers") is True
        assert await service.check("eve", "canDeleteUsers") is False

    async def test_group_edit_invalidation_with_separator_in_id(self, service, store):
        store.set_group("ops|eu", make_set(canEditUsers=True))
        store.add_member("bob", "ops|eu")
        assert await service.check("bob", "canEditUsers") is True

        store.set_group("ops|eu", PermissionSet.none())
        await service.on_group_changed("ops|eu")

        assert await service.check("bob", "canEditUsers") is False

    async def test_invalidate_all(self, service, resolution_cache):
        await service.resolve_for_user("alice")
        await service.resolve_for_user("root")

        await service.invalidate_all()

        assert resolution_cache.entries == {}

    async def test_degraded_resolution_round_trips_through_cache(self, service, store):
        store.set_group("broken", {"canDeleteUsers": True})
        store.add_member("bob", "broken")

        first = await service.resolve_for_user("bob")
        second = await service.resolve_for_user("bob")

        assert first.degraded and second.degraded
        assert second.errors[0].source == "group:broken"
        assert second.resolved.get("canDeleteUsers") is False


@pytest.mark.asyncio
class TestSecuritySummary:
    async def test_summary_lists_every_source(self, service, store):
        store.set_override("alice", make_set(canSeeUsers=True))

        summary = await service.security_summary("alice")

        assert summary.role_id == "viewer"
        assert summary.role_permissions.granted() == ["canSeeProjects", "canSeeUsers"]
        assert list(summary.group_permissions) == ["editors"]
        assert summary.individual_permissions == make_set(canSeeUsers=True)
        assert summary.resolution.resolved == make_set(canSeeUsers=True)

    async def test_summary_is_not_cached(self, service, resolution_cache):
        await service.security_summary("bob")
        assert resolution_cache.entries == {}


class TestBuildPermissionService:
    def test_cache_attached_when_enabled(self, store, monkeypatch):
        from changeflow.auth.service import build_permission_service
        from changeflow.config import settings
        from changeflow.utils.cache import ResolutionCache

        monkeypatch.setattr(settings, "permission_cache_enabled", True)
        assert isinstance(build_permission_service(store, store, store).cache, ResolutionCache)

        monkeypatch.setattr(settings, "permission_cache_enabled", False)
        assert build_permission_service(store, store, store).cache is None
