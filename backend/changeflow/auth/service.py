"""PermissionService — fetch the three sources, resolve, cache.

Flow for one user:
  1. Concurrently read the cheap references: role id, group ids, override record.
  2. Build the cache key (role id, sorted group ids, override version).
  3. On a hit, return the cached Resolution.
  4. On a miss, fetch the role and group permission sets concurrently,
     resolve, store with the configured TTL.

Reads from the three stores are not transactional with one another: a
membership removed a moment ago may still be reflected here. Each
resolution is a best-effort snapshot recomputed on demand.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from changeflow.auth.capabilities import Capability
from changeflow.auth.gate import authorize
from changeflow.auth.permission_set import PermissionSet
from changeflow.auth.resolver import GroupGrant, Resolution, resolve_permissions
from changeflow.auth.stores import GroupStore, OverrideRecord, OverrideStore, RoleStore
from changeflow.middleware.exceptions import (
    ResolutionError,
    ResolutionErrorKind,
    ValidationError,
)

logger = logging.getLogger(__name__)


class ResolutionCacheBackend(Protocol):
    def key_for(self, role_id: str, group_ids, override_version: int | None) -> str: ...

    async def get(self, key: str) -> Resolution | None: ...

    async def set(self, key: str, resolution: Resolution) -> None: ...

    async def invalidate_role(self, role_id: str) -> None: ...

    async def invalidate_group(self, group_id: str) -> None: ...

    async def invalidate_all(self) -> None: ...


@dataclass(frozen=True)
class SecuritySummary:
    """Everything that went into a user's effective permissions."""

    user_id: str
    role_id: str
    role_permissions: PermissionSet
    group_permissions: Mapping[str, PermissionSet]
    individual_permissions: PermissionSet | None
    resolution: Resolution


@dataclass(frozen=True)
class _Sources:
    role_id: str
    role_permissions: Any
    groups: tuple[GroupGrant, ...]
    override: OverrideRecord | None


class PermissionService:
    def __init__(
        self,
        roles: RoleStore,
        groups: GroupStore,
        overrides: OverrideStore,
        cache: ResolutionCacheBackend | None = None,
    ):
        self.roles = roles
        self.groups = groups
        self.overrides = overrides
        self.cache = cache

    async def _references(self, user_id: str) -> tuple[str, list[str], OverrideRecord | None]:
        role_id, group_ids, override = await asyncio.gather(
            self.roles.get_role_id(user_id),
            self.groups.get_group_ids(user_id),
            self.overrides.get_override(user_id),
        )
        if role_id is None:
            logger.error(f"User {user_id} has no role assigned")
            raise ResolutionError(
                ResolutionErrorKind.MISSING_ROLE,
                source="role",
                message=f"User {user_id} has no role assigned",
            )
        return role_id, list(group_ids), override

    async def _fetch_sources(
        self,
        role_id: str,
        group_ids: list[str],
        override: OverrideRecord | None,
    ) -> _Sources:
        role_permissions, *records = await asyncio.gather(
            self.roles.get_role_permissions(role_id),
            *(self.groups.get_group(gid) for gid in group_ids),
        )
        if role_permissions is None:
            logger.error(f"Role {role_id} has no permission set")
            raise ResolutionError(
                ResolutionErrorKind.MISSING_ROLE,
                source="role",
                message=f"Role {role_id} does not exist",
            )

        grants = []
        for gid, record in zip(group_ids, records):
            if record is None:
                # Membership points at a deleted group; nothing to grant
                logger.warning(f"Group {gid} referenced by membership no longer exists")
                continue
            grants.append(GroupGrant(gid, record.permissions, record.is_active))

        return _Sources(role_id, role_permissions, tuple(grants), override)

    async def resolve_for_user(self, user_id: str) -> Resolution:
        """Effective permissions for `user_id`, served from cache when possible."""
        role_id, group_ids, override = await self._references(user_id)
        override_version = override.version if override else None

        key = None
        if self.cache is not None:
            key = self.cache.key_for(role_id, group_ids, override_version)
            cached = await self.cache.get(key)
            if cached is not None:
                return cached

        sources = await self._fetch_sources(role_id, group_ids, override)
        resolution = resolve_permissions(
            sources.role_permissions,
            sources.groups,
            override.permissions if override else None,
        )

        if self.cache is not None and key is not None:
            await self.cache.set(key, resolution)
        return resolution

    async def check(self, user_id: str, capability: Capability | str) -> bool:
        resolution = await self.resolve_for_user(user_id)
        return authorize(resolution.resolved, capability)

    async def security_summary(self, user_id: str) -> SecuritySummary:
        """Role, group and override sets next to the resolved result. Never cached."""
        role_id, group_ids, override = await self._references(user_id)
        sources = await self._fetch_sources(role_id, group_ids, override)
        resolution = resolve_permissions(
            sources.role_permissions,
            sources.groups,
            override.permissions if override else None,
        )

        # Only sources that passed validation are shown; degraded ones are in resolution.errors
        group_permissions: dict[str, PermissionSet] = {}
        for grant in sorted(sources.groups, key=lambda g: g.group_id):
            if not grant.is_active:
                continue
            try:
                group_permissions[grant.group_id] = _as_set(grant.permissions)
            except ValidationError:
                continue

        individual = None
        if override is not None:
            try:
                individual = _as_set(override.permissions)
            except ValidationError:
                individual = PermissionSet.none()

        return SecuritySummary(
            user_id=user_id,
            role_id=role_id,
            role_permissions=_as_set(sources.role_permissions),
            group_permissions=group_permissions,
            individual_permissions=individual,
            resolution=resolution,
        )

    # ── Invalidation hooks ───────────────────────────────────
    # Membership changes, override set/clear and role reassignment change
    # the cache key itself; only edits to a shared role/group set need these.

    async def on_role_changed(self, role_id: str) -> None:
        if self.cache is not None:
            await self.cache.invalidate_role(role_id)

    async def on_group_changed(self, group_id: str) -> None:
        if self.cache is not None:
            await self.cache.invalidate_group(group_id)

    async def invalidate_all(self) -> None:
        if self.cache is not None:
            await self.cache.invalidate_all()


def _as_set(value: Any) -> PermissionSet:
    return value if isinstance(value, PermissionSet) else PermissionSet(value)


def build_permission_service(
    roles: RoleStore,
    groups: GroupStore,
    overrides: OverrideStore,
) -> PermissionService:
    """PermissionService with the Redis cache attached when enabled in settings."""
    from changeflow.config import settings
    from changeflow.utils.cache import ResolutionCache

    cache = ResolutionCache() if settings.permission_cache_enabled else None
    return PermissionService(roles, groups, overrides, cache=cache)
