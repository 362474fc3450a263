"""Collaborator-facing interfaces for the three permission sources.

The stores are owned by the host application (SQL, an admin API, ...);
the engine only reads through these protocols. Each store may be stale
relative to the others; resolution treats every read as a best-effort
snapshot and never writes back.

`InMemoryPermissionStore` implements all three protocols for tests,
local development and the CLI.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from changeflow.auth.permission_set import PermissionSet


@dataclass(frozen=True)
class GroupRecord:
    group_id: str
    permissions: Any  # PermissionSet, or the raw mapping as stored
    is_active: bool = True
    name: str | None = None


@dataclass(frozen=True)
class OverrideRecord:
    """An individual override. `version` changes on every set/update."""

    version: int
    permissions: Any


@runtime_checkable
class RoleStore(Protocol):
    async def get_role_id(self, user_id: str) -> str | None: ...

    async def get_role_permissions(self, role_id: str) -> PermissionSet | Mapping[str, Any] | None: ...


@runtime_checkable
class GroupStore(Protocol):
    async def get_group_ids(self, user_id: str) -> Sequence[str]: ...

    async def get_group(self, group_id: str) -> GroupRecord | None: ...


@runtime_checkable
class OverrideStore(Protocol):
    async def get_override(self, user_id: str) -> OverrideRecord | None: ...


class InMemoryPermissionStore:
    """Dict-backed role, group and override store.

    Mutations are independent single-entity writes, mirroring the
    administrative actions of the real stores.
    """

    def __init__(self):
        self._roles: dict[str, Any] = {}
        self._user_roles: dict[str, str] = {}
        self._groups: dict[str, GroupRecord] = {}
        self._memberships: dict[str, list[str]] = {}
        self._overrides: dict[str, OverrideRecord] = {}
        self._override_versions: dict[str, int] = {}

    # ── Roles ────────────────────────────────────────────────

    def set_role(self, role_id: str, permissions: Any) -> None:
        self._roles[role_id] = permissions

    def assign_role(self, user_id: str, role_id: str) -> None:
        self._user_roles[user_id] = role_id

    async def get_role_id(self, user_id: str) -> str | None:
        return self._user_roles.get(user_id)

    async def get_role_permissions(self, role_id: str):
        return self._roles.get(role_id)

    # ── Groups ───────────────────────────────────────────────

    def set_group(
        self,
        group_id: str,
        permissions: Any,
        *,
        is_active: bool = True,
        name: str | None = None,
    ) -> None:
        self._groups[group_id] = GroupRecord(group_id, permissions, is_active, name)

    def delete_group(self, group_id: str) -> bool:
        if self._groups.pop(group_id, None) is None:
            return False
        for members in self._memberships.values():
            if group_id in members:
                members.remove(group_id)
        return True

    def add_member(self, user_id: str, group_id: str) -> None:
        members = self._memberships.setdefault(user_id, [])
        if group_id not in members:
            members.append(group_id)

    def remove_member(self, user_id: str, group_id: str) -> bool:
        members = self._memberships.get(user_id, [])
        if group_id not in members:
            return False
        members.remove(group_id)
        return True

    async def get_group_ids(self, user_id: str) -> list[str]:
        return list(self._memberships.get(user_id, []))

    async def get_group(self, group_id: str) -> GroupRecord | None:
        return self._groups.get(group_id)

    # ── Individual overrides ─────────────────────────────────

    def set_override(self, user_id: str, permissions: Any) -> OverrideRecord:
        version = self._override_versions.get(user_id, 0) + 1
        self._override_versions[user_id] = version
        record = OverrideRecord(version=version, permissions=permissions)
        self._overrides[user_id] = record
        return record

    def clear_override(self, user_id: str) -> bool:
        if self._overrides.pop(user_id, None) is None:
            return False
        self._override_versions[user_id] = self._override_versions.get(user_id, 0) + 1
        return True

    async def get_override(self, user_id: str) -> OverrideRecord | None:
        return self._overrides.get(user_id)
