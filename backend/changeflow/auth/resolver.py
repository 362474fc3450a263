"""Permission resolution: role + groups + individual override → effective set.

Merge policy, applied to each capability independently:
  1. Start with the role's value.
  2. OR in every active group ("most permissive wins"). Groups are folded
     in sorted-id order so neither the result nor the provenance depends on
     the order the store returned them in.
  3. If an individual override exists it REPLACES the result outright,
     including when it is less permissive than role/groups.

Step 3 is never OR-merged: an override of False revokes a capability that
the role or a group grants.

Fail-closed handling:
  - role missing                       → ResolutionError(MISSING_ROLE), raised
  - role malformed                     → ResolutionError(INVALID_PERMISSION_SET), raised
  - group malformed                    → group contributes all-False, error recorded + logged
  - override malformed                 → override treated as all-False, error recorded + logged
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Union

from changeflow.auth.capabilities import Capability
from changeflow.auth.permission_set import PermissionSet
from changeflow.middleware.exceptions import (
    ResolutionError,
    ResolutionErrorKind,
    ValidationError,
)

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("changeflow.audit")

SOURCE_ROLE = "role"
SOURCE_INDIVIDUAL = "individual"
GROUP_SOURCE_PREFIX = "group:"

PermissionInput = Union[PermissionSet, Mapping[str, Any]]


def group_source(group_id: str) -> str:
    return f"{GROUP_SOURCE_PREFIX}{group_id}"


@dataclass(frozen=True)
class GroupGrant:
    """One group the user belongs to, as fetched from the group store."""

    group_id: str
    permissions: Any
    is_active: bool = True


@dataclass(frozen=True)
class Resolution:
    """Result of one resolution: effective set, per-capability source, degradations."""

    resolved: PermissionSet
    provenance: Mapping[Capability, str]
    errors: tuple[ResolutionError, ...] = field(default=())

    @property
    def degraded(self) -> bool:
        return bool(self.errors)

    def source_of(self, capability: Capability | str) -> str:
        return self.provenance[Capability(capability)]


def _coerce(value: Any) -> PermissionSet:
    if isinstance(value, PermissionSet):
        return value
    return PermissionSet(value)


def _degrade(source: str, exc: ValidationError) -> ResolutionError:
    error = ResolutionError(ResolutionErrorKind.INVALID_PERMISSION_SET, source=source)
    audit_logger.warning(
        f"Invalid permission set from {source}; treating it as deny-all: {exc.message}",
        extra={"source": source, "missing": exc.missing, "unknown": exc.unknown},
    )
    return error


def resolve_permissions(
    role: PermissionInput | None,
    groups: Sequence[GroupGrant] = (),
    override: PermissionInput | None = None,
) -> Resolution:
    """Compute the effective permission set and its provenance.

    Pure and synchronous: no I/O, no shared state, safe to call concurrently.
    Identical inputs always produce an equal Resolution.
    """
    if role is None:
        raise ResolutionError(ResolutionErrorKind.MISSING_ROLE, source=SOURCE_ROLE)
    try:
        role_set = _coerce(role)
    except ValidationError as exc:
        raise ResolutionError(
            ResolutionErrorKind.INVALID_PERMISSION_SET,
            source=SOURCE_ROLE,
            message=f"Role permission set is invalid: {exc.message}",
        ) from exc

    errors: list[ResolutionError] = []

    # ── Groups: OR-fold in a canonical order ─────────────────
    valid_groups: list[tuple[str, PermissionSet]] = []
    for grant in sorted(groups, key=lambda g: str(g.group_id)):
        if not grant.is_active:
            continue
        try:
            valid_groups.append((str(grant.group_id), _coerce(grant.permissions)))
        except ValidationError as exc:
            errors.append(_degrade(group_source(grant.group_id), exc))

    merged = role_set
    for _, group_set in valid_groups:
        merged = merged.merge_any(group_set)

    provenance: dict[Capability, str] = {}
    for capability in Capability:
        if role_set[capability] or not merged[capability]:
            provenance[capability] = SOURCE_ROLE
        else:
            # First granting group in sorted-id order
            provenance[capability] = next(
                group_source(gid) for gid, gset in valid_groups if gset[capability]
            )

    # ── Individual override: replaces, never OR'd ────────────
    if override is not None:
        try:
            override_set = _coerce(override)
        except ValidationError as exc:
            errors.append(_degrade(SOURCE_INDIVIDUAL, exc))
            override_set = PermissionSet.none()
        merged = override_set
        provenance = {capability: SOURCE_INDIVIDUAL for capability in Capability}

    if errors:
        logger.info(
            f"Resolved permissions with {len(errors)} degraded source(s): "
            f"{', '.join(e.source for e in errors)}"
        )

    return Resolution(resolved=merged, provenance=provenance, errors=tuple(errors))
