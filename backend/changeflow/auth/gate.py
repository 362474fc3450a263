"""Guard / Gate: the single place call sites ask "may this user do X?".

The Gate never re-derives permissions. It only reads a Resolved Permission
Set handed to it by the caller, so the three-source fetch stays out of the
hot authorization path whenever the caller caches the resolution.
"""

from __future__ import annotations

import logging

from changeflow.auth.capabilities import Capability, parse_capability
from changeflow.auth.permission_set import PermissionSet
from changeflow.middleware.exceptions import AuthorizationError

audit_logger = logging.getLogger("changeflow.audit")


def authorize(resolved: PermissionSet, capability: Capability | str) -> bool:
    """Pure lookup; unknown capability names raise ValidationError."""
    return resolved.get(parse_capability(capability))


def authorize_all(resolved: PermissionSet, *capabilities: Capability | str) -> bool:
    return all(authorize(resolved, c) for c in capabilities)


def authorize_any(resolved: PermissionSet, *capabilities: Capability | str) -> bool:
    return any(authorize(resolved, c) for c in capabilities)


def require_or_deny(
    resolved: PermissionSet,
    capability: Capability | str,
    *,
    subject: str | None = None,
) -> None:
    """Raise AuthorizationError(capability) unless the capability is granted.

    The caller decides what a denial means (403 response, hidden button).
    """
    capability = parse_capability(capability)
    if not resolved.get(capability):
        audit_logger.info(
            f"Denied {capability.value}" + (f" for user {subject}" if subject else ""),
            extra={"capability": capability.value, "subject": subject},
        )
        raise AuthorizationError(capability.value)
