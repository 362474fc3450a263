"""FastAPI dependencies for permission-guarded routes.

Dependencies:
  get_current_user_id       → caller identity set by the host's auth layer
  get_permission_service    → the PermissionService stored on app.state
  get_resolved_permissions  → Resolution for the current user
  require_capability(...)   → restrict to users holding ALL listed capabilities
  require_any_capability(...) → restrict to users holding ANY listed capability

Authentication itself is not done here: the host application's middleware
is expected to set `request.state.user_id` before these run.
"""

from fastapi import Depends, HTTPException, Request, status

from changeflow.auth.capabilities import Capability, parse_capability
from changeflow.auth.gate import authorize_any, require_or_deny
from changeflow.auth.resolver import Resolution
from changeflow.auth.service import PermissionService
from changeflow.middleware.exceptions import AuthorizationError, ChangeflowException


# ── Identity & service ──────────────────────────────────────

async def get_current_user_id(request: Request) -> str:
    user_id = getattr(request.state, "user_id", None)
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


def get_permission_service(request: Request) -> PermissionService:
    service = getattr(request.app.state, "permission_service", None)
    if service is None:
        raise ChangeflowException(
            "PermissionService is not configured on app.state",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="SERVICE_NOT_CONFIGURED",
        )
    return service


async def get_resolved_permissions(
    user_id: str = Depends(get_current_user_id),
    service: PermissionService = Depends(get_permission_service),
) -> Resolution:
    return await service.resolve_for_user(user_id)


# ── Capability-based access control ─────────────────────────

def require_capability(*capabilities: Capability | str):
    """Dependency factory: restrict to users who hold ALL listed capabilities.

    Usage:
        @router.delete("/users/{user_id}")
        async def delete_user(
            resolution: Resolution = Depends(require_capability(Capability.CAN_DELETE_USERS)),
        ):
            ...
    """
    required = [parse_capability(c) for c in capabilities]

    async def _check(
        user_id: str = Depends(get_current_user_id),
        resolution: Resolution = Depends(get_resolved_permissions),
    ) -> Resolution:
        for capability in required:
            require_or_deny(resolution.resolved, capability, subject=user_id)
        return resolution

    return _check


def require_any_capability(*capabilities: Capability | str):
    """Dependency factory: restrict to users who hold at least one capability.

    A denial reports the first listed capability as `capability` and the
    whole list as `required`.
    """
    required = [parse_capability(c) for c in capabilities]
    if not required:
        raise ValueError("require_any_capability needs at least one capability")

    async def _check(resolution: Resolution = Depends(get_resolved_permissions)) -> Resolution:
        if not authorize_any(resolution.resolved, *required):
            names = [c.value for c in required]
            raise AuthorizationError(
                names[0],
                message=f"Requires one of: {', '.join(names)}",
                required=names,
            )
        return resolution

    return _check
