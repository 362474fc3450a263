"""Read-only permission endpoints: own permissions, another user's
permissions, single-capability checks, the security summary, and the
capability vocabulary.
"""

from fastapi import APIRouter, Depends

from changeflow.auth.capabilities import Capability, parse_capability
from changeflow.auth.deps import (
    get_current_user_id,
    get_permission_service,
    get_resolved_permissions,
    require_capability,
)
from changeflow.auth.gate import authorize
from changeflow.auth.resolver import Resolution
from changeflow.auth.service import PermissionService
from changeflow.schemas.permissions import (
    CapabilityCheckResponse,
    CapabilityListResponse,
    ResolvedPermissionsResponse,
    SecuritySummaryResponse,
)

router = APIRouter()


@router.get("/capabilities", response_model=CapabilityListResponse)
async def list_capabilities():
    return CapabilityListResponse(capabilities=[c.value for c in Capability])


@router.get("/users/me/permissions", response_model=ResolvedPermissionsResponse)
async def my_permissions(
    user_id: str = Depends(get_current_user_id),
    resolution: Resolution = Depends(get_resolved_permissions),
):
    return ResolvedPermissionsResponse.from_resolution(user_id, resolution)


@router.get(
    "/users/{user_id}/permissions",
    response_model=ResolvedPermissionsResponse,
    dependencies=[Depends(require_capability(Capability.CAN_SEE_USERS))],
)
async def user_permissions(
    user_id: str,
    service: PermissionService = Depends(get_permission_service),
):
    resolution = await service.resolve_for_user(user_id)
    return ResolvedPermissionsResponse.from_resolution(user_id, resolution)


@router.get(
    "/users/{user_id}/permissions/{capability}",
    response_model=CapabilityCheckResponse,
    dependencies=[Depends(require_capability(Capability.CAN_SEE_USERS))],
)
async def check_user_permission(
    user_id: str,
    capability: str,
    service: PermissionService = Depends(get_permission_service),
):
    cap = parse_capability(capability)
    resolution = await service.resolve_for_user(user_id)
    return CapabilityCheckResponse(
        user_id=user_id,
        capability=cap.value,
        granted=authorize(resolution.resolved, cap),
        source=resolution.source_of(cap),
    )


@router.get(
    "/users/{user_id}/security-summary",
    response_model=SecuritySummaryResponse,
    dependencies=[Depends(require_capability(Capability.CAN_SEE_SECURITY_SETTINGS))],
)
async def security_summary(
    user_id: str,
    service: PermissionService = Depends(get_permission_service),
):
    summary = await service.security_summary(user_id)
    return SecuritySummaryResponse.from_summary(summary)
