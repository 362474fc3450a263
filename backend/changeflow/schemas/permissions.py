"""Pydantic schemas for permission read endpoints."""

from pydantic import BaseModel

from changeflow.auth.resolver import Resolution
from changeflow.auth.service import SecuritySummary


class ResolutionIssue(BaseModel):
    kind: str
    source: str | None = None


class ResolvedPermissionsResponse(BaseModel):
    user_id: str
    permissions: dict[str, bool]
    granted: list[str]
    provenance: dict[str, str]
    degraded: bool = False
    issues: list[ResolutionIssue] = []

    @classmethod
    def from_resolution(cls, user_id: str, resolution: Resolution) -> "ResolvedPermissionsResponse":
        return cls(
            user_id=user_id,
            permissions=resolution.resolved.to_dict(),
            granted=resolution.resolved.granted(),
            provenance={c.value: s for c, s in resolution.provenance.items()},
            degraded=resolution.degraded,
            issues=[
                ResolutionIssue(kind=e.kind.value, source=e.source)
                for e in resolution.errors
            ],
        )


class CapabilityCheckResponse(BaseModel):
    user_id: str
    capability: str
    granted: bool
    source: str


class SecuritySummaryResponse(BaseModel):
    user_id: str
    role_id: str
    role_permissions: dict[str, bool]
    group_permissions: dict[str, dict[str, bool]]
    individual_permissions: dict[str, bool] | None = None
    resolved: ResolvedPermissionsResponse

    @classmethod
    def from_summary(cls, summary: SecuritySummary) -> "SecuritySummaryResponse":
        individual = summary.individual_permissions
        return cls(
            user_id=summary.user_id,
            role_id=summary.role_id,
            role_permissions=summary.role_permissions.to_dict(),
            group_permissions={
                gid: pset.to_dict() for gid, pset in summary.group_permissions.items()
            },
            individual_permissions=individual.to_dict() if individual is not None else None,
            resolved=ResolvedPermissionsResponse.from_resolution(
                summary.user_id, summary.resolution
            ),
        )


class CapabilityListResponse(BaseModel):
    capabilities: list[str]
