"""Multi-tenancy: request-scoped organization context.

Key components:
  - _tenant_ctx                ContextVar holding the organization id for the current request
  - set / clear helpers for the ContextVar
  - validate_organization_id() rejects ids that are unsafe inside cache keys
"""

import re
from contextvars import ContextVar

# ── Request-scoped tenant context ───────────────────────────

_tenant_ctx: ContextVar[str | None] = ContextVar("_tenant_ctx", default=None)


def set_current_organization(organization_id: str) -> None:
    _tenant_ctx.set(organization_id)


def clear_tenant_context() -> None:
    _tenant_ctx.set(None)


# ── Validation ──────────────────────────────────────────────

_ORG_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def validate_organization_id(organization_id: str) -> str:
    """Ensure organization ids are safe to embed in Redis keys and patterns.

    Only allows letters, digits, `-` and `_` (no glob characters, no `:`).
    """
    if not _ORG_ID_RE.match(organization_id):
        raise ValueError(f"Invalid organization id: {organization_id!r}")
    return organization_id
