"""Tenant middleware — sets the organization context for every request.

Flow:
  1. Read the `X-Organization-Id` header (set by the gateway / auth layer)
  2. Validate it
  3. Set the ContextVar so downstream code (cache keys) is tenant-scoped
  4. After the response, clear the ContextVar
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from changeflow.tenancy import (
    clear_tenant_context,
    set_current_organization,
    validate_organization_id,
)

ORGANIZATION_HEADER = "x-organization-id"


class TenantMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        organization_id = request.headers.get(ORGANIZATION_HEADER)

        if organization_id:
            try:
                validate_organization_id(organization_id)
            except ValueError:
                clear_tenant_context()
                return JSONResponse(
                    status_code=400,
                    content={
                        "error": {
                            "code": "INVALID_ORGANIZATION",
                            "message": "Invalid organization id",
                        }
                    },
                )
            set_current_organization(organization_id)
        else:
            clear_tenant_context()

        try:
            response = await call_next(request)
        finally:
            clear_tenant_context()

        return response
