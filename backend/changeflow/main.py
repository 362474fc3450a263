"""ASGI entry point.

The module-level `app` carries no PermissionService: stores belong to the
host. Until one is attached, guarded routes answer 503
SERVICE_NOT_CONFIGURED and `/health/ready` reports unhealthy. Hosts either
build their own app:

    app = create_app(build_permission_service(roles, groups, overrides))

or attach a service to this one at startup:

    app.state.permission_service = build_permission_service(...)
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from changeflow.auth.service import PermissionService
from changeflow.config import settings
from changeflow.middleware.exceptions import register_exception_handlers
from changeflow.middleware.tenant import TenantMiddleware
from changeflow.routers import health, permissions
from changeflow.utils.cache import close_redis

logger = logging.getLogger("changeflow")


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting changeflow-permissions ({settings.environment})")
    yield
    await close_redis()
    logger.info("Shut down changeflow-permissions")


def create_app(permission_service: PermissionService | None = None) -> FastAPI:
    """Build the API. The host wires its own stores into `permission_service`
    (or assigns `app.state.permission_service` before serving traffic)."""
    app = FastAPI(
        title="Changeflow Permissions",
        description="Permission resolution for the Changeflow change-management platform",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.permission_service = permission_service

    # ── Exception Handlers ───────────────────────────────────
    register_exception_handlers(app)

    # ── Middleware (outermost first) ─────────────────────────
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Tenant context (innermost - processes request data)
    app.add_middleware(TenantMiddleware)

    # ── Routers ──────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(permissions.router, prefix="/api", tags=["permissions"])

    return app


configure_logging()
app = create_app()
