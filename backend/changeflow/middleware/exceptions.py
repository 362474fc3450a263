"""Exception taxonomy and handlers for consistent error responses.

Domain errors raised by the permission engine live here so that the engine,
the HTTP layer and the CLI share one hierarchy:

  ValidationError       malformed Permission Set (not total / unknown keys)
  ResolutionError       MISSING_ROLE (fatal) or INVALID_PERMISSION_SET
  AuthorizationError    a guarded operation attempted without the capability
"""

import enum
import logging
import traceback
from typing import Any, Union

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ChangeflowException(Exception):
    """Base exception for Changeflow application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class ValidationError(ChangeflowException):
    """A Permission Set failed the totality / closed-vocabulary check."""

    def __init__(
        self,
        message: str,
        missing: list[str] | None = None,
        unknown: list[str] | None = None,
    ):
        self.missing = sorted(missing or [])
        self.unknown = sorted(unknown or [])
        details = {}
        if self.missing:
            details["missing"] = self.missing
        if self.unknown:
            details["unknown"] = self.unknown
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code="INVALID_PERMISSION_SET",
            details=details or None,
        )


class ResolutionErrorKind(str, enum.Enum):
    MISSING_ROLE = "missing_role"
    INVALID_PERMISSION_SET = "invalid_permission_set"


class ResolutionError(ChangeflowException):
    """Resolution could not use one of its inputs.

    `source` names the offending input: "role", "group:<id>" or "individual".
    MISSING_ROLE is always raised; INVALID_PERMISSION_SET is raised for the
    role and only recorded (fail closed) for groups and overrides.
    """

    def __init__(
        self,
        kind: ResolutionErrorKind,
        source: str | None = None,
        message: str | None = None,
    ):
        self.kind = kind
        self.source = source
        if message is None:
            if kind is ResolutionErrorKind.MISSING_ROLE:
                message = "User has no role permission set"
            else:
                message = f"Invalid permission set from {source or 'unknown source'}"
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            error_code=kind.name,
            details={"source": source} if source else None,
        )

    def __eq__(self, other):
        if not isinstance(other, ResolutionError):
            return NotImplemented
        return (self.kind, self.source, self.message) == (other.kind, other.source, other.message)

    def __hash__(self):
        return hash((self.kind, self.source, self.message))


class AuthorizationError(ChangeflowException):
    """A guarded operation was attempted without the required capability."""

    def __init__(
        self,
        capability: str,
        message: str | None = None,
        required: list[str] | None = None,
    ):
        self.capability = capability
        self.required = required or [capability]
        details: dict[str, Any] = {"capability": capability}
        if required:
            details["required"] = list(required)
        super().__init__(
            message=message or f"Missing permission: {capability}",
            status_code=status.HTTP_403_FORBIDDEN,
            error_code="PERMISSION_DENIED",
            details=details,
        )


def create_error_response(
    status_code: int,
    message: str,
    error_code: str = "ERROR",
    details: Union[dict, list, None] = None,
) -> JSONResponse:
    """Create standardized error response.

    Format:
    {
        "error": {
            "code": "ERROR_CODE",
            "message": "Human-readable error message",
            "details": {...}  // Optional additional details
        }
    }
    """
    content = {
        "error": {
            "code": error_code,
            "message": message,
        }
    }

    if details:
        content["error"]["details"] = details

    return JSONResponse(
        status_code=status_code,
        content=content,
    )


async def changeflow_exception_handler(
    request: Request,
    exc: ChangeflowException,
) -> JSONResponse:
    """Handle custom Changeflow exceptions."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"Changeflow exception: {exc.error_code} - {exc.message}",
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )

    # Internal resolution failures are data-integrity problems; don't leak sources
    if exc.status_code >= 500:
        return create_error_response(
            status_code=exc.status_code,
            message="Permissions could not be resolved for this user.",
            error_code=exc.error_code,
        )

    return create_error_response(
        status_code=exc.status_code,
        message=exc.message,
        error_code=exc.error_code,
        details=exc.details,
    )


async def http_exception_handler(
    request: Request,
    exc: Union[HTTPException, StarletteHTTPException],
) -> JSONResponse:
    """Handle FastAPI HTTP exceptions."""
    # Log non-4xx errors
    if exc.status_code >= 500:
        logger.error(
            f"HTTP {exc.status_code}: {exc.detail}",
            extra={
                "path": request.url.path,
                "method": request.method,
            },
        )

    return create_error_response(
        status_code=exc.status_code,
        message=str(exc.detail),
        error_code=f"HTTP_{exc.status_code}",
    )


async def validation_exception_handler(
    request: Request,
    exc: Union[RequestValidationError, PydanticValidationError],
) -> JSONResponse:
    """Handle Pydantic validation errors."""
    logger.warning(
        f"Validation error on {request.url.path}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "errors": exc.errors(),
        },
    )

    errors = []
    for error in exc.errors():
        field = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        message="Validation error",
        error_code="VALIDATION_ERROR",
        details={"errors": errors},
    )


async def general_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Handle all other unhandled exceptions."""
    logger.error(
        f"Unhandled exception on {request.url.path}: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc(),
        },
        exc_info=True,
    )

    # Return generic error to client (don't expose internal details)
    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        message="An unexpected error occurred. Please try again later.",
        error_code="INTERNAL_SERVER_ERROR",
    )


def register_exception_handlers(app):
    """Register all custom exception handlers with FastAPI app."""
    app.add_exception_handler(ChangeflowException, changeflow_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)
