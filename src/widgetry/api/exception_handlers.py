"""Custom exception handlers for FastAPI application.

This module registers global exception handlers that convert domain exceptions
and validation errors into proper HTTP responses with appropriate status codes.
Starlette picks the handler by the exception's MRO, so registering the base
classes covers every widget-specific subclass.
"""

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from widgetry.domain.exceptions import (
    AuthorizationError,
    ConfigurationError,
    DependentsExistError,
    DomainException,
    EntityNotFoundException,
    ExternalServiceError,
    InvalidBundleShape,
    InvalidStateException,
    ValidationException,
)

logger = logging.getLogger(__name__)


# Hey future me - pydantic's exc.errors() can carry the raw request body as bytes,
# which JSONResponse can't serialize. Decode them (recursively) before responding.
def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
    def _sanitize_value(value: Any) -> Any:
        if isinstance(value, bytes):
            try:
                return value.decode("utf-8")
            except UnicodeDecodeError:
                return value.decode("latin-1")
        elif isinstance(value, dict):
            return {k: _sanitize_value(v) for k, v in value.items()}
        elif isinstance(value, list | tuple):
            return [_sanitize_value(item) for item in value]
        return value

    return [_sanitize_value(error) for error in errors]


def _error_response(status_code: int, exc: DomainException, **extra: Any) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": type(exc).__name__, **extra},
    )


# Hey future me, this registers GLOBAL exception handlers for the entire app! Registry
# errors become:
#   404 widget/plugin not found          403 source host not on the allow-list
#   409 dependents exist, plugin conflict 422 bad bundle, incompatible platform
#   400 no loader for that source         502 remote/package/asset load failures
#   500 plugin transform blew up (it's our side, not the client's)
# Call it during app setup BEFORE any requests arrive.
def register_exception_handlers(app: FastAPI) -> None:
    """Register custom exception handlers for domain and validation exceptions.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(EntityNotFoundException)
    async def entity_not_found_exception_handler(
        request: Request, exc: EntityNotFoundException
    ) -> JSONResponse:
        """Handle widget/plugin not found with 404 Not Found."""
        logger.info(
            "Entity not found at %s: %s %s",
            request.url.path,
            exc.entity_type,
            exc.entity_id,
            extra={
                "path": request.url.path,
                "entity_type": exc.entity_type,
                "entity_id": exc.entity_id,
            },
        )
        return _error_response(status.HTTP_404_NOT_FOUND, exc)

    @app.exception_handler(AuthorizationError)
    async def authorization_exception_handler(
        request: Request, exc: AuthorizationError
    ) -> JSONResponse:
        """Handle disallowed sources with 403 Forbidden."""
        logger.warning(
            "Source rejected at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        return _error_response(status.HTTP_403_FORBIDDEN, exc)

    @app.exception_handler(InvalidStateException)
    async def invalid_state_exception_handler(
        request: Request, exc: InvalidStateException
    ) -> JSONResponse:
        """Handle dependents/plugin version conflicts with 409 Conflict."""
        logger.warning(
            "Conflict at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        extra: dict[str, Any] = {}
        if isinstance(exc, DependentsExistError):
            extra["dependents"] = exc.dependents
        return _error_response(status.HTTP_409_CONFLICT, exc, **extra)

    @app.exception_handler(ValidationException)
    async def validation_exception_handler(
        request: Request, exc: ValidationException
    ) -> JSONResponse:
        """Handle bundle shape and compatibility failures with 422 Unprocessable Entity."""
        logger.warning(
            "Validation error at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        extra: dict[str, Any] = {}
        if isinstance(exc, InvalidBundleShape) and exc.missing:
            extra["missing"] = exc.missing
        return _error_response(status.HTTP_422_UNPROCESSABLE_ENTITY, exc, **extra)

    @app.exception_handler(ConfigurationError)
    async def configuration_exception_handler(
        request: Request, exc: ConfigurationError
    ) -> JSONResponse:
        """Handle unusable sources (no loader) with 400 Bad Request."""
        logger.warning(
            "Unusable source at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        return _error_response(status.HTTP_400_BAD_REQUEST, exc)

    @app.exception_handler(ExternalServiceError)
    async def external_service_exception_handler(
        request: Request, exc: ExternalServiceError
    ) -> JSONResponse:
        """Handle widget/asset load failures with 502 Bad Gateway."""
        logger.error(
            "Load failure at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        return _error_response(status.HTTP_502_BAD_GATEWAY, exc)

    @app.exception_handler(DomainException)
    async def domain_exception_handler(
        request: Request, exc: DomainException
    ) -> JSONResponse:
        """Handle any other domain error (plugin transforms) with 500."""
        logger.error(
            "Domain error at %s: %s",
            request.url.path,
            exc.message,
            extra={"path": request.url.path, "error": exc.message},
        )
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, exc)

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic request validation errors with 422 Unprocessable Entity."""
        sanitized_errors = _sanitize_validation_errors(list(exc.errors()))

        logger.warning(
            "Request validation error at %s: %s",
            request.url.path,
            sanitized_errors,
            extra={"path": request.url.path, "errors": sanitized_errors},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": sanitized_errors},
        )
