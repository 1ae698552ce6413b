from collections.abc import Sequence
from http import HTTPStatus
from typing import Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ipgeo.errors import AuthenticationError
from ipgeo.logger import logger
from ipgeo.models.response_models import ErrorResponse

# Leading loc segments FastAPI adds to say where a value came from.
_LOCATION_PREFIXES = {"body", "query", "path", "header", "cookie"}


def _field_key(loc: Sequence[Any]) -> str:
    """Turn a pydantic error location into a dotted field key, e.g. ("body", "ids", 0) -> "ids.0"."""
    parts = list(loc)
    if len(parts) > 1 and parts[0] in _LOCATION_PREFIXES:
        parts = parts[1:]
    return ".".join(str(part) for part in parts) or "body"


def build_field_errors(errors: Sequence[dict[str, Any]]) -> dict[str, list[str]]:
    """Group validation error messages by field key, preserving order."""
    field_errors: dict[str, list[str]] = {}
    for error in errors:
        key = _field_key(error.get("loc", ()))
        field_errors.setdefault(key, []).append(str(error.get("msg", "Invalid value")))
    return field_errors


def validation_error_response(field_errors: dict[str, list[str]]) -> JSONResponse:
    payload = ErrorResponse(message="Validation error", errors=field_errors)
    return JSONResponse(status_code=HTTPStatus.UNPROCESSABLE_ENTITY, content=payload.model_dump())


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle body/query validation failures detected by FastAPI itself."""
    logger.info(
        "Request validation error "
        f"path={request.url.path} method={request.method} errors={exc.errors()}"
    )
    return validation_error_response(build_field_errors(exc.errors()))


async def pydantic_validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle Pydantic validation errors raised while building query models in dependencies."""
    logger.info(
        "Pydantic validation error during request handling "
        f"path={request.url.path} method={request.method} errors={exc.errors()}"
    )
    return validation_error_response(build_field_errors(exc.errors()))


async def authentication_exception_handler(request: Request, exc: AuthenticationError) -> JSONResponse:
    logger.info(f"Unauthenticated request path={request.url.path} method={request.method}")
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content=ErrorResponse(message=str(exc) or "Unauthenticated.").model_dump(exclude_none=True),
        headers={"WWW-Authenticate": "Bearer"},
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected errors to return a structured 500 response."""
    logger.exception(
        "Unhandled exception while processing request: "
        f"{repr(exc)} path={request.url.path} method={request.method}"
    )
    content = ErrorResponse(message="An unexpected error occurred while processing the request.")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content.model_dump(exclude_none=True),
    )
