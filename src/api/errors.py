"""
Exception handlers - Map domain errors to HTTP responses.

Every IdentityError carries its own status code. Request validation
failures become 400 with field-level detail. Anything else is a 500 whose
message is only revealed outside production.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.config.settings import get_settings
from src.domain.exceptions import IdentityError, ValidationFailed

logger = logging.getLogger(__name__)


async def identity_error_handler(request: Request, exc: IdentityError) -> JSONResponse:
    content: dict = {"detail": exc.detail}
    if isinstance(exc, ValidationFailed) and exc.errors:
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"field": ".".join(str(part) for part in error["loc"][1:]), "message": error["msg"]}
        for error in exc.errors()
    ]
    logger.info("Validation failed on %s: %s", request.url.path, errors)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation failed", "errors": errors},
    )


async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s", request.url.path)
    content = {"detail": "Internal server error"}
    if not get_settings().is_production:
        content["error"] = f"{type(exc).__name__}: {exc}"
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(IdentityError, identity_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unexpected_error_handler)
