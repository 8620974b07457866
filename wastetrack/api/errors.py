"""Exception handlers mapping lifecycle errors to HTTP responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from wastetrack.core.lifecycle.errors import (
    AuthorizationError,
    ForbiddenError,
    InvalidInputError,
    InvalidTransitionError,
    LifecycleError,
    ShipmentNotFoundError,
    StageRequirementError,
    StorageError,
    UnauthorizedError,
    WriteOnceViolationError,
)

logger = logging.getLogger(__name__)

# Most specific first; TerminalStateError resolves through InvalidTransitionError
# and FutureTimestampError through InvalidInputError, each keeping its own code.
STATUS_CODES = (
    (ShipmentNotFoundError, 404),
    (InvalidInputError, 422),
    (InvalidTransitionError, 409),
    (WriteOnceViolationError, 409),
    (StageRequirementError, 409),
    (StorageError, 503),
    (UnauthorizedError, 401),
    (ForbiddenError, 403),
)


def status_code_for(exc: Exception) -> int:
    for error_class, status_code in STATUS_CODES:
        if isinstance(exc, error_class):
            return status_code
    return 400


def _error_body(exc: Exception, code: str) -> dict:
    return {"detail": str(exc), "code": code}


def register_exception_handlers(app: FastAPI) -> None:
    """Register lifecycle exception handlers on a FastAPI app.

    Handler order (most specific first):
    1. LifecycleError subclasses -> 404 / 409 / 422 / 503
    2. AuthorizationError -> 401 / 403

    Anything else, pydantic errors raised while building a response
    included, is left to the default 500 handler.
    """

    @app.exception_handler(LifecycleError)
    async def _lifecycle_error(request: Request, exc: LifecycleError) -> JSONResponse:
        status_code = status_code_for(exc)
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status_code, content=_error_body(exc, exc.code))

    @app.exception_handler(AuthorizationError)
    async def _authorization_error(request: Request, exc: AuthorizationError) -> JSONResponse:
        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, UnauthorizedError) else None
        return JSONResponse(
            status_code=status_code_for(exc),
            content=_error_body(exc, exc.code),
            headers=headers,
        )
