"""
Translation of service errors into HTTP responses.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from structlog import get_logger

from tuplegate.core.errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TuplegateError,
    UpstreamError,
    ValidationError,
)

STATUS_CODES: list[tuple[type[TuplegateError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AuthenticationError, status.HTTP_401_UNAUTHORIZED),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
]


def status_code_for(exc: TuplegateError) -> int:
    for error_type, code in STATUS_CODES:
        if isinstance(exc, error_type):
            return code

    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def tuplegate_error_handler(request: Request, exc: TuplegateError) -> JSONResponse:
    code = status_code_for(exc)

    log = get_logger().bind(
        path=request.url.path, error=type(exc).__name__, status_code=code
    )

    if code >= 500:
        await log.awarning("api.upstream_error", detail=str(exc))
    else:
        await log.adebug("api.request_rejected", detail=str(exc))

    headers = {"WWW-Authenticate": "Bearer"} if code == 401 else None

    return JSONResponse(
        status_code=code,
        content={"detail": str(exc), "error": type(exc).__name__},
        headers=headers,
    )


def add_exception_handlers(app: FastAPI) -> FastAPI:
    """
    Map the service error taxonomy onto HTTP status codes. Without this,
    every denial would surface as a 500.
    """
    app.add_exception_handler(TuplegateError, tuplegate_error_handler)
    return app
