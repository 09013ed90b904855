"""Translate typed core failures into HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shared.resilience.errors import (
    ClientError,
    DimensionMismatchError,
    ProtocolError,
    RAGError,
    RateLimited,
    RebuildInProgressError,
    TransientError,
)

# most specific first
_STATUS_BY_ERROR: list[tuple[type[RAGError], int]] = [
    (RebuildInProgressError, 409),
    (ClientError, 400),
    (DimensionMismatchError, 422),
    (RateLimited, 429),
    (TransientError, 503),
    (ProtocolError, 502),
]


def get_status_code(error: RAGError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return 500


async def handle_rag_error(request: Request, error: RAGError) -> JSONResponse:
    """Render a RAGError as {"error": code, "detail": message, "context": ..., "attempts": ...}."""
    status_code = get_status_code(error)
    request.app.state.logging.warning("Request %s %s failed with %d: %s", request.method, request.url.path, status_code, error)
    headers = {}
    if isinstance(error, RateLimited) and error.retry_after is not None:
        headers["Retry-After"] = str(int(error.retry_after))
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error.code,
            "detail": error.message,
            "context": error.context,
            "attempts": error.attempts,
        },
        headers=headers,
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RAGError, handle_rag_error)
