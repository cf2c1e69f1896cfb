"""
FastAPI exception handlers for structured error responses.

Maps dispatcher and backend exceptions to HTTP status codes:
- ConfigurationError -> 400 (the request can never succeed as sent)
- MalformedOutputError -> 422 (the backends never produced valid JSON)
- BackendError / AllBackendsFailedError -> 502 (upstream failure)
- Any other LLMError (image store, unknown backend) -> 502
- Request body validation -> 400
- Anything else -> 500
"""

from datetime import datetime, timezone

import structlog
from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from llm_layer.backends.exceptions import BackendError, LLMError
from llm_layer.dispatch.exceptions import (
    AllBackendsFailedError,
    ConfigurationError,
    MalformedOutputError,
)

logger = structlog.get_logger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    """
    Handle configuration errors (raised before any backend attempt).

    Maps to 400 Bad Request.
    """
    logger.warning("Configuration error", error=str(exc), details=exc.details)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "configuration_error",
            "message": str(exc),
            "details": jsonable_encoder(exc.details),
            "timestamp": _timestamp(),
        },
    )


async def malformed_output_handler(request: Request, exc: MalformedOutputError) -> JSONResponse:
    """
    Handle structured output that never parsed on any backend.

    Maps to 422 Unprocessable Entity (invalid LLM response).
    """
    logger.warning("Malformed output", error=str(exc), details=exc.details)

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "malformed_output",
            "message": str(exc),
            "details": jsonable_encoder(exc.details),
            "timestamp": _timestamp(),
        },
    )


async def backend_error_handler(request: Request, exc: BackendError) -> JSONResponse:
    """
    Handle the last backend error after every backend was exhausted.

    Maps to 502 Bad Gateway (upstream service failed).
    """
    logger.error(
        "All backends failed",
        backend=exc.backend.value,
        code=exc.code,
        status_code=exc.status_code,
        error=str(exc),
    )

    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={
            "error": "backend_error",
            "message": str(exc),
            "backend": exc.backend.value,
            "code": exc.code,
            "upstream_status": exc.status_code,
            "timestamp": _timestamp(),
        },
    )


async def all_backends_failed_handler(request: Request, exc: AllBackendsFailedError) -> JSONResponse:
    """Maps to 502 Bad Gateway."""
    logger.error("All backends failed", error=str(exc))

    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={
            "error": "all_backends_failed",
            "message": str(exc),
            "timestamp": _timestamp(),
        },
    )


async def llm_error_handler(request: Request, exc: LLMError) -> JSONResponse:
    """Last error of an exhausted call that is not a backend error. Maps to 502."""
    logger.error("All backends failed", error_type=type(exc).__name__, error=str(exc))

    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={
            "error": "generation_failed",
            "message": str(exc),
            "details": jsonable_encoder(exc.details),
            "timestamp": _timestamp(),
        },
    )


async def request_validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle invalid request bodies.

    Maps to 400 Bad Request (client error).
    """
    errors = jsonable_encoder(exc.errors())
    logger.warning("Invalid request format", errors=errors)

    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={
            "error": "invalid_request",
            "message": "Request validation failed",
            "details": errors,
            "timestamp": _timestamp(),
        },
    )


async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected errors.

    Maps to 500 Internal Server Error.
    """
    logger.exception("Unexpected error", error_type=type(exc).__name__)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred",
            "timestamp": _timestamp(),
        },
    )


# Exception handler mapping for FastAPI app.add_exception_handler()
EXCEPTION_HANDLERS = {
    ConfigurationError: configuration_error_handler,
    MalformedOutputError: malformed_output_handler,
    BackendError: backend_error_handler,
    AllBackendsFailedError: all_backends_failed_handler,
    LLMError: llm_error_handler,
    RequestValidationError: request_validation_error_handler,
    Exception: generic_error_handler,
}
