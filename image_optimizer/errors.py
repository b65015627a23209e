"""
Error taxonomy for the image optimizer.

Every failure in the request path is raised as an ``OptimizerError`` subclass
and mapped to an HTTP status plus a JSON body at the request boundary by
``setup_exception_handlers``.
"""
import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import ClientDisconnect

# Set up logging
logger = logging.getLogger(__name__)


class OptimizerError(Exception):
    """Base class for all errors surfaced to clients"""

    status_code = 500
    kind = "InternalError"
    error = "Something went wrong"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.error
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.error, "kind": self.kind, "message": self.message}


class Unauthorized(OptimizerError):
    status_code = 401
    kind = "Unauthorized"
    error = "Unauthorized - Invalid API key"


class TooManyRequests(OptimizerError):
    status_code = 429
    kind = "TooManyRequests"
    error = "Too many requests"

    def __init__(self, message: Optional[str] = None, retry_after: int = 0):
        super().__init__(message or "Too many requests, please try again later.")
        self.retry_after = retry_after


class PayloadTooLarge(OptimizerError):
    status_code = 413
    kind = "PayloadTooLarge"
    error = "File too large"


class UnsupportedMediaType(OptimizerError):
    status_code = 400
    kind = "UnsupportedMediaType"
    error = "Only image files are allowed"


class MissingFile(OptimizerError):
    status_code = 400
    kind = "MissingFile"
    error = "No image file provided"


class InvalidParameter(OptimizerError):
    status_code = 400
    kind = "InvalidParameter"
    error = "Invalid parameter"


class DecodeFailed(OptimizerError):
    kind = "DecodeFailed"
    error = "Image optimization failed"


class EncodeFailed(OptimizerError):
    kind = "EncodeFailed"
    error = "Image optimization failed"


class ArtifactWriteFailed(OptimizerError):
    kind = "ArtifactWriteFailed"
    error = "Image optimization failed"


class InternalError(OptimizerError):
    pass


def error_response(exc: OptimizerError, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    """Build the JSON error response for an optimizer error."""
    headers = dict(headers or {})
    if isinstance(exc, TooManyRequests) and exc.retry_after:
        headers["Retry-After"] = str(exc.retry_after)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


def rate_limit_headers(request: Request) -> Dict[str, str]:
    """RateLimit-* headers for requests that were counted by the rate limiter."""
    decision = getattr(request.state, "rate_limit", None)
    return decision.headers() if decision is not None else {}


def setup_exception_handlers(app: FastAPI) -> None:
    """
    Register the exception handlers that map failures to JSON error bodies.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(OptimizerError)
    async def optimizer_error_handler(request: Request, exc: OptimizerError):
        if exc.status_code >= 500:
            logger.error(f"{exc.kind} on {request.url.path}: {exc.message}")
        else:
            logger.warning(f"{exc.kind} on {request.url.path}: {exc.message}")
        return error_response(exc, rate_limit_headers(request))

    @app.exception_handler(ClientDisconnect)
    async def client_disconnect_handler(request: Request, exc: ClientDisconnect):
        logger.info(f"Client disconnected during {request.url.path}")
        return Response(status_code=499)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail), "kind": "HTTPError", "message": str(exc.detail)},
            headers=rate_limit_headers(request),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in exc.errors()
        )
        logger.warning(f"Validation error on {request.url.path}: {details}")
        return error_response(InvalidParameter(details), rate_limit_headers(request))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler for unexpected errors."""
        logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)
        return error_response(InternalError(str(exc)), rate_limit_headers(request))
