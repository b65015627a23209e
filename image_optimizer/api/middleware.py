"""
HTTP middleware: CORS, security headers and access logging.
"""
import time
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from image_optimizer.config import Settings

logger = logging.getLogger("image_optimizer.access")

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
    "Referrer-Policy": "no-referrer",
    "Cross-Origin-Resource-Policy": "same-origin",
    "X-DNS-Prefetch-Control": "off",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds conservative security headers to every response"""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Logs one line per request"""

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        client = request.client.host if request.client else "-"
        length = response.headers.get("content-length", "-")
        lifecycle = getattr(request.state, "lifecycle", None)
        outcome = f" [{lifecycle.request_id} {lifecycle.state.value}]" if lifecycle is not None else ""
        logger.info(
            f'{client} "{request.method} {request.url.path}" '
            f'{response.status_code} {length} {duration_ms:.1f}ms{outcome}'
        )
        return response


def setup_middlewares(app: FastAPI, settings: Settings) -> None:
    """
    Configure the application's middleware stack.

    Args:
        app: FastAPI application instance
        settings: Application settings
    """
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(AccessLogMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Original-Size", "X-Optimized-Size", "X-Savings-Percent"],
    )
