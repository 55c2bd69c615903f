"""
Security middleware for sessionguard
Handles security headers, rate limit headers and policy denial responses
"""

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
import logging
from typing import Callable

from sessionguard.core.exceptions import SecurityDenial

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "geolocation=(), microphone=(), camera=()",
}


async def add_security_headers(request: Request, call_next: Callable) -> Response:
    """Add security and rate limit headers to all responses"""
    response = await call_next(request)

    for name, value in SECURITY_HEADERS.items():
        response.headers[name] = value

    # Set by RateLimiter.middleware() on guarded routes
    if hasattr(request.state, "rate_limit_limit"):
        response.headers["X-RateLimit-Limit"] = str(request.state.rate_limit_limit)
    if hasattr(request.state, "rate_limit_remaining"):
        response.headers["X-RateLimit-Remaining"] = str(request.state.rate_limit_remaining)
    if hasattr(request.state, "rate_limit_reset"):
        response.headers["X-RateLimit-Reset"] = str(request.state.rate_limit_reset)

    # Remove server header if present
    if "Server" in response.headers:
        del response.headers["Server"]

    return response


async def security_denial_handler(request: Request, exc: SecurityDenial) -> JSONResponse:
    """Structured deny response: kind and message, nothing internal"""
    logger.info(f"Denied {request.method} {request.url.path}: {exc.kind}")
    response = JSONResponse(status_code=exc.status_code, content=exc.to_response_body())
    if exc.retry_after is not None:
        response.headers["Retry-After"] = str(exc.retry_after)
    return response


def register_security_middleware(app: FastAPI) -> None:
    app.add_exception_handler(SecurityDenial, security_denial_handler)
    app.middleware("http")(add_security_headers)
