"""
Rate limiting configuration: client identity and default rules
"""

from typing import Callable, List, Optional

from fastapi import Request
from slowapi.util import get_remote_address

from sessionguard.core.config import Settings
from sessionguard.models.session import RateLimitRule


def get_client_ip(request: Request) -> str:
    """Socket peer address; ignores client-supplied forwarding headers"""
    return get_remote_address(request) or "unknown"


def get_real_ip(request: Request) -> str:
    """
    Get the real IP address, considering proxy headers.
    Only safe behind a proxy that overwrites these headers, otherwise any
    client can pick its own identity.
    """
    # Check for proxy headers (in order of preference)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For can contain multiple IPs, take the first
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    # Fallback to direct connection IP
    return get_client_ip(request)


def client_key_func(settings: Settings) -> Callable[[Request], str]:
    """Client identity function for the limiter and lockout hooks"""
    return get_real_ip if settings.TRUST_PROXY_HEADERS else get_client_ip


def default_rate_limit_rule(settings: Settings) -> RateLimitRule:
    return RateLimitRule(
        window_ms=settings.RATE_LIMIT_WINDOW_MS,
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS
    )


def session_creation_rules(settings: Settings) -> List[RateLimitRule]:
    """Per-user session creation limit, 10 per minute by default"""
    return [
        RateLimitRule(
            window_ms=settings.SESSION_CREATE_WINDOW_MS,
            max_requests=settings.SESSION_CREATE_MAX
        )
    ]


# Client-facing deny messages
RATE_LIMIT_MESSAGES = {
    "default": "Too many requests, please try again later.",
    "session_create": "Too many sessions created. Please wait before signing in again.",
    "locked_out": "Account temporarily locked due to too many failed attempts. Please try again later.",
}


def get_rate_limit_message(endpoint: Optional[str] = None) -> str:
    """Get custom error message for a limited endpoint"""
    return RATE_LIMIT_MESSAGES.get(endpoint or "default", RATE_LIMIT_MESSAGES["default"])
