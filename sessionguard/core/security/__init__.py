"""
Security layer for sessionguard.

Centralizes the session lifecycle and abuse-control components:
- Session storage with lazy eviction and periodic cleanup
- Session management with rate-limited creation and sliding expiration
- Request rate limiting
- Brute-force lockout
- Security event logging

Components are constructed explicitly and passed where needed; there are no
module-level shared instances.
"""

from .brute_force import BruteForceProtection
from .rate_limiter import RateLimiter
from .security_logger import SecurityLogger
from .session_manager import SessionManager
from .session_store import InMemorySessionStore, SessionStore, generate_session_id

__all__ = [
    'BruteForceProtection',
    'RateLimiter',
    'SecurityLogger',
    'SessionManager',
    'InMemorySessionStore',
    'SessionStore',
    'generate_session_id'
]
