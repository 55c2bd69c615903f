# sessionguard/core/security/security_logger.py
"""
Security event logging.

Records rate-limit denials, lockouts and session lifecycle events for
monitoring and auditing. Metadata is sanitized before it is formatted, so
values under sensitive keys never reach a handler.
"""

import json
import logging
from typing import Any, Dict, Optional

from sessionguard.core.logging_config import sanitize_log_data


class SecurityLogger:
    """
    Security event logger.

    Each event is written as ``SECURITY: <event> | <json meta>`` and the
    sanitized metadata is also attached to the record as ``meta``.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("sessionguard.security")

    def log(self, level: int, event: str, meta: Optional[Dict[str, Any]] = None) -> None:
        sanitized = sanitize_log_data(meta or {})
        if sanitized:
            message = f"SECURITY: {event} | {json.dumps(sanitized, default=str, sort_keys=True)}"
        else:
            message = f"SECURITY: {event}"
        self.logger.log(level, message, extra={"meta": sanitized})

    def log_rate_limit_exceeded(self, identifier: str, path: Optional[str] = None):
        """
        Log rate limit exceeded.

        Args:
            identifier: Client identifier that was throttled
            path: Request path, when the denial happened at the HTTP boundary
        """
        self.log(logging.WARNING, "Rate limit exceeded", {"client": identifier, "path": path})

    def log_session_creation_throttled(self, user_id: str):
        self.log(logging.WARNING, "Session creation rate limit exceeded", {"user": user_id})

    def log_account_locked(self, identifier: str, attempts: int):
        """
        Log account lockout.

        Args:
            identifier: Locked identifier
            attempts: Failed attempts counted so far
        """
        self.log(
            logging.WARNING,
            "Account locked due to too many failed attempts",
            {"identifier": identifier, "attempts": attempts}
        )

    def log_blocked_attempt(self, identifier: str, path: Optional[str] = None):
        self.log(logging.WARNING, "Blocked attempt on locked account", {"identifier": identifier, "path": path})

    def log_lockout_expired(self, identifier: str):
        self.log(logging.INFO, "Account lockout expired", {"identifier": identifier})

    def log_session_event(self, event: str, session_ref: str, user_id: Optional[str] = None):
        """
        Log a session lifecycle event.

        Args:
            event: created, deleted, expired, ...
            session_ref: Truncated session id (never the full value)
            user_id: Owner of the session, if known
        """
        self.log(logging.INFO, f"Session {event}", {"session": session_ref, "user": user_id})

    def log_middleware_failure(self, error: Exception, path: Optional[str] = None):
        self.log(
            logging.ERROR,
            "Error in session middleware",
            {"error_type": type(error).__name__, "path": path}
        )


def session_ref(session_id: str) -> str:
    """Log-safe reference for a session id"""
    return f"{session_id[:8]}..."
