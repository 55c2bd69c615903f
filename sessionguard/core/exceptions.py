# sessionguard/core/exceptions.py
"""
Core exceptions for sessionguard.

Every error raised by the session and abuse-control layer derives from
SecurityBaseError so callers can catch the whole family in one place.
Policy denials (rate limit, lockout) additionally carry an HTTP-style
status code and a stable ``kind`` string for the response envelope.
"""

from typing import Optional, Dict, Any


class SecurityBaseError(Exception):
    """Base exception for all sessionguard errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize base exception.

        Args:
            message: Human-readable error message
            details: Optional additional error details (never sent to clients)
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class SecurityDenial(SecurityBaseError):
    """A request was refused by a security policy"""

    kind: str = "denied"
    status_code: int = 403

    def __init__(
        self,
        message: str,
        identifier: Optional[str] = None,
        retry_after: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize a policy denial.

        Args:
            message: Client-safe description of the denial
            identifier: Client or account the policy was evaluated for
            retry_after: Seconds until a retry may succeed, if known
            details: Additional context for logs
        """
        super().__init__(message, details)
        self.identifier = identifier
        self.retry_after = retry_after

        if identifier:
            self.details['identifier'] = identifier
        if retry_after is not None:
            self.details['retry_after'] = retry_after

    def to_response_body(self) -> Dict[str, str]:
        """Structured deny body: kind and message only"""
        return {"error": self.message, "kind": self.kind}


class RateLimitExceeded(SecurityDenial):
    """Too many requests (or session creations) inside a window"""

    kind = "rate_limit_exceeded"
    status_code = 429


class LockedOut(SecurityDenial):
    """Identifier is locked after repeated authentication failures"""

    kind = "locked_out"
    status_code = 403


class SessionError(SecurityBaseError):
    """Errors in session management and state handling"""

    def __init__(
        self,
        message: str,
        session_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize session error.

        Args:
            message: Error description
            session_id: Session that failed (truncated in details)
            details: Additional session context
        """
        super().__init__(message, details)
        self.session_id = session_id

        if session_id:
            self.details['session_id'] = f"{session_id[:8]}..."


class SessionStoreError(SessionError):
    """Backing session store failed to complete an operation"""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        session_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, session_id=session_id, details=details)
        self.operation = operation

        if operation:
            self.details['operation'] = operation


class ConfigurationError(SecurityBaseError):
    """Errors in system configuration and initialization"""

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Initialize configuration error.

        Args:
            message: Error description
            component: Setting or component with the problem
            details: Additional configuration context
        """
        super().__init__(message, details)
        self.component = component

        if component:
            self.details['component'] = component


# Convenience functions for creating common errors

def config_error(message: str, component: str) -> ConfigurationError:
    """Create a configuration error with component context."""
    return ConfigurationError(message, component=component)
