# sessionguard/core/security/brute_force.py
"""
Brute-force protection for authentication endpoints.

Tracks failed attempts per identifier and locks the identifier once the
threshold is reached. There is no rolling window for counting: the lock is
lifted only when ``lockout_duration`` has passed since the last failure, at
which point the whole record is purged.
"""

import logging
import threading
from datetime import timedelta
from typing import Callable, Dict, Optional

from fastapi import Request

from sessionguard.core.clock import Clock, SystemClock
from sessionguard.core.config import Settings
from sessionguard.core.exceptions import LockedOut
from sessionguard.core.rate_limit_config import client_key_func, get_client_ip, get_rate_limit_message
from sessionguard.core.security.security_logger import SecurityLogger
from sessionguard.models.session import FailedAttemptRecord

logger = logging.getLogger(__name__)


class BruteForceProtection:
    """
    Failed-attempt counter with lockout.

    Lock state is derived: an identifier is locked while
    ``count >= max_attempts`` and the lockout has not expired.
    """

    def __init__(
        self,
        max_attempts: int = 5,
        lockout_duration_ms: int = 15 * 60 * 1000,
        clock: Optional[Clock] = None,
        extend_lockout_on_attempt: bool = True,
        security_logger: Optional[SecurityLogger] = None,
        key_func: Callable[[Request], str] = get_client_ip
    ):
        """
        Args:
            max_attempts: Failures that trigger a lock
            lockout_duration_ms: Lock length measured from the last failure
            clock: Time source
            extend_lockout_on_attempt: When False, failures recorded while
                already locked are ignored and do not push the unlock time
            security_logger: Receives lockout events
            key_func: Maps a request to the identifier checked by the HTTP hook
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if lockout_duration_ms <= 0:
            raise ValueError("lockout_duration_ms must be positive")

        self.max_attempts = max_attempts
        self.lockout_duration = timedelta(milliseconds=lockout_duration_ms)
        self.clock = clock or SystemClock()
        self.extend_lockout_on_attempt = extend_lockout_on_attempt
        self.security_logger = security_logger or SecurityLogger()
        self.key_func = key_func

        self._records: Dict[str, FailedAttemptRecord] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "BruteForceProtection":
        kwargs.setdefault("key_func", client_key_func(settings))
        return cls(
            max_attempts=settings.BRUTE_FORCE_MAX_ATTEMPTS,
            lockout_duration_ms=settings.BRUTE_FORCE_LOCKOUT_MS,
            extend_lockout_on_attempt=settings.EXTEND_LOCKOUT_ON_ATTEMPT,
            **kwargs
        )

    def record_failed_attempt(self, identifier: str) -> None:
        """
        Record a failed authentication attempt.

        With ``extend_lockout_on_attempt`` (the default) a failure recorded
        while locked still updates ``last_attempt_at`` and so extends the
        lock. Callers should stop recording once ``is_allowed`` is False.
        An expired lock is purged first, so the failure opens a fresh count.
        """
        with self._lock:
            self._clear_expired_lockouts()
            now = self.clock.now()
            record = self._records.get(identifier)

            if record is not None and record.count >= self.max_attempts and not self.extend_lockout_on_attempt:
                logger.debug(f"Ignoring failed attempt for locked identifier {identifier}")
                return

            if record is None:
                record = FailedAttemptRecord(count=0, last_attempt_at=now)
                self._records[identifier] = record

            record.count += 1
            record.last_attempt_at = now
            attempts = record.count

        logger.warning(f"Failed attempt {attempts}/{self.max_attempts} for: {identifier}")
        if attempts == self.max_attempts:
            self.security_logger.log_account_locked(identifier, attempts)

    def reset_attempts(self, identifier: str) -> None:
        """Clear the record; call on every successful authentication"""
        with self._lock:
            self._records.pop(identifier, None)

    def _lock_expired(self, record: FailedAttemptRecord) -> bool:
        return self.clock.now() - record.last_attempt_at > self.lockout_duration

    def _clear_expired_lockouts(self) -> None:
        """Purge locked records whose lockout has elapsed. Caller holds the lock."""
        expired = [
            identifier for identifier, record in self._records.items()
            if record.count >= self.max_attempts and self._lock_expired(record)
        ]
        for identifier in expired:
            del self._records[identifier]
            self.security_logger.log_lockout_expired(identifier)

    def is_allowed(self, identifier: str) -> bool:
        with self._lock:
            self._clear_expired_lockouts()
            record = self._records.get(identifier)
            return (record.count if record else 0) < self.max_attempts

    def get_failed_attempts(self, identifier: str) -> int:
        with self._lock:
            record = self._records.get(identifier)
            return record.count if record else 0

    def get_remaining_attempts(self, identifier: str) -> int:
        """Attempts left before the identifier is locked"""
        return max(0, self.max_attempts - self.get_failed_attempts(identifier))

    def middleware(self):
        """
        FastAPI dependency that refuses requests from locked identifiers.

        Example:
            guard = BruteForceProtection(max_attempts=3)

            @app.post("/login", dependencies=[Depends(guard.middleware())])
            async def login(): ...
        """
        async def check_lockout(request: Request) -> None:
            identifier = self.key_func(request)
            if not self.is_allowed(identifier):
                self.security_logger.log_blocked_attempt(identifier, request.url.path)
                raise LockedOut(get_rate_limit_message("locked_out"), identifier=identifier)

        return check_lockout
