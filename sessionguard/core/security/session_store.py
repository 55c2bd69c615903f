# sessionguard/core/security/session_store.py
"""
Session storage.

SessionStore is the capability set the manager relies on
(create/get/update/delete/refresh/cleanup). InMemorySessionStore keeps the
records in a process-local dict; another backend can be substituted without
touching SessionManager as long as it keeps the same expiry semantics:
lazy eviction on read and an explicit sweep in ``cleanup``.
"""

import copy
import logging
import secrets
import threading
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Dict, Optional

from pydantic import ValidationError

from sessionguard.core.clock import Clock, SystemClock
from sessionguard.core.config import Settings, get_settings
from sessionguard.core.exceptions import SessionStoreError
from sessionguard.core.security.security_logger import SecurityLogger, session_ref
from sessionguard.models.session import Session

logger = logging.getLogger(__name__)

# 32 random bytes, hex encoded: 256 bits, cookie safe
SESSION_ID_BYTES = 32


def generate_session_id() -> str:
    return secrets.token_hex(SESSION_ID_BYTES)


class SessionStore(ABC):
    """
    Storage contract for sessions.

    Absence is never an error: ``get`` returns None and the mutating
    operations are no-ops for unknown or expired ids.
    """

    @abstractmethod
    async def create(self, user_id: str, data: Optional[Dict[str, Any]] = None) -> Session:
        """Create and store a session expiring one TTL from now"""

    @abstractmethod
    async def get(self, session_id: str) -> Optional[Session]:
        """Return the session, evicting it first if it has expired"""

    @abstractmethod
    async def update(self, session_id: str, data: Dict[str, Any]) -> None:
        """Shallow-merge ``data`` into the session's data"""

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Idempotent removal"""

    @abstractmethod
    async def refresh(self, session_id: str) -> None:
        """Push ``expires_at`` to one TTL from now"""

    @abstractmethod
    async def cleanup(self) -> int:
        """Remove every expired session and return how many were removed"""


class InMemorySessionStore(SessionStore):
    """
    Process-local session store.

    Records are owned by the store; every read hands out a deep copy so
    callers cannot change stored state except through the store's methods.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        security_logger: Optional[SecurityLogger] = None
    ):
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.security_logger = security_logger or SecurityLogger()

        self._sessions: Dict[str, Session] = {}
        self._lock = threading.RLock()

        # Metrics for monitoring
        self._creation_count = 0
        self._expired_count = 0

    @property
    def ttl(self) -> timedelta:
        return self.settings.session_ttl

    async def create(self, user_id: str, data: Optional[Dict[str, Any]] = None) -> Session:
        """
        Raises:
            SessionStoreError: The record is invalid or its data cannot be
                copied; nothing is stored
        """
        now = self.clock.now()
        try:
            session = Session(
                id=generate_session_id(),
                user_id=user_id,
                created_at=now,
                expires_at=now + self.ttl,
                data=copy.deepcopy(dict(data or {}))
            )
        except ValidationError as e:
            raise SessionStoreError(
                "Invalid session record",
                operation="create",
                details={"errors": len(e.errors())}
            ) from e
        except (copy.Error, TypeError) as e:
            raise SessionStoreError(
                "Session data cannot be copied",
                operation="create",
                details={"error_type": type(e).__name__}
            ) from e

        # nothing is stored if the copy fails
        result = session.model_copy(deep=True)
        with self._lock:
            self._sessions[session.id] = session
            self._creation_count += 1

        self.security_logger.log_session_event("created", session_ref(session.id), user_id)
        return result

    def _evict_if_expired(self, session_id: str) -> Optional[Session]:
        """Return the live record or None, deleting it if expired. Caller holds the lock."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        if session.is_expired(self.clock.now()):
            del self._sessions[session_id]
            self._expired_count += 1
            logger.info(f"Session {session_ref(session_id)} expired")
            return None
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._evict_if_expired(session_id)
            if session is None:
                logger.debug(f"Session {session_ref(session_id)} not found")
                return None
            return session.model_copy(deep=True)

    async def update(self, session_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            session = self._evict_if_expired(session_id)
            if session is None:
                return
            try:
                partial = copy.deepcopy(dict(data))
            except (copy.Error, TypeError) as e:
                raise SessionStoreError(
                    "Session data cannot be copied",
                    operation="update",
                    session_id=session_id,
                    details={"error_type": type(e).__name__}
                ) from e
            session.data = {**session.data, **partial}

    async def delete(self, session_id: str) -> None:
        with self._lock:
            removed = self._sessions.pop(session_id, None)
        if removed is not None:
            self.security_logger.log_session_event("deleted", session_ref(session_id), removed.user_id)

    async def refresh(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return
            session.expires_at = self.clock.now() + self.ttl

    async def cleanup(self) -> int:
        now = self.clock.now()
        with self._lock:
            expired_ids = [sid for sid, session in self._sessions.items() if session.expires_at < now]
            for sid in expired_ids:
                del self._sessions[sid]
            self._expired_count += len(expired_ids)

        if expired_ids:
            logger.info(f"Cleaned up {len(expired_ids)} expired sessions")
        return len(expired_ids)

    async def count(self) -> int:
        """Stored records, including expired ones not yet evicted"""
        with self._lock:
            return len(self._sessions)

    def get_metrics(self) -> Dict[str, int]:
        with self._lock:
            return {
                "active_sessions": len(self._sessions),
                "total_created": self._creation_count,
                "expired_cleaned": self._expired_count
            }

    def get_session_info(self, session_id: str) -> Optional[Dict[str, Any]]:
        """
        Session information for admin/debug views (id truncated, no data).
        """
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return None
            return {
                "session": session_ref(session_id),
                "user_id": session.user_id,
                "created_at": session.created_at.isoformat(),
                "expires_at": session.expires_at.isoformat(),
                "is_expired": session.is_expired(self.clock.now()),
                "data_keys": sorted(session.data)
            }
