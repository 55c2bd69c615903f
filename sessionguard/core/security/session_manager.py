# sessionguard/core/security/session_manager.py
"""
Session lifecycle orchestration.

SessionManager combines a SessionStore with a per-user creation rate limiter
and owns the periodic cleanup task. Its request hook resolves the inbound
session id, applies sliding expiration and leaves either the session or
NO_SESSION on ``request.state.session``.

Session states: ACTIVE -> REFRESHED (still active) -> EXPIRED (removed on
next read or sweep) and DELETED (explicit, terminal). A removed id never
comes back; signing in again always yields a new id.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional, Union

from fastapi import Request

from sessionguard.core.clock import Clock
from sessionguard.core.config import Settings, get_settings
from sessionguard.core.exceptions import RateLimitExceeded, SessionError
from sessionguard.core.rate_limit_config import get_rate_limit_message, session_creation_rules
from sessionguard.core.security.rate_limiter import RateLimiter
from sessionguard.core.security.security_logger import SecurityLogger
from sessionguard.core.security.session_store import InMemorySessionStore, SessionStore
from sessionguard.models.session import NO_SESSION, NoSessionType, Session

logger = logging.getLogger(__name__)


class SessionManager:
    """
    Create/get/update/delete/refresh sessions and intercept requests.

    The cleanup task is started at construction when an event loop is
    running; otherwise call ``start()`` from inside the loop (for example in
    the application lifespan). ``close()`` cancels it.
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        rate_limiter: Optional[RateLimiter] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        security_logger: Optional[SecurityLogger] = None,
        session_id_getter: Optional[Callable[[Request], Optional[str]]] = None,
        cleanup_interval_ms: Optional[int] = None
    ):
        self.settings = settings or get_settings()
        self.security_logger = security_logger or SecurityLogger()
        self.store = store or InMemorySessionStore(self.settings, clock, self.security_logger)
        self.rate_limiter = rate_limiter or RateLimiter(
            session_creation_rules(self.settings),
            clock=clock,
            settings=self.settings,
            security_logger=self.security_logger,
            message=get_rate_limit_message("session_create")
        )
        self.session_id_getter = session_id_getter or self._cookie_session_id
        self.cleanup_interval = (cleanup_interval_ms or self.settings.SESSION_CLEANUP_INTERVAL_MS) / 1000

        self._cleanup_task: Optional[asyncio.Task] = None
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running event loop, session cleanup starts on start()")
        else:
            self.start()

    def _cookie_session_id(self, request: Request) -> Optional[str]:
        return request.cookies.get(self.settings.SESSION_COOKIE_NAME)

    # ------------------------------------------------------------------
    # Cleanup task
    # ------------------------------------------------------------------

    @property
    def cleanup_running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    def start(self) -> None:
        """Schedule the periodic cleanup task on the running loop (idempotent)"""
        if self.cleanup_running:
            return
        loop = asyncio.get_running_loop()
        self._cleanup_task = loop.create_task(self._cleanup_loop())
        logger.info(f"Session cleanup scheduled every {self.cleanup_interval:g}s")

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            try:
                removed = await self.store.cleanup()
                if removed:
                    logger.debug(f"Periodic cleanup removed {removed} sessions")
            except Exception as e:
                # keep sweeping after a failed pass
                logger.error(f"Session cleanup failed: {type(e).__name__}: {e}")

    async def close(self) -> None:
        """Cancel the cleanup task"""
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Session cleanup stopped")

    async def __aenter__(self) -> "SessionManager":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Session operations
    # ------------------------------------------------------------------

    async def create_session(self, user_id: str, data: Optional[Dict[str, Any]] = None) -> Session:
        """
        Create a session for ``user_id``.

        Raises:
            SessionError: Empty user id
            RateLimitExceeded: Too many sessions created for this user
        """
        if not user_id:
            raise SessionError("Cannot create a session without a user id")
        if not self.rate_limiter.is_allowed(user_id):
            self.security_logger.log_session_creation_throttled(user_id)
            raise RateLimitExceeded(self.rate_limiter.message, identifier=user_id)
        return await self.store.create(user_id, data or {})

    async def get_session(self, session_id: str) -> Optional[Session]:
        return await self.store.get(session_id)

    async def update_session(self, session_id: str, data: Dict[str, Any]) -> None:
        await self.store.update(session_id, data)

    async def delete_session(self, session_id: str) -> None:
        await self.store.delete(session_id)

    async def refresh_session(self, session_id: str) -> None:
        """Sliding expiration: extend the session by a full TTL"""
        await self.store.refresh(session_id)

    # ------------------------------------------------------------------
    # Request interception
    # ------------------------------------------------------------------

    async def attach_session(self, request: Request) -> Union[Session, NoSessionType]:
        """
        Resolve the request's session onto ``request.state.session``.

        A found session is refreshed and the post-refresh record is attached.
        Missing ids, unknown or expired sessions and any internal error all
        leave NO_SESSION; errors are logged and never propagated.
        """
        request.state.session = NO_SESSION
        try:
            session_id = self.session_id_getter(request)
            if not session_id:
                return NO_SESSION

            session = await self.get_session(session_id)
            if session is None:
                return NO_SESSION

            request.state.session = session
            await self.refresh_session(session_id)
            refreshed = await self.get_session(session_id)
            request.state.session = refreshed if refreshed is not None else NO_SESSION
        except Exception as e:
            request.state.session = NO_SESSION
            logger.error(f"Error in session middleware: {type(e).__name__}", exc_info=True)
            self._report_failure(e, request)
        return request.state.session

    def _report_failure(self, error: Exception, request: Request) -> None:
        try:
            self.security_logger.log_middleware_failure(error, request.url.path)
        except Exception as e:
            logger.error(f"Security event logging failed: {type(e).__name__}")

    def middleware(self):
        """
        HTTP middleware resolving the session for every request.

        Example:
            app.middleware("http")(manager.middleware())
        """
        async def session_middleware(request: Request, call_next):
            await self.attach_session(request)
            return await call_next(request)

        return session_middleware
