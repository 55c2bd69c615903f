# tests/core/test_session_manager.py
"""
Unit tests for SessionManager: passthrough operations, creation throttling,
request interception and the cleanup task.
"""

import asyncio
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from sessionguard.core.exceptions import RateLimitExceeded, SessionError
from sessionguard.core.security import InMemorySessionStore, RateLimiter, SessionManager, SessionStore
from sessionguard.models.session import NO_SESSION, Session


@pytest.fixture
def manager(settings, clock):
    """Built outside an event loop, so no cleanup task is running"""
    return SessionManager(settings=settings, clock=clock)


class TestSessionOperations:

    @pytest.mark.asyncio
    async def test_create_then_get(self, manager):
        session = await manager.create_session("u1")

        fetched = await manager.get_session(session.id)
        assert fetched.user_id == "u1"
        assert fetched.id
        assert fetched == session

    @pytest.mark.asyncio
    async def test_create_with_data(self, manager):
        session = await manager.create_session("u1", {"role": "admin"})
        assert session.data == {"role": "admin"}

    @pytest.mark.asyncio
    async def test_update_session(self, manager):
        session = await manager.create_session("u1", {"a": 1})
        await manager.update_session(session.id, {"b": 2})

        assert (await manager.get_session(session.id)).data == {"a": 1, "b": 2}

    @pytest.mark.asyncio
    async def test_delete_then_get_returns_none(self, manager):
        session = await manager.create_session("u1")
        await manager.delete_session(session.id)

        assert await manager.get_session(session.id) is None

    @pytest.mark.asyncio
    async def test_expired_session_is_gone(self, manager, clock):
        session = await manager.create_session("u1")
        clock.advance(ms=1100)

        assert await manager.get_session(session.id) is None

    @pytest.mark.asyncio
    async def test_refresh_session_extends_expiry(self, manager, clock):
        session = await manager.create_session("u1")
        clock.advance(ms=800)
        await manager.refresh_session(session.id)
        clock.advance(ms=800)

        refreshed = await manager.get_session(session.id)
        assert refreshed is not None
        assert refreshed.expires_at == session.expires_at + timedelta(milliseconds=800)

    @pytest.mark.asyncio
    async def test_new_login_gets_new_id(self, manager):
        first = await manager.create_session("u1")
        await manager.delete_session(first.id)
        second = await manager.create_session("u1")

        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_create_requires_user_id(self, manager):
        with pytest.raises(SessionError):
            await manager.create_session("")


class TestCreationRateLimit:
    """Session creation flooding"""

    @pytest.fixture
    def limited_store(self, settings, clock):
        return InMemorySessionStore(settings=settings, clock=clock)

    @pytest.fixture
    def limited_manager(self, settings, clock, limited_store):
        limiter = RateLimiter([{"window_ms": 60000, "max_requests": 1}], clock=clock)
        return SessionManager(store=limited_store, rate_limiter=limiter, settings=settings, clock=clock)

    @pytest.mark.asyncio
    async def test_second_creation_in_window_is_rejected(self, limited_manager):
        await limited_manager.create_session("u1")
        with pytest.raises(RateLimitExceeded) as exc_info:
            await limited_manager.create_session("u1")

        assert exc_info.value.status_code == 429
        assert exc_info.value.kind == "rate_limit_exceeded"

    @pytest.mark.asyncio
    async def test_limit_is_per_user(self, limited_manager):
        await limited_manager.create_session("u1")
        session = await limited_manager.create_session("u2")

        assert session.user_id == "u2"

    @pytest.mark.asyncio
    async def test_creation_allowed_after_window(self, limited_manager, clock):
        await limited_manager.create_session("u1")
        clock.advance(ms=60001)
        session = await limited_manager.create_session("u1")

        assert session.user_id == "u1"

    @pytest.mark.asyncio
    async def test_default_limit_from_settings(self, manager):
        for _ in range(10):
            await manager.create_session("u1")

        with pytest.raises(RateLimitExceeded):
            await manager.create_session("u1")

    @pytest.mark.asyncio
    async def test_rejected_creation_stores_nothing(self, limited_manager, limited_store):
        await limited_manager.create_session("u1")
        with pytest.raises(RateLimitExceeded):
            await limited_manager.create_session("u1")

        assert await limited_store.count() == 1


class TestAttachSession:
    """Request interception hook"""

    @pytest.mark.asyncio
    async def test_attaches_refreshed_session(self, manager, clock, make_request):
        session = await manager.create_session("u1")
        clock.advance(ms=500)
        request = make_request(cookie=f"sessionId={session.id}")

        attached = await manager.attach_session(request)

        assert isinstance(request.state.session, Session)
        assert request.state.session is attached
        assert attached.id == session.id
        assert attached.expires_at == clock.now() + timedelta(milliseconds=1000)
        assert attached.expires_at > session.expires_at

    @pytest.mark.asyncio
    async def test_missing_cookie_attaches_marker(self, manager, make_request):
        request = make_request()

        await manager.attach_session(request)

        assert request.state.session is NO_SESSION
        assert not request.state.session

    @pytest.mark.asyncio
    async def test_unknown_session_attaches_marker(self, manager, make_request):
        request = make_request(cookie="sessionId=unknown")

        await manager.attach_session(request)

        assert request.state.session is NO_SESSION

    @pytest.mark.asyncio
    async def test_expired_session_attaches_marker(self, manager, clock, make_request):
        session = await manager.create_session("u1")
        clock.advance(ms=1001)
        request = make_request(cookie=f"sessionId={session.id}")

        await manager.attach_session(request)

        assert request.state.session is NO_SESSION

    @pytest.mark.asyncio
    async def test_store_failure_degrades_to_no_session(self, settings, make_request, caplog):
        store = AsyncMock(spec=SessionStore)
        store.get.side_effect = RuntimeError("backend down")
        request = make_request(cookie="sessionId=abc")

        async with SessionManager(store=store, settings=settings) as manager:
            result = await manager.attach_session(request)

        assert result is NO_SESSION
        assert request.state.session is NO_SESSION
        assert "Error in session middleware" in caplog.text

    @pytest.mark.asyncio
    async def test_refresh_failure_degrades_to_no_session(self, settings, clock, make_request):
        store = InMemorySessionStore(settings=settings, clock=clock)
        session = await store.create("u1", {})
        store.refresh = AsyncMock(side_effect=RuntimeError("refresh failed"))
        request = make_request(cookie=f"sessionId={session.id}")

        async with SessionManager(store=store, settings=settings, clock=clock) as manager:
            await manager.attach_session(request)

        assert request.state.session is NO_SESSION

    @pytest.mark.asyncio
    async def test_failing_security_logger_still_degrades(self, settings, make_request, caplog):
        store = AsyncMock(spec=SessionStore)
        store.get.side_effect = RuntimeError("backend down")
        security_logger = MagicMock()
        security_logger.log_middleware_failure.side_effect = RuntimeError("log sink down")
        request = make_request(cookie="sessionId=abc")

        async with SessionManager(store=store, settings=settings, security_logger=security_logger) as manager:
            result = await manager.attach_session(request)

        assert result is NO_SESSION
        assert request.state.session is NO_SESSION
        assert "Security event logging failed" in caplog.text

    @pytest.mark.asyncio
    async def test_custom_session_id_getter(self, settings, clock, make_request):
        request = make_request()
        manager = SessionManager(
            settings=settings,
            clock=clock,
            session_id_getter=lambda request: request.headers.get("X-Session-Id")
        )

        async with manager:
            session = await manager.create_session("u1")
            request.scope["headers"].append((b"x-session-id", session.id.encode()))
            await manager.attach_session(request)

        assert request.state.session.id == session.id

    @pytest.mark.asyncio
    async def test_middleware_runs_before_handler(self, manager, make_request):
        session = await manager.create_session("u1")
        request = make_request(cookie=f"sessionId={session.id}")
        seen = {}

        async def call_next(req):
            seen["session"] = req.state.session
            return "response"

        result = await manager.middleware()(request, call_next)

        assert result == "response"
        assert seen["session"].user_id == "u1"


class TestCleanupTask:
    """Periodic cleanup lifecycle"""

    def test_not_started_without_loop(self, manager):
        assert not manager.cleanup_running

    @pytest.mark.asyncio
    async def test_started_when_built_inside_loop(self, settings):
        store = AsyncMock(spec=SessionStore)
        store.cleanup.return_value = 0
        manager = SessionManager(store=store, settings=settings, cleanup_interval_ms=10)

        try:
            assert manager.cleanup_running
            await asyncio.sleep(0.1)
            assert store.cleanup.await_count >= 2
        finally:
            await manager.close()

        assert not manager.cleanup_running

    @pytest.mark.asyncio
    async def test_close_stops_sweeping(self, settings):
        store = AsyncMock(spec=SessionStore)
        store.cleanup.return_value = 0
        manager = SessionManager(store=store, settings=settings, cleanup_interval_ms=10)

        await manager.close()
        calls = store.cleanup.await_count
        await asyncio.sleep(0.05)

        assert store.cleanup.await_count == calls

    @pytest.mark.asyncio
    async def test_cleanup_error_does_not_stop_task(self, settings):
        store = AsyncMock(spec=SessionStore)
        calls = []

        async def flaky_cleanup():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("sweep failed")
            return 0

        store.cleanup.side_effect = flaky_cleanup
        manager = SessionManager(store=store, settings=settings, cleanup_interval_ms=10)

        try:
            await asyncio.sleep(0.1)
            assert len(calls) >= 2
            assert manager.cleanup_running
        finally:
            await manager.close()

    @pytest.mark.asyncio
    async def test_context_manager_starts_and_stops(self, manager):
        async with manager:
            assert manager.cleanup_running
        assert not manager.cleanup_running

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, manager):
        manager.start()
        task = manager._cleanup_task
        manager.start()

        assert manager._cleanup_task is task
        await manager.close()

    @pytest.mark.asyncio
    async def test_sweep_removes_expired_sessions(self, settings, clock):
        store = InMemorySessionStore(settings=settings, clock=clock)
        manager = SessionManager(store=store, settings=settings, clock=clock, cleanup_interval_ms=10)

        try:
            await manager.create_session("u1")
            clock.advance(ms=2000)
            await asyncio.sleep(0.1)
            assert await store.count() == 0
        finally:
            await manager.close()
