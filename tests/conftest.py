# tests/conftest.py
"""
Shared fixtures: a controllable clock and small-window settings.
"""

import pytest
from datetime import datetime, timedelta, timezone

from sessionguard.core.clock import Clock
from sessionguard.core.config import load_settings


class FakeClock(Clock):
    """Clock that only moves when told to"""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, ms: int = 0, seconds: float = 0) -> None:
        self.current += timedelta(milliseconds=ms, seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    """1 second sessions, generous limits"""
    return load_settings(
        session_ttl_ms=1000,
        session_cleanup_interval_ms=300000,
        session_create_max=10,
        rate_limit_window_ms=60000,
        rate_limit_max_requests=100,
        brute_force_max_attempts=3,
        brute_force_lockout_ms=1000
    )


@pytest.fixture
def make_request():
    """Build a bare Starlette request, optionally carrying a session cookie"""
    from starlette.requests import Request

    def _make(cookie: str = None, path: str = "/"):
        headers = []
        if cookie is not None:
            headers.append((b"cookie", cookie.encode()))
        scope = {
            "type": "http",
            "method": "GET",
            "scheme": "http",
            "server": ("testserver", 80),
            "client": ("127.0.0.1", 50000),
            "path": path,
            "root_path": "",
            "query_string": b"",
            "headers": headers,
        }
        return Request(scope)

    return _make
