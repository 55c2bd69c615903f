# sessionguard/core/security/rate_limiter.py
"""
Fixed-window rate limiting keyed by client identity.

Each configured rule keeps one counter per client. A request is allowed only
if it stays within every rule. Counters for all rules are charged before the
verdict is taken, so a denied request still consumes quota everywhere.
"""

import logging
import math
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from fastapi import Request

from sessionguard.core.clock import Clock, SystemClock
from sessionguard.core.config import Settings, get_settings
from sessionguard.core.exceptions import RateLimitExceeded
from sessionguard.core.rate_limit_config import (
    client_key_func,
    default_rate_limit_rule,
    get_client_ip,
    get_rate_limit_message,
)
from sessionguard.core.security.security_logger import SecurityLogger
from sessionguard.models.session import RateLimitInfo, RateLimitRule

logger = logging.getLogger(__name__)

RuleLike = Union[RateLimitRule, Dict[str, int]]


class RateLimiter:
    """
    Rate limiter that tracks request counts per client and rule window.

    Rows whose window has passed are purged at the start of every check,
    which is O(active keys) per call.
    """

    def __init__(
        self,
        rules: Optional[Iterable[RuleLike]] = None,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
        security_logger: Optional[SecurityLogger] = None,
        key_func: Optional[Callable[[Request], str]] = None,
        message: Optional[str] = None
    ):
        """
        Args:
            rules: Ordered rules; falls back to the configured default rule
            clock: Time source
            settings: Source of the default rule and client identity function
            security_logger: Receives denial events from the HTTP hook
            key_func: Maps a request to a client identifier; defaults to the
                socket address, or the proxy headers when settings trust them
            message: Client-facing deny message
        """
        parsed = [r if isinstance(r, RateLimitRule) else RateLimitRule(**r) for r in (rules or [])]
        if not parsed:
            parsed = [default_rate_limit_rule(settings or get_settings())]
        self.rules: List[RateLimitRule] = parsed
        self.clock = clock or SystemClock()
        self.security_logger = security_logger or SecurityLogger()
        if key_func is None:
            key_func = client_key_func(settings) if settings is not None else get_client_ip
        self.key_func = key_func
        self.message = message or get_rate_limit_message()

        self._storage: Dict[Tuple[str, int], RateLimitInfo] = {}
        self._lock = threading.Lock()

    def _cleanup(self, now: datetime) -> None:
        """Remove rows whose window has passed. Caller holds the lock."""
        expired = [key for key, info in self._storage.items() if now > info.reset_time]
        for key in expired:
            del self._storage[key]

    def is_allowed(self, client_id: str) -> bool:
        """
        Count one request for ``client_id`` and report whether it is allowed.

        A window rolls over only when ``now > reset_time``; a request landing
        exactly on ``reset_time`` still counts against the old window.
        """
        with self._lock:
            now = self.clock.now()
            self._cleanup(now)

            allowed = True
            for rule in self.rules:
                key = (client_id, rule.window_ms)
                info = self._storage.get(key)
                if info is None:
                    info = RateLimitInfo(count=0, reset_time=now + timedelta(milliseconds=rule.window_ms))

                if now > info.reset_time:
                    info.count = 1
                    info.reset_time = now + timedelta(milliseconds=rule.window_ms)
                else:
                    info.count += 1

                self._storage[key] = info

                if info.count > rule.max_requests:
                    allowed = False

            if not allowed:
                logger.debug(f"Rate limit exceeded for {client_id}")
            return allowed

    def reset(self, client_id: str) -> None:
        """Clear every rule counter for a client"""
        with self._lock:
            for rule in self.rules:
                self._storage.pop((client_id, rule.window_ms), None)
        logger.info(f"Rate limit counters reset for {client_id}")

    def get_info(self, client_id: str) -> Dict[int, RateLimitInfo]:
        """Snapshot of the client's counters keyed by window length in ms"""
        snapshot = {}
        with self._lock:
            for rule in self.rules:
                info = self._storage.get((client_id, rule.window_ms))
                if info is not None:
                    snapshot[rule.window_ms] = RateLimitInfo(info.count, info.reset_time)
        return snapshot

    def _retry_after(self, client_id: str) -> Optional[int]:
        """Seconds until every exceeded window has rolled over"""
        now = self.clock.now()
        info = self.get_info(client_id)
        waits = [
            (info[rule.window_ms].reset_time - now).total_seconds()
            for rule in self.rules
            if rule.window_ms in info and info[rule.window_ms].count > rule.max_requests
        ]
        if not waits:
            return None
        return max(0, math.ceil(max(waits)))

    def _limit_headers(self, client_id: str) -> Dict[str, int]:
        info = self.get_info(client_id)
        tightest = min(
            self.rules,
            key=lambda rule: rule.max_requests - (info[rule.window_ms].count if rule.window_ms in info else 0)
        )
        current = info.get(tightest.window_ms)
        used = current.count if current else 0
        reset = current.reset_time if current else self.clock.now()
        return {
            "limit": tightest.max_requests,
            "remaining": max(0, tightest.max_requests - used),
            "reset": int(reset.timestamp()),
        }

    def middleware(self):
        """
        FastAPI dependency guarding a route.

        Example:
            limiter = RateLimiter([{"window_ms": 60000, "max_requests": 5}])

            @app.post("/login", dependencies=[Depends(limiter.middleware())])
            async def login(): ...
        """
        async def check_rate_limit(request: Request) -> None:
            client_id = self.key_func(request)
            allowed = self.is_allowed(client_id)

            # Picked up by the security headers middleware
            headers = self._limit_headers(client_id)
            request.state.rate_limit_limit = headers["limit"]
            request.state.rate_limit_remaining = headers["remaining"]
            request.state.rate_limit_reset = headers["reset"]

            if not allowed:
                self.security_logger.log_rate_limit_exceeded(client_id, request.url.path)
                raise RateLimitExceeded(
                    self.message,
                    identifier=client_id,
                    retry_after=self._retry_after(client_id)
                )

        return check_rate_limit
