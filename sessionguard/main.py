# sessionguard/main.py
"""
FastAPI application wiring the session and abuse-control layer.

Credential checking is delegated to an ``authenticator`` callable
``(username, password) -> user_id | None`` (sync or async); this module only
guards the endpoint, counts failures and manages the session cookie.
"""

import inspect
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from sessionguard.core.clock import Clock
from sessionguard.core.config import Settings, get_settings
from sessionguard.core.logging_config import setup_logging
from sessionguard.core.security import (
    BruteForceProtection,
    RateLimiter,
    SecurityLogger,
    SessionManager,
)
from sessionguard.middleware.security_middleware import register_security_middleware
from sessionguard.models.session import Session

logger = logging.getLogger(__name__)

Authenticator = Callable[[str, str], Union[Optional[str], Awaitable[Optional[str]]]]


class LoginRequest(BaseModel):
    username: str
    password: str


class SessionView(BaseModel):
    """Session as shown to its owner (id stays in the cookie)"""
    user_id: str
    created_at: datetime
    expires_at: datetime
    data: Dict[str, Any]


def _reject_all(username: str, password: str) -> Optional[str]:
    return None


def current_session(request: Request) -> Session:
    """Dependency: the session attached by the session middleware, or 401"""
    session = getattr(request.state, "session", None)
    if not session:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return session


def _view(session: Session) -> SessionView:
    return SessionView(
        user_id=session.user_id,
        created_at=session.created_at,
        expires_at=session.expires_at,
        data=session.data
    )


def create_app(
    settings: Optional[Settings] = None,
    authenticator: Optional[Authenticator] = None,
    clock: Optional[Clock] = None
) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)

    if authenticator is None:
        logger.warning("No authenticator configured - every login will be rejected")
        authenticator = _reject_all

    security_logger = SecurityLogger()
    session_manager = SessionManager(settings=settings, clock=clock, security_logger=security_logger)
    request_limiter = RateLimiter(settings=settings, clock=clock, security_logger=security_logger)
    brute_force = BruteForceProtection.from_settings(settings, clock=clock, security_logger=security_logger)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup/shutdown: owns the session cleanup task"""
        logger.info(f"Starting {settings.APP_NAME} ({settings.ENVIRONMENT})")
        session_manager.start()
        yield
        await session_manager.close()
        logger.info(f"{settings.APP_NAME} stopped")

    app = FastAPI(
        title=settings.APP_NAME,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None
    )
    app.state.settings = settings
    app.state.session_manager = session_manager
    app.state.rate_limiter = request_limiter
    app.state.brute_force = brute_force

    register_security_middleware(app)
    app.middleware("http")(session_manager.middleware())

    @app.get("/health")
    def health():
        metrics = {}
        if hasattr(session_manager.store, "get_metrics"):
            metrics = session_manager.store.get_metrics()
        return {"status": "ok", "sessions": metrics}

    @app.post(
        "/login",
        dependencies=[Depends(request_limiter.middleware()), Depends(brute_force.middleware())]
    )
    async def login(credentials: LoginRequest, request: Request):
        identifier = brute_force.key_func(request)

        user_id = authenticator(credentials.username, credentials.password)
        if inspect.isawaitable(user_id):
            user_id = await user_id

        if not user_id:
            brute_force.record_failed_attempt(identifier)
            raise HTTPException(status_code=401, detail="Invalid credentials")

        brute_force.reset_attempts(identifier)
        session = await session_manager.create_session(user_id, {"username": credentials.username})

        response = JSONResponse(content=_view(session).model_dump(mode="json"))
        response.set_cookie(
            key=settings.SESSION_COOKIE_NAME,
            value=session.id,
            max_age=settings.COOKIE_MAX_AGE_MS // 1000,
            path="/",
            httponly=True,
            secure=settings.is_production,
            samesite="strict"
        )
        return response

    @app.post("/logout")
    async def logout(request: Request):
        session = getattr(request.state, "session", None)
        if session:
            await session_manager.delete_session(session.id)
        response = JSONResponse(content={"status": "logged_out"})
        response.delete_cookie(settings.SESSION_COOKIE_NAME, path="/")
        return response

    @app.get("/session", response_model=SessionView)
    async def read_session(session: Session = Depends(current_session)):
        return _view(session)

    @app.patch("/session/data", response_model=SessionView)
    async def update_session_data(data: Dict[str, Any], session: Session = Depends(current_session)):
        await session_manager.update_session(session.id, data)
        updated = await session_manager.get_session(session.id)
        if updated is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        return _view(updated)

    return app
