# sessionguard/models/session.py

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict

from pydantic import BaseModel, Field, model_validator


class Session(BaseModel):
    """
    Server-side session record.

    ``id`` and ``user_id`` never change after creation. ``data`` changes only
    through the store's update path and ``expires_at`` only through refresh.
    """
    id: str = Field(min_length=1)
    user_id: str
    created_at: datetime
    expires_at: datetime
    data: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_expiry(self) -> "Session":
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")
        return self

    def is_expired(self, now: datetime) -> bool:
        """A session read exactly at ``expires_at`` is still valid"""
        return self.expires_at < now


class RateLimitRule(BaseModel):
    window_ms: int = Field(gt=0)
    max_requests: int = Field(ge=1)


@dataclass
class RateLimitInfo:
    count: int
    reset_time: datetime


@dataclass
class FailedAttemptRecord:
    count: int
    last_attempt_at: datetime


class NoSessionType:
    """Marker attached to a request after lookup found no valid session"""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_SESSION"


NO_SESSION = NoSessionType()
