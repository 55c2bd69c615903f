# sessionguard/core/clock.py
"""Time source used for all expiry math."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """Wall-clock reads for expiry calculations"""

    @abstractmethod
    def now(self) -> datetime:
        """Current time as a timezone-aware UTC datetime"""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)
