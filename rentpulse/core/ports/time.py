"""
Time interface.

All timestamps are UTC. Day-bucketing uses the UTC calendar date.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Protocol


class TimePort(Protocol):
    """Time provider interface."""

    def now_utc(self) -> datetime:
        """Get current UTC time (timezone-aware)."""
        ...

    def today_utc(self) -> date:
        """Get the current UTC calendar date."""
        ...
