"""
Aggregation component port definitions.
"""

from __future__ import annotations

from collections.abc import Callable

from rentpulse.core.ports.db import CounterStorePort, CounterTransactionPort
from rentpulse.core.ports.time import TimePort

# Blocking sleep used between transaction retries (time.sleep in production).
SleepPort = Callable[[float], None]

__all__ = [
    "CounterStorePort",
    "CounterTransactionPort",
    "SleepPort",
    "TimePort",
]
