"""
Metrics component port definitions.
"""

from rentpulse.core.ports.db import CounterStorePort, ListingDirectoryPort
from rentpulse.core.ports.time import TimePort

__all__ = [
    "CounterStorePort",
    "ListingDirectoryPort",
    "TimePort",
]
