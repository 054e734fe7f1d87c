# rentpulse — Ports (Protocol Interfaces)
# Abstract interfaces for adapters; no implementations here

from rentpulse.core.ports.db import (
    CounterStoreError,
    CounterStorePort,
    CounterTransactionPort,
    ListingDirectoryPort,
    StoreUnavailableError,
    TransactionConflictError,
    TransactionUsageError,
)
from rentpulse.core.ports.time import TimePort

__all__ = [
    "CounterStoreError",
    "CounterStorePort",
    "CounterTransactionPort",
    "ListingDirectoryPort",
    "StoreUnavailableError",
    "TimePort",
    "TransactionConflictError",
    "TransactionUsageError",
]
