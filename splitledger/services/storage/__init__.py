"""
Storage Services Package

Provides abstract interfaces for group ledger storage, plus an in-memory
implementation. The hosted document store lives behind the same
interface, so the ledger logic never depends on it directly.
"""

from splitledger.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GroupStorageInterface,
    NotFoundError,
    StorageError,
)
from splitledger.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryGroupStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "GroupStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryGroupStorage",
]
