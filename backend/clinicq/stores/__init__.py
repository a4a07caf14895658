"""Storage backends for the queue core."""

from typing import Optional

from ..config import get_settings
from .base import (
    ConsultingSlotTaken,
    CounterUnavailable,
    DuplicateActiveTicket,
    QueueStateWatch,
    QueueStore,
    RevenueAccrual,
    StaleWrite,
    StoreError,
    TicketChange,
)
from .memory import MemoryQueueStore

settings = get_settings()

_store: Optional[QueueStore] = None


def get_store() -> QueueStore:
    """Return the process-wide store selected by STORAGE_BACKEND."""
    global _store
    if _store is None:
        if settings.STORAGE_BACKEND == "memory":
            _store = MemoryQueueStore()
        else:
            from .mongo import MongoQueueStore
            _store = MongoQueueStore()
    return _store


def set_store(store: Optional[QueueStore]) -> None:
    """Replace the process-wide store (None resets to the configured backend)."""
    global _store
    _store = store


__all__ = [
    "ConsultingSlotTaken",
    "CounterUnavailable",
    "DuplicateActiveTicket",
    "MemoryQueueStore",
    "QueueStateWatch",
    "QueueStore",
    "RevenueAccrual",
    "StaleWrite",
    "StoreError",
    "TicketChange",
    "get_store",
    "set_store",
]
