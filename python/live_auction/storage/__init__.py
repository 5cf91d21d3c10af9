"""Storage layer for the live-auction system.

Uses:
- MemoryDatabase/MemoryStore for in-process rooms, tests and JSON snapshots
- RestStore for a hosted realtime database over HTTP
- CSV inventory reference for analytics
"""

from .base import (
    RealtimeStore,
    Subscription,
    TransactionResult,
    PushKeyGenerator,
    ordered_children,
    child_values,
)
from .memory_store import MemoryDatabase, MemoryStore
from .rest_store import RestStore
from .inventory import load_inventory, read_inventory, parse_price

__all__ = [
    "RealtimeStore",
    "Subscription",
    "TransactionResult",
    "PushKeyGenerator",
    "ordered_children",
    "child_values",
    "MemoryDatabase",
    "MemoryStore",
    "RestStore",
    "load_inventory",
    "read_inventory",
    "parse_price",
]
