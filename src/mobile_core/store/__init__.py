"""
Object store backends.

RedisObjectStore lives in mobile_core.store.redis_store and is imported
only when selected, so the redis package stays optional.
"""

from mobile_core.store.base import (
    ObjectStore,
    Record,
    matches_selector,
    parse_label_selector,
)
from mobile_core.store.memory import InMemoryObjectStore

__all__ = [
    "ObjectStore",
    "Record",
    "InMemoryObjectStore",
    "parse_label_selector",
    "matches_selector",
]
