"""
In-memory object store.

Thread-safe store for tests, development and single-instance deployments.
State is lost on restart; use RedisObjectStore to share state between
processes.
"""

from __future__ import annotations

import itertools
import threading

from mobile_core.errors import ConflictError, NotFoundError, VersionConflictError
from mobile_core.store.base import Record, matches_selector, parse_label_selector


class InMemoryObjectStore:
    """
    Dict-backed ObjectStore.

    Resource versions come from a monotonically increasing counter, so a
    record read before any later write is always detected as stale.
    """

    def __init__(self) -> None:
        self._records: dict[str, Record] = {}
        self._lock = threading.RLock()
        self._versions = itertools.count(1)

    def _stamp(self, record: Record) -> Record:
        """Store a copy with a fresh version (must hold lock)."""
        stored = record.clone()
        stored.resource_version = str(next(self._versions))
        self._records[stored.name] = stored
        return stored.clone()

    def get(self, name: str) -> Record:
        with self._lock:
            record = self._records.get(name)
            if record is None:
                raise NotFoundError(f"record {name!r} not found")
            return record.clone()

    def create(self, record: Record) -> Record:
        with self._lock:
            if record.name in self._records:
                raise ConflictError(f"record {record.name!r} already exists")
            return self._stamp(record)

    def update(self, record: Record) -> Record:
        with self._lock:
            current = self._records.get(record.name)
            if current is None:
                raise NotFoundError(f"record {record.name!r} not found")
            if (
                record.resource_version is not None
                and record.resource_version != current.resource_version
            ):
                raise VersionConflictError(
                    f"record {record.name!r} was modified "
                    f"(have version {record.resource_version}, "
                    f"current {current.resource_version})"
                )
            return self._stamp(record)

    def delete(self, name: str) -> None:
        with self._lock:
            if self._records.pop(name, None) is None:
                raise NotFoundError(f"record {name!r} not found")

    def list(self, label_selector: str = "") -> list[Record]:
        selector = parse_label_selector(label_selector)
        with self._lock:
            return [
                r.clone()
                for r in self._records.values()
                if matches_selector(r.labels, selector)
            ]

    @property
    def size(self) -> int:
        """Number of stored records."""
        with self._lock:
            return len(self._records)
