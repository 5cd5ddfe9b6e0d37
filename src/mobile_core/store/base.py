"""
Object Store Contract for Mobile Core.

The core keeps App records and the API key registry in a key-value object
store: named records carrying string data, binary data, labels and
annotations, listable by label selector.

Writes are optimistic. Every record handed out by a store carries the
resource_version it was read at; update() refuses a record whose version is
no longer current. There are no transactions.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass
class Record:
    """A named record in the object store."""

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    data: dict[str, str] = field(default_factory=dict)
    binary_data: dict[str, bytes] = field(default_factory=dict)
    # Set by the store; None on records that were never persisted
    resource_version: str | None = None

    def clone(self) -> Record:
        """Deep copy, so callers never share state with a store."""
        return copy.deepcopy(self)


def parse_label_selector(selector: str) -> dict[str, str]:
    """
    Parse an equality label selector.

    "group=mobileapp,name=shop" -> {"group": "mobileapp", "name": "shop"}

    Raises:
        ValueError: If a term is not key=value
    """
    terms: dict[str, str] = {}
    for raw in selector.split(","):
        term = raw.strip()
        if not term:
            continue
        key, sep, value = term.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Invalid label selector term: {term!r}")
        terms[key] = value.strip()
    return terms


def matches_selector(labels: dict[str, str], selector: dict[str, str]) -> bool:
    """True if labels carry every key=value pair in selector."""
    return all(labels.get(k) == v for k, v in selector.items())


@runtime_checkable
class ObjectStore(Protocol):
    """
    Protocol for object store backends.

    All operations must be thread-safe. Returned records are copies.
    """

    def get(self, name: str) -> Record:
        """
        Fetch a record by name.

        Raises:
            NotFoundError: If no record has that name
        """
        ...

    def create(self, record: Record) -> Record:
        """
        Persist a new record.

        Raises:
            ConflictError: If a record with that name exists
        """
        ...

    def update(self, record: Record) -> Record:
        """
        Replace an existing record.

        If record.resource_version is set it must match the stored version.

        Raises:
            NotFoundError: If no record has that name
            VersionConflictError: If the record is stale
        """
        ...

    def delete(self, name: str) -> None:
        """
        Remove a record.

        Raises:
            NotFoundError: If no record has that name
        """
        ...

    def list(self, label_selector: str = "") -> list[Record]:
        """List records matching a label selector. Empty store gives []."""
        ...
