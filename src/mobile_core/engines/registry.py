"""
API Key Registry for Mobile Core.

One shared record maps every App id to its API key, JSON encoded under the
"apiKeys" entry of the record's binary data. Consumers outside this service
read that single record, so it must never lose an entry.

Every change is a read-modify-write of the whole map. Two unsynchronized
writers would overwrite each other's edits (lost update), so each cycle:

1. runs under a process-local lock, and
2. writes with the resource version it read; if another process got there
   first the store raises VersionConflictError and the cycle is retried.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Callable

from mobile_core.errors import (
    ConflictError,
    NotFoundError,
    TransportError,
    VersionConflictError,
)
from mobile_core.store.base import ObjectStore, Record

logger = logging.getLogger(__name__)

API_KEY_MAP_NAME = "mcp-mobile-keys"
API_KEY_MAP_DISPLAY_NAME = "API Keys"
API_KEYS_FIELD = "apiKeys"

DEFAULT_MAX_RETRIES = 5


def _empty_map_record() -> Record:
    return Record(
        name=API_KEY_MAP_NAME,
        binary_data={
            "name": API_KEY_MAP_NAME.encode(),
            "type": API_KEY_MAP_NAME.encode(),
            "displayName": API_KEY_MAP_DISPLAY_NAME.encode(),
            API_KEYS_FIELD: b"{}",
        },
    )


def decode_api_keys(payload: bytes | None) -> dict[str, str]:
    """
    Decode the registry payload.

    A missing or empty payload is an empty map.

    Raises:
        TransportError: If the payload is not a JSON object of strings
    """
    if not payload:
        return {}
    try:
        keys = json.loads(payload)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise TransportError("could not unmarshal API key map") from e
    if not isinstance(keys, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in keys.items()
    ):
        raise TransportError("API key map is not a JSON object of strings")
    return keys


def encode_api_keys(keys: dict[str, str]) -> bytes:
    """Encode the registry map."""
    return json.dumps(keys, sort_keys=True).encode("utf-8")


class APIKeyRegistry:
    """
    Shared appID -> apiKey map.

    Usage:
        registry = APIKeyRegistry(store)
        registry.add_entry("shop-1700000000", api_key)
        registry.remove_entry("shop-1700000000")
    """

    def __init__(
        self,
        store: ObjectStore,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        """
        Initialize registry.

        Args:
            store: Backing object store
            max_retries: Extra attempts after a version conflict
        """
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self._store = store
        self._max_retries = max_retries
        self._lock = threading.Lock()

    def ensure_map_exists(self) -> None:
        """Create the registry record with an empty map if it is absent."""
        try:
            self._store.get(API_KEY_MAP_NAME)
            return
        except NotFoundError:
            pass
        try:
            self._store.create(_empty_map_record())
            logger.info("Created API key map %s", API_KEY_MAP_NAME)
        except ConflictError:
            # Another writer created it in between
            pass

    def add_entry(self, app_id: str, api_key: str) -> None:
        """
        Register (or replace) the API key of an App.

        Raises:
            TransportError: If the map cannot be decoded or written
            VersionConflictError: If every retry lost the race
        """

        def mutate(keys: dict[str, str]) -> bool:
            keys[app_id] = api_key
            return True

        self._modify(mutate, operation="adding API key to map", create_missing=True)

    def remove_entry(self, app_id: str) -> None:
        """
        Unregister the API key of an App.

        Removing an id that is not registered is a no-op.
        """

        def mutate(keys: dict[str, str]) -> bool:
            return keys.pop(app_id, None) is not None

        self._modify(mutate, operation="removing API key from map", create_missing=False)

    def entries(self) -> dict[str, str]:
        """Snapshot of the current map (empty if the record is absent)."""
        try:
            record = self._store.get(API_KEY_MAP_NAME)
        except NotFoundError:
            return {}
        return decode_api_keys(record.binary_data.get(API_KEYS_FIELD))

    def _modify(
        self,
        mutate: Callable[[dict[str, str]], bool],
        *,
        operation: str,
        create_missing: bool,
    ) -> None:
        """Run one guarded read-modify-write cycle, retrying on version conflicts."""
        with self._lock:
            attempt = 0
            while True:
                try:
                    self._modify_once(mutate, create_missing=create_missing)
                    return
                except (VersionConflictError, ConflictError) as e:
                    if attempt >= self._max_retries:
                        raise VersionConflictError(
                            f"{operation}: gave up after {attempt + 1} attempts"
                        ) from e
                    attempt += 1
                    logger.warning(
                        "%s: registry changed underneath us, retrying (%d/%d)",
                        operation,
                        attempt,
                        self._max_retries,
                    )
                except TransportError as e:
                    raise TransportError(f"{operation}: {e.message}") from e

    def _modify_once(
        self,
        mutate: Callable[[dict[str, str]], bool],
        *,
        create_missing: bool,
    ) -> None:
        try:
            record = self._store.get(API_KEY_MAP_NAME)
        except NotFoundError:
            if not create_missing:
                return
            record = _empty_map_record()
            keys: dict[str, str] = {}
            if mutate(keys):
                record.binary_data[API_KEYS_FIELD] = encode_api_keys(keys)
            # ConflictError here means a concurrent create, retried by caller
            self._store.create(record)
            return

        keys = decode_api_keys(record.binary_data.get(API_KEYS_FIELD))
        if not mutate(keys):
            return
        record.binary_data[API_KEYS_FIELD] = encode_api_keys(keys)
        self._store.update(record)
