"""
Redis-backed object store.

Each record is one JSON document under "<prefix><name>". Updates use
WATCH/MULTI so a concurrent writer in another process turns into a
VersionConflictError instead of a lost update.

Requires:
    pip install mobile-core[redis]

Usage:
    import redis
    from mobile_core.store.redis_store import RedisObjectStore

    client = redis.Redis.from_url("redis://localhost:6379/0")
    store = RedisObjectStore(client)
"""

from __future__ import annotations

import base64
import json
from typing import Any

from redis.exceptions import RedisError, WatchError

from mobile_core.errors import (
    ConflictError,
    NotFoundError,
    TransportError,
    VersionConflictError,
)
from mobile_core.store.base import Record, matches_selector, parse_label_selector


def _encode(record: Record, version: int) -> str:
    return json.dumps(
        {
            "name": record.name,
            "labels": record.labels,
            "annotations": record.annotations,
            "data": record.data,
            "binary_data": {
                k: base64.b64encode(v).decode("ascii")
                for k, v in record.binary_data.items()
            },
            "version": version,
        }
    )


def _decode(raw: bytes | str) -> Record:
    """
    Decode a stored document.

    Raises:
        TransportError: If the document is corrupt
    """
    try:
        doc = json.loads(raw)
        return Record(
            name=doc["name"],
            labels=doc.get("labels") or {},
            annotations=doc.get("annotations") or {},
            data=doc.get("data") or {},
            binary_data={
                k: base64.b64decode(v) for k, v in (doc.get("binary_data") or {}).items()
            },
            resource_version=str(doc["version"]),
        )
    except (ValueError, KeyError, TypeError, AttributeError) as e:
        raise TransportError("could not decode record document from redis") from e


class RedisObjectStore:
    """
    ObjectStore on top of a redis.Redis client.

    Suitable for multi-instance deployments: optimistic concurrency is
    enforced by Redis itself, not by a process-local lock.
    """

    def __init__(
        self,
        redis_client: Any,  # redis.Redis
        key_prefix: str = "mobile-core:record:",
    ) -> None:
        self._redis = redis_client
        self._key_prefix = key_prefix

    def _key(self, name: str) -> str:
        return f"{self._key_prefix}{name}"

    def get(self, name: str) -> Record:
        try:
            raw = self._redis.get(self._key(name))
        except RedisError as e:
            raise TransportError(f"failed to read record {name!r} from redis") from e
        if raw is None:
            raise NotFoundError(f"record {name!r} not found")
        return _decode(raw)

    def create(self, record: Record) -> Record:
        try:
            was_set = self._redis.set(self._key(record.name), _encode(record, 1), nx=True)
        except RedisError as e:
            raise TransportError(f"failed to create record {record.name!r} in redis") from e
        if not was_set:
            raise ConflictError(f"record {record.name!r} already exists")
        created = record.clone()
        created.resource_version = "1"
        return created

    def update(self, record: Record) -> Record:
        key = self._key(record.name)
        try:
            with self._redis.pipeline() as pipe:
                pipe.watch(key)
                raw = pipe.get(key)
                if raw is None:
                    raise NotFoundError(f"record {record.name!r} not found")
                current = _decode(raw)
                if (
                    record.resource_version is not None
                    and record.resource_version != current.resource_version
                ):
                    raise VersionConflictError(
                        f"record {record.name!r} was modified "
                        f"(have version {record.resource_version}, "
                        f"current {current.resource_version})"
                    )
                version = int(current.resource_version or 0) + 1
                pipe.multi()
                pipe.set(key, _encode(record, version))
                pipe.execute()
        except WatchError as e:
            raise VersionConflictError(
                f"record {record.name!r} was modified concurrently"
            ) from e
        except RedisError as e:
            raise TransportError(f"failed to update record {record.name!r} in redis") from e
        updated = record.clone()
        updated.resource_version = str(version)
        return updated

    def delete(self, name: str) -> None:
        try:
            removed = self._redis.delete(self._key(name))
        except RedisError as e:
            raise TransportError(f"failed to delete record {name!r} from redis") from e
        if not removed:
            raise NotFoundError(f"record {name!r} not found")

    def list(self, label_selector: str = "") -> list[Record]:
        selector = parse_label_selector(label_selector)
        records: list[Record] = []
        try:
            for key in self._redis.scan_iter(match=f"{self._key_prefix}*", count=1000):
                raw = self._redis.get(key)
                # Deleted between SCAN and GET
                if raw is None:
                    continue
                record = _decode(raw)
                if matches_selector(record.labels, selector):
                    records.append(record)
        except RedisError as e:
            raise TransportError("failed to list records from redis") from e
        return records
