"""
Configuration for Mobile Core.

Settings are read once at startup, from MOBILE_CORE_* environment
variables, and never mutated afterwards.

Usage:
    settings = Settings.from_env()
    store = build_store(settings)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from mobile_core.engines.permission import DEFAULT_TIMEOUT, ClusterConfig
from mobile_core.engines.registry import DEFAULT_MAX_RETRIES
from mobile_core.store.base import ObjectStore
from mobile_core.store.memory import InMemoryObjectStore

ENV_PREFIX = "MOBILE_CORE_"
STORE_BACKENDS = ("memory", "redis")

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off", ""})


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


@dataclass(frozen=True)
class Settings:
    """Process-wide configuration."""

    cluster_host: str = "https://openshift.default.svc"
    namespace: str = ""  # Empty disables the namespace permission check
    skip_tls_verify: bool = False
    request_timeout: float = DEFAULT_TIMEOUT
    store_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    registry_retries: int = DEFAULT_MAX_RETRIES
    audit_log_path: Path | None = None

    def __post_init__(self) -> None:
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(
                f"store backend must be one of {STORE_BACKENDS}, got {self.store_backend!r}"
            )
        if self.request_timeout <= 0:
            raise ValueError("request timeout must be positive")
        if self.registry_retries < 0:
            raise ValueError("registry retries must be >= 0")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """
        Build settings from the environment.

        Raises:
            ValueError: If a variable holds an invalid value
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            return env.get(ENV_PREFIX + name)

        values: dict[str, object] = {}
        for name, key in (
            ("CLUSTER_HOST", "cluster_host"),
            ("NAMESPACE", "namespace"),
            ("REDIS_URL", "redis_url"),
        ):
            raw = get(name)
            if raw is not None:
                values[key] = raw.strip()

        skip = get("SKIP_TLS_VERIFY")
        if skip is not None:
            values["skip_tls_verify"] = _parse_bool(ENV_PREFIX + "SKIP_TLS_VERIFY", skip)

        timeout = get("REQUEST_TIMEOUT")
        if timeout is not None:
            try:
                values["request_timeout"] = float(timeout)
            except ValueError as e:
                raise ValueError(f"{ENV_PREFIX}REQUEST_TIMEOUT must be a number") from e

        backend = get("STORE")
        if backend is not None:
            values["store_backend"] = backend.strip().lower()

        retries = get("REGISTRY_RETRIES")
        if retries is not None:
            try:
                values["registry_retries"] = int(retries)
            except ValueError as e:
                raise ValueError(f"{ENV_PREFIX}REGISTRY_RETRIES must be an integer") from e

        audit_log = get("AUDIT_LOG")
        if audit_log:
            values["audit_log_path"] = Path(audit_log)

        return cls(**values)  # type: ignore[arg-type]

    def cluster_config(self) -> ClusterConfig:
        """Cluster config without a token; add one per request."""
        return ClusterConfig(
            host=self.cluster_host,
            skip_tls_verify=self.skip_tls_verify,
            timeout=self.request_timeout,
        )


def build_store(settings: Settings) -> ObjectStore:
    """Object store selected by settings.store_backend."""
    if settings.store_backend == "redis":
        import redis

        from mobile_core.store.redis_store import RedisObjectStore

        client = redis.Redis.from_url(
            settings.redis_url,
            socket_timeout=settings.request_timeout,
            socket_connect_timeout=settings.request_timeout,
        )
        return RedisObjectStore(client)
    return InMemoryObjectStore()
