"""Unit tests for Settings."""

from pathlib import Path

import pytest

from mobile_core.config import Settings, build_store
from mobile_core.store import InMemoryObjectStore


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self) -> None:
        """An empty environment gives the defaults."""
        settings = Settings.from_env({})

        assert settings == Settings()
        assert settings.store_backend == "memory"
        assert settings.namespace == ""
        assert settings.audit_log_path is None

    def test_from_env(self) -> None:
        """MOBILE_CORE_* variables are read."""
        settings = Settings.from_env(
            {
                "MOBILE_CORE_CLUSTER_HOST": "https://cluster.example.com",
                "MOBILE_CORE_NAMESPACE": " mobile-project ",
                "MOBILE_CORE_SKIP_TLS_VERIFY": "true",
                "MOBILE_CORE_REQUEST_TIMEOUT": "2.5",
                "MOBILE_CORE_STORE": "Redis",
                "MOBILE_CORE_REDIS_URL": "redis://cache:6379/1",
                "MOBILE_CORE_REGISTRY_RETRIES": "9",
                "MOBILE_CORE_AUDIT_LOG": "/var/log/mobile-core/audit.jsonl",
                "UNRELATED": "ignored",
            }
        )

        assert settings.cluster_host == "https://cluster.example.com"
        assert settings.namespace == "mobile-project"
        assert settings.skip_tls_verify is True
        assert settings.request_timeout == 2.5
        assert settings.store_backend == "redis"
        assert settings.redis_url == "redis://cache:6379/1"
        assert settings.registry_retries == 9
        assert settings.audit_log_path == Path("/var/log/mobile-core/audit.jsonl")

    @pytest.mark.parametrize(
        "env",
        [
            {"MOBILE_CORE_SKIP_TLS_VERIFY": "maybe"},
            {"MOBILE_CORE_REQUEST_TIMEOUT": "soon"},
            {"MOBILE_CORE_REQUEST_TIMEOUT": "0"},
            {"MOBILE_CORE_STORE": "etcd"},
            {"MOBILE_CORE_REGISTRY_RETRIES": "-1"},
            {"MOBILE_CORE_REGISTRY_RETRIES": "many"},
        ],
    )
    def test_invalid_values(self, env: dict) -> None:
        """Invalid values fail at startup."""
        with pytest.raises(ValueError):
            Settings.from_env(env)

    def test_cluster_config(self) -> None:
        """The cluster config carries host, TLS and timeout but no token."""
        settings = Settings(
            cluster_host="https://cluster.example.com",
            skip_tls_verify=True,
            request_timeout=3.0,
        )

        config = settings.cluster_config()

        assert config.host == "https://cluster.example.com"
        assert config.skip_tls_verify is True
        assert config.timeout == 3.0
        assert config.token == ""

    def test_build_memory_store(self) -> None:
        """The default backend is the in-memory store."""
        assert isinstance(build_store(Settings()), InMemoryObjectStore)
