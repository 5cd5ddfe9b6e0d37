"""
Structured Audit Logging for Mobile Core.

Gate decisions and App lifecycle changes are logged as JSON events, to the
"mobile_core.audit" logger and optionally to a JSONL file.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, TextIO

from mobile_core.core.correlation import get_correlation_id


class AuditEventType(str, Enum):
    """Types of audit events."""

    ACCESS_EXEMPT = "access.exempt"
    AUTH_SUCCESS = "auth.success"
    AUTH_FAILURE = "auth.failure"
    AUTHZ_ALLOWED = "authz.allowed"
    AUTHZ_DENIED = "authz.denied"
    APP_CREATED = "app.created"
    APP_DELETED = "app.deleted"
    APP_PARTIAL_FAILURE = "app.partial_failure"
    REGISTRY_RECONCILED = "registry.reconciled"


# Results logged at WARNING
_WARNING_RESULTS = frozenset({"failure", "denied", "error", "partial"})


@dataclass
class AuditEvent:
    """Structured audit event."""

    event_type: AuditEventType
    timestamp: float = field(default_factory=time.time)
    principal: str | None = None
    action: str | None = None
    resource: str | None = None
    result: str = "unknown"
    correlation_id: str | None = field(default_factory=get_correlation_id)
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data = asdict(self)
        data["event_type"] = self.event_type.value
        data["timestamp_iso"] = datetime.fromtimestamp(self.timestamp).isoformat()
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)


class AuditLogger:
    """
    Audit event sink.

    Usage:
        auditor = AuditLogger(log_path=Path("audit.jsonl"))
        auditor.log_auth_failure(reason="no token", method="POST", path="/apps", status_code=401)
    """

    def __init__(
        self,
        *,
        log_path: Path | None = None,
        logger_name: str = "mobile_core.audit",
    ) -> None:
        """
        Initialize audit logger.

        Args:
            log_path: Path to JSONL audit log file (optional)
            logger_name: Name for the Python logger
        """
        self._logger = logging.getLogger(logger_name)
        self._log_file: TextIO | None = None
        self._file_lock = threading.Lock()

        if log_path:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            self._log_file = open(log_path, "a", encoding="utf-8")

    def close(self) -> None:
        """Close the audit log file."""
        with self._file_lock:
            if self._log_file:
                self._log_file.close()
                self._log_file = None

    def _emit(self, event: AuditEvent) -> str:
        json_line = event.to_json()
        level = logging.WARNING if event.result in _WARNING_RESULTS else logging.INFO
        self._logger.log(level, json_line)

        with self._file_lock:
            if self._log_file:
                self._log_file.write(json_line + "\n")
                self._log_file.flush()

        return json_line

    def log_exempt(self, *, method: str, path: str) -> str:
        """Log a request that bypassed the gate via the exemption list."""
        return self._emit(
            AuditEvent(
                event_type=AuditEventType.ACCESS_EXEMPT,
                action=method,
                resource=path,
                result="exempt",
            )
        )

    def log_auth_success(self, username: str, *, method: str, path: str) -> str:
        """Log a caller whose token the cluster accepted."""
        return self._emit(
            AuditEvent(
                event_type=AuditEventType.AUTH_SUCCESS,
                principal=username,
                action=method,
                resource=path,
                result="success",
            )
        )

    def log_auth_failure(
        self,
        *,
        reason: str,
        method: str,
        path: str,
        status_code: int,
    ) -> str:
        """
        Log a request rejected before a user could be resolved.

        Args:
            reason: Failure reason
            method: HTTP method
            path: Request path
            status_code: Status returned to the caller (401 or 500)
        """
        return self._emit(
            AuditEvent(
                event_type=AuditEventType.AUTH_FAILURE,
                action=method,
                resource=path,
                result="failure" if status_code == 401 else "error",
                details={"reason": reason, "status_code": status_code},
            )
        )

    def log_authz(
        self,
        username: str,
        *,
        allowed: bool,
        method: str,
        path: str,
        reason: str = "",
    ) -> str:
        """Log a namespace permission decision."""
        return self._emit(
            AuditEvent(
                event_type=(
                    AuditEventType.AUTHZ_ALLOWED if allowed else AuditEventType.AUTHZ_DENIED
                ),
                principal=username,
                action=method,
                resource=path,
                result="allowed" if allowed else "denied",
                details={"reason": reason},
            )
        )

    def log_app_event(self, change: str, *, app_id: str, **details: Any) -> str:
        """Log an App that was created or deleted."""
        event_type = {
            "created": AuditEventType.APP_CREATED,
            "deleted": AuditEventType.APP_DELETED,
        }[change]
        return self._emit(
            AuditEvent(
                event_type=event_type,
                action=change,
                resource=app_id,
                result="success",
                details=details,
            )
        )

    def log_partial_failure(
        self,
        *,
        operation: str,
        app_id: str,
        completed_step: str,
        error: str,
    ) -> str:
        """Log a lifecycle operation that left App and registry out of step."""
        return self._emit(
            AuditEvent(
                event_type=AuditEventType.APP_PARTIAL_FAILURE,
                action=operation,
                resource=app_id,
                result="partial",
                details={"completed_step": completed_step, "error": error},
            )
        )

    def log_reconcile(self, *, added: list[str], removed: list[str]) -> str:
        """Log registry entries repaired by a reconcile pass."""
        return self._emit(
            AuditEvent(
                event_type=AuditEventType.REGISTRY_RECONCILED,
                action="reconcile",
                result="success",
                details={"added": added, "removed": removed},
            )
        )
