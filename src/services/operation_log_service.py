"""Operation log service for LogiSync.

Append-only log of user-visible operations (imports, reconciliation
runs, archive/delete). Details are redacted of personal data before
they are stored.

Usage:
    from src.services.operation_log_service import OperationLogService

    log = OperationLogService()
    log.log_import(["SO-1", "SO-2"])
"""

import json
from collections.abc import Callable, Sequence
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from src.db.connection import SessionLocal
from src.db.models import OperationLog, OperationType, TargetType, utc_now_iso

__all__ = [
    "OperationLogService",
    "redact_sensitive",
    "REDACT_FIELDS",
    "REDACTED",
    "IMPORT_TARGET_ID",
    "SYNC_TARGET_ID",
]


# Redaction configuration

REDACT_FIELDS = {
    # Recipient info
    "phone",
    "mobile",
    "recipient",
    "destination",
    "address",
    "email",
    # Provider credentials
    "appid",
    "outerid",
    "password",
    "token",
    "secret",
    "api_key",
}

REDACTED = "[REDACTED]"

IMPORT_TARGET_ID = "batch_import"
SYNC_TARGET_ID = "batch_sync"


def redact_sensitive(
    data: dict | list | str | None, _depth: int = 0
) -> dict | list | str | None:
    """Recursively redact sensitive fields from data structures.

    Keys containing any REDACT_FIELDS entry have their values replaced
    with '[REDACTED]'.

    Example:
        >>> redact_sensitive({'phone': '13800138000', 'count': 2})
        {'phone': '[REDACTED]', 'count': 2}
    """
    if _depth > 10:
        return REDACTED
    if data is None:
        return None
    if isinstance(data, str):
        return data
    if isinstance(data, list):
        return [redact_sensitive(item, _depth + 1) for item in data]
    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            key_lower = str(key).lower().replace("-", "_")
            if any(field in key_lower for field in REDACT_FIELDS):
                result[key] = REDACTED
            else:
                result[key] = redact_sensitive(value, _depth + 1)
        return result
    return data


class OperationLogService:
    """Writes and reads operation log entries.

    Attributes:
        _session_factory: Callable returning a new SQLAlchemy session.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    def log(
        self,
        operation_type: OperationType,
        target_type: TargetType,
        target_id: str | None,
        details: dict[str, Any] | None = None,
        username: str | None = None,
    ) -> OperationLog:
        """Append an entry.

        Args:
            operation_type: Category of operation.
            target_type: What the operation touched.
            target_id: Identifier of the target.
            details: Structured data (redacted and JSON-encoded).
            username: Operator, if known.

        Returns:
            The created OperationLog entry.
        """
        details_json: str | None = None
        if details is not None:
            details_json = json.dumps(redact_sensitive(details), ensure_ascii=False)

        entry = OperationLog(
            username=username,
            operation_type=operation_type.value,
            target_type=target_type.value,
            target_id=target_id,
            details=details_json,
            created_at=utc_now_iso(),
        )
        with self._session_factory() as db:
            db.add(entry)
            db.commit()
            db.refresh(entry)
        return entry

    def log_import(
        self, order_numbers: Sequence[str], username: str | None = None
    ) -> OperationLog:
        """Record a successful batch import."""
        return self.log(
            OperationType.IMPORT,
            TargetType.ORDER,
            IMPORT_TARGET_ID,
            details={"count": len(order_numbers), "order_numbers": list(order_numbers)},
            username=username,
        )

    def log_sync(
        self,
        run_id: str,
        succeeded: int,
        failed: int,
        cancelled: bool = False,
        failed_orders: Sequence[str] = (),
        username: str | None = None,
    ) -> OperationLog:
        """Record the outcome of a reconciliation run."""
        return self.log(
            OperationType.SYNC,
            TargetType.ORDER,
            SYNC_TARGET_ID,
            details={
                "run_id": run_id,
                "succeeded": succeeded,
                "failed": failed,
                "cancelled": cancelled,
                "failed_orders": list(failed_orders),
            },
            username=username,
        )

    def list_entries(
        self,
        operation_type: OperationType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[OperationLog]:
        """List entries, newest first."""
        query = select(OperationLog)
        if operation_type is not None:
            query = query.where(OperationLog.operation_type == operation_type.value)
        query = query.order_by(OperationLog.id.desc()).limit(limit).offset(offset)
        with self._session_factory() as db:
            return list(db.scalars(query).all())

    @staticmethod
    def decode_details(entry: OperationLog) -> dict[str, Any]:
        """Parse an entry's JSON details."""
        if not entry.details:
            return {}
        return json.loads(entry.details)
