"""Service layer for LogiSync.

Provides row validation, carrier code resolution, the order store, the
operation log and the tracking provider integration.
"""

from src.services.carrier_codes import carrier_display_name, resolve_carrier_code
from src.services.operation_log_service import OperationLogService, redact_sensitive
from src.services.order_records import (
    OrderDetails,
    OrderRecord,
    RowValidationError,
    SyncRequest,
)
from src.services.order_store import OrderStore, StoreResult
from src.services.row_validator import RowValidator, validate_rows

__all__ = [
    "resolve_carrier_code",
    "carrier_display_name",
    "OperationLogService",
    "redact_sensitive",
    "OrderDetails",
    "OrderRecord",
    "RowValidationError",
    "SyncRequest",
    "OrderStore",
    "StoreResult",
    "RowValidator",
    "validate_rows",
]
