"""Database module for LogiSync order persistence and operation logging."""

from src.db.connection import (
    SessionLocal,
    engine,
    get_db,
    get_db_context,
    init_db,
)
from src.db.models import (
    Base,
    OperationLog,
    OperationType,
    Order,
    OrderStatus,
    TargetType,
    WarningStatus,
)

__all__ = [
    # Models
    "Base",
    "Order",
    "OperationLog",
    # Enums
    "OrderStatus",
    "WarningStatus",
    "OperationType",
    "TargetType",
    # Connection
    "engine",
    "SessionLocal",
    "get_db",
    "get_db_context",
    "init_db",
]
