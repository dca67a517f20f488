"""SQLAlchemy ORM models for the LogiSync order database.

This module defines the persisted order records and the append-only
operation log. Uses SQLAlchemy 2.0 style with Mapped and mapped_column.
"""

from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


# Enums matching the database schema constraints


class OrderStatus(str, Enum):
    """Logistics status of an order.

    Lifecycle: pending -> in_transit -> delivered/returned
    """

    pending = "pending"
    in_transit = "in_transit"
    delivered = "delivered"
    returned = "returned"


class WarningStatus(str, Enum):
    """Warning flags raised against an order."""

    none = "none"
    delay_shipment = "delay_shipment"
    transit_abnormal = "transit_abnormal"


class OperationType(str, Enum):
    """Categories of operations written to the operation log."""

    IMPORT = "import"
    SYNC = "sync"
    EXPORT = "export"
    DELETE = "delete"
    ARCHIVE = "archive"
    RESTORE = "restore"
    UPDATE = "update"
    CREATE = "create"


class TargetType(str, Enum):
    """What an operation log entry refers to."""

    ORDER = "order"
    DEPARTMENT = "department"
    SYSTEM = "system"


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Models


class Order(Base):
    """Imported logistics order.

    Attributes:
        id: Integer primary key
        order_number: Business order number, unique across the store
        customer_name: Customer or project name
        department_key: Owning business department key (e.g. EAST)
        status: Logistics status (pending, in_transit, delivered, returned)
        warning_status: Warning flag (none, delay_shipment, transit_abnormal)
        is_archived: Soft-delete marker
        carrier: Carrier display name as imported
        tracking_number: Carrier tracking number
        details: JSON blob with recipient info, tracking nodes and sync state
        created_at: ISO8601 timestamp of creation
        updated_at: ISO8601 timestamp of last update
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    order_number: Mapped[str] = mapped_column(
        String(100), nullable=False, unique=True
    )
    customer_name: Mapped[str] = mapped_column(String(100), nullable=False)
    department_key: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=OrderStatus.pending.value
    )
    warning_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=WarningStatus.none.value
    )
    is_archived: Mapped[bool] = mapped_column(nullable=False, default=False)

    carrier: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tracking_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    details: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    __table_args__ = (
        Index("idx_orders_department", "department_key"),
        Index("idx_orders_status", "status"),
        Index("idx_orders_tracking", "tracking_number"),
    )

    def __repr__(self) -> str:
        return (
            f"<Order(id={self.id!r}, order_number={self.order_number!r}, "
            f"status={self.status!r})>"
        )


class OperationLog(Base):
    """Append-only operation log entry.

    Attributes:
        id: Integer primary key
        username: Operator who triggered the operation
        operation_type: Category of operation (import, sync, ...)
        target_type: What the operation touched (order, system, ...)
        target_id: Identifier of the target (e.g. 'batch_import')
        details: JSON blob with structured, redacted operation data
        created_at: ISO8601 timestamp of the entry
    """

    __tablename__ = "operation_logs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    username: Mapped[str | None] = mapped_column(String(50), nullable=True)
    operation_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    target_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    __table_args__ = (
        Index("idx_operation_logs_type", "operation_type"),
        Index("idx_operation_logs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<OperationLog(id={self.id!r}, type={self.operation_type!r}, "
            f"target={self.target_id!r})>"
        )
