"""Order store backed by SQLAlchemy.

Persists validated OrderRecords atomically and applies reconciliation
results back onto stored orders. Every method opens its own session
from the injected factory, so the store can be called from worker
threads (the import coordinator runs submit_batch via asyncio.to_thread).

Usage:
    from src.services.order_store import OrderStore

    store = OrderStore()
    result = store.submit_batch(records)
    if not result.success:
        print(result.message)
"""

import json
import logging
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from src.db.connection import SessionLocal
from src.db.models import Order, OrderStatus, WarningStatus, utc_now_iso
from src.errors import ConflictError, DuplicateOrderError, NotFoundError, format_message
from src.services.order_records import OrderDetails, OrderRecord

logger = logging.getLogger(__name__)

# Final statuses; orders in them are not re-synced
SETTLED_STATUSES = (OrderStatus.delivered, OrderStatus.returned)


@dataclass
class StoreResult:
    """Outcome of a batch submission."""

    success: bool
    """Whether every record was persisted."""

    message: str
    """Localized message shown to the caller on failure."""

    created: int = 0
    """Number of orders inserted."""


def order_details(order: Order) -> dict[str, Any]:
    """Decode an order's JSON details column."""
    if not order.details:
        return {}
    try:
        parsed = json.loads(order.details)
    except (TypeError, ValueError):
        logger.warning("Order %s has malformed details JSON", order.order_number)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def order_to_record(order: Order) -> OrderRecord:
    """Rebuild the OrderRecord of a stored order, for re-syncing."""
    details = order_details(order)
    return OrderRecord(
        order_number=order.order_number,
        customer_name=order.customer_name,
        department_key=order.department_key,
        status=OrderStatus(order.status),
        details=OrderDetails(
            tracking_number=order.tracking_number or details.get("tracking_number") or "",
            carrier=order.carrier or details.get("carrier") or "",
            phone=details.get("phone") or "",
            recipient=details.get("recipient"),
            destination=details.get("destination"),
            product_info=details.get("product_info"),
            application_number=details.get("application_number"),
            note=details.get("note"),
        ),
    )


def order_to_dict(order: Order) -> dict[str, Any]:
    """Serialize an order row for API responses and CLI output."""
    return {
        "id": order.id,
        "order_number": order.order_number,
        "customer_name": order.customer_name,
        "department_key": order.department_key,
        "status": order.status,
        "warning_status": order.warning_status,
        "is_archived": order.is_archived,
        "carrier": order.carrier,
        "tracking_number": order.tracking_number,
        "details": order_details(order),
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


class OrderStore:
    """Persistent order store.

    Attributes:
        _session_factory: Callable returning a new SQLAlchemy session.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        """Initialize the store.

        Args:
            session_factory: Session factory, defaults to the application's
                SessionLocal.
        """
        self._session_factory = session_factory

    # =========================================================================
    # Batch submission
    # =========================================================================

    def submit_batch(
        self, records: Sequence[OrderRecord], deadline: float | None = None
    ) -> StoreResult:
        """Insert all records in a single transaction.

        Nothing is inserted if any order number already exists, the
        database rejects the batch, or the deadline passes before commit.

        Args:
            records: Validated order records.
            deadline: time.monotonic() value after which the transaction
                is rolled back instead of committed (None: no deadline).

        Returns:
            StoreResult with success flag, message and inserted count.
        """
        if not records:
            return StoreResult(success=False, message=format_message("E-1002"))

        order_numbers = [r.order_number for r in records]
        with self._session_factory() as db:
            try:
                existing = db.scalars(
                    select(Order.order_number).where(
                        Order.order_number.in_(order_numbers)
                    )
                ).all()
                if existing:
                    raise DuplicateOrderError(sorted(existing))

                now = utc_now_iso()
                db.add_all(
                    [
                        Order(
                            order_number=r.order_number,
                            customer_name=r.customer_name,
                            department_key=r.department_key,
                            status=r.status.value,
                            warning_status=WarningStatus.none.value,
                            is_archived=False,
                            carrier=r.details.carrier,
                            tracking_number=r.details.tracking_number,
                            details=json.dumps(r.details.to_dict(), ensure_ascii=False),
                            created_at=now,
                            updated_at=now,
                        )
                        for r in records
                    ]
                )
                if deadline is not None and time.monotonic() > deadline:
                    db.rollback()
                    logger.error(
                        "Deadline passed before committing %d orders", len(records)
                    )
                    return StoreResult(
                        success=False,
                        message=format_message("E-4002", details="订单保存超时"),
                    )
                db.commit()
            except DuplicateOrderError as e:
                logger.warning("Rejected batch with existing orders: %s", e)
                return StoreResult(
                    success=False, message=format_message("E-4002", details=str(e))
                )
            except IntegrityError as e:
                db.rollback()
                logger.error("Integrity error inserting %d orders: %s", len(records), e)
                return StoreResult(
                    success=False,
                    message=format_message("E-4002", details="订单号已存在或数据不完整"),
                )
            except SQLAlchemyError as e:
                db.rollback()
                logger.error("Database error inserting %d orders: %s", len(records), e)
                return StoreResult(
                    success=False, message=format_message("E-4001", details=str(e))
                )

        logger.info("Inserted %d orders", len(records))
        return StoreResult(
            success=True,
            message=f"成功导入 {len(records)} 个订单",
            created=len(records),
        )

    # =========================================================================
    # Lookup
    # =========================================================================

    def get_order(self, order_number: str) -> Order:
        """Get an order by its order number.

        Raises:
            NotFoundError: If no such order exists.
        """
        with self._session_factory() as db:
            return self._load(db, order_number)

    def list_orders(
        self,
        department_key: str | None = None,
        status: OrderStatus | None = None,
        include_archived: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Order]:
        """List orders with optional filtering and pagination.

        Args:
            department_key: Filter by department (optional).
            status: Filter by logistics status (optional).
            include_archived: Include archived orders.
            limit: Maximum number of orders to return.
            offset: Number of orders to skip.

        Returns:
            Orders ordered by created_at DESC.
        """
        query = select(Order)
        if department_key is not None:
            query = query.where(Order.department_key == department_key)
        if status is not None:
            query = query.where(Order.status == status.value)
        if not include_archived:
            query = query.where(Order.is_archived.is_(False))
        query = query.order_by(Order.created_at.desc(), Order.id.desc())
        query = query.limit(limit).offset(offset)
        with self._session_factory() as db:
            return list(db.scalars(query).all())

    def list_unsettled_records(self) -> list[OrderRecord]:
        """Records of every active order whose status is not final.

        Archived orders and orders in SETTLED_STATUSES are skipped.
        Oldest orders come first.
        """
        query = (
            select(Order)
            .where(Order.is_archived.is_(False))
            .where(Order.status.not_in([s.value for s in SETTLED_STATUSES]))
            .order_by(Order.created_at, Order.id)
        )
        with self._session_factory() as db:
            return [order_to_record(order) for order in db.scalars(query).all()]

    # =========================================================================
    # Archive lifecycle
    # =========================================================================

    def archive_order(self, order_number: str) -> Order:
        """Mark an order archived."""
        return self._set_archived(order_number, True)

    def restore_order(self, order_number: str) -> Order:
        """Move an archived order back to the active list."""
        return self._set_archived(order_number, False)

    def delete_order(self, order_number: str) -> None:
        """Permanently delete an archived order.

        Raises:
            NotFoundError: If no such order exists.
            ConflictError: If the order is not archived.
        """
        with self._session_factory() as db:
            order = self._load(db, order_number)
            if not order.is_archived:
                raise ConflictError(f"订单 {order_number} 未归档，不能删除")
            db.delete(order)
            db.commit()
        logger.info("Deleted order %s", order_number)

    # =========================================================================
    # Reconciliation results
    # =========================================================================

    def apply_sync_result(
        self,
        order_number: str,
        status: OrderStatus,
        warning_status: WarningStatus,
        details: dict[str, Any],
    ) -> Order:
        """Write a successful tracking sync onto an order.

        ``details`` is merged into the stored details JSON.
        """
        with self._session_factory() as db:
            order = self._load(db, order_number)
            merged = order_details(order)
            merged.update(details)
            order.status = status.value
            order.warning_status = warning_status.value
            order.details = json.dumps(merged, ensure_ascii=False)
            order.updated_at = utc_now_iso()
            db.commit()
            db.refresh(order)
            return order

    def record_sync_failure(self, order_number: str, error_message: str) -> Order:
        """Record a failed tracking sync on an order.

        The order's status is left unchanged.
        """
        with self._session_factory() as db:
            order = self._load(db, order_number)
            merged = order_details(order)
            merged.update(
                {
                    "logistics_query_failed": True,
                    "logistics_query_error": error_message,
                    "last_tracking_update": utc_now_iso(),
                }
            )
            order.details = json.dumps(merged, ensure_ascii=False)
            order.updated_at = utc_now_iso()
            db.commit()
            db.refresh(order)
            return order

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load(self, db: Session, order_number: str) -> Order:
        order = db.scalars(
            select(Order).where(Order.order_number == order_number)
        ).first()
        if order is None:
            raise NotFoundError("Order", order_number)
        return order

    def _set_archived(self, order_number: str, archived: bool) -> Order:
        with self._session_factory() as db:
            order = self._load(db, order_number)
            order.is_archived = archived
            order.updated_at = utc_now_iso()
            db.commit()
            db.refresh(order)
            logger.info(
                "%s order %s", "Archived" if archived else "Restored", order_number
            )
            return order
