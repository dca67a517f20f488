"""Validated order records produced by the import pipeline.

These are the immutable units passed from the row validator to the
order store and the reconciler. A record only exists if its source row
passed every validation rule.
"""

from dataclasses import dataclass
from typing import Any

from src.db.models import OrderStatus


@dataclass(frozen=True)
class RowValidationError:
    """A single problem found in one source row."""

    row: int
    """1-based row number matching the source file."""

    message: str
    """Localized, user-facing message (e.g. '订单号不能为空')."""

    code: str = "E-1006"
    """Error code from the registry."""

    field: str | None = None
    """Canonical field name the error refers to, if any."""

    def format_line(self) -> str:
        """Render as one line of the import failure message."""
        return f"{self.row}行: {self.message}"


@dataclass(frozen=True)
class OrderDetails:
    """Shipping details carried alongside an order."""

    tracking_number: str
    """Carrier tracking number."""

    carrier: str
    """Carrier display name as imported (e.g. '顺丰速运')."""

    phone: str = ""
    """Recipient phone, empty if not supplied."""

    recipient: str | None = None
    destination: str | None = None
    product_info: str | None = None
    application_number: str | None = None
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON shape stored on the order row."""
        data: dict[str, Any] = {
            "tracking_number": self.tracking_number,
            "carrier": self.carrier,
            "phone": self.phone,
        }
        for key in (
            "recipient",
            "destination",
            "product_info",
            "application_number",
            "note",
        ):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass(frozen=True)
class OrderRecord:
    """A validated order ready for submission to the store."""

    order_number: str
    """Business order number, unique within the batch."""

    customer_name: str
    """Customer or project name, non-empty."""

    department_key: str
    """Canonical department key (EAST, SOUTH, ...)."""

    status: OrderStatus
    """Initial logistics status."""

    details: OrderDetails
    """Tracking number, carrier and contact details."""


@dataclass(frozen=True)
class SyncRequest:
    """Input to one tracking query-and-sync call."""

    order_number: str
    """Order the result is written back to."""

    tracking_number: str
    customer_name: str
    """Customer name, or the '未知' sentinel for names under two characters."""

    department_key: str
    phone: str
    carrier_code: str
    """Provider carrier code; empty when the carrier name did not resolve."""
