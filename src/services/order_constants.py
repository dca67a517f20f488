"""Canonical order import constants.

Single source of truth for business departments, order status labels,
import column headers and the user-facing field labels used in
validation messages.

Follows the same pattern as carrier_codes.py (Enum + parallel lookups +
alias dicts).
"""

from enum import Enum

from src.db.models import OrderStatus

# ---------------------------------------------------------------------------
# Departments
# ---------------------------------------------------------------------------


class Department(str, Enum):
    """Business departments that own imported orders."""

    EAST = "EAST"
    SOUTH = "SOUTH"
    NORTH = "NORTH"
    WEST = "WEST"
    CENTRAL = "CENTRAL"
    OVERSEAS = "OVERSEAS"


DEPARTMENT_DISPLAY_NAMES: dict[str, str] = {
    Department.EAST.value: "华东事业部",
    Department.SOUTH.value: "华南事业部",
    Department.NORTH.value: "华北事业部",
    Department.WEST.value: "华西事业部",
    Department.CENTRAL.value: "华中事业部",
    Department.OVERSEAS.value: "海外业务部",
}

VALID_DEPARTMENT_KEYS = frozenset(d.value for d in Department)

# Display name -> key, so spreadsheets may carry either form
DEPARTMENT_ALIASES: dict[str, str] = {
    name: key for key, name in DEPARTMENT_DISPLAY_NAMES.items()
}


def resolve_department_key(value: str) -> str | None:
    """Resolve a department key or display name to its canonical key.

    Args:
        value: Key (case-insensitive) or Chinese display name.

    Returns:
        Canonical department key, or None if unknown.
    """
    stripped = value.strip()
    if stripped.upper() in VALID_DEPARTMENT_KEYS:
        return stripped.upper()
    return DEPARTMENT_ALIASES.get(stripped)


# ---------------------------------------------------------------------------
# Order status labels
# ---------------------------------------------------------------------------

DEFAULT_ORDER_STATUS = OrderStatus.pending

ORDER_STATUS_LABELS: dict[str, str] = {
    OrderStatus.pending.value: "待发货",
    OrderStatus.in_transit.value: "运输中",
    OrderStatus.delivered.value: "已签收",
    OrderStatus.returned.value: "已退回",
}

ORDER_STATUS_ALIASES: dict[str, OrderStatus] = {
    label: OrderStatus(value) for value, label in ORDER_STATUS_LABELS.items()
}


def resolve_order_status(value: str) -> OrderStatus | None:
    """Resolve an enum value or Chinese label to an OrderStatus.

    Returns:
        The status, or None if the value matches nothing.
    """
    stripped = value.strip()
    try:
        return OrderStatus(stripped.lower())
    except ValueError:
        return ORDER_STATUS_ALIASES.get(stripped)


# ---------------------------------------------------------------------------
# Import columns
# ---------------------------------------------------------------------------

# Template header -> canonical row key
COLUMN_ALIASES: dict[str, str] = {
    "订单号": "order_number",
    "客户/项目名称": "customer_name",
    "客户名称": "customer_name",
    "业务部门": "department_key",
    "状态": "status",
    "快递单号": "tracking_number",
    "快递公司": "carrier",
    "收货人电话": "phone",
    "联系电话": "phone",
    "收货人": "recipient",
    "收货地址": "destination",
    "物料名称": "product_info",
    "申请单号/外部订单号": "application_number",
    "备注": "note",
}

# Canonical key -> label used in user-facing messages
FIELD_LABELS: dict[str, str] = {
    "order_number": "订单号",
    "customer_name": "客户/项目名称",
    "department_key": "业务部门",
    "status": "状态",
    "tracking_number": "快递单号",
    "carrier": "快递公司",
    "phone": "收货人电话",
    "recipient": "收货人",
    "destination": "收货地址",
    "product_info": "物料名称",
    "application_number": "申请单号/外部订单号",
    "note": "备注",
}

CANONICAL_COLUMNS = frozenset(FIELD_LABELS)

# Checked in this order so messages list fields the way the template does
REQUIRED_FIELDS: tuple[str, ...] = (
    "order_number",
    "customer_name",
    "department_key",
    "tracking_number",
    "carrier",
)

OPTIONAL_DETAIL_FIELDS: tuple[str, ...] = (
    "recipient",
    "destination",
    "product_info",
    "application_number",
    "note",
)


def normalize_column(header: object) -> str | None:
    """Map a source header to its canonical row key.

    Returns:
        Canonical key, or None for columns the importer does not use.
    """
    if not isinstance(header, str):
        return None
    stripped = header.strip()
    if stripped in COLUMN_ALIASES:
        return COLUMN_ALIASES[stripped]
    lowered = stripped.lower()
    if lowered in CANONICAL_COLUMNS:
        return lowered
    return None
