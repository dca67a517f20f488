"""Row validation for order imports.

Turns raw spreadsheet rows into validated OrderRecords or per-row
RowValidationErrors. Rows are validated independently of one another;
every problem in a row is reported, and a row with any error yields no
record. Malformed input never raises: it is reported as an error.

Example:
    records, errors = validate_rows(rows, start_row=2)
    if errors:
        print("\\n".join(e.format_line() for e in errors))
"""

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

from src.errors import format_message
from src.services.carrier_codes import (
    CarrierCode,
    carrier_display_name,
    resolve_carrier_code,
)
from src.services.order_constants import (
    DEFAULT_ORDER_STATUS,
    FIELD_LABELS,
    OPTIONAL_DETAIL_FIELDS,
    REQUIRED_FIELDS,
    normalize_column,
    resolve_department_key,
    resolve_order_status,
)
from src.services.order_records import OrderDetails, OrderRecord, RowValidationError

logger = logging.getLogger(__name__)

# Digits plus the separators people type into phone cells
_PHONE_PATTERN = re.compile(r"^[0-9+\-\s]+$")

# Carriers whose tracking numbers are digits only
_NUMERIC_TRACKING_CARRIERS = {CarrierCode.ZHONGTONG.value}
_DIGITS_PATTERN = re.compile(r"^[0-9]+$")


def cell_text(value: Any) -> str:
    """Render a spreadsheet cell as stripped text.

    Integral floats (how spreadsheets store numeric order and phone
    columns) render without the trailing '.0'.
    """
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def normalize_row(row: Mapping[Any, Any]) -> dict[str, str]:
    """Map a raw row's headers to canonical keys and its cells to text.

    Unknown columns are dropped. When two headers map to the same key,
    the first non-empty value wins.
    """
    normalized: dict[str, str] = {}
    for header, value in row.items():
        key = normalize_column(header)
        if key is None:
            continue
        if not normalized.get(key):
            normalized[key] = cell_text(value)
    return normalized


class RowValidator:
    """Validates batches of raw rows.

    Attributes:
        start_row: Row number reported for the first row of a batch.
        default_department: Department applied to rows that leave the
            department column empty. None makes the column required.
    """

    def __init__(
        self,
        start_row: int = 1,
        default_department: str | None = None,
    ) -> None:
        self.start_row = start_row
        self.default_department: str | None = None
        if default_department:
            resolved = resolve_department_key(default_department)
            if resolved is None:
                raise ValueError(f"Unknown default department: {default_department}")
            self.default_department = resolved

    def validate(
        self, rows: Sequence[Any]
    ) -> tuple[list[OrderRecord], list[RowValidationError]]:
        """Validate every row of a batch.

        Args:
            rows: Raw rows, each a mapping of column header to cell value.

        Returns:
            Tuple of (records, errors). Records keep input order.
        """
        records: list[OrderRecord] = []
        errors: list[RowValidationError] = []
        seen_order_numbers: set[str] = set()

        for offset, row in enumerate(rows):
            row_number = self.start_row + offset
            try:
                record, row_errors = self._validate_row(
                    row, row_number, seen_order_numbers
                )
            except Exception as e:
                logger.warning("Unexpected error validating row %d: %s", row_number, e)
                record = None
                row_errors = [
                    RowValidationError(
                        row=row_number,
                        message=format_message("E-1006", details=str(e)),
                        code="E-1006",
                    )
                ]

            if row_errors:
                errors.extend(row_errors)
            elif record is not None:
                records.append(record)

        if errors:
            logger.info(
                "Validated %d rows: %d valid, %d errors",
                len(rows),
                len(records),
                len(errors),
            )
        return records, errors

    def _validate_row(
        self,
        row: Any,
        row_number: int,
        seen_order_numbers: set[str],
    ) -> tuple[OrderRecord | None, list[RowValidationError]]:
        """Validate one row, collecting all of its errors."""
        if not isinstance(row, Mapping):
            return None, [
                RowValidationError(
                    row=row_number,
                    message=format_message("E-1006", details="行数据格式无效"),
                    code="E-1006",
                )
            ]

        data = normalize_row(row)
        errors: list[RowValidationError] = []

        def fail(
            code: str, field: str, message: str | None = None, **context: object
        ) -> None:
            errors.append(
                RowValidationError(
                    row=row_number,
                    message=message
                    or format_message(code, field=FIELD_LABELS[field], **context),
                    code=code,
                    field=field,
                )
            )

        for field in REQUIRED_FIELDS:
            if field == "department_key" and self.default_department:
                continue
            if not data.get(field):
                fail("E-1001", field)

        order_number = data.get("order_number", "")
        if order_number:
            if order_number in seen_order_numbers:
                fail("E-1004", "order_number", value=order_number)
            seen_order_numbers.add(order_number)

        department_key = self.default_department
        raw_department = data.get("department_key", "")
        if raw_department:
            department_key = resolve_department_key(raw_department)
            if department_key is None:
                fail("E-1005", "department_key", value=raw_department)

        status = DEFAULT_ORDER_STATUS
        raw_status = data.get("status", "")
        if raw_status:
            resolved_status = resolve_order_status(raw_status)
            if resolved_status is None:
                fail("E-1003", "status", value=raw_status)
            else:
                status = resolved_status

        phone = data.get("phone", "")
        if phone and not _PHONE_PATTERN.match(phone):
            fail("E-1003", "phone", value=phone)

        tracking_number = data.get("tracking_number", "")
        carrier_code = resolve_carrier_code(data.get("carrier", ""))
        if (
            tracking_number
            and carrier_code in _NUMERIC_TRACKING_CARRIERS
            and not _DIGITS_PATTERN.match(tracking_number)
        ):
            fail(
                "E-1003",
                "tracking_number",
                message=f"{carrier_display_name(carrier_code)}单号必须是纯数字格式",
            )

        if errors or department_key is None:
            return None, errors

        details = OrderDetails(
            tracking_number=data["tracking_number"],
            carrier=data["carrier"],
            phone=phone,
            **{key: data.get(key) or None for key in OPTIONAL_DETAIL_FIELDS},
        )
        record = OrderRecord(
            order_number=order_number,
            customer_name=data["customer_name"],
            department_key=department_key,
            status=status,
            details=details,
        )
        return record, []


def validate_rows(
    rows: Sequence[Any],
    start_row: int = 1,
    default_department: str | None = None,
) -> tuple[list[OrderRecord], list[RowValidationError]]:
    """Validate raw rows with a one-off RowValidator.

    Args:
        rows: Raw rows, each a mapping of column header to cell value.
        start_row: Row number of the first row (2 when a header row precedes data).
        default_department: Department used when a row leaves it empty.

    Returns:
        Tuple of (records, errors).
    """
    validator = RowValidator(start_row=start_row, default_department=default_department)
    return validator.validate(rows)
