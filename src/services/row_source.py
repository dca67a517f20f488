"""Read raw import rows from CSV and Excel files.

Produces RawRows (header -> cell value dicts) for the row validator.
The first row is the header row, so the first data row is file row 2.
Trailing empty rows are dropped; empty rows between data rows are kept
so reported row numbers match the file.
"""

import csv
import io
from pathlib import Path
from typing import Any

from openpyxl import load_workbook

from src.services.order_constants import FIELD_LABELS, REQUIRED_FIELDS, normalize_column

SUPPORTED_SUFFIXES = (".csv", ".xlsx")

# Data rows start after the header row
FIRST_DATA_ROW = 2


class RowSourceError(ValueError):
    """The file could not be read as an import sheet."""


def _is_empty(values: list[Any]) -> bool:
    return all(v is None or (isinstance(v, str) and not v.strip()) for v in values)


def _build_rows(
    header: list[Any],
    data: list[list[Any]],
    require_department: bool,
) -> list[dict[str, Any]]:
    headers = ["" if h is None else str(h).strip() for h in header]
    present = {normalize_column(h) for h in headers}
    required = [
        f for f in REQUIRED_FIELDS if f != "department_key" or require_department
    ]
    missing = [FIELD_LABELS[f] for f in required if f not in present]
    if missing:
        raise RowSourceError(f"文件缺少必要列: {', '.join(missing)}")

    while data and _is_empty(data[-1]):
        data.pop()

    rows = []
    for values in data:
        row = {}
        for index, name in enumerate(headers):
            if name:
                row[name] = values[index] if index < len(values) else None
        rows.append(row)
    return rows


def read_csv(content: bytes | str, require_department: bool = True) -> list[dict[str, Any]]:
    """Parse CSV content into raw rows.

    Args:
        content: File bytes (UTF-8, BOM tolerated) or decoded text.
        require_department: Whether the department column must be present.

    Raises:
        RowSourceError: If the file is empty, undecodable or lacks a
            required column.
    """
    if isinstance(content, bytes):
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            try:
                text = content.decode("gb18030")
            except UnicodeDecodeError as e:
                raise RowSourceError("读取CSV文件失败: 无法识别文件编码") from e
    else:
        text = content

    try:
        records = list(csv.reader(io.StringIO(text)))
    except csv.Error as e:
        raise RowSourceError(f"解析CSV文件失败: {e}") from e
    if not records:
        raise RowSourceError("文件为空")
    return _build_rows(records[0], records[1:], require_department)


def read_xlsx(
    source: bytes | str | Path,
    sheet: str | None = None,
    require_department: bool = True,
) -> list[dict[str, Any]]:
    """Parse the first (or named) worksheet of an .xlsx workbook.

    Args:
        source: Workbook bytes or path.
        sheet: Worksheet name (default: first sheet).
        require_department: Whether the department column must be present.

    Raises:
        RowSourceError: If the workbook cannot be read or lacks a
            required column.
    """
    handle = io.BytesIO(source) if isinstance(source, bytes) else source
    try:
        wb = load_workbook(handle, read_only=True, data_only=True)
    except Exception as e:
        raise RowSourceError(f"解析Excel文件失败: {e}") from e

    try:
        if sheet is not None and sheet not in wb.sheetnames:
            raise RowSourceError(f"工作表不存在: {sheet}")
        ws = wb[sheet] if sheet is not None else wb.worksheets[0]
        records = [list(r) for r in ws.iter_rows(values_only=True)]
    finally:
        wb.close()

    if not records:
        raise RowSourceError("文件为空")
    return _build_rows(records[0], records[1:], require_department)


def read_rows(
    path: str | Path,
    require_department: bool = True,
) -> list[dict[str, Any]]:
    """Read raw rows from a .csv or .xlsx file.

    Raises:
        FileNotFoundError: If the file does not exist.
        RowSourceError: If the type is unsupported or the file is invalid.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Import file not found: {path}")
    return read_upload(file_path.name, file_path.read_bytes(), require_department)


def read_upload(
    filename: str,
    content: bytes,
    require_department: bool = True,
) -> list[dict[str, Any]]:
    """Read raw rows from uploaded file content, dispatching on extension."""
    suffix = Path(filename).suffix.lower()
    if suffix == ".csv":
        return read_csv(content, require_department)
    if suffix == ".xlsx":
        return read_xlsx(content, require_department=require_department)
    raise RowSourceError(
        f"不支持的文件类型: {suffix or filename} (支持 {', '.join(SUPPORTED_SUFFIXES)})"
    )
