"""Error code registry with E-XXXX format codes.

This module defines the error code system for LogiSync, organizing errors
into categories:
- E-1xxx: Import data errors
- E-3xxx: Tracking provider errors
- E-4xxx: System/internal errors

Each error includes a code, title, message template, and remediation steps.
Message templates are user-facing and therefore localized.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    DATA = "data"  # E-1xxx: Import data errors
    TRACKING = "tracking"  # E-3xxx: Tracking provider errors
    SYSTEM = "system"  # E-4xxx: System/internal errors


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action user should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
    """

    code: str  # E-XXXX format
    category: ErrorCategory
    title: str  # Short title for display
    message_template: str  # Message with {placeholders}
    remediation: str  # Action user should take
    is_retryable: bool = False  # Can be retried without user action


# Error registry - all defined error codes
ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Data errors (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.DATA,
        title="Missing Required Field",
        message_template="{field}不能为空",
        remediation="Fill in the missing column in the spreadsheet and re-upload.",
    ),
    "E-1002": ErrorCode(
        code="E-1002",
        category=ErrorCategory.DATA,
        title="Empty Batch",
        message_template="没有可导入的有效数据",
        remediation="Check that the uploaded file contains data rows.",
    ),
    "E-1003": ErrorCode(
        code="E-1003",
        category=ErrorCategory.DATA,
        title="Invalid Field Value",
        message_template="{field}格式不正确: {value}",
        remediation="Correct the value in the spreadsheet and re-upload.",
    ),
    "E-1004": ErrorCode(
        code="E-1004",
        category=ErrorCategory.DATA,
        title="Duplicate Order Number",
        message_template="订单号重复: {value}",
        remediation="Order numbers must be unique within a file.",
    ),
    "E-1005": ErrorCode(
        code="E-1005",
        category=ErrorCategory.DATA,
        title="Unknown Department",
        message_template="未知的业务部门: {value}",
        remediation="Use one of the configured department keys (EAST, SOUTH, ...).",
    ),
    "E-1006": ErrorCode(
        code="E-1006",
        category=ErrorCategory.DATA,
        title="Malformed Row",
        message_template="数据处理错误: {details}",
        remediation="The row could not be read. Check the file for merged or corrupt cells.",
    ),
    # Tracking provider errors (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.TRACKING,
        title="Tracking Provider Unavailable",
        message_template="物流查询服务不可用: {details}",
        remediation="Wait a few minutes and retry the synchronization.",
        is_retryable=True,
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.TRACKING,
        title="Tracking Provider Rate Limited",
        message_template="物流查询请求过于频繁: {details}",
        remediation="Reduce tracking.max_concurrency or retry later.",
        is_retryable=True,
    ),
    "E-3003": ErrorCode(
        code="E-3003",
        category=ErrorCategory.TRACKING,
        title="Carrier Not Recognized",
        message_template="无法识别该物流单号的快递公司",
        remediation="Fill in a known carrier name for the order.",
    ),
    "E-3004": ErrorCode(
        code="E-3004",
        category=ErrorCategory.TRACKING,
        title="Tracking Request Timed Out",
        message_template="物流查询超时: {details}",
        remediation="The provider is slow. Retry later or raise tracking.call_timeout.",
        is_retryable=True,
    ),
    "E-3005": ErrorCode(
        code="E-3005",
        category=ErrorCategory.TRACKING,
        title="Tracking Provider Error",
        message_template="物流查询失败: {details}",
        remediation="Check the tracking number and carrier. Contact support if it persists.",
    ),
    "E-3006": ErrorCode(
        code="E-3006",
        category=ErrorCategory.TRACKING,
        title="Tracking Task Not Finished",
        message_template="物流查询任务尚未完成，请稍后再试",
        remediation="Retry later or raise tracking.poll_attempts.",
        is_retryable=True,
    ),
    "E-3007": ErrorCode(
        code="E-3007",
        category=ErrorCategory.TRACKING,
        title="No Tracking Data",
        message_template="未找到物流信息",
        remediation="The carrier has no events for this number yet.",
    ),
    # System errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Database Error",
        message_template="数据库操作失败: {details}",
        remediation="This is a system error. Retry the operation. Contact support if issue persists.",
        is_retryable=True,
    ),
    "E-4002": ErrorCode(
        code="E-4002",
        category=ErrorCategory.SYSTEM,
        title="Order Store Rejected Batch",
        message_template="订单保存失败: {details}",
        remediation="Resolve the conflict (e.g. existing order numbers) and re-upload.",
    ),
    "E-4003": ErrorCode(
        code="E-4003",
        category=ErrorCategory.SYSTEM,
        title="Run Cancelled",
        message_template="已取消",
        remediation="Start a new import to synchronize the remaining orders.",
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category.

    Args:
        category: The error category to filter by.

    Returns:
        List of ErrorCode objects in the specified category.
    """
    return [e for e in ERROR_REGISTRY.values() if e.category == category]


def format_message(code: str, **context: object) -> str:
    """Render the message template for a code.

    Missing placeholders leave the template untouched rather than raising.

    Args:
        code: Error code in E-XXXX format.
        **context: Values substituted into the template.

    Returns:
        Formatted message, or a generic message for unknown codes.
    """
    error_def = get_error(code)
    if error_def is None:
        return f"Unknown error: {code}"
    try:
        return error_def.message_template.format(**context)
    except KeyError:
        return error_def.message_template
