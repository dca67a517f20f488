"""Typed domain exceptions for API error mapping.

These exceptions provide stronger API contract guarantees than
string-based error message matching. Routes can catch specific
exception types to return appropriate HTTP status codes.

Usage:
    # In service layer
    raise NotFoundError("Order", order_number)

    # In route handler
    try:
        order = store.get_order(order_number)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ConflictError(DomainError):
    """Resource conflict (e.g., a run already active). Maps to HTTP 409."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class DuplicateOrderError(ConflictError):
    """Order number already exists in the store. Maps to HTTP 409."""

    def __init__(self, order_numbers: list[str]) -> None:
        joined = ", ".join(order_numbers)
        super().__init__(f"订单号已存在: {joined}")
        self.order_numbers = order_numbers
