"""
Error taxonomy for the ordering API.

Every anticipated failure is a QRMenuError carrying the HTTP status the API
answers with and a user-safe message. Internal detail stays in the log.
"""

from typing import Any, Iterable, Optional


class QRMenuError(Exception):
    """Base class for anticipated, per-request recoverable errors."""

    status_code = 500
    public_message = "Internal Server Error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.public_message
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message}


class OrderValidationError(QRMenuError):
    """Bad input shape or length, detected before any store access."""
    status_code = 400
    public_message = "Invalid request data"


class OrderNotFoundError(QRMenuError):
    """Raised when an order id does not exist in the store."""
    status_code = 404
    public_message = "Order not found"

    def __init__(self, order_id: Any):
        self.order_id = order_id
        super().__init__(f"Order {order_id} not found")


class ForbiddenError(QRMenuError):
    """The caller may not perform this operation (restricted mode, admin gate)."""
    status_code = 403
    public_message = "Forbidden"


class MigrationRequiredError(QRMenuError):
    """The backing schema lacks a column the write needs and no safe fallback exists."""
    status_code = 500
    public_message = "The database schema must be upgraded. Run the migration."

    def __init__(self, columns: Iterable[str] = (), message: Optional[str] = None):
        self.columns = tuple(columns)
        super().__init__(message)

    def to_payload(self) -> dict[str, Any]:
        return {"error": self.message, "needsMigration": True}


class StoreError(QRMenuError):
    """Store I/O failure; the detail is logged, the client sees a generic message."""

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        self.detail = detail
        super().__init__(message)


class StoreWriteError(StoreError):
    public_message = "Failed to save the order"


class StoreReadError(StoreError):
    public_message = "Failed to fetch orders"


class CatalogLoadError(StoreReadError):
    public_message = "Failed to load menu data"


class ColumnUnavailableError(Exception):
    """
    A write needs optional columns the current schema does not have.

    Signals a capability gap between the store and the reconciliation
    service; it never reaches the client directly.
    """

    def __init__(self, *columns: str):
        self.columns = columns
        super().__init__(f"Columns not available: {', '.join(columns)}")
