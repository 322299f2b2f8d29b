"""Business exceptions shared by the domain and infrastructure layers.

The core layer only maps them to HTTP responses; the domain never imports
from core.
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode
from shared.codes.payment_codes import PaymentCode


class BusinessException(Exception):
    """Base class for business errors."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class MethodNotAllowedException(BusinessException):
    def __init__(self, method: str, allowed: tuple[str, ...]):
        super().__init__(
            code=BusinessCode.METHOD_NOT_ALLOWED,
            message=f"Method {method} not allowed",
            error_type="MethodNotAllowed",
            details={"method": method, "allowed": list(allowed)},
        )


class OrderStoreError(BusinessException):
    """Order store read or conditional write failed."""

    def __init__(self, operation: str, *, order_id: Optional[str] = None, error: Optional[str] = None):
        details = {"operation": operation}
        if order_id:
            details["order_id"] = order_id
        if error:
            details["error"] = error
        super().__init__(
            code=PaymentCode.ORDER_STORE_ERROR,
            message=f"Order store {operation} failed",
            error_type="OrderStoreError",
            details=details,
        )
        self.operation = operation


class EventLogUnavailableError(BusinessException):
    """Idempotency log could not be written for a reason other than a duplicate."""

    def __init__(self, error: Optional[str] = None):
        super().__init__(
            code=PaymentCode.EVENT_LOG_UNAVAILABLE,
            message="Payment event log unavailable",
            error_type="EventLogUnavailable",
            details={"error": error} if error else None,
        )


class RefundUnsupportedError(BusinessException):
    def __init__(self, order_id: Optional[str] = None):
        super().__init__(
            code=BusinessCode.BUSINESS_ERROR,
            message="Refund application is not available",
            error_type="RefundUnsupported",
            details={"order_id": order_id} if order_id else None,
        )
