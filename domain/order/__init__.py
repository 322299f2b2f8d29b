from .entity import (
    OrderStatus,
    OrderPaymentStatus,
    OrderPaymentState,
    OrderPaymentUpdate,
    TransitionTarget,
    is_valid_order_id,
)
from .repository import OrderRepository, PaymentEventLogRepository

__all__ = [
    "OrderStatus",
    "OrderPaymentStatus",
    "OrderPaymentState",
    "OrderPaymentUpdate",
    "TransitionTarget",
    "is_valid_order_id",
    "OrderRepository",
    "PaymentEventLogRepository",
]
