"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel
from .payment_event import PaymentEventModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "PaymentEventModel",
]
