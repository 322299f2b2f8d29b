"""
Order payment facet - the slice of an order this service is allowed to mutate.

Business rules:
1. An order id must be a canonical UUID; anything else is never a write target.
2. completed/canceled (and paid, via either status column) are terminal for
   the paid transition; no event may regress or overwrite them.
3. A refund may follow a paid/completed order, but never a canceled or
   already refunded one.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    COMPLETED = "completed"
    CANCELED = "canceled"
    REFUNDED = "refunded"


class OrderPaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID = "paid"


class TransitionTarget(str, Enum):
    PAID = "paid"
    REFUNDED = "refunded"


TERMINAL_STATUSES = frozenset({OrderStatus.PAID.value, OrderStatus.COMPLETED.value, OrderStatus.CANCELED.value, OrderStatus.REFUNDED.value})
REFUND_BLOCKING_STATUSES = frozenset({OrderStatus.CANCELED.value, OrderStatus.REFUNDED.value})


def is_valid_order_id(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    return bool(_UUID_RE.match(value.strip()))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OrderPaymentState:
    """Current status columns of an order as read right before a write."""

    order_id: str
    status: Optional[str] = None
    payment_status: Optional[str] = None

    @property
    def normalized_status(self) -> str:
        return (self.status or "").lower()

    @property
    def normalized_payment_status(self) -> str:
        return (self.payment_status or "").lower()

    def is_terminal(self) -> bool:
        """Either status column reaching a terminal value blocks the paid transition."""
        return (
            self.normalized_status in TERMINAL_STATUSES
            or self.normalized_payment_status == OrderPaymentStatus.PAID.value
        )

    def blocks(self, target: TransitionTarget) -> bool:
        if target is TransitionTarget.REFUNDED:
            return self.normalized_status in REFUND_BLOCKING_STATUSES
        return self.is_terminal()


@dataclass
class OrderPaymentUpdate:
    """
    Fields applied by a single conditional write.

    Only non-None values are written so that a sparse event (e.g. a session
    without an expanded charge) never blanks out details stored earlier.
    """

    target: TransitionTarget = TransitionTarget.PAID
    payment_provider: Optional[str] = None
    payment_intent_id: Optional[str] = None
    charge_id: Optional[str] = None
    checkout_session_id: Optional[str] = None
    payment_method_brand: Optional[str] = None
    payment_last4: Optional[str] = None
    total_cents: Optional[int] = None
    currency: Optional[str] = None
    refunded_cents: Optional[int] = None
    full_refund: bool = True
    occurred_at: datetime = field(default_factory=_utcnow)

    def to_values(self) -> dict[str, Any]:
        values: dict[str, Any] = {
            "payment_provider": self.payment_provider,
            "payment_intent_id": self.payment_intent_id,
            "charge_id": self.charge_id,
            "checkout_session_id": self.checkout_session_id,
            "payment_method_brand": self.payment_method_brand,
            "payment_last4": self.payment_last4,
            "total_cents": self.total_cents,
            "currency": self.currency.lower() if self.currency else None,
        }
        if self.target is TransitionTarget.REFUNDED:
            values["refunded_cents"] = self.refunded_cents
            values["refunded_at"] = self.occurred_at
            if self.full_refund:
                values["status"] = OrderStatus.REFUNDED.value
        else:
            values["status"] = OrderStatus.PAID.value
            values["payment_status"] = OrderPaymentStatus.PAID.value
            values["paid_at"] = self.occurred_at
        return {k: v for k, v in values.items() if v is not None}
