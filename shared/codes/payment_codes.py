"""
Payment specific codes, reconciliation reasons and provider status mapping.
"""
from __future__ import annotations

from enum import Enum, IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002

    # Order store errors (61xxx)
    ORDER_STORE_ERROR = 61000
    EVENT_LOG_UNAVAILABLE = 61001


class ReconcileReason(str, Enum):
    """Reason codes echoed back in reconciliation acknowledgments."""

    APPLIED = "applied"
    DUPLICATE_EVENT = "duplicate_event"
    INVALID_ORDER_ID = "invalid_order_id"
    MISSING_ORDER_ID = "missing_order_id"
    NOT_FOUND = "not_found"
    ALREADY_TERMINAL = "already_terminal"
    NOT_PAID = "not_paid"
    READ_FAILED = "read_failed"
    UPDATE_FAILED = "update_failed"
    PARTIALLY_REFUNDED = "partially_refunded"
    REFUND_NOT_SUCCEEDED = "refund_not_succeeded"
    REFUND_UNSUPPORTED = "refund_unsupported"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    NO_ACTION = "no_action"


# Reasons that mean "the store could not complete a required mutation";
# the asynchronous path answers these with a 5xx so the provider retries.
RETRYABLE_REASONS = frozenset({ReconcileReason.READ_FAILED, ReconcileReason.UPDATE_FAILED})


PROVIDER_STATUS_TO_INTERNAL = {
    "stripe": {
        "requires_payment_method": "failed",
        "requires_confirmation": "pending",
        "requires_action": "pending",
        "processing": "pending",
        "requires_capture": "pending",
        "succeeded": "succeeded",
        "canceled": "canceled",
        # checkout session status / payment_status
        "open": "pending",
        "complete": "succeeded",
        "expired": "expired",
        "unpaid": "pending",
        "paid": "succeeded",
        "no_payment_required": "succeeded",
    },
}
