"""
Payment event classification.

Provider type tags are mapped onto a small closed set so the dispatcher routes
on meaning rather than on provider spelling. Domain stays free of SDK imports.
"""
from __future__ import annotations

from enum import Enum


class PaymentEventKind(str, Enum):
    CHECKOUT_COMPLETED = "checkout_completed"
    CHECKOUT_ASYNC_SUCCEEDED = "checkout_async_succeeded"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    CHARGE_SUCCEEDED = "charge_succeeded"
    REFUND_SUCCEEDED = "refund_succeeded"
    CHARGE_REFUNDED = "charge_refunded"
    CHECKOUT_EXPIRED = "checkout_expired"
    PAYMENT_FAILED = "payment_failed"
    OTHER = "other"


STRIPE_EVENT_KINDS: dict[str, PaymentEventKind] = {
    "checkout.session.completed": PaymentEventKind.CHECKOUT_COMPLETED,
    "checkout.session.async_payment_succeeded": PaymentEventKind.CHECKOUT_ASYNC_SUCCEEDED,
    "payment_intent.succeeded": PaymentEventKind.PAYMENT_SUCCEEDED,
    "charge.succeeded": PaymentEventKind.CHARGE_SUCCEEDED,
    # refund objects; the handler only acts once the refund status is "succeeded"
    "refund.created": PaymentEventKind.REFUND_SUCCEEDED,
    "refund.updated": PaymentEventKind.REFUND_SUCCEEDED,
    "charge.refund.updated": PaymentEventKind.REFUND_SUCCEEDED,
    "charge.refunded": PaymentEventKind.CHARGE_REFUNDED,
    "checkout.session.expired": PaymentEventKind.CHECKOUT_EXPIRED,
    "checkout.session.async_payment_failed": PaymentEventKind.PAYMENT_FAILED,
    "payment_intent.payment_failed": PaymentEventKind.PAYMENT_FAILED,
}

CHECKOUT_KINDS = frozenset({PaymentEventKind.CHECKOUT_COMPLETED, PaymentEventKind.CHECKOUT_ASYNC_SUCCEEDED})
INTENT_KINDS = frozenset({PaymentEventKind.PAYMENT_SUCCEEDED, PaymentEventKind.CHARGE_SUCCEEDED})
REFUND_KINDS = frozenset({PaymentEventKind.REFUND_SUCCEEDED, PaymentEventKind.CHARGE_REFUNDED})
NOTICE_KINDS = frozenset({PaymentEventKind.CHECKOUT_EXPIRED, PaymentEventKind.PAYMENT_FAILED})


def classify_event(event_type: str | None) -> PaymentEventKind:
    return STRIPE_EVENT_KINDS.get((event_type or "").strip(), PaymentEventKind.OTHER)
