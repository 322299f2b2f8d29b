"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from shared.codes.payment_codes import RETRYABLE_REASONS, ReconcileReason


class WebhookEvent(BaseModel):
    """A verified provider event; created only after signature verification."""

    id: str
    type: str
    provider: str
    data: dict[str, Any] = Field(default_factory=dict)
    livemode: Optional[bool] = None

    model_config = ConfigDict(frozen=True)

    @property
    def object(self) -> dict[str, Any]:
        obj = self.data.get("object") if isinstance(self.data, dict) else None
        return obj if isinstance(obj, dict) else {}


class PaymentMetadata(BaseModel):
    """Normalized card/wallet details extracted from a charge or intent."""

    brand: Optional[str] = None
    last4: Optional[str] = None
    charge_id: Optional[str] = None


class ReconcileResult(BaseModel):
    """Outcome of one reconciliation attempt, rendered as the acknowledgment body."""

    ok: bool = True
    reason: Optional[ReconcileReason] = None
    order_id: Optional[str] = None
    ignored: Optional[bool] = None
    skipped: Optional[bool] = None
    duplicate: Optional[bool] = None
    received: Optional[bool] = None
    event_type: Optional[str] = None
    error: Optional[str] = None

    @property
    def retryable(self) -> bool:
        return self.reason in RETRYABLE_REASONS

    @classmethod
    def applied(cls, order_id: str, reason: ReconcileReason = ReconcileReason.APPLIED) -> "ReconcileResult":
        return cls(ok=True, reason=reason, order_id=order_id)

    @classmethod
    def ignored_event(cls, reason: ReconcileReason, order_id: Optional[str] = None) -> "ReconcileResult":
        return cls(ok=True, ignored=True, reason=reason, order_id=order_id)

    @classmethod
    def failed(cls, reason: ReconcileReason, order_id: Optional[str] = None) -> "ReconcileResult":
        return cls(ok=False, reason=reason, order_id=order_id)

    def to_response(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class ConfirmRequest(BaseModel):
    """Client poll after returning from a redirect-based checkout."""

    session_id: Optional[str] = None
    payment_intent_id: Optional[str] = None
    order_id: Optional[str] = None

    @field_validator("session_id", "payment_intent_id", "order_id", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if v is None:
            return None
        s = str(v).strip()
        return s or None

    @model_validator(mode="after")
    def _require_identifier(self):
        if self.session_id:
            if not self.session_id.startswith("cs_"):
                raise ValueError("session_id must be a checkout session id")
        elif self.payment_intent_id:
            if not self.payment_intent_id.startswith("pi_"):
                raise ValueError("payment_intent_id must be a payment intent id")
        else:
            raise ValueError("session_id or payment_intent_id is required")
        return self


class ProviderStatusEcho(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None
    payment_status: Optional[str] = None


class ConfirmResult(BaseModel):
    ok: bool = True
    paid: bool = False
    order_id: Optional[str] = Field(default=None, serialization_alias="orderId")
    reason: Optional[ReconcileReason] = None
    session: Optional[ProviderStatusEcho] = None
    intent: Optional[ProviderStatusEcho] = None

    def to_response(self) -> dict[str, Any]:
        body = self.model_dump(mode="json", by_alias=True, exclude_none=True)
        # orderId is part of the contract even when unknown
        body.setdefault("orderId", None)
        return body
