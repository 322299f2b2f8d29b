"""
Stripe read-only adapter using the official stripe-python SDK.

Notes on SDK usage:
- Webhook verification uses `stripe.Webhook.construct_event` with the
  `Stripe-Signature` header; every configured secret is tried in order so a
  rotated secret keeps working until the old one is removed.
- Retrieval uses the async resource methods (`retrieve_async`) over the
  SDK's httpx client. Objects are converted with `to_dict()` at this
  boundary so nothing upstream depends on SDK types.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Optional, Sequence

import httpx
import stripe

from application.dtos.payments import WebhookEvent
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
)
from core.settings import payment_settings
from core.logging_config import get_logger


logger = get_logger(__name__)

SIGNATURE_HEADER = "Stripe-Signature"


def configure_stripe() -> None:
    """Process-wide SDK setup, done once at startup."""
    if payment_settings.stripe.secret_key:
        stripe.api_key = payment_settings.stripe.secret_key
    if payment_settings.stripe.api_version:
        stripe.api_version = payment_settings.stripe.api_version
    stripe.max_network_retries = 0
    t = payment_settings.timeouts
    stripe.default_http_client = stripe.HTTPXClient(
        timeout=httpx.Timeout(connect=t.connect, read=t.read, write=t.write, timeout=t.total),
    )
    logger.info("stripe_configured", api_version=payment_settings.stripe.api_version, secrets=len(payment_settings.stripe.all_webhook_secrets))


def _header(headers: Mapping[str, Any], name: str) -> Optional[str]:
    lowered = name.lower()
    for key, value in headers.items():
        if str(key).lower() == lowered:
            return str(value) if value else None
    return None


def _as_dict(obj: Any) -> dict[str, Any]:
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj or {})


class StripeClient(BasePaymentClient):
    provider = "stripe"

    def __init__(
        self,
        *,
        webhook_secrets: Optional[Sequence[str]] = None,
        tolerance: Optional[int] = None,
    ):
        super().__init__(
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
        )
        if webhook_secrets is None:
            webhook_secrets = payment_settings.stripe.all_webhook_secrets
        self._webhook_secrets = [s for s in webhook_secrets if s]
        self._tolerance = tolerance if tolerance is not None else payment_settings.webhook.tolerance_seconds

    def parse_webhook(self, headers: Mapping[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        if not self._webhook_secrets:
            raise PaymentSignatureError("Missing STRIPE__WEBHOOK_SECRET", provider=self.provider)
        sig = _header(headers, SIGNATURE_HEADER)
        if not sig:
            raise PaymentSignatureError("Missing Stripe-Signature header", provider=self.provider)

        last_error: Optional[Exception] = None
        for index, secret in enumerate(self._webhook_secrets):
            try:
                event = stripe.Webhook.construct_event(
                    payload=body,
                    sig_header=sig,
                    secret=secret,
                    tolerance=self._tolerance,
                )
            except stripe.SignatureVerificationError as exc:
                last_error = exc
                continue
            except ValueError as exc:
                raise PaymentSignatureError(f"Invalid payload: {exc}", provider=self.provider) from exc
            if index:
                logger.info("stripe_webhook_secondary_secret_matched", secret_index=index)
            return self._to_event(_as_dict(event))

        raise PaymentSignatureError(
            str(last_error) if last_error else "Signature verification failed",
            provider=self.provider,
            details={"secrets_tried": len(self._webhook_secrets)},
        ) from last_error

    def _to_event(self, payload: dict[str, Any]) -> WebhookEvent:
        data = payload.get("data")
        return WebhookEvent(
            id=str(payload.get("id") or ""),
            type=str(payload.get("type") or ""),
            provider=self.provider,
            data=data if isinstance(data, dict) else {},
            livemode=payload.get("livemode"),
        )

    async def retrieve_checkout_session(self, session_id: str, *, expand: Optional[Sequence[str]] = None) -> dict[str, Any]:  # type: ignore[override]
        return await self._retrieve("checkout_session", stripe.checkout.Session.retrieve_async, session_id, expand)

    async def retrieve_payment_intent(self, intent_id: str, *, expand: Optional[Sequence[str]] = None) -> dict[str, Any]:  # type: ignore[override]
        return await self._retrieve("payment_intent", stripe.PaymentIntent.retrieve_async, intent_id, expand)

    async def retrieve_charge(self, charge_id: str, *, expand: Optional[Sequence[str]] = None) -> dict[str, Any]:  # type: ignore[override]
        return await self._retrieve("charge", stripe.Charge.retrieve_async, charge_id, expand)

    async def _retrieve(
        self,
        kind: str,
        method: Callable[..., Awaitable[Any]],
        object_id: str,
        expand: Optional[Sequence[str]],
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"expand": list(expand)} if expand else {}

        async def call() -> dict[str, Any]:
            try:
                obj = await method(object_id, **params)
            except (stripe.APIConnectionError, stripe.RateLimitError) as exc:
                raise PaymentRecoverableError(str(exc), provider=self.provider, provider_code=exc.code) from exc
            except stripe.StripeError as exc:
                raise PaymentProviderError(
                    str(exc),
                    provider=self.provider,
                    provider_code=exc.code,
                    details={"object": kind, "id": object_id, "http_status": exc.http_status},
                ) from exc
            return _as_dict(obj)

        try:
            result = await self._retry(call)
        except (PaymentProviderError, PaymentRecoverableError) as exc:
            logger.error("stripe_retrieve_failed", kind=kind, object_id=object_id, error=exc.message)
            raise
        self._log("stripe_object_retrieved", kind=kind, object_id=object_id, status=self._map_status(result.get("status")))
        return result
