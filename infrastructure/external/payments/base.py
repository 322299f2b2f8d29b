"""
Base payment client implementing shared concerns: retry, logging, mapping.

Concrete providers should subclass and implement provider-specific logic.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, Sequence

from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from core.logging_config import get_logger
from application.dtos.payments import WebhookEvent
from application.ports.payment_gateway import PaymentGateway
from infrastructure.external.payments.exceptions import PaymentRecoverableError
from shared.codes.payment_codes import PROVIDER_STATUS_TO_INTERNAL


logger = get_logger(__name__)


class BasePaymentClient(PaymentGateway):
    provider: str = "base"

    def __init__(
        self,
        *,
        retry: Optional[dict[str, Any]] = None,
    ) -> None:
        self._retry_cfg = retry or {"max": 2, "base": 0.2}

    async def _retry(self, fn: Callable[[], Awaitable[Any]]):
        """Retry recoverable provider errors (network, rate limit) with exponential backoff."""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(int(self._retry_cfg["max"]) + 1),
            wait=wait_exponential(multiplier=self._retry_cfg["base"], min=0.1, max=2.0),
            retry=retry_if_exception_type(PaymentRecoverableError),
            before_sleep=self._before_sleep,
            reraise=True,
        ):
            with attempt:
                return await fn()

    def _before_sleep(self, retry_state) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "payment_provider_retry",
            provider=self.provider,
            attempt=retry_state.attempt_number,
            error=str(exc) if exc else None,
        )

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        raise NotImplementedError

    async def retrieve_checkout_session(self, session_id: str, *, expand: Optional[Sequence[str]] = None) -> dict[str, Any]:  # type: ignore[override]
        raise NotImplementedError

    async def retrieve_payment_intent(self, intent_id: str, *, expand: Optional[Sequence[str]] = None) -> dict[str, Any]:  # type: ignore[override]
        raise NotImplementedError

    async def retrieve_charge(self, charge_id: str, *, expand: Optional[Sequence[str]] = None) -> dict[str, Any]:  # type: ignore[override]
        raise NotImplementedError

    # Helpers
    def _map_status(self, provider_status: Optional[str]) -> Optional[str]:
        if provider_status is None:
            return None
        mapping = PROVIDER_STATUS_TO_INTERNAL.get(self.provider, {})
        return mapping.get(provider_status, provider_status)

    def _log(self, event: str, **kwargs) -> None:
        logger.info(
            event,
            provider=self.provider,
            **kwargs,
        )
