"""
Provider exceptions mapped onto BusinessException codes.

Recoverable errors are retried by the adapter; everything else surfaces to
the caller, which decides between a 5xx (webhook) and a degraded answer
(confirm-poll).
"""
from __future__ import annotations

from typing import Optional
from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode


def _provider_details(provider: str, provider_code: Optional[str], extra: Optional[dict]) -> dict:
    details = {"provider": provider}
    if provider_code:
        details["provider_code"] = provider_code
    if extra:
        details.update(extra)
    return details


class PaymentProviderError(BusinessException):
    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.PROVIDER_ERROR,
            message=message,
            error_type="PaymentProviderError",
            details=_provider_details(provider, provider_code, details),
        )


class PaymentRecoverableError(BusinessException):
    """Connection failures and rate limits."""

    def __init__(self, message: str, *, provider: str, provider_code: str | None = None, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.PROVIDER_RECOVERABLE,
            message=message,
            error_type="PaymentRecoverableError",
            details=_provider_details(provider, provider_code, details),
        )


class PaymentSignatureError(BusinessException):
    def __init__(self, message: str, *, provider: str, details: Optional[dict] = None):
        super().__init__(
            code=PaymentCode.SIGNATURE_ERROR,
            message=message,
            error_type="PaymentSignatureError",
            details=_provider_details(provider, None, details),
        )
