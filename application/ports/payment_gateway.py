"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
Provider objects cross the boundary as plain mappings so nothing above the
adapter depends on SDK types.
"""
from __future__ import annotations

from typing import Any, Optional, Protocol, Sequence, runtime_checkable

from application.dtos.payments import WebhookEvent


@runtime_checkable
class PaymentGateway(Protocol):
    """Read-only gateway for the reconciliation core.

    Implementations verify webhook authenticity synchronously and retrieve
    provider objects asynchronously; they never write to the provider.
    """

    provider: str

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent: ...

    async def retrieve_checkout_session(self, session_id: str, *, expand: Optional[Sequence[str]] = None) -> dict[str, Any]: ...

    async def retrieve_payment_intent(self, intent_id: str, *, expand: Optional[Sequence[str]] = None) -> dict[str, Any]: ...

    async def retrieve_charge(self, charge_id: str, *, expand: Optional[Sequence[str]] = None) -> dict[str, Any]: ...
