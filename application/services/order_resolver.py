"""
Order identity resolution for provider objects.

Sources are tried in priority order and the first non-empty value wins:
metadata order id, client reference id (checkout sessions), a hint from a
synchronous caller, then a reverse lookup of provider ids already stored on
an order. A winning value that is not a UUID is rejected outright; it never
falls through to a lower-priority source.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from application.services.payment_metadata import as_mapping, object_id
from core.logging_config import get_logger
from domain.common.exceptions import OrderStoreError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import is_valid_order_id
from shared.codes.payment_codes import ReconcileReason


logger = get_logger(__name__)


class ProviderObjectKind(str, Enum):
    CHECKOUT_SESSION = "checkout_session"
    PAYMENT_INTENT = "payment_intent"


class ResolutionSource(str, Enum):
    METADATA = "metadata"
    CLIENT_REFERENCE = "client_reference"
    HINT = "hint"
    CHECKOUT_SESSION_LOOKUP = "checkout_session_lookup"
    PAYMENT_INTENT_LOOKUP = "payment_intent_lookup"


@dataclass(frozen=True)
class OrderResolution:
    order_id: Optional[str] = None
    source: Optional[ResolutionSource] = None
    candidate: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.order_id is not None

    @property
    def reason(self) -> Optional[ReconcileReason]:
        if self.resolved:
            return None
        if self.candidate is not None:
            return ReconcileReason.INVALID_ORDER_ID
        return ReconcileReason.MISSING_ORDER_ID


def _clean(value: Any) -> Optional[str]:
    if value is None or isinstance(value, Mapping):
        return None
    s = str(value).strip()
    return s or None


class OrderIdentityResolver:
    def __init__(
        self,
        uow_factory: Optional[Callable[..., AbstractUnitOfWork]] = None,
        *,
        metadata_keys: Sequence[str] = ("order_id", "orderId"),
    ) -> None:
        self._uow_factory = uow_factory
        self._metadata_keys = tuple(metadata_keys)

    def candidate_from_payload(
        self,
        obj: Any,
        *,
        kind: ProviderObjectKind,
        hinted_order_id: Optional[str] = None,
    ) -> tuple[Optional[str], Optional[ResolutionSource]]:
        """First non-empty id carried by the object itself (or the caller's hint)."""
        obj = as_mapping(obj)
        metadata = as_mapping(obj.get("metadata"))
        for key in self._metadata_keys:
            value = _clean(metadata.get(key))
            if value:
                return value, ResolutionSource.METADATA
        if kind is ProviderObjectKind.CHECKOUT_SESSION:
            value = _clean(obj.get("client_reference_id"))
            if value:
                return value, ResolutionSource.CLIENT_REFERENCE
        value = _clean(hinted_order_id)
        if value:
            return value, ResolutionSource.HINT
        return None, None

    async def resolve(
        self,
        obj: Any,
        *,
        kind: ProviderObjectKind,
        hinted_order_id: Optional[str] = None,
        checkout_session_id: Optional[str] = None,
        payment_intent_id: Optional[str] = None,
    ) -> OrderResolution:
        candidate, source = self.candidate_from_payload(obj, kind=kind, hinted_order_id=hinted_order_id)
        if candidate is not None:
            return self._validated(candidate, source)

        payload = as_mapping(obj)
        if kind is ProviderObjectKind.CHECKOUT_SESSION:
            checkout_session_id = checkout_session_id or _clean(payload.get("id"))
            payment_intent_id = payment_intent_id or object_id(payload.get("payment_intent"))
        else:
            payment_intent_id = payment_intent_id or _clean(payload.get("id"))

        found, source = await self._reverse_lookup(checkout_session_id, payment_intent_id)
        if found is None:
            logger.info(
                "order_id_unresolved",
                kind=kind.value,
                checkout_session_id=checkout_session_id,
                payment_intent_id=payment_intent_id,
            )
            return OrderResolution()
        return self._validated(found, source)

    def _validated(self, candidate: str, source: Optional[ResolutionSource]) -> OrderResolution:
        if not is_valid_order_id(candidate):
            logger.warning("order_id_invalid_ignored", candidate=candidate, source=source.value if source else None)
            return OrderResolution(candidate=candidate, source=source)
        return OrderResolution(order_id=candidate.strip(), source=source, candidate=candidate)

    async def _reverse_lookup(
        self,
        checkout_session_id: Optional[str],
        payment_intent_id: Optional[str],
    ) -> tuple[Optional[str], Optional[ResolutionSource]]:
        if self._uow_factory is None or not (checkout_session_id or payment_intent_id):
            return None, None
        try:
            async with self._uow_factory(readonly=True) as uow:
                if checkout_session_id:
                    found = await uow.order_repository.find_id_by_checkout_session(checkout_session_id)
                    if found:
                        return found, ResolutionSource.CHECKOUT_SESSION_LOOKUP
                if payment_intent_id:
                    found = await uow.order_repository.find_id_by_payment_intent(payment_intent_id)
                    if found:
                        return found, ResolutionSource.PAYMENT_INTENT_LOOKUP
        except OrderStoreError as exc:
            logger.warning(
                "order_reverse_lookup_failed",
                checkout_session_id=checkout_session_id,
                payment_intent_id=payment_intent_id,
                error=exc.message,
            )
        return None, None
