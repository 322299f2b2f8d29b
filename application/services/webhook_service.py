"""
Webhook dispatcher: verify, deduplicate, classify, and route provider events.

This class depends only on the PaymentGateway port, the Unit of Work
factory and the reconciliation collaborators. Gateway implementations are
injected from the composition root (API dependencies).
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Callable, Optional

from application.dtos.payments import ReconcileResult, WebhookEvent
from application.ports.payment_gateway import PaymentGateway
from application.services.idempotency import EventLogOutcome, IdempotencyGuard
from application.services.order_resolver import OrderIdentityResolver, ProviderObjectKind
from application.services.order_transition import OrderTransitionApplier
from application.services.payment_metadata import (
    as_mapping,
    object_id,
    paid_update_from_intent,
    paid_update_from_session,
    to_cents,
)
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException, MethodNotAllowedException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderPaymentUpdate, TransitionTarget
from domain.payment.events import (
    CHECKOUT_KINDS,
    INTENT_KINDS,
    NOTICE_KINDS,
    REFUND_KINDS,
    PaymentEventKind,
    classify_event,
)
from shared.codes.payment_codes import PaymentCode, ReconcileReason


logger = get_logger(__name__)

SESSION_EXPAND = ("payment_intent.latest_charge", "payment_intent.payment_method")
INTENT_EXPAND = ("latest_charge", "payment_method")

PAID_SESSION_PAYMENT_STATUSES = frozenset({"paid", "no_payment_required"})


class WebhookService:
    def __init__(
        self,
        gateway: PaymentGateway,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        resolver: Optional[OrderIdentityResolver] = None,
        guard: Optional[IdempotencyGuard] = None,
        applier: Optional[OrderTransitionApplier] = None,
        ack_invalid_signature: bool = False,
    ) -> None:
        self.gateway = gateway
        self.resolver = resolver or OrderIdentityResolver(uow_factory)
        self.guard = guard or IdempotencyGuard(uow_factory)
        self.applier = applier or OrderTransitionApplier(uow_factory)
        self.ack_invalid_signature = ack_invalid_signature

    async def handle_webhook(self, method: str, headers: Mapping[str, Any], body: bytes) -> ReconcileResult:
        if (method or "").upper() != "POST":
            raise MethodNotAllowedException(method, ("POST",))

        try:
            event = self.gateway.parse_webhook(dict(headers), body)
        except BusinessException as exc:
            if exc.code != PaymentCode.SIGNATURE_ERROR:
                raise
            logger.warning("payment_webhook_signature_invalid", provider=self.gateway.provider, error=exc.message)
            if self.ack_invalid_signature:
                return ReconcileResult(ok=False, received=False, error="signature_invalid")
            raise
        logger.info("payment_webhook_parsed", provider=self.gateway.provider, event_type=event.type, event_id=event.id)

        outcome = await self.guard.record_event(event.id, event.type, event.provider)
        if outcome is EventLogOutcome.DUPLICATE:
            return ReconcileResult(ok=True, reason=ReconcileReason.DUPLICATE_EVENT, duplicate=True, event_type=event.type)

        try:
            result = await self.dispatch(event)
        except Exception:
            logger.exception("payment_webhook_failed", event_id=event.id, event_type=event.type)
            if outcome is EventLogOutcome.RECORDED:
                await self.guard.release_event(event.id)
            raise

        if result.retryable and outcome is EventLogOutcome.RECORDED:
            await self.guard.release_event(event.id)
        result.event_type = event.type
        logger.info(
            "payment_webhook_handled",
            event_id=event.id,
            event_type=event.type,
            ok=result.ok,
            reason=result.reason.value if result.reason else None,
            order_id=result.order_id,
        )
        return result

    async def dispatch(self, event: WebhookEvent) -> ReconcileResult:
        kind = classify_event(event.type)
        obj = event.object
        if kind in CHECKOUT_KINDS:
            return await self._handle_checkout_session(obj, kind)
        if kind is PaymentEventKind.CHARGE_SUCCEEDED:
            return await self._handle_charge_succeeded(obj)
        if kind in INTENT_KINDS:
            return await self._handle_payment_intent(obj)
        if kind in REFUND_KINDS:
            return await self._handle_refund(obj, kind)
        if kind in NOTICE_KINDS:
            logger.info("payment_event_notice", event_id=event.id, event_type=event.type, object_id=obj.get("id"))
            return ReconcileResult(ok=True, received=True, reason=ReconcileReason.NO_ACTION)
        logger.debug("payment_event_unhandled", event_id=event.id, event_type=event.type)
        return ReconcileResult(ok=True, received=True)

    async def _handle_checkout_session(self, obj: Mapping[str, Any], kind: PaymentEventKind) -> ReconcileResult:
        session_id = object_id(obj.get("id"))
        resolution = await self.resolver.resolve(
            obj,
            kind=ProviderObjectKind.CHECKOUT_SESSION,
            checkout_session_id=session_id,
            payment_intent_id=object_id(obj.get("payment_intent")),
        )
        if not resolution.resolved:
            return ReconcileResult.ignored_event(resolution.reason)

        session = await self.gateway.retrieve_checkout_session(session_id, expand=SESSION_EXPAND)
        if session.get("payment_status") not in PAID_SESSION_PAYMENT_STATUSES:
            # Delayed payment methods complete the session before funds arrive
            logger.info(
                "checkout_session_not_paid",
                checkout_session_id=session_id,
                order_id=resolution.order_id,
                kind=kind.value,
                payment_status=session.get("payment_status"),
            )
            return ReconcileResult(ok=True, reason=ReconcileReason.NOT_PAID, order_id=resolution.order_id)

        update = paid_update_from_session(session, self.gateway.provider)
        return await self.applier.mark_paid(resolution.order_id, update)

    async def _handle_payment_intent(self, obj: Mapping[str, Any]) -> ReconcileResult:
        intent_id = object_id(obj.get("id"))
        resolution = await self.resolver.resolve(obj, kind=ProviderObjectKind.PAYMENT_INTENT, payment_intent_id=intent_id)
        if not resolution.resolved:
            return ReconcileResult.ignored_event(resolution.reason)
        intent = await self.gateway.retrieve_payment_intent(intent_id, expand=INTENT_EXPAND)
        return await self._apply_paid_intent(resolution.order_id, intent)

    async def _handle_charge_succeeded(self, charge: Mapping[str, Any]) -> ReconcileResult:
        intent_id = object_id(charge.get("payment_intent"))
        if not intent_id:
            logger.info("charge_without_payment_intent", charge_id=charge.get("id"))
            return ReconcileResult.ignored_event(ReconcileReason.MISSING_ORDER_ID)
        intent = await self.gateway.retrieve_payment_intent(intent_id, expand=INTENT_EXPAND)
        metadata = {**as_mapping(charge.get("metadata")), **as_mapping(intent.get("metadata"))}
        resolution = await self.resolver.resolve(
            {"id": intent_id, "metadata": metadata},
            kind=ProviderObjectKind.PAYMENT_INTENT,
            payment_intent_id=intent_id,
        )
        if not resolution.resolved:
            return ReconcileResult.ignored_event(resolution.reason)
        return await self._apply_paid_intent(resolution.order_id, intent, charge=charge)

    async def _apply_paid_intent(
        self,
        order_id: str,
        intent: Mapping[str, Any],
        *,
        charge: Optional[Mapping[str, Any]] = None,
    ) -> ReconcileResult:
        if intent.get("status") != "succeeded":
            logger.info("payment_intent_not_paid", payment_intent_id=intent.get("id"), status=intent.get("status"))
            return ReconcileResult(ok=True, reason=ReconcileReason.NOT_PAID, order_id=order_id)
        update = paid_update_from_intent(intent, self.gateway.provider, charge=charge)
        return await self.applier.mark_paid(order_id, update)

    async def _handle_refund(self, obj: Mapping[str, Any], kind: PaymentEventKind) -> ReconcileResult:
        refund: Mapping[str, Any] = {}
        if kind is PaymentEventKind.REFUND_SUCCEEDED:
            refund = obj
            if refund.get("status") != "succeeded":
                logger.info("refund_not_succeeded", refund_id=refund.get("id"), status=refund.get("status"))
                return ReconcileResult.ignored_event(ReconcileReason.REFUND_NOT_SUCCEEDED)
            charge_id = object_id(refund.get("charge"))
            if not charge_id:
                return ReconcileResult.ignored_event(ReconcileReason.MISSING_ORDER_ID)
            charge = await self.gateway.retrieve_charge(charge_id, expand=["payment_intent"])
        else:
            charge = obj

        intent_id = object_id(charge.get("payment_intent"))
        intent = await self._refund_intent(charge, intent_id)
        # Intent metadata wins over charge metadata
        metadata = {**as_mapping(charge.get("metadata")), **as_mapping(intent.get("metadata"))}
        resolution = await self.resolver.resolve(
            {"id": intent_id, "metadata": metadata},
            kind=ProviderObjectKind.PAYMENT_INTENT,
            payment_intent_id=intent_id,
        )
        if not resolution.resolved:
            return ReconcileResult.ignored_event(resolution.reason)

        amount = to_cents(charge.get("amount"))
        refunded = to_cents(charge.get("amount_refunded"))
        if refunded is None:
            refunded = to_cents(refund.get("amount"))
        full_refund = bool(charge.get("refunded")) or (
            amount is not None and refunded is not None and amount > 0 and refunded >= amount
        )
        update = OrderPaymentUpdate(
            target=TransitionTarget.REFUNDED,
            payment_provider=self.gateway.provider,
            payment_intent_id=intent_id,
            charge_id=object_id(charge.get("id")),
            refunded_cents=refunded,
            full_refund=full_refund,
            currency=object_id(charge.get("currency")),
        )
        return await self.applier.mark_refunded(resolution.order_id, update)

    async def _refund_intent(self, charge: Mapping[str, Any], intent_id: Optional[str]) -> Mapping[str, Any]:
        intent = charge.get("payment_intent")
        if isinstance(intent, Mapping):
            return intent
        if not intent_id:
            return {}
        try:
            return await self.gateway.retrieve_payment_intent(intent_id)
        except BusinessException as exc:
            # The reverse lookup by intent id can still resolve the order
            logger.warning("refund_intent_retrieve_failed", payment_intent_id=intent_id, error=exc.message)
            return {}

