"""
Confirm-poll: synchronous reconciliation after a redirect-based checkout.

The client calls this right after returning from the provider, possibly
before the webhook arrives. Provider state is re-read a bounded number of
times; the loop always ends with an answer, never an error.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt, wait_chain, wait_fixed, wait_none

from application.dtos.payments import ConfirmRequest, ConfirmResult, ProviderStatusEcho
from application.ports.payment_gateway import PaymentGateway
from application.services.order_resolver import OrderIdentityResolver, ProviderObjectKind
from application.services.order_transition import OrderTransitionApplier
from application.services.payment_metadata import (
    as_mapping,
    object_id,
    paid_update_from_intent,
    paid_update_from_session,
)
from application.services.webhook_service import INTENT_EXPAND, PAID_SESSION_PAYMENT_STATUSES, SESSION_EXPAND
from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.common.unit_of_work import AbstractUnitOfWork
from shared.codes.payment_codes import ReconcileReason


logger = get_logger(__name__)


@dataclass
class ProviderSnapshot:
    session: Optional[Mapping[str, Any]] = None
    intent: Mapping[str, Any] = field(default_factory=dict)

    @property
    def paid(self) -> bool:
        # A complete session can still be unpaid (delayed payment methods)
        if self.session is not None:
            return self.session.get("payment_status") in PAID_SESSION_PAYMENT_STATUSES
        return self.intent.get("status") == "succeeded"


class ConfirmService:
    def __init__(
        self,
        gateway: PaymentGateway,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        resolver: Optional[OrderIdentityResolver] = None,
        applier: Optional[OrderTransitionApplier] = None,
        retry_delays: Sequence[float] = (0.4, 0.9, 1.5),
    ) -> None:
        self.gateway = gateway
        self.resolver = resolver or OrderIdentityResolver(uow_factory)
        self.applier = applier or OrderTransitionApplier(uow_factory)
        self.retry_delays = [max(0.0, float(d)) for d in retry_delays]

    async def confirm(self, req: ConfirmRequest) -> ConfirmResult:
        try:
            snapshot = await self._poll(req)
        except BusinessException as exc:
            logger.warning(
                "confirm_provider_unavailable",
                session_id=req.session_id,
                payment_intent_id=req.payment_intent_id,
                error=exc.message,
            )
            return ConfirmResult(ok=True, paid=False, order_id=req.order_id, reason=ReconcileReason.PROVIDER_UNAVAILABLE)

        resolution = await self._resolve(snapshot, req)

        if not snapshot.paid:
            logger.info(
                "confirm_not_paid",
                session_id=req.session_id,
                payment_intent_id=req.payment_intent_id,
            )
            return ConfirmResult(
                ok=True,
                paid=False,
                order_id=resolution.order_id,
                session=_echo(snapshot.session) if snapshot.session is not None else None,
                intent=_echo(snapshot.intent, with_payment_status=False) if snapshot.intent else None,
            )

        if not resolution.resolved:
            logger.warning("confirm_paid_order_unresolved", session_id=req.session_id, reason=resolution.reason)
            return ConfirmResult(ok=True, paid=True, reason=resolution.reason)

        if snapshot.session is not None:
            update = paid_update_from_session(snapshot.session, self.gateway.provider)
        else:
            update = paid_update_from_intent(snapshot.intent, self.gateway.provider)
        result = await self.applier.mark_paid(resolution.order_id, update)
        # A write failure is reported, not escalated; the webhook will retry it
        return ConfirmResult(ok=result.ok, paid=True, order_id=resolution.order_id, reason=result.reason)

    async def _poll(self, req: ConfirmRequest) -> ProviderSnapshot:
        if self.retry_delays:
            wait = wait_chain(*[wait_fixed(d) for d in self.retry_delays])
        else:
            wait = wait_none()
        retrying = AsyncRetrying(
            stop=stop_after_attempt(len(self.retry_delays) + 1),
            wait=wait,
            retry=retry_if_result(lambda snapshot: not snapshot.paid),
            # Out of attempts: hand back the last unpaid snapshot
            retry_error_callback=lambda state: state.outcome.result(),
        )
        return await retrying(self._fetch, req)

    async def _fetch(self, req: ConfirmRequest) -> ProviderSnapshot:
        if req.session_id:
            session = await self.gateway.retrieve_checkout_session(req.session_id, expand=SESSION_EXPAND)
            snapshot = ProviderSnapshot(session=session, intent=as_mapping(session.get("payment_intent")))
        else:
            intent = await self.gateway.retrieve_payment_intent(req.payment_intent_id, expand=INTENT_EXPAND)
            snapshot = ProviderSnapshot(intent=as_mapping(intent))
        logger.debug("confirm_provider_state", session_id=req.session_id, paid=snapshot.paid)
        return snapshot

    async def _resolve(self, snapshot: ProviderSnapshot, req: ConfirmRequest):
        if snapshot.session is not None:
            return await self.resolver.resolve(
                snapshot.session,
                kind=ProviderObjectKind.CHECKOUT_SESSION,
                hinted_order_id=req.order_id,
                checkout_session_id=object_id(snapshot.session.get("id")),
                payment_intent_id=object_id(snapshot.session.get("payment_intent")),
            )
        return await self.resolver.resolve(
            snapshot.intent,
            kind=ProviderObjectKind.PAYMENT_INTENT,
            hinted_order_id=req.order_id,
            payment_intent_id=object_id(snapshot.intent.get("id")) or req.payment_intent_id,
        )


def _echo(obj: Mapping[str, Any], *, with_payment_status: bool = True) -> ProviderStatusEcho:
    return ProviderStatusEcho(
        id=object_id(obj.get("id")),
        status=object_id(obj.get("status")),
        payment_status=object_id(obj.get("payment_status")) if with_payment_status else None,
    )
