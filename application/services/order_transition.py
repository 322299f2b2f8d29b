"""
Order state transition applier.

Read current state, stop on terminal, then write with a guard that excludes
canceled rows at write time. Identical re-applications are harmless, so
concurrent handlers racing on one order converge without locking.
"""
from __future__ import annotations

from typing import Callable, Optional

from application.dtos.payments import ReconcileResult
from application.services.idempotency import IdempotencyGuard
from core.logging_config import get_logger
from domain.common.exceptions import OrderStoreError, RefundUnsupportedError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderPaymentUpdate, TransitionTarget, is_valid_order_id
from shared.codes.payment_codes import ReconcileReason


logger = get_logger(__name__)


class OrderTransitionApplier:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        refunds_enabled: bool = True,
        recalc_enabled: bool = True,
    ) -> None:
        self._uow_factory = uow_factory
        self._refunds_enabled = refunds_enabled
        self._recalc_enabled = recalc_enabled

    async def mark_paid(self, order_id: Optional[str], update: OrderPaymentUpdate) -> ReconcileResult:
        update.target = TransitionTarget.PAID
        return await self._apply(order_id, update)

    async def mark_refunded(self, order_id: Optional[str], update: OrderPaymentUpdate) -> ReconcileResult:
        update.target = TransitionTarget.REFUNDED
        if not self._refunds_enabled:
            logger.info("order_refund_skipped", order_id=order_id, reason="refunds_disabled")
            return ReconcileResult(ok=True, skipped=True, reason=ReconcileReason.REFUND_UNSUPPORTED, order_id=order_id)
        try:
            return await self._apply(order_id, update)
        except RefundUnsupportedError:
            logger.info("order_refund_skipped", order_id=order_id, reason="store_unsupported")
            return ReconcileResult(ok=True, skipped=True, reason=ReconcileReason.REFUND_UNSUPPORTED, order_id=order_id)

    async def _apply(self, order_id: Optional[str], update: OrderPaymentUpdate) -> ReconcileResult:
        target = update.target
        if not is_valid_order_id(order_id):
            logger.warning("order_transition_invalid_order_id", order_id=order_id, target=target.value)
            return ReconcileResult.ignored_event(ReconcileReason.INVALID_ORDER_ID)

        try:
            async with self._uow_factory(readonly=True) as uow:
                state = await uow.order_repository.get_payment_state(order_id)
        except OrderStoreError as exc:
            logger.error("order_read_failed", order_id=order_id, target=target.value, error=str(exc.details))
            return ReconcileResult.failed(ReconcileReason.READ_FAILED, order_id)

        if state is None:
            # Unrelated event or the order row is not visible yet; never an error to the provider
            logger.warning("order_not_found", order_id=order_id, target=target.value)
            return ReconcileResult(ok=True, reason=ReconcileReason.NOT_FOUND, order_id=order_id)

        if IdempotencyGuard.is_terminal(state, target):
            logger.info(
                "order_already_terminal",
                order_id=order_id,
                status=state.status,
                payment_status=state.payment_status,
                target=target.value,
            )
            return ReconcileResult(ok=True, reason=ReconcileReason.ALREADY_TERMINAL, order_id=order_id)

        try:
            async with self._uow_factory() as uow:
                affected = await uow.order_repository.apply_payment_update(order_id, update)
        except OrderStoreError as exc:
            logger.error("order_update_failed", order_id=order_id, target=target.value, error=str(exc.details))
            return ReconcileResult.failed(ReconcileReason.UPDATE_FAILED, order_id)

        if not affected:
            # Canceled between the read and the write
            logger.info("order_update_excluded", order_id=order_id, target=target.value)
            return ReconcileResult(ok=True, reason=ReconcileReason.ALREADY_TERMINAL, order_id=order_id)

        logger.info(
            "order_transition_applied",
            order_id=order_id,
            target=target.value,
            payment_intent_id=update.payment_intent_id,
            charge_id=update.charge_id,
        )
        await self._recalc(order_id)

        if target is TransitionTarget.REFUNDED and not update.full_refund:
            return ReconcileResult.applied(order_id, ReconcileReason.PARTIALLY_REFUNDED)
        return ReconcileResult.applied(order_id)

    async def _recalc(self, order_id: str) -> None:
        if not self._recalc_enabled:
            return
        try:
            async with self._uow_factory() as uow:
                await uow.order_repository.recalc_totals(order_id)
        except Exception as exc:
            logger.warning("order_recalc_failed", order_id=order_id, error=str(exc))
