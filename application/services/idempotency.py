"""
Idempotency guard: event-level duplicate detection and order-level terminal checks.

The event log is an optional collaborator. Only its "duplicate" signal is
acted upon; every other failure degrades to "not logged, proceed".
"""
from __future__ import annotations

from enum import Enum
from typing import Callable, Optional

from core.logging_config import get_logger
from domain.common.exceptions import EventLogUnavailableError
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderPaymentState, TransitionTarget


logger = get_logger(__name__)


class EventLogOutcome(str, Enum):
    RECORDED = "recorded"
    DUPLICATE = "duplicate"
    DISABLED = "disabled"


class IdempotencyGuard:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        event_log_enabled: bool = True,
    ) -> None:
        self._uow_factory = uow_factory
        self._event_log_enabled = event_log_enabled

    async def record_event(self, event_id: str, event_type: str, provider: str) -> EventLogOutcome:
        if not self._event_log_enabled or not event_id:
            return EventLogOutcome.DISABLED
        try:
            async with self._uow_factory() as uow:
                recorded = await uow.event_log_repository.record(event_id, event_type, provider)
        except EventLogUnavailableError as exc:
            logger.warning("payment_event_log_unavailable", event_id=event_id, error=str(exc.details or exc.message))
            return EventLogOutcome.DISABLED
        except Exception as exc:
            # Logging must never block payment processing
            logger.warning("payment_event_log_failed", event_id=event_id, error=str(exc))
            return EventLogOutcome.DISABLED
        if not recorded:
            logger.info("payment_event_duplicate", event_id=event_id, event_type=event_type)
            return EventLogOutcome.DUPLICATE
        return EventLogOutcome.RECORDED

    async def release_event(self, event_id: Optional[str]) -> None:
        """Best-effort removal so the provider's next delivery is processed again."""
        if not self._event_log_enabled or not event_id:
            return
        try:
            async with self._uow_factory() as uow:
                await uow.event_log_repository.release(event_id)
            logger.info("payment_event_released", event_id=event_id)
        except Exception as exc:
            logger.warning("payment_event_release_failed", event_id=event_id, error=str(exc))

    @staticmethod
    def is_terminal(state: OrderPaymentState, target: TransitionTarget = TransitionTarget.PAID) -> bool:
        return state.blocks(target)
