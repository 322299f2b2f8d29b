"""
API依赖项 - 组装支付对账服务
"""
from functools import partial
from typing import Callable

from fastapi import Depends

from application.ports.payment_gateway import PaymentGateway
from application.services.confirm_service import ConfirmService
from application.services.idempotency import IdempotencyGuard
from application.services.order_resolver import OrderIdentityResolver
from application.services.order_transition import OrderTransitionApplier
from application.services.webhook_service import WebhookService
from core.settings import payment_settings
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.external.payments import get_payment_gateway
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork


def get_uow_factory() -> Callable[..., AbstractUnitOfWork]:
    return partial(SQLAlchemyUnitOfWork, recalc_function=payment_settings.reconcile.recalc_function)


def get_gateway() -> PaymentGateway:
    return get_payment_gateway()


def get_order_resolver(uow_factory=Depends(get_uow_factory)) -> OrderIdentityResolver:
    return OrderIdentityResolver(uow_factory, metadata_keys=payment_settings.reconcile.order_id_metadata_keys)


def get_transition_applier(uow_factory=Depends(get_uow_factory)) -> OrderTransitionApplier:
    reconcile = payment_settings.reconcile
    return OrderTransitionApplier(
        uow_factory,
        refunds_enabled=reconcile.refunds_enabled,
        recalc_enabled=bool(reconcile.recalc_function),
    )


async def get_webhook_service(
    gateway: PaymentGateway = Depends(get_gateway),
    uow_factory=Depends(get_uow_factory),
    resolver: OrderIdentityResolver = Depends(get_order_resolver),
    applier: OrderTransitionApplier = Depends(get_transition_applier),
) -> WebhookService:
    return WebhookService(
        gateway,
        uow_factory,
        resolver=resolver,
        guard=IdempotencyGuard(uow_factory, event_log_enabled=payment_settings.webhook.event_log_enabled),
        applier=applier,
        ack_invalid_signature=payment_settings.webhook.ack_invalid_signature,
    )


async def get_confirm_service(
    gateway: PaymentGateway = Depends(get_gateway),
    uow_factory=Depends(get_uow_factory),
    resolver: OrderIdentityResolver = Depends(get_order_resolver),
    applier: OrderTransitionApplier = Depends(get_transition_applier),
) -> ConfirmService:
    return ConfirmService(
        gateway,
        uow_factory,
        resolver=resolver,
        applier=applier,
        retry_delays=payment_settings.confirm.retry_delays,
    )
