"""
订单仓储实现 - 只读写对账相关的支付字段
"""
from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import or_, select, text, update as sa_update
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import OrderStoreError, RefundUnsupportedError
from domain.order.entity import (
    REFUND_BLOCKING_STATUSES,
    TERMINAL_STATUSES,
    OrderPaymentState,
    OrderPaymentUpdate,
    OrderPaymentStatus,
    TransitionTarget,
)
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderModel


logger = get_logger(__name__)

_FUNCTION_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession, *, recalc_function: Optional[str] = None):
        self.session = session
        self.recalc_function = recalc_function

    async def get_payment_state(self, order_id: str) -> Optional[OrderPaymentState]:
        try:
            result = await self.session.execute(
                select(OrderModel.id, OrderModel.status, OrderModel.payment_status).where(OrderModel.id == order_id)
            )
            row = result.one_or_none()
        except SQLAlchemyError as e:
            raise OrderStoreError("read", order_id=order_id, error=str(e)) from e
        if row is None:
            return None
        return OrderPaymentState(order_id=row.id, status=row.status, payment_status=row.payment_status)

    async def find_id_by_checkout_session(self, checkout_session_id: str) -> Optional[str]:
        return await self._find_id(OrderModel.checkout_session_id == checkout_session_id, "lookup_checkout_session")

    async def find_id_by_payment_intent(self, payment_intent_id: str) -> Optional[str]:
        return await self._find_id(OrderModel.payment_intent_id == payment_intent_id, "lookup_payment_intent")

    async def _find_id(self, criterion, operation: str) -> Optional[str]:
        try:
            result = await self.session.execute(
                select(OrderModel.id).where(criterion).order_by(OrderModel.created_at.desc()).limit(1)
            )
            return result.scalars().first()
        except SQLAlchemyError as e:
            raise OrderStoreError(operation, error=str(e)) from e

    async def apply_payment_update(self, order_id: str, update: OrderPaymentUpdate) -> int:
        """条件更新：写入时再次排除终态订单，读写之间的并发退款/完成/取消不会被覆盖"""
        criteria = [OrderModel.id == order_id]
        if update.target is TransitionTarget.REFUNDED:
            criteria.append(OrderModel.status.notin_(sorted(REFUND_BLOCKING_STATUSES)))
        else:
            criteria.append(OrderModel.status.notin_(sorted(TERMINAL_STATUSES)))
            # payment_status 为 NULL 的行仍可更新
            criteria.append(or_(
                OrderModel.payment_status.is_(None),
                OrderModel.payment_status != OrderPaymentStatus.PAID.value,
            ))

        values = update.to_values()
        values["updated_at"] = datetime.now(timezone.utc)
        stmt = (
            sa_update(OrderModel)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
        except DBAPIError as e:
            if update.target is TransitionTarget.REFUNDED and "refunded_" in str(e.orig or e):
                # 退款字段尚未迁移
                raise RefundUnsupportedError(order_id) from e
            raise OrderStoreError("update", order_id=order_id, error=str(e)) from e
        except SQLAlchemyError as e:
            raise OrderStoreError("update", order_id=order_id, error=str(e)) from e
        return result.rowcount or 0

    async def recalc_totals(self, order_id: str) -> None:
        """调用数据库函数重算订单金额（可选）"""
        fn = self.recalc_function
        if not fn:
            return None
        if not _FUNCTION_NAME_RE.match(fn):
            logger.warning("order_recalc_function_invalid", function=fn)
            return None
        try:
            await self.session.execute(text(f"SELECT {fn}(:order_id)"), {"order_id": order_id})
        except SQLAlchemyError as e:
            raise OrderStoreError("recalc", order_id=order_id, error=str(e)) from e
        return None
