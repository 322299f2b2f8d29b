"""
支付事件日志仓储 - 唯一约束实现 insert-if-absent
"""
from __future__ import annotations

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import EventLogUnavailableError
from domain.order.repository import PaymentEventLogRepository
from infrastructure.models.payment_event import PaymentEventModel


logger = get_logger(__name__)


class SQLAlchemyPaymentEventLogRepository(PaymentEventLogRepository):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(self, event_id: str, event_type: str, provider: str) -> bool:
        try:
            self.session.add(PaymentEventModel(event_id=event_id, event_type=event_type, provider=provider))
            await self.session.flush()
        except IntegrityError:
            # 事务已失效，回滚后由 UoW 跳过提交
            await self.session.rollback()
            return False
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise EventLogUnavailableError(str(e)) from e
        logger.debug("payment_event_recorded", event_id=event_id, event_type=event_type)
        return True

    async def release(self, event_id: str) -> None:
        try:
            await self.session.execute(delete(PaymentEventModel).where(PaymentEventModel.event_id == event_id))
        except SQLAlchemyError as e:
            raise EventLogUnavailableError(str(e)) from e
