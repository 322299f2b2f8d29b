"""
已处理支付事件日志 - 用于 webhook 事件级幂等
"""
from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime, timezone

from .base import Base


class PaymentEventModel(Base):
    """event_id 唯一约束冲突即视为重复投递"""
    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(255), unique=True, nullable=False, comment="支付渠道事件ID")
    event_type = Column(String(100), nullable=True, comment="事件类型")
    provider = Column(String(50), nullable=True, comment="支付提供商")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="接收时间"
    )

    def __repr__(self):
        return f"<PaymentEventModel(event_id='{self.event_id}', event_type='{self.event_type}')>"
