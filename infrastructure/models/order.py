"""
订单数据库模型 - SQLAlchemy ORM模型
注意：订单由上游下单流程创建，这里只映射对账需要写入的支付字段
"""
from sqlalchemy import Column, Integer, String, DateTime, Index
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    状态规则都在 domain.order.entity 中，这里不包含业务逻辑
    """
    __tablename__ = "orders"

    # 主键（UUID 字符串）
    id = Column(String(36), primary_key=True, comment="订单ID (UUID)")

    # 状态
    status = Column(
        String(32),
        nullable=False,
        default="pending",
        index=True,
        comment="订单状态: pending/paid/completed/canceled/refunded"
    )
    payment_status = Column(String(32), nullable=True, default="unpaid", comment="支付状态: unpaid/paid")
    paid_at = Column(DateTime(timezone=True), nullable=True, comment="支付完成时间")

    # 支付渠道信息
    payment_provider = Column(String(50), nullable=True, comment="支付提供商")
    payment_intent_id = Column(String(255), nullable=True, index=True, comment="PaymentIntent ID")
    charge_id = Column(String(255), nullable=True, comment="Charge ID")
    checkout_session_id = Column(String(255), nullable=True, index=True, comment="Checkout Session ID")
    payment_method_brand = Column(String(50), nullable=True, comment="卡品牌或钱包类型")
    payment_last4 = Column(String(4), nullable=True, comment="卡号后四位")

    # 金额信息（最小货币单位）
    total_cents = Column(Integer, nullable=True, comment="订单金额（分）")
    currency = Column(String(3), nullable=True, comment="货币代码 ISO-4217")

    # 退款信息
    refunded_cents = Column(Integer, nullable=True, comment="累计退款金额（分）")
    refunded_at = Column(DateTime(timezone=True), nullable=True, comment="退款时间")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        Index("ix_orders_status_payment_status", "status", "payment_status"),
    )

    def __repr__(self):
        return f"<OrderModel(id='{self.id}', status='{self.status}', payment_status='{self.payment_status}')>"
