"""add_order_payment_reconciliation

Revision ID: 4b1e2c7d9a10
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4b1e2c7d9a10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


_ORDER_COLUMNS = (
    sa.Column('payment_status', sa.String(length=32), nullable=True, comment='支付状态: unpaid/paid'),
    sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True, comment='支付完成时间'),
    sa.Column('payment_provider', sa.String(length=50), nullable=True, comment='支付提供商'),
    sa.Column('payment_intent_id', sa.String(length=255), nullable=True, comment='PaymentIntent ID'),
    sa.Column('charge_id', sa.String(length=255), nullable=True, comment='Charge ID'),
    sa.Column('checkout_session_id', sa.String(length=255), nullable=True, comment='Checkout Session ID'),
    sa.Column('payment_method_brand', sa.String(length=50), nullable=True, comment='卡品牌或钱包类型'),
    sa.Column('payment_last4', sa.String(length=4), nullable=True, comment='卡号后四位'),
    sa.Column('total_cents', sa.Integer(), nullable=True, comment='订单金额（分）'),
    sa.Column('currency', sa.String(length=3), nullable=True, comment='货币代码 ISO-4217'),
    sa.Column('refunded_cents', sa.Integer(), nullable=True, comment='累计退款金额（分）'),
    sa.Column('refunded_at', sa.DateTime(timezone=True), nullable=True, comment='退款时间'),
)


def upgrade() -> None:
    # orders 表由上游下单流程创建，这里只补充支付对账字段
    for column in _ORDER_COLUMNS:
        op.execute(
            f"ALTER TABLE orders ADD COLUMN IF NOT EXISTS {column.name} "
            f"{column.type.compile(dialect=op.get_bind().dialect)}"
        )
    op.create_index('ix_orders_payment_intent_id', 'orders', ['payment_intent_id'], unique=False, if_not_exists=True)
    op.create_index('ix_orders_checkout_session_id', 'orders', ['checkout_session_id'], unique=False, if_not_exists=True)

    op.create_table(
        'payment_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_id', sa.String(length=255), nullable=False, comment='支付渠道事件ID'),
        sa.Column('event_type', sa.String(length=100), nullable=True, comment='事件类型'),
        sa.Column('provider', sa.String(length=50), nullable=True, comment='支付提供商'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='接收时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('event_id', name='uq_payment_events_event_id'),
        comment='已处理的支付 webhook 事件，用于事件级幂等'
    )


def downgrade() -> None:
    op.drop_table('payment_events')
    op.drop_index('ix_orders_checkout_session_id', table_name='orders', if_exists=True)
    op.drop_index('ix_orders_payment_intent_id', table_name='orders', if_exists=True)
    # 支付字段保留：它们可能在本迁移之前就已存在
