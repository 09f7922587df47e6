"""create_billing_tables

Revision ID: 3f1c2a9b7d40
Revises:
Create Date: 2025-10-19 09:30:12.418503

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f1c2a9b7d40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('email', sa.String(length=255), nullable=False, comment='邮箱（小写）'),
        sa.Column('name', sa.String(length=200), nullable=True, comment='姓名'),
        sa.Column('polar_customer_id', sa.String(length=100), nullable=True, comment='Polar 客户ID'),
        sa.Column('subscription_tier', sa.String(length=20), nullable=False, server_default='free', comment='订阅等级: free/pro/enterprise'),
        sa.Column('subscription_id', sa.String(length=100), nullable=True, comment='Polar 订阅ID'),
        sa.Column('subscription_ends_at', sa.DateTime(timezone=True), nullable=True, comment='订阅到期时间'),
        sa.Column('payment_ids', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb"), comment='关联支付ID列表'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('polar_customer_id', name='uq_users_polar_customer_id'),
        comment='用户表，订阅等级由 Polar webhook 投影而来'
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_subscription_id', 'users', ['subscription_id'], unique=False)

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('checkout_id', sa.String(length=100), nullable=False, comment='Polar checkout ID'),
        sa.Column('order_id', sa.String(length=100), nullable=True, comment='Polar 订单ID'),
        sa.Column('subscription_id', sa.String(length=100), nullable=True, comment='Polar 订阅ID'),
        sa.Column('customer_id', sa.String(length=100), nullable=True, comment='Polar 客户ID'),
        sa.Column('customer_email', sa.String(length=255), nullable=True, comment='客户邮箱（小写）'),
        sa.Column('product_id', sa.String(length=100), nullable=True, comment='Polar 产品ID'),
        sa.Column('product_name', sa.String(length=200), nullable=True, comment='产品名称'),
        sa.Column('amount', sa.Integer(), nullable=False, server_default='0', comment='折后金额（分）'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD', comment='货币代码 ISO-4217'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='支付状态: pending/completed/failed/refunded'),
        sa.Column('event_type', sa.String(length=50), nullable=False, comment='最后一次修改该记录的 Polar 事件'),
        sa.Column('discount_code', sa.String(length=100), nullable=True, comment='折扣码'),
        sa.Column('discount_id', sa.String(length=100), nullable=True, comment='Polar 折扣ID'),
        sa.Column('discount_amount', sa.Integer(), nullable=True, comment='折扣金额（分）'),
        sa.Column('discount_type', sa.String(length=20), nullable=True, comment='折扣类型: fixed/percentage'),
        sa.Column('original_amount', sa.Integer(), nullable=True, comment='折前金额（分）'),
        sa.Column('app_name', sa.String(length=50), nullable=True, comment='应用名称'),
        sa.Column('feature_date', sa.DateTime(timezone=True), nullable=True, comment='功能日期'),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), nullable=True, server_default=sa.text("'{}'::jsonb"), comment='扩展元数据'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
        comment='支付台账，每个 Polar checkout 一条记录'
    )
    op.create_index('ix_payments_checkout_id', 'payments', ['checkout_id'], unique=True)
    op.create_index('ix_payments_order_id', 'payments', ['order_id'], unique=False)
    op.create_index('ix_payments_subscription_id', 'payments', ['subscription_id'], unique=False)
    op.create_index('ix_payments_customer_id', 'payments', ['customer_id'], unique=False)
    op.create_index('ix_payments_customer_email', 'payments', ['customer_email'], unique=False)
    op.create_index('ix_payments_status', 'payments', ['status'], unique=False)
    op.create_index('ix_payments_created_at', 'payments', ['created_at'], unique=False, postgresql_using='btree')
    op.create_index('ix_payments_email_status', 'payments', ['customer_email', 'status'], unique=False)

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('polar_product_id', sa.String(length=100), nullable=False, comment='Polar 产品ID'),
        sa.Column('name', sa.String(length=100), nullable=False, comment='产品名称'),
        sa.Column('tier', sa.String(length=20), nullable=False, comment='对应订阅等级'),
        sa.Column('description', sa.Text(), nullable=True, comment='描述'),
        sa.Column('price', sa.Integer(), nullable=False, server_default='0', comment='价格（分）'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD', comment='货币代码'),
        sa.Column('interval', sa.String(length=20), nullable=False, server_default='month', comment='计费周期: month/year/one_time/forever'),
        sa.Column('features', postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb"), comment='功能列表'),
        sa.Column('highlighted', sa.Boolean(), nullable=False, server_default='false', comment='是否推荐'),
        sa.Column('active', sa.Boolean(), nullable=False, server_default='true', comment='是否上架'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
        comment='Polar 产品目录（只读参考数据）'
    )
    op.create_index('ix_products_polar_product_id', 'products', ['polar_product_id'], unique=True)
    op.create_index('ix_products_active', 'products', ['active'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_products_active', table_name='products')
    op.drop_index('ix_products_polar_product_id', table_name='products')
    op.drop_table('products')

    op.drop_index('ix_payments_email_status', table_name='payments')
    op.drop_index('ix_payments_created_at', table_name='payments', postgresql_using='btree')
    op.drop_index('ix_payments_status', table_name='payments')
    op.drop_index('ix_payments_customer_email', table_name='payments')
    op.drop_index('ix_payments_customer_id', table_name='payments')
    op.drop_index('ix_payments_subscription_id', table_name='payments')
    op.drop_index('ix_payments_order_id', table_name='payments')
    op.drop_index('ix_payments_checkout_id', table_name='payments')
    op.drop_table('payments')

    op.drop_index('ix_users_subscription_id', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
