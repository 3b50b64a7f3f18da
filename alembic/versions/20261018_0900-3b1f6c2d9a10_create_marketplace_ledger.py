"""create_marketplace_ledger

Revision ID: 3b1f6c2d9a10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3b1f6c2d9a10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False, comment='显示名称'),
        sa.Column('email', sa.String(length=100), nullable=False, comment='邮箱'),
        sa.Column('phone', sa.String(length=20), nullable=True, comment='手机号（可作为打款目标）'),
        sa.Column('upi_id', sa.String(length=320), nullable=True, comment='UPI ID'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('true'), comment='是否激活'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'], unique=False)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Create file_assets table
    op.create_table(
        'file_assets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False, comment='主键ID'),
        sa.Column('creator_id', sa.Integer(), nullable=False, comment='创作者用户ID'),
        sa.Column('key', sa.String(length=512), nullable=False, comment='对象存储中的Key（路径）'),
        sa.Column('size', sa.BigInteger(), nullable=False, server_default=sa.text('0'), comment='文件大小（字节）'),
        sa.Column('content_type', sa.String(length=100), nullable=True, comment='MIME类型'),
        sa.Column('original_filename', sa.String(length=255), nullable=True, comment='原始文件名'),
        sa.Column('price', sa.Numeric(precision=15, scale=2), nullable=False, server_default=sa.text('0'), comment='售价，0 表示免费'),
        sa.Column('is_public', sa.Boolean(), nullable=False, server_default=sa.text('false'), comment='是否公开上架'),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='扩展元数据（JSON）'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default=sa.text("'ready'"), comment='文件状态：processing/ready/deleted'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.ForeignKeyConstraint(['creator_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        comment='文件资源表，记录创作者上传的文件及售卖条件',
    )
    op.create_index('ix_file_assets_created_at', 'file_assets', ['created_at'], unique=False)
    op.create_index('ix_file_assets_creator_created', 'file_assets', ['creator_id', 'created_at'], unique=False)

    # Create payment_intents table (ledger)
    op.create_table(
        'payment_intents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_token', sa.String(length=100), nullable=False, comment='商户订单号/幂等令牌'),
        sa.Column('file_id', sa.Integer(), nullable=False, comment='文件ID'),
        sa.Column('creator_id', sa.Integer(), nullable=False, comment='创作者ID'),
        sa.Column('payer_id', sa.Integer(), nullable=False, comment='付款人ID'),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False, comment='支付金额'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='INR', comment='货币代码 ISO-4217'),
        sa.Column('platform_share', sa.Numeric(precision=15, scale=2), nullable=False, comment='平台佣金'),
        sa.Column('creator_share', sa.Numeric(precision=15, scale=2), nullable=False, comment='创作者收益'),
        sa.Column('state', sa.String(length=20), nullable=False, server_default='pending', comment='支付状态: pending/processing/completed/failed/refunded'),
        sa.Column('payout_state', sa.String(length=20), nullable=False, server_default='pending', comment='打款状态: pending/processing/completed/failed/not_required'),
        sa.Column('external_order_token', sa.String(length=100), nullable=True, comment='网关订单号 cf_order_id'),
        sa.Column('checkout_session_token', sa.String(length=500), nullable=True, comment='前端收银台会话凭证'),
        sa.Column('external_payment_token', sa.String(length=100), nullable=True, comment='网关支付流水号'),
        sa.Column('payment_method', sa.String(length=50), nullable=True, comment='支付方式'),
        sa.Column('bank_reference', sa.String(length=100), nullable=True, comment='银行参考号'),
        sa.Column('failure_reason', sa.Text(), nullable=True, comment='失败原因'),
        sa.Column('payout_token', sa.String(length=100), nullable=True, comment='打款转账ID'),
        sa.Column('payout_utr', sa.String(length=100), nullable=True, comment='打款 UTR'),
        sa.Column('payout_failure_reason', sa.Text(), nullable=True, comment='打款失败原因'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.Column('settled_at', sa.DateTime(timezone=True), nullable=True, comment='结算时间'),
        sa.Column('payout_at', sa.DateTime(timezone=True), nullable=True, comment='打款完成时间'),
        sa.ForeignKeyConstraint(['file_id'], ['file_assets.id']),
        sa.ForeignKeyConstraint(['creator_id'], ['users.id']),
        sa.ForeignKeyConstraint(['payer_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_order_token', name='uq_payment_intents_external_order_token'),
        sa.UniqueConstraint('external_payment_token', name='uq_payment_intents_external_payment_token'),
        sa.UniqueConstraint('payout_token', name='uq_payment_intents_payout_token'),
    )
    op.create_index('ix_payment_intents_id', 'payment_intents', ['id'], unique=False)
    op.create_index('ix_payment_intents_order_token', 'payment_intents', ['order_token'], unique=True)
    op.create_index('ix_payment_intents_file_id', 'payment_intents', ['file_id'], unique=False)
    op.create_index('ix_payment_intents_creator_id', 'payment_intents', ['creator_id'], unique=False)
    op.create_index('ix_payment_intents_payer_id', 'payment_intents', ['payer_id'], unique=False)
    op.create_index('ix_payment_intents_state', 'payment_intents', ['state'], unique=False)
    op.create_index('ix_payment_intents_payout_state', 'payment_intents', ['payout_state'], unique=False)
    op.create_index('ix_payment_intents_created_at', 'payment_intents', ['created_at'], unique=False)
    op.create_index('ix_payment_intents_file_payer', 'payment_intents', ['file_id', 'payer_id', 'created_at'], unique=False)
    op.create_index('ix_payment_intents_creator_state', 'payment_intents', ['creator_id', 'state'], unique=False)
    op.create_index('ix_payment_intents_payer_state', 'payment_intents', ['payer_id', 'state'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_payment_intents_payer_state', table_name='payment_intents')
    op.drop_index('ix_payment_intents_creator_state', table_name='payment_intents')
    op.drop_index('ix_payment_intents_file_payer', table_name='payment_intents')
    op.drop_index('ix_payment_intents_created_at', table_name='payment_intents')
    op.drop_index('ix_payment_intents_payout_state', table_name='payment_intents')
    op.drop_index('ix_payment_intents_state', table_name='payment_intents')
    op.drop_index('ix_payment_intents_payer_id', table_name='payment_intents')
    op.drop_index('ix_payment_intents_creator_id', table_name='payment_intents')
    op.drop_index('ix_payment_intents_file_id', table_name='payment_intents')
    op.drop_index('ix_payment_intents_order_token', table_name='payment_intents')
    op.drop_index('ix_payment_intents_id', table_name='payment_intents')
    op.drop_table('payment_intents')

    op.drop_index('ix_file_assets_creator_created', table_name='file_assets')
    op.drop_index('ix_file_assets_created_at', table_name='file_assets')
    op.drop_table('file_assets')

    op.drop_index('ix_users_email', table_name='users')
    op.drop_index('ix_users_id', table_name='users')
    op.drop_table('users')
