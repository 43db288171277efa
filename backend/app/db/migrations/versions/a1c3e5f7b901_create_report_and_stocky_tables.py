"""create report run state and stocky cache tables

Revision ID: a1c3e5f7b901
Revises:
Create Date: 2025-12-29 06:12:58.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = 'a1c3e5f7b901'
down_revision = None
branch_labels = None
depends_on = None


JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade() -> None:
    op.create_table(
        'report_run_state',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('shop', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.Column('period_qty_sold_lte', sa.Integer(), nullable=False),
        sa.Column('look_back_days', sa.Integer(), nullable=False),
        sa.Column('since_iso', sa.String(length=32), nullable=False),
        sa.Column('cursor', sa.Text(), nullable=True),
        sa.Column('done', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('processed_orders', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('sales_by_variant', JSON_TYPE, nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('report_rows', JSON_TYPE, nullable=True),
        sa.Column('variants_truncated', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('lease_token', sa.String(length=36), nullable=True),
        sa.Column('lease_expires_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_report_run_state')),
    )
    op.create_index('ix_report_run_state_shop_created_at', 'report_run_state', ['shop', 'created_at'], unique=False)

    op.create_table(
        'stocky_sync_state',
        sa.Column('shop', sa.String(length=255), nullable=False),
        sa.Column('full_offset', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('full_done', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('lease_token', sa.String(length=36), nullable=True),
        sa.Column('lease_expires_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('shop', name=op.f('pk_stocky_sync_state')),
    )

    op.create_table(
        'stocky_sku_receipt',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('shop', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=255), nullable=False),
        sa.Column('first_received_at', sa.DateTime(), nullable=True),
        sa.Column('last_received_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stocky_sku_receipt')),
        sa.UniqueConstraint('shop', 'sku', name='uq_stocky_sku_receipt_shop_sku'),
    )
    op.create_index('ix_stocky_sku_receipt_shop', 'stocky_sku_receipt', ['shop'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_stocky_sku_receipt_shop', table_name='stocky_sku_receipt')
    op.drop_table('stocky_sku_receipt')
    op.drop_table('stocky_sync_state')
    op.drop_index('ix_report_run_state_shop_created_at', table_name='report_run_state')
    op.drop_table('report_run_state')
