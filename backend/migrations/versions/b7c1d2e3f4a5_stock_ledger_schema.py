"""stock ledger schema

Revision ID: b7c1d2e3f4a5
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates the complete schema:
- categories: category name -> product code prefix
- inventory_items: item master with cached on-hand quantity
- stock_movements: append-only stock ledger
- opname_sessions: persisted stock opname drafts (one per device)
- opname_history: committed stock opname summaries
- opname_monitoring: per item, per day discrepancy tracking
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b7c1d2e3f4a5'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # categories: product code prefixes
    # ============================================================================
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=3), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_categories_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_categories_code', 'categories', ['code'])

    # ============================================================================
    # inventory_items: item master
    # ============================================================================
    # quantity caches SUM(stock_movements.quantity); written only together
    # with the movement that explains it.
    op.create_table(
        'inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=16), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=120), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reorder_level', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('supplier', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code', name='uq_inventory_items_code'),
        sa.UniqueConstraint('sku', name='uq_inventory_items_sku'),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_items_quantity_nonneg'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_items_category_name', 'inventory_items', ['category', 'name'])
    op.create_index('ix_inventory_items_active', 'inventory_items', ['is_active'])

    # ============================================================================
    # stock_movements: append-only ledger
    # ============================================================================
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_code', sa.String(length=16), nullable=False),

        # in | out | adjustment
        sa.Column('type', sa.String(length=16), nullable=False),

        # Signed effect on the balance, never zero
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False, server_default='0'),

        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('reference', sa.String(length=128), nullable=True),
        sa.Column('idempotency_key', sa.String(length=128), nullable=True),

        sa.Column('created_by', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),

        sa.ForeignKeyConstraint(['item_code'], ['inventory_items.code'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('idempotency_key', name='uq_stock_movements_idempotency_key'),
        sa.CheckConstraint('quantity <> 0', name='ck_stock_movements_quantity_nonzero'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_item_code', 'stock_movements', ['item_code'])
    op.create_index('ix_stock_movements_type', 'stock_movements', ['type'])
    op.create_index('ix_stock_movements_created_at', 'stock_movements', ['created_at'])
    op.create_index('ix_stock_movements_item_created', 'stock_movements', ['item_code', 'created_at'])
    op.create_index('ix_stock_movements_reference', 'stock_movements', ['reference'])

    # ============================================================================
    # opname_sessions: one persisted draft per device
    # ============================================================================
    op.create_table(
        'opname_sessions',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('device_id', sa.String(length=64), nullable=False),
        sa.Column('mode', sa.String(length=16), nullable=False),
        sa.Column('last_view', sa.String(length=32), nullable=False),
        sa.Column('lines_json', sa.Text(), nullable=False),
        sa.Column('started_by', sa.String(length=64), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('device_id', name='uq_opname_sessions_device'),
    )

    # ============================================================================
    # opname_history: committed stock opname summaries
    # ============================================================================
    op.create_table(
        'opname_history',
        sa.Column('id', sa.String(length=40), nullable=False),
        sa.Column('session_id', sa.String(length=32), nullable=False),
        sa.Column('mode', sa.String(length=16), nullable=False),
        sa.Column('counted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('counted_by', sa.String(length=64), nullable=False),
        sa.Column('total_items', sa.Integer(), nullable=False),
        sa.Column('total_difference', sa.Integer(), nullable=False),
        sa.Column('total_value_difference_cents', sa.Integer(), nullable=False),
        sa.Column('duration_seconds', sa.Integer(), nullable=False),
        sa.Column('lines_json', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_opname_history_session_id', 'opname_history', ['session_id'])
    op.create_index('ix_opname_history_counted_at', 'opname_history', ['counted_at'])

    # ============================================================================
    # opname_monitoring: per item, per day discrepancy tracking
    # ============================================================================
    op.create_table(
        'opname_monitoring',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('item_code', sa.String(length=16), nullable=False),
        sa.Column('item_name', sa.String(length=255), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('so_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_difference', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_value_difference_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('consecutive_so_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='normal'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['item_code'], ['inventory_items.code'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('item_code', 'date', name='uq_opname_monitoring_item_date'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_opname_monitoring_item_code', 'opname_monitoring', ['item_code'])
    op.create_index('ix_opname_monitoring_date', 'opname_monitoring', ['date'])
    op.create_index('ix_opname_monitoring_status', 'opname_monitoring', ['status'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('opname_monitoring')
    op.drop_table('opname_history')
    op.drop_table('opname_sessions')
    op.drop_table('stock_movements')
    op.drop_table('inventory_items')
    op.drop_table('categories')
