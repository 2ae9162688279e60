"""initial ledger schema

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-03-01 00:00:00.000000

Creates the complete StockLedger schema:
- users: staff identities (credentials live upstream)
- products: catalog and the authoritative stock counter
- stock_adjustments / sales / purchases: the stock ledger
- expenses: operating costs, independent of stock
- audit_entries: append-only actor trail
- notifications: per-recipient alerts

Ledger rows carry no foreign key to products so history survives catalog
deletion.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1b2c3d4e5f6'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    # ============================================================================
    # users
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=False)
    op.create_index('ix_users_role', 'users', ['role'], unique=False)

    # ============================================================================
    # products: catalog + stock counter (optimistic version column)
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('cost_price_cents', sa.Integer(), nullable=False),
        sa.Column('selling_price_cents', sa.Integer(), nullable=False),
        sa.Column('stock_quantity', sa.Integer(), nullable=False),
        sa.Column('reorder_level', sa.Integer(), nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_category', 'products', ['category'], unique=False)
    op.create_index('ix_products_stock_quantity', 'products', ['stock_quantity'], unique=False)

    # ============================================================================
    # stock_adjustments: administrative overrides and opening balances
    # ============================================================================
    op.create_table(
        'stock_adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('previous_quantity', sa.Integer(), nullable=False),
        sa.Column('new_quantity', sa.Integer(), nullable=False),
        sa.Column('quantity_delta', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('adjusted_by_user_id', sa.Integer(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_adjustments_product_id', 'stock_adjustments', ['product_id'], unique=False)
    op.create_index('ix_stock_adjustments_adjusted_by_user_id', 'stock_adjustments', ['adjusted_by_user_id'], unique=False)
    op.create_index('ix_stock_adjustments_occurred_at', 'stock_adjustments', ['occurred_at'], unique=False)

    # ============================================================================
    # sales
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('product_price_cents', sa.Integer(), nullable=True),
        sa.Column('quantity_sold', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('total_price_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False),
        sa.Column('payment_status', sa.String(length=16), nullable=False),
        sa.Column('sold_by_user_id', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity_sold >= 1', name='ck_sales_quantity_positive'),
        sa.CheckConstraint('unit_price_cents >= 0', name='ck_sales_unit_price_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_product_id', 'sales', ['product_id'], unique=False)
    op.create_index('ix_sales_payment_status', 'sales', ['payment_status'], unique=False)
    op.create_index('ix_sales_sold_by_user_id', 'sales', ['sold_by_user_id'], unique=False)
    op.create_index('ix_sales_occurred_at', 'sales', ['occurred_at'], unique=False)
    op.create_index('ix_sales_occurred_product', 'sales', ['occurred_at', 'product_id'], unique=False)

    # ============================================================================
    # purchases
    # ============================================================================
    op.create_table(
        'purchases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=False),
        sa.Column('product_sku', sa.String(length=64), nullable=False),
        sa.Column('product_price_cents', sa.Integer(), nullable=True),
        sa.Column('quantity_purchased', sa.Integer(), nullable=False),
        sa.Column('unit_cost_cents', sa.Integer(), nullable=False),
        sa.Column('total_cost_cents', sa.Integer(), nullable=False),
        sa.Column('supplier', sa.String(length=255), nullable=False),
        sa.Column('purchased_by_user_id', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity_purchased >= 1', name='ck_purchases_quantity_positive'),
        sa.CheckConstraint('unit_cost_cents >= 0', name='ck_purchases_unit_cost_non_negative'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchases_product_id', 'purchases', ['product_id'], unique=False)
    op.create_index('ix_purchases_supplier', 'purchases', ['supplier'], unique=False)
    op.create_index('ix_purchases_purchased_by_user_id', 'purchases', ['purchased_by_user_id'], unique=False)
    op.create_index('ix_purchases_occurred_at', 'purchases', ['occurred_at'], unique=False)
    op.create_index('ix_purchases_occurred_product', 'purchases', ['occurred_at', 'product_id'], unique=False)

    # ============================================================================
    # expenses
    # ============================================================================
    op.create_table(
        'expenses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('receipt_number', sa.String(length=100), nullable=True),
        sa.Column('created_by_user_id', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_expenses_category', 'expenses', ['category'], unique=False)
    op.create_index('ix_expenses_created_by_user_id', 'expenses', ['created_by_user_id'], unique=False)
    op.create_index('ix_expenses_occurred_at', 'expenses', ['occurred_at'], unique=False)
    op.create_index('ix_expenses_occurred_category', 'expenses', ['occurred_at', 'category'], unique=False)

    # ============================================================================
    # audit_entries: append-only
    # ============================================================================
    op.create_table(
        'audit_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity_type', sa.String(length=32), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_audit_entries_actor_user_id', 'audit_entries', ['actor_user_id'], unique=False)
    op.create_index('ix_audit_entries_action', 'audit_entries', ['action'], unique=False)
    op.create_index('ix_audit_entries_occurred_at', 'audit_entries', ['occurred_at'], unique=False)
    op.create_index('ix_audit_entries_actor_occurred', 'audit_entries', ['actor_user_id', 'occurred_at'], unique=False)
    op.create_index('ix_audit_entries_entity', 'audit_entries', ['entity_type', 'entity_id'], unique=False)

    # ============================================================================
    # notifications
    # ============================================================================
    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('recipient_user_id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('link', sa.String(length=255), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_notifications_recipient_user_id', 'notifications', ['recipient_user_id'], unique=False)
    op.create_index('ix_notifications_recipient_read', 'notifications', ['recipient_user_id', 'is_read'], unique=False)
    op.create_index('ix_notifications_recipient_created', 'notifications', ['recipient_user_id', 'created_at'], unique=False)


def downgrade():
    for table in (
        'notifications',
        'audit_entries',
        'expenses',
        'purchases',
        'sales',
        'stock_adjustments',
        'products',
        'users',
    ):
        op.drop_table(table)
