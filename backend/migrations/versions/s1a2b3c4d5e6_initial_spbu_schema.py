"""initial spbu schema

Revision ID: s1a2b3c4d5e6
Revises:
Create Date: 2026-10-17 00:00:00.000000

This migration creates the complete SPBU accounting schema, including:
- users / session_tokens: attribution and bearer sessions
- gas_stations / user_gas_stations: tenant boundary and staff assignment
- coas: per-station chart of accounts (no stored balance)
- transactions / journal_entries: double-entry ledger with approval lifecycle
- products / tanks / tank_sales / unloads: fuel purchase reconciliation

Monthly closing idempotency:
- UNIQUE (gas_station_id, closing_year, closing_month) on transactions
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 's1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


def _created_at():
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'))


def upgrade():
    """
    Create all tables from scratch.

    WHY: Balances are never stored; they are aggregated from journal_entries
    of APPROVED transactions, so no balance column exists on coas.
    """

    # ============================================================================
    # users: Authentication and attribution
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_username', 'users', ['username'])
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_owner_id', 'users', ['owner_id'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_hash'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'])

    # ============================================================================
    # gas_stations: Tenant boundary (owned by an OWNER user)
    # ============================================================================
    op.create_table(
        'gas_stations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        _created_at(),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_id', 'name', name='uq_gas_stations_owner_name'),
        sa.UniqueConstraint('code', name='uq_gas_stations_code'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_gas_stations_owner_id', 'gas_stations', ['owner_id'])
    op.create_index('ix_gas_stations_code', 'gas_stations', ['code'])
    op.create_index('ix_gas_stations_status', 'gas_stations', ['status'])

    op.create_table(
        'user_gas_stations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('gas_station_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['gas_station_id'], ['gas_stations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'gas_station_id', name='uq_user_gas_station'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_user_gas_stations_user_id', 'user_gas_stations', ['user_id'])
    op.create_index('ix_user_gas_stations_gas_station_id', 'user_gas_stations', ['gas_station_id'])

    # ============================================================================
    # coas: Chart of accounts, balances derived from journal_entries
    # ============================================================================
    op.create_table(
        'coas',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('gas_station_id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('category', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='ACTIVE'),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['gas_station_id'], ['gas_stations.id'], ),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('gas_station_id', 'name', name='uq_coas_station_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_coas_gas_station_id', 'coas', ['gas_station_id'])
    op.create_index('ix_coas_status', 'coas', ['status'])
    op.create_index('ix_coas_station_category', 'coas', ['gas_station_id', 'category'])

    # ============================================================================
    # products: Fuel products per station
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('gas_station_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('purchase_price', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('selling_price', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.ForeignKeyConstraint(['gas_station_id'], ['gas_stations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('gas_station_id', 'name', name='uq_products_station_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_gas_station_id', 'products', ['gas_station_id'])

    # ============================================================================
    # transactions: Ledger headers with approval lifecycle
    # ============================================================================
    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('gas_station_id', sa.Integer(), nullable=False),
        sa.Column('date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('reference_number', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('approval_status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('created_by_id', sa.Integer(), nullable=False),
        sa.Column('created_by_role', sa.String(length=32), nullable=True),
        sa.Column('approver_id', sa.Integer(), nullable=True),
        sa.Column('approved_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('rejected_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('approval_notes', sa.Text(), nullable=True),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('purchase_volume', sa.BigInteger(), nullable=True),
        sa.Column('delivered_volume', sa.BigInteger(), nullable=True),
        sa.Column('closing_year', sa.Integer(), nullable=True),
        sa.Column('closing_month', sa.Integer(), nullable=True),
        _created_at(),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['gas_station_id'], ['gas_stations.id'], ),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['approver_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('gas_station_id', 'closing_year', 'closing_month',
                            name='uq_transactions_station_closing_period'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_transactions_gas_station_id', 'transactions', ['gas_station_id'])
    op.create_index('ix_transactions_date', 'transactions', ['date'])
    op.create_index('ix_transactions_transaction_type', 'transactions', ['transaction_type'])
    op.create_index('ix_transactions_approval_status', 'transactions', ['approval_status'])
    op.create_index('ix_transactions_product_id', 'transactions', ['product_id'])
    op.create_index('ix_transactions_station_type_status', 'transactions',
                    ['gas_station_id', 'transaction_type', 'approval_status'])
    op.create_index('ix_transactions_station_date', 'transactions', ['gas_station_id', 'date'])

    op.create_table(
        'journal_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('coa_id', sa.Integer(), nullable=False),
        sa.Column('debit', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('credit', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.CheckConstraint('debit >= 0 AND credit >= 0', name='ck_journal_entries_non_negative'),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['coa_id'], ['coas.id'], ),
        sa.ForeignKeyConstraint(['created_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_journal_entries_transaction_id', 'journal_entries', ['transaction_id'])
    op.create_index('ix_journal_entries_coa_id', 'journal_entries', ['coa_id'])
    op.create_index('ix_journal_entries_coa_tx', 'journal_entries', ['coa_id', 'transaction_id'])

    # ============================================================================
    # tanks / tank_sales / unloads: Fuel volume tracking
    # ============================================================================
    op.create_table(
        'tanks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('gas_station_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=True),
        sa.Column('capacity', sa.BigInteger(), nullable=False),
        sa.Column('initial_stock', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('current_stock', sa.BigInteger(), nullable=False, server_default='0'),
        _created_at(),
        sa.CheckConstraint('capacity > 0', name='ck_tanks_capacity_positive'),
        sa.ForeignKeyConstraint(['gas_station_id'], ['gas_stations.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tanks_gas_station_id', 'tanks', ['gas_station_id'])
    op.create_index('ix_tanks_product_id', 'tanks', ['product_id'])

    op.create_table(
        'tank_sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tank_id', sa.Integer(), nullable=False),
        sa.Column('sold_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('volume', sa.BigInteger(), nullable=False),
        sa.Column('recorded_by_id', sa.Integer(), nullable=True),
        _created_at(),
        sa.CheckConstraint('volume > 0', name='ck_tank_sales_volume_positive'),
        sa.ForeignKeyConstraint(['tank_id'], ['tanks.id'], ),
        sa.ForeignKeyConstraint(['recorded_by_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_tank_sales_tank_id', 'tank_sales', ['tank_id'])
    op.create_index('ix_tank_sales_sold_at', 'tank_sales', ['sold_at'])

    op.create_table(
        'unloads',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tank_id', sa.Integer(), nullable=False),
        sa.Column('unloader_id', sa.Integer(), nullable=False),
        sa.Column('manager_id', sa.Integer(), nullable=True),
        sa.Column('purchase_transaction_id', sa.Integer(), nullable=False),
        sa.Column('delivery_transaction_id', sa.Integer(), nullable=True),
        sa.Column('initial_order_volume', sa.BigInteger(), nullable=False),
        sa.Column('delivered_volume', sa.BigInteger(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('invoice_number', sa.String(length=64), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        _created_at(),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('delivered_volume > 0', name='ck_unloads_delivered_positive'),
        sa.ForeignKeyConstraint(['tank_id'], ['tanks.id'], ),
        sa.ForeignKeyConstraint(['unloader_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['manager_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['purchase_transaction_id'], ['transactions.id'], ),
        sa.ForeignKeyConstraint(['delivery_transaction_id'], ['transactions.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_unloads_tank_id', 'unloads', ['tank_id'])
    op.create_index('ix_unloads_purchase_transaction_id', 'unloads', ['purchase_transaction_id'])
    op.create_index('ix_unloads_status', 'unloads', ['status'])
    op.create_index('ix_unloads_purchase_status', 'unloads', ['purchase_transaction_id', 'status'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('unloads')
    op.drop_table('tank_sales')
    op.drop_table('tanks')
    op.drop_table('journal_entries')
    op.drop_table('transactions')
    op.drop_table('products')
    op.drop_table('coas')
    op.drop_table('user_gas_stations')
    op.drop_table('gas_stations')
    op.drop_table('session_tokens')
    op.drop_table('users')
