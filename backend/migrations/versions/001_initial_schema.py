"""Initial schema - complete database setup

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18

Creates every table used by the asset tracker.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = '001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    'asset_type': ('MOBILE_PHONE', 'TABLET', 'DESKTOP', 'LAPTOP', 'MONITOR'),
    'asset_state': ('HOLDING', 'AVAILABLE', 'SIGNED_OUT', 'BUILDING', 'BUILT', 'READY_TO_GO', 'ISSUED'),
    'asset_status': ('holding', 'stock', 'active', 'recycled', 'repair'),
    'assignment_type': ('INDIVIDUAL', 'SHARED'),
    'user_role': ('ADMIN', 'USER'),
}


def _enum(name: str):
    # Types are created once up front; tables only reference them
    values = ENUMS[name]
    return sa.Enum(*values, name=name).with_variant(
        postgresql.ENUM(*values, name=name, create_type=False), 'postgresql'
    )


LIVE_ONLY = sa.text('deleted_at IS NULL')


def upgrade() -> None:
    """Create all tables."""
    bind = op.get_bind()
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).create(bind, checkfirst=True)

    # Locations table
    op.create_table('locations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_locations_name', 'locations', ['name'], unique=True)

    # Departments table
    op.create_table('departments',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('location_id', sa.Uuid(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_departments_name', 'departments', ['name'])

    # Users table
    op.create_table('users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('employee_id', sa.String(length=50), nullable=False),
        sa.Column('role', _enum('user_role'), nullable=False, server_default='USER'),
        sa.Column('department', sa.String(length=255), nullable=True),
        sa.Column('department_id', sa.Uuid(), nullable=True),
        sa.Column('location_id', sa.Uuid(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('google_sub', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['department_id'], ['departments.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('google_sub')
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_employee_id', 'users', ['employee_id'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])

    # Assets table
    op.create_table('assets',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('asset_number', sa.String(length=10), nullable=True),
        sa.Column('type', _enum('asset_type'), nullable=False),
        sa.Column('state', _enum('asset_state'), nullable=False, server_default='AVAILABLE'),
        sa.Column('status', _enum('asset_status'), nullable=False, server_default='holding'),
        sa.Column('serial_number', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('purchase_price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('location_id', sa.Uuid(), nullable=False),
        sa.Column('assignment_type', _enum('assignment_type'), nullable=False, server_default='INDIVIDUAL'),
        sa.Column('assigned_to', sa.String(length=255), nullable=True),
        sa.Column('employee_id', sa.String(length=50), nullable=True),
        sa.Column('department', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_assets_type', 'assets', ['type'])
    op.create_index('ix_assets_state', 'assets', ['state'])
    op.create_index('ix_assets_status', 'assets', ['status'])
    op.create_index('ix_assets_deleted_at', 'assets', ['deleted_at'])
    op.create_index(
        'uq_assets_asset_number_live', 'assets', ['asset_number'], unique=True,
        postgresql_where=LIVE_ONLY, sqlite_where=LIVE_ONLY,
    )
    op.create_index(
        'uq_assets_serial_number_live', 'assets', ['serial_number'], unique=True,
        postgresql_where=LIVE_ONLY, sqlite_where=LIVE_ONLY,
    )

    # Holding assets (imported, waiting for an asset number)
    op.create_table('holding_assets',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('serial_number', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('type', _enum('asset_type'), nullable=True),
        sa.Column('purchase_price', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('location_id', sa.Uuid(), nullable=True),
        sa.Column('assignment_type', _enum('assignment_type'), nullable=False, server_default='INDIVIDUAL'),
        sa.Column('assigned_to', sa.String(length=255), nullable=True),
        sa.Column('employee_id', sa.String(length=50), nullable=True),
        sa.Column('department', sa.String(length=255), nullable=True),
        sa.Column('status', _enum('asset_status'), nullable=False, server_default='holding'),
        sa.Column('supplier', sa.String(length=255), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('raw_data', sa.JSON(), nullable=True),
        sa.Column('imported_by', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['imported_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_holding_assets_serial_number', 'holding_assets', ['serial_number'], unique=True)

    # Asset history (append-only audit log)
    op.create_table('asset_history',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('asset_id', sa.Uuid(), nullable=False),
        sa.Column('previous_state', _enum('asset_state'), nullable=True),
        sa.Column('new_state', _enum('asset_state'), nullable=False),
        sa.Column('changed_by', sa.Uuid(), nullable=True),
        sa.Column('change_reason', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id']),
        sa.ForeignKeyConstraint(['changed_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_asset_history_asset_id', 'asset_history', ['asset_id'])
    op.create_index('ix_asset_history_changed_by', 'asset_history', ['changed_by'])
    op.create_index('ix_asset_history_timestamp', 'asset_history', ['timestamp'])

    # Settings (single row)
    op.create_table('settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('report_cache_duration', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('depreciation_settings', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('settings')
    op.drop_index('ix_asset_history_timestamp', table_name='asset_history')
    op.drop_index('ix_asset_history_changed_by', table_name='asset_history')
    op.drop_index('ix_asset_history_asset_id', table_name='asset_history')
    op.drop_table('asset_history')
    op.drop_index('ix_holding_assets_serial_number', table_name='holding_assets')
    op.drop_table('holding_assets')
    op.drop_index('uq_assets_serial_number_live', table_name='assets')
    op.drop_index('uq_assets_asset_number_live', table_name='assets')
    op.drop_index('ix_assets_deleted_at', table_name='assets')
    op.drop_index('ix_assets_status', table_name='assets')
    op.drop_index('ix_assets_state', table_name='assets')
    op.drop_index('ix_assets_type', table_name='assets')
    op.drop_table('assets')
    op.drop_index('ix_users_role', table_name='users')
    op.drop_index('ix_users_employee_id', table_name='users')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    op.drop_index('ix_departments_name', table_name='departments')
    op.drop_table('departments')
    op.drop_index('ix_locations_name', table_name='locations')
    op.drop_table('locations')

    bind = op.get_bind()
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).drop(bind, checkfirst=True)
