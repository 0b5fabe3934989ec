"""initial_schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19

Creates the operations schema:
- users (string role column, see services/permissions.py)
- customers, projects, catalogue_items
- products with per-department schedule columns (design / ops / production / install)
- quotes, quote_lines (materialised totals on quotes)
- department_capacities
- audit_logs

Every create is guarded by a table-exists check so the migration is
idempotent — safe to run when Base.metadata.create_all() already created
the tables.
"""
import logging
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None

logger = logging.getLogger("alembic.001")

DEPARTMENT_PREFIXES = ('design', 'ops', 'production', 'install')

# Reverse dependency order for downgrade
TABLES = (
    'audit_logs', 'department_capacities', 'quote_lines', 'quotes',
    'products', 'catalogue_items', 'projects', 'customers', 'users',
)


def _table_exists(conn, table_name: str) -> bool:
    return inspect(conn).has_table(table_name)


def _create(conn, name: str, *columns, **kw) -> None:
    if _table_exists(conn, name):
        logger.info("Table %s already exists; skipping create", name)
        return
    op.create_table(name, *columns, **kw)
    logger.info("Created table: %s", name)


def _schedule_columns():
    cols = []
    for prefix in DEPARTMENT_PREFIXES:
        cols += [
            sa.Column(f'{prefix}_planned_start', sa.Date, nullable=True),
            sa.Column(f'{prefix}_target_date', sa.Date, nullable=True),
            sa.Column(f'{prefix}_completion_date', sa.Date, nullable=True),
            sa.Column(f'{prefix}_estimated_hours', sa.Numeric(10, 2), nullable=True),
        ]
    return cols


def upgrade() -> None:
    conn = op.get_bind()

    # ── users ─────────────────────────────────────────────────────────────────
    _create(
        conn, 'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('hashed_password', sa.Text, nullable=False),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(30), nullable=False, server_default='VIEWER'),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── customers / projects ──────────────────────────────────────────────────
    _create(
        conn, 'customers',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('address', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    _create(
        conn, 'projects',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('project_number', sa.String(20), nullable=False, unique=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('customer_id', sa.String(36), sa.ForeignKey('customers.id'), nullable=True),
        sa.Column('project_status', sa.String(30), server_default='OPPORTUNITY'),
        sa.Column('target_completion', sa.Date, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── catalogue / products ──────────────────────────────────────────────────
    _create(
        conn, 'catalogue_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('part_code', sa.String(100), nullable=False, unique=True),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('guide_unit_cost', sa.Numeric(12, 2), nullable=True),
        sa.Column('active', sa.Boolean, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    _create(
        conn, 'products',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('project_id', sa.String(36), sa.ForeignKey('projects.id'), nullable=False, index=True),
        sa.Column('catalogue_item_id', sa.String(36), sa.ForeignKey('catalogue_items.id'), nullable=True),
        sa.Column('part_code', sa.String(100), nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('quantity', sa.Integer, server_default='1'),
        sa.Column('current_department', sa.String(30), server_default='PLANNING'),
        *_schedule_columns(),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ── quotes / quote_lines ──────────────────────────────────────────────────
    _create(
        conn, 'quotes',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('quote_number', sa.String(20), nullable=False, unique=True),
        sa.Column('customer_id', sa.String(36), sa.ForeignKey('customers.id'), nullable=False),
        sa.Column('project_id', sa.String(36), sa.ForeignKey('projects.id'), nullable=True),
        sa.Column('subject', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('status', sa.String(20), server_default='DRAFT'),
        sa.Column('revision_number', sa.Integer, server_default='0'),
        sa.Column('valid_until', sa.Date, nullable=True),
        sa.Column('date_submitted', sa.DateTime(timezone=True), nullable=True),
        sa.Column('total_cost', sa.Numeric(12, 2), server_default='0'),
        sa.Column('total_sell', sa.Numeric(12, 2), server_default='0'),
        sa.Column('overall_margin', sa.Numeric(8, 4), server_default='0'),
        sa.Column('created_by_id', sa.String(36), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    _create(
        conn, 'quote_lines',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('quote_id', sa.String(36), sa.ForeignKey('quotes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id'), nullable=True),
        sa.Column('catalogue_item_id', sa.String(36), sa.ForeignKey('catalogue_items.id'), nullable=True),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('dimensions', sa.String(255), nullable=True),
        sa.Column('quantity', sa.Integer, server_default='1'),
        sa.Column('units', sa.String(10), server_default='nr'),
        sa.Column('unit_cost', sa.Numeric(12, 2), server_default='0'),
        sa.Column('cost_total', sa.Numeric(12, 2), server_default='0'),
        sa.Column('margin_percent', sa.Numeric(6, 2), server_default='0'),
        sa.Column('sell_price', sa.Numeric(12, 2), server_default='0'),
        sa.Column('is_optional', sa.Boolean, server_default=sa.false()),
        sa.Column('margin_override', sa.Boolean, server_default=sa.false()),
        sa.Column('sort_order', sa.Integer, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    if not any(ix['name'] == 'ix_quote_lines_quote_order'
               for ix in inspect(conn).get_indexes('quote_lines')):
        op.create_index('ix_quote_lines_quote_order', 'quote_lines',
                        ['quote_id', 'is_optional', 'sort_order'])

    # ── capacity / audit ──────────────────────────────────────────────────────
    _create(
        conn, 'department_capacities',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('department', sa.String(30), nullable=False, unique=True),
        sa.Column('display_name', sa.String(100), nullable=False),
        sa.Column('hours_per_week', sa.Numeric(8, 2), nullable=False),
        sa.Column('headcount', sa.Integer, server_default='1'),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    _create(
        conn, 'audit_logs',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('user_name', sa.String(255), nullable=True),
        sa.Column('action', sa.String(10), nullable=False),
        sa.Column('entity', sa.String(50), nullable=False, index=True),
        sa.Column('entity_id', sa.String(36), nullable=False, index=True),
        sa.Column('field', sa.String(100), nullable=True),
        sa.Column('old_value', sa.Text, nullable=True),
        sa.Column('new_value', sa.Text, nullable=True),
        sa.Column('metadata_json', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
    )


def downgrade() -> None:
    conn = op.get_bind()
    for name in TABLES:
        if _table_exists(conn, name):
            op.drop_table(name)
