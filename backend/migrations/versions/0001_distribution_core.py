"""distribution core tables

Revision ID: 0001_distribution_core
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_distribution_core'
down_revision = None
branch_labels = None
depends_on = None

_ACTIVE = "assignment_status IN ('accepted', 'arriving', 'assigned', 'picked_up')"


def upgrade():
    op.create_table('orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('customer_name', sa.String(length=128), nullable=True),
        sa.Column('total_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='pending'),
        sa.Column('items', sa.JSON(), nullable=False),
        sa.Column('unavailable_items', sa.JSON(), nullable=True),
        sa.Column('shipping_info', sa.JSON(), nullable=True),
        sa.Column('cancel_reason', sa.String(length=255), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_orders_branch_id', 'orders', ['branch_id'])
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_updated_at', 'orders', ['updated_at'])

    op.create_table('order_preparation_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('line_no', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('product_name', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('is_prepared', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('prepared_at', sa.DateTime(), nullable=True),
        sa.Column('prepared_by', sa.Integer(), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.UniqueConstraint('order_id', 'line_no', name='uq_prep_item_order_line'),
    )
    op.create_index('ix_order_preparation_items_order_id', 'order_preparation_items', ['order_id'])

    op.create_table('delivery_staff',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=True, unique=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('phone2', sa.String(length=32), nullable=True),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.text('1')),
        sa.Column('max_orders', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('current_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('expired_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('current_orders >= 0', name='ck_staff_load_non_negative'),
        sa.CheckConstraint('current_orders <= max_orders', name='ck_staff_load_within_max'),
    )
    op.create_index('ix_delivery_staff_updated_at', 'delivery_staff', ['updated_at'])

    op.create_table('delivery_staff_branches',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('delivery_staff_id', sa.Integer(), sa.ForeignKey('delivery_staff.id', ondelete='CASCADE'), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.UniqueConstraint('delivery_staff_id', 'branch_id', name='uq_staff_branch'),
    )
    op.create_index('ix_delivery_staff_branches_branch_id', 'delivery_staff_branches', ['branch_id'])

    op.create_table('order_assignments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('delivery_staff_id', sa.Integer(), sa.ForeignKey('delivery_staff.id'), nullable=False),
        sa.Column('assignment_status', sa.String(length=32), nullable=False, server_default='assigned'),
        sa.Column('assigned_by', sa.Integer(), nullable=True),
        sa.Column('assigned_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('accept_deadline', sa.DateTime(), nullable=False),
        sa.Column('accepted_at', sa.DateTime(), nullable=True),
        sa.Column('picked_up_at', sa.DateTime(), nullable=True),
        sa.Column('customer_arrived_at', sa.DateTime(), nullable=True),
        sa.Column('delivered_at', sa.DateTime(), nullable=True),
        sa.Column('rejected_at', sa.DateTime(), nullable=True),
        sa.Column('expired_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.String(length=255), nullable=True),
        sa.Column('expected_delivery_minutes', sa.Integer(), nullable=False, server_default='30'),
        sa.Column('is_late', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('late_minutes', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_order_assignments_order_id', 'order_assignments', ['order_id'])
    op.create_index('ix_order_assignments_delivery_staff_id', 'order_assignments', ['delivery_staff_id'])
    op.create_index('ix_order_assignments_assignment_status', 'order_assignments', ['assignment_status'])
    op.create_index('ix_order_assignments_accept_deadline', 'order_assignments', ['accept_deadline'])
    op.create_index('ix_order_assignments_updated_at', 'order_assignments', ['updated_at'])
    # At most one non-terminal assignment per order
    op.create_index(
        'uq_assignment_active_per_order', 'order_assignments', ['order_id'], unique=True,
        sqlite_where=sa.text(_ACTIVE), postgresql_where=sa.text(_ACTIVE),
    )

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('actor_staff_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('perms_snapshot', sa.JSON(), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])
    op.create_index('ix_audit_logs_entity', 'audit_logs', ['entity', 'entity_id'])


def downgrade():
    op.drop_table('audit_logs')
    op.drop_index('uq_assignment_active_per_order', table_name='order_assignments')
    op.drop_table('order_assignments')
    op.drop_table('delivery_staff_branches')
    op.drop_table('delivery_staff')
    op.drop_table('order_preparation_items')
    op.drop_table('orders')
