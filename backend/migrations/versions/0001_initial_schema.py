"""initial after-sales schema

Revision ID: 0001_initial_schema
Revises: 
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('departments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False, unique=True),
        sa.Column('first_name', sa.String(length=64)),
        sa.Column('last_name', sa.String(length=64)),
        sa.Column('email', sa.String(length=128)),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_users_username', 'users', ['username'])
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_department_id', 'users', ['department_id'])

    op.create_table('requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('request_number', sa.String(length=32), nullable=False, unique=True),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id'), nullable=False),
        sa.Column('received_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('assigned_technician_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('issue_description', sa.Text(), nullable=False),
        sa.Column('serial_number', sa.String(length=64)),
        sa.Column('purchase_date', sa.Date(), nullable=True),
        sa.Column('execution_method', sa.String(length=16), nullable=False),
        sa.Column('warranty_status', sa.String(length=24), nullable=False),
        sa.Column('priority', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('sla_due_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_overdue', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('final_notes', sa.Text(), nullable=True),
        sa.Column('customer_satisfaction', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    for col in ('request_number', 'customer_id', 'department_id', 'received_by_id', 'assigned_technician_id',
                'warranty_status', 'status', 'sla_due_date'):
        op.create_index(f'ix_requests_{col}', 'requests', [col])

    op.create_table('spare_parts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('part_number', sa.String(length=32), nullable=False, unique=True),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=50), nullable=False),
        sa.Column('present_pieces', sa.Integer(), nullable=False),
        sa.Column('min_quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Float(), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('department_id', sa.Integer(), sa.ForeignKey('departments.id'), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default=sa.text('1')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.CheckConstraint('present_pieces >= 0', name='ck_spare_parts_present_pieces_non_negative'),
    )
    op.create_index('ix_spare_parts_part_number', 'spare_parts', ['part_number'])
    op.create_index('ix_spare_parts_name', 'spare_parts', ['name'])
    op.create_index('ix_spare_parts_department_id', 'spare_parts', ['department_id'])

    op.create_table('request_parts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('request_id', sa.Integer(), sa.ForeignKey('requests.id'), nullable=False),
        sa.Column('spare_part_id', sa.Integer(), sa.ForeignKey('spare_parts.id'), nullable=False),
        sa.Column('quantity_used', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Float(), nullable=False),
        sa.Column('total_cost', sa.Float(), nullable=False),
        sa.Column('added_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_request_parts_request_id', 'request_parts', ['request_id'])
    op.create_index('ix_request_parts_spare_part_id', 'request_parts', ['spare_part_id'])

    op.create_table('request_costs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('request_id', sa.Integer(), sa.ForeignKey('requests.id'), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('cost_type', sa.String(length=24), nullable=False),
        sa.Column('currency', sa.String(length=8), nullable=False),
        sa.Column('request_part_id', sa.Integer(), sa.ForeignKey('request_parts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('added_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_request_costs_request_id', 'request_costs', ['request_id'])

    op.create_table('request_activities',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('request_id', sa.Integer(), sa.ForeignKey('requests.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('activity_type', sa.String(length=32), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('old_value', sa.String(length=255), nullable=True),
        sa.Column('new_value', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_request_activities_request_id', 'request_activities', ['request_id'])
    op.create_index('ix_request_activities_user_id', 'request_activities', ['user_id'])
    op.create_index('ix_request_activities_activity_type', 'request_activities', ['activity_type'])

    # history keeps plain ids: rows outlive the part they describe
    op.create_table('spare_part_history',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('spare_part_id', sa.Integer(), nullable=False),
        sa.Column('changed_by_id', sa.Integer(), nullable=False),
        sa.Column('change_type', sa.String(length=32), nullable=False),
        sa.Column('field_changed', sa.String(length=64), nullable=True),
        sa.Column('old_value', sa.String(length=255), nullable=True),
        sa.Column('new_value', sa.String(length=255), nullable=True),
        sa.Column('quantity_change', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('request_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    for col in ('spare_part_id', 'changed_by_id', 'change_type', 'request_id', 'created_at'):
        op.create_index(f'ix_spare_part_history_{col}', 'spare_part_history', [col])


def downgrade():
    for table in ('spare_part_history', 'request_activities', 'request_costs', 'request_parts',
                  'spare_parts', 'requests', 'users', 'departments'):
        op.drop_table(table)
