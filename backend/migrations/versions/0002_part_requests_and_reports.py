"""spare part requests and technician reports

Revision ID: 0002_part_requests_reports
Revises: 0001_initial_schema
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

revision = '0002_part_requests_reports'
down_revision = '0001_initial_schema'
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = inspect(bind)

    if not insp.has_table('spare_part_requests'):
        op.create_table('spare_part_requests',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('request_id', sa.Integer(), sa.ForeignKey('requests.id'), nullable=False),
            sa.Column('technician_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('part_name', sa.String(length=150), nullable=False),
            sa.Column('part_number', sa.String(length=64), nullable=True),
            sa.Column('description', sa.Text(), nullable=False),
            sa.Column('quantity', sa.Integer(), nullable=False),
            sa.Column('urgency', sa.String(length=16), nullable=False, server_default='NORMAL'),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
            sa.Column('approved_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
            sa.Column('fulfilled_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
            sa.Column('rejection_reason', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        for col in ('request_id', 'technician_id', 'status'):
            op.create_index(f'ix_spare_part_requests_{col}', 'spare_part_requests', [col])

    if not insp.has_table('technician_reports'):
        op.create_table('technician_reports',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('request_id', sa.Integer(), sa.ForeignKey('requests.id'), nullable=False),
            sa.Column('technician_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('report_content', sa.Text(), nullable=False),
            sa.Column('current_status', sa.String(length=32), nullable=True),
            sa.Column('parts_used', sa.Text(), nullable=True),
            sa.Column('send_to_supervisor', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('send_to_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('is_approved', sa.Boolean(), nullable=True),
            sa.Column('approved_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
            sa.Column('approval_comment', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        )
        for col in ('request_id', 'technician_id', 'is_approved'):
            op.create_index(f'ix_technician_reports_{col}', 'technician_reports', [col])


def downgrade():
    op.drop_table('technician_reports')
    op.drop_table('spare_part_requests')
