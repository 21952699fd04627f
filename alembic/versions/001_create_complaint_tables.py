"""Create complaint desk tables

Revision ID: 001_create_complaint_tables
Revises:
Create Date: 2026-10-19

Note: Lookup rows (complaint statuses) are seeded here as well as by
init_db() on startup; both are idempotent.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_create_complaint_tables'
down_revision = None
branch_labels = None
depends_on = None


STATUSES = [
    ("PENDING", "Complaint is pending review"),
    ("IN_PROGRESS", "Complaint is being worked on"),
    ("RESOLVED", "Complaint has been resolved"),
    ("CLOSED", "Complaint is closed"),
]


def _has_table(name):
    return sa.inspect(op.get_bind()).has_table(name)


def upgrade():
    """Create complaint desk tables."""
    if not _has_table('branches'):
        op.create_table(
            'branches',
            sa.Column('id', sa.Integer(), primary_key=True, index=True),
            sa.Column('name', sa.String(100), nullable=False, unique=True),
            sa.Column('description', sa.Text()),
            sa.Column('created_at', sa.DateTime()),
            sa.Column('updated_at', sa.DateTime()),
        )

    if not _has_table('lines_of_business'):
        op.create_table(
            'lines_of_business',
            sa.Column('id', sa.Integer(), primary_key=True, index=True),
            sa.Column('name', sa.String(100), nullable=False, unique=True),
            sa.Column('description', sa.Text()),
            sa.Column('created_at', sa.DateTime()),
            sa.Column('updated_at', sa.DateTime()),
        )

    if not _has_table('complaint_statuses'):
        statuses = op.create_table(
            'complaint_statuses',
            sa.Column('id', sa.Integer(), primary_key=True, index=True),
            sa.Column('name', sa.String(30), nullable=False, unique=True),
            sa.Column('description', sa.Text()),
        )
        op.bulk_insert(statuses, [{"name": name, "description": desc} for name, desc in STATUSES])

    if not _has_table('complaint_types'):
        op.create_table(
            'complaint_types',
            sa.Column('id', sa.Integer(), primary_key=True, index=True),
            sa.Column('name', sa.String(100), nullable=False, unique=True),
            sa.Column('description', sa.Text()),
        )

    if not _has_table('users'):
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), primary_key=True, index=True),
            sa.Column('email', sa.String(255), nullable=False, unique=True, index=True),
            sa.Column('hashed_password', sa.String(255), nullable=False),
            sa.Column('name', sa.String(200), nullable=False),
            sa.Column('role', sa.String(20), nullable=False, server_default='AGENT', index=True),
            sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), index=True),
            sa.Column('line_of_business_id', sa.Integer(), sa.ForeignKey('lines_of_business.id'), index=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime()),
            sa.Column('updated_at', sa.DateTime()),
        )

    if not _has_table('complaints'):
        op.create_table(
            'complaints',
            sa.Column('id', sa.Uuid(), primary_key=True, index=True),
            sa.Column('complaint_number', sa.String(20), nullable=False, unique=True, index=True),
            sa.Column('customer_name', sa.String(200), nullable=False),
            sa.Column('customer_id', sa.String(100), nullable=False),
            sa.Column('policy_number', sa.String(100), nullable=False),
            sa.Column('policy_type', sa.String(100), nullable=False, server_default='General'),
            sa.Column('description', sa.Text(), nullable=False),
            sa.Column('channel', sa.String(30), nullable=False, server_default='WEB'),
            sa.Column('type_id', sa.Integer(), sa.ForeignKey('complaint_types.id'), nullable=False),
            sa.Column('status_id', sa.Integer(), sa.ForeignKey('complaint_statuses.id'), nullable=False, index=True),
            sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=False, index=True),
            sa.Column('line_of_business_id', sa.Integer(), sa.ForeignKey('lines_of_business.id'), nullable=False, index=True),
            sa.Column('assigned_to_id', sa.Integer(), sa.ForeignKey('users.id'), index=True),
            sa.Column('created_by_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, index=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, index=True),
            sa.Column('updated_at', sa.DateTime()),
            sa.Column('due_date', sa.DateTime(), nullable=False, index=True),
            sa.Column('resolved_at', sa.DateTime()),
        )

    if not _has_table('complaint_actions'):
        op.create_table(
            'complaint_actions',
            sa.Column('id', sa.Uuid(), primary_key=True),
            sa.Column('complaint_id', sa.Uuid(), sa.ForeignKey('complaints.id', ondelete='CASCADE'), nullable=False, index=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
            sa.Column('description', sa.Text(), nullable=False),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )

    if not _has_table('notifications'):
        op.create_table(
            'notifications',
            sa.Column('id', sa.Uuid(), primary_key=True, index=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
            sa.Column('complaint_id', sa.Uuid(), sa.ForeignKey('complaints.id', ondelete='CASCADE'), index=True),
            sa.Column('type', sa.String(50), nullable=False, index=True),
            sa.Column('title', sa.String(255), nullable=False),
            sa.Column('message', sa.Text(), nullable=False),
            sa.Column('read', sa.Boolean(), nullable=False, server_default=sa.false(), index=True),
            sa.Column('read_at', sa.DateTime()),
            sa.Column('created_at', sa.DateTime(), nullable=False, index=True),
        )
        # SLA sweep dedup lookup
        op.create_index(
            'ix_notifications_complaint_type_created',
            'notifications',
            ['complaint_id', 'type', 'created_at'],
        )


def downgrade():
    """Drop complaint desk tables."""
    op.drop_index('ix_notifications_complaint_type_created', table_name='notifications')
    for table in (
        'notifications',
        'complaint_actions',
        'complaints',
        'users',
        'complaint_types',
        'complaint_statuses',
        'lines_of_business',
        'branches',
    ):
        op.drop_table(table)
