"""Create time_entries and export_events tables

Revision ID: 001_export_tables
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_export_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create time_entries (export source) and export_events (audit trail)."""
    op.create_table(
        'time_entries',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('entity', sa.String(1024), nullable=False),
        sa.Column('type', sa.String(16), nullable=False),
        sa.Column('category', sa.String(32), nullable=False, server_default='coding'),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('project', sa.String(255), nullable=False, server_default=''),
        sa.Column('branch', sa.String(255), nullable=False, server_default=''),
        sa.Column('language', sa.String(64), nullable=False, server_default=''),
        sa.Column('dependencies', sa.String(4096), nullable=False, server_default=''),
        sa.Column('machine_name_id', sa.String(64), nullable=False, server_default=''),
        sa.Column('line_additions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('line_deletions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('lines', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_write', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(
        'ix_time_entries_user_start',
        'time_entries',
        ['user_id', 'start_time', 'id'],
    )

    op.create_table(
        'export_events',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('entries_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('file_size_bytes', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('processing_time_ms', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('email_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('cleaned_up', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('error_message', sa.String(2000), nullable=False, server_default=''),
        sa.Column('file_name', sa.String(512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_export_events_user_timestamp', 'export_events', ['user_id', 'timestamp'])
    op.create_index('ix_export_events_expiry', 'export_events', ['cleaned_up', 'expires_at'])


def downgrade() -> None:
    op.drop_index('ix_export_events_expiry', table_name='export_events')
    op.drop_index('ix_export_events_user_timestamp', table_name='export_events')
    op.drop_table('export_events')
    op.drop_index('ix_time_entries_user_start', table_name='time_entries')
    op.drop_table('time_entries')
