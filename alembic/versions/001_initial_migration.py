"""Initial database migration - Create lab_reports and credit_balances tables

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'lab_reports',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('file_type', sa.String(10), nullable=True),
        sa.Column('mime_type', sa.String(100), nullable=True),
        sa.Column('file_size_bytes', sa.Integer, nullable=False, server_default='0'),
        sa.Column('raw_extracted_text', sa.Text, nullable=False, server_default=''),
        sa.Column('report_type', sa.String(32), nullable=False, server_default='general'),
        sa.Column('user_profile', sa.JSON, nullable=True),
        sa.Column('language', sa.String(5), nullable=False, server_default='en'),
        sa.Column('status', sa.String(20), nullable=False, server_default='processing'),
        sa.Column('ai_response', sa.JSON, nullable=True),
        sa.Column('error_code', sa.String(64), nullable=True),
        sa.Column('error_message', sa.Text, nullable=True),
        sa.Column('processing_time_ms', sa.Float, nullable=True),
        sa.Column('tokens_used', sa.Integer, nullable=True),
        sa.Column('credits_used', sa.Integer, nullable=False, server_default='0'),
        sa.Column('analysis_count', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_lab_reports_id', 'lab_reports', ['id'])
    op.create_index('ix_lab_reports_owner_id', 'lab_reports', ['owner_id'])
    op.create_index('ix_lab_reports_status', 'lab_reports', ['status'])
    op.create_index('ix_lab_reports_owner_created', 'lab_reports', ['owner_id', 'created_at'])

    op.create_table(
        'credit_balances',
        sa.Column('owner_id', sa.String(64), primary_key=True),
        sa.Column('balance', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('credit_balances')
    op.drop_index('ix_lab_reports_owner_created')
    op.drop_index('ix_lab_reports_status')
    op.drop_index('ix_lab_reports_owner_id')
    op.drop_index('ix_lab_reports_id')
    op.drop_table('lab_reports')
