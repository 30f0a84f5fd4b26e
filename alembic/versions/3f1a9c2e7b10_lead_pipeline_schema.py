"""Lead pipeline schema: leads, scraped_data, analysis_reports, email_drafts

Revision ID: 3f1a9c2e7b10
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c2e7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('leads',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('domain', sa.Text(), nullable=False),
        sa.Column('company_name', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=False, server_default='NEW'),
        sa.Column('failed_stage', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('domain', name='uq_leads_domain'),
    )
    op.create_index('ix_leads_status', 'leads', ['status'])

    op.create_table('scraped_data',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lead_id', sa.Text(), nullable=False),
        sa.Column('raw_text', sa.Text(), nullable=False),
        sa.Column('meta_description', sa.Text(), nullable=True),
        sa.Column('social_links', sa.JSON(), nullable=True),
        sa.Column('tech_stack', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('lead_id', name='uq_scraped_data_lead_id'),
    )

    op.create_table('analysis_reports',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lead_id', sa.Text(), nullable=False),
        sa.Column('business_model', sa.Text(), nullable=False),
        sa.Column('pain_points', sa.JSON(), nullable=True),
        sa.Column('suggested_solutions', sa.JSON(), nullable=True),
        sa.Column('revenue_estimate', sa.Text(), nullable=True),
        sa.Column('model_used', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_analysis_reports_lead_id', 'analysis_reports', ['lead_id'])

    op.create_table('email_drafts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('lead_id', sa.Text(), nullable=False),
        sa.Column('subject_line', sa.Text(), nullable=False),
        sa.Column('body_text', sa.Text(), nullable=False),
        sa.Column('status', sa.Text(), nullable=False, server_default='pending_review'),
        sa.Column('template_version', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_email_drafts_lead_id', 'email_drafts', ['lead_id'])
    op.create_index('ix_email_drafts_status', 'email_drafts', ['status'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_email_drafts_status', 'email_drafts')
    op.drop_index('ix_email_drafts_lead_id', 'email_drafts')
    op.drop_table('email_drafts')
    op.drop_index('ix_analysis_reports_lead_id', 'analysis_reports')
    op.drop_table('analysis_reports')
    op.drop_table('scraped_data')
    op.drop_index('ix_leads_status', 'leads')
    op.drop_table('leads')
