"""
EmailDraft model — one row per successful draft run.

status is the human review state, independent of the lead's pipeline status.
"""
from sqlalchemy import Column, Integer, Text, DateTime, ForeignKey
from sqlalchemy.sql import func

from leadpipe.database import Base

DRAFT_STATUSES = ['pending_review', 'approved', 'rejected', 'sent']


class EmailDraft(Base):
    __tablename__ = 'email_drafts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Text, ForeignKey('leads.id', ondelete='CASCADE'), nullable=False, index=True)
    subject_line = Column(Text, nullable=False)
    body_text = Column(Text, nullable=False)
    status = Column(Text, nullable=False, default='pending_review', index=True)
    template_version = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
