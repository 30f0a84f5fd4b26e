"""
Lead model — one row per target domain, the authoritative pipeline status.
"""
import uuid

from sqlalchemy import Column, Text, DateTime
from sqlalchemy.sql import func

from leadpipe.database import Base


def _new_id():
    return str(uuid.uuid4())


class Lead(Base):
    __tablename__ = 'leads'

    id = Column(Text, primary_key=True, default=_new_id)
    domain = Column(Text, nullable=False, unique=True)
    company_name = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default='NEW', index=True)     # LeadStatus value
    failed_stage = Column(Text, nullable=True)                # stage that set the failure status
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
