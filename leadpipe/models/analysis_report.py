"""
AnalysisReport model — many per lead, the newest one is authoritative.
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func

from leadpipe.database import Base


class AnalysisReport(Base):
    __tablename__ = 'analysis_reports'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Text, ForeignKey('leads.id', ondelete='CASCADE'), nullable=False, index=True)
    business_model = Column(Text, nullable=False)
    pain_points = Column(JSON, default=list)
    suggested_solutions = Column(JSON, default=list)
    revenue_estimate = Column(Text, nullable=True)
    model_used = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
