"""
ScrapedData model — one row per lead, written by the scrape stage.
"""
from sqlalchemy import Column, Integer, Text, DateTime, JSON, ForeignKey
from sqlalchemy.sql import func

from leadpipe.database import Base


class ScrapedData(Base):
    __tablename__ = 'scraped_data'

    id = Column(Integer, primary_key=True, autoincrement=True)
    lead_id = Column(Text, ForeignKey('leads.id', ondelete='CASCADE'), nullable=False, unique=True)
    raw_text = Column(Text, nullable=False, default='')
    meta_description = Column(Text, nullable=True)
    social_links = Column(JSON, default=list)
    tech_stack = Column(JSON, default=dict)    # {category: technology}
    created_at = Column(DateTime(timezone=True), server_default=func.now())
