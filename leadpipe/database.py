"""
Database engine + session factory.

Defaults to SQLite for local dev, Postgres in production. Nothing here is
created at import time: the API factory and each worker process build their
own engine and hand the session factory to the LeadStore.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase


class Base(DeclarativeBase):
    pass


def normalize_url(url):
    # Railway/Heroku inject postgres:// but SQLAlchemy 2.x requires postgresql://
    return url.replace('postgres://', 'postgresql://', 1)


def make_engine(database_url):
    """Build an engine with pool settings suited to the backend."""
    url = normalize_url(database_url)

    # SQLite needs different engine kwargs than Postgres
    if url.startswith('sqlite'):
        return create_engine(url, connect_args={'check_same_thread': False})
    return create_engine(url, pool_pre_ping=True, pool_size=5, max_overflow=10)


def make_session_factory(engine):
    """Return a sessionmaker bound to engine."""
    return sessionmaker(bind=engine, expire_on_commit=False)


def import_models():
    """Import models so Base.metadata knows about every table."""
    import importlib
    importlib.import_module('leadpipe.models.lead')
    importlib.import_module('leadpipe.models.scraped_data')
    importlib.import_module('leadpipe.models.analysis_report')
    importlib.import_module('leadpipe.models.email_draft')
