"""
Shared client constructors — Redis, database, capabilities.

Nothing is created at import time. The API factory and every worker process
call these once at startup and close what they opened on shutdown.
"""
import logging

import redis

from leadpipe import config
from leadpipe.database import make_engine, make_session_factory
from leadpipe.services.db import LeadStore
from leadpipe.pipeline.queue import JobQueue, JobPolicy

logger = logging.getLogger('leadpipe.extensions')


def make_redis(url=None):
    # RQ pickles job data, so responses must stay as bytes (no decode_responses)
    return redis.Redis.from_url(url or config.REDIS_URL)


def make_store(database_url=None):
    """Return (store, engine)."""
    engine = make_engine(database_url or config.DATABASE_URL)
    return LeadStore(make_session_factory(engine)), engine


def make_job_queue(connection):
    return JobQueue(connection, policy=JobPolicy.from_config())


def make_capabilities(breakers=None, mock=None):
    """Return (scraper, generator) — the mocks when MOCK_PIPELINE is set."""
    breakers = breakers or {}
    mock = config.MOCK_PIPELINE if mock is None else mock
    if mock:
        from leadpipe.pipeline.mock_capabilities import MockScraper, MockGenerator
        logger.info("MOCK_PIPELINE active — using fake capabilities")
        return MockScraper(), MockGenerator()

    from leadpipe.services.scraper import HttpScraper
    from leadpipe.services.generator import OpenAIGenerator

    if not config.OPENAI_API_KEY:
        raise RuntimeError(
            "OPENAI_API_KEY environment variable is not set. "
            "Set it, or set MOCK_PIPELINE=1 to run with fake capabilities."
        )

    scraper = HttpScraper(timeout=config.SCRAPE_TIMEOUT, breaker=breakers.get('scraper'))
    generator = OpenAIGenerator.from_api_key(
        config.OPENAI_API_KEY,
        model=config.OPENAI_MODEL,
        timeout=config.GENERATION_TIMEOUT,
        breaker=breakers.get('generator'),
    )
    return scraper, generator
