"""Shared test fixtures."""
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from leadpipe.database import Base, import_models, make_session_factory
from leadpipe.pipeline.base import (
    Scraper, Generator, ScrapeResult, AnalysisResult, DraftResult, LeadPayload,
)
from leadpipe.pipeline.states import Stage
from leadpipe.services.db import LeadStore


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created.

    StaticPool keeps a single connection so every session the store opens
    sees the same in-memory database.
    """
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    import_models()
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture
def store(session_factory):
    return LeadStore(session_factory)


class FakeJobQueue:
    """Records enqueued jobs instead of talking to Redis."""

    def __init__(self):
        self.jobs = []          # (job_id, stage, lead_id)
        self.fail_enqueue = False

    def enqueue(self, stage, payload, policy=None):
        if self.fail_enqueue:
            raise ConnectionError("redis unavailable")
        if isinstance(payload, dict):
            payload = LeadPayload.from_dict(payload)
        job_id = f'job-{len(self.jobs) + 1}'
        self.jobs.append((job_id, Stage(stage), payload.lead_id))
        return job_id

    def stages(self):
        return [stage for _, stage, _ in self.jobs]

    def pop(self):
        return self.jobs.pop(0)

    def counts(self):
        return {s.value: {'queued': self.stages().count(s), 'started': 0,
                          'scheduled': 0, 'finished': 0, 'failed': 0}
                for s in Stage}

    def failed_jobs(self, stage, limit=5):
        return []


@pytest.fixture
def job_queue():
    return FakeJobQueue()


class StubScraper(Scraper):
    """Returns (or raises) scripted outcomes in order; repeats the last one."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes) or [ScrapeResult(raw_text='Hello')]
        self.calls = []

    def scrape(self, domain):
        self.calls.append(domain)
        outcome = self.outcomes[min(len(self.calls), len(self.outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class StubGenerator(Generator):
    """Scripted analyze/draft outcomes, same rules as StubScraper."""

    def __init__(self, analyses=None, drafts=None):
        self.analyses = list(analyses or []) or [AnalysisResult(
            business_model='SaaS',
            pain_points=['Manual onboarding'],
            suggested_solutions=['Onboarding chatbot'],
            model_id='stub-model',
        )]
        self.drafts = list(drafts or []) or [DraftResult(
            subject_line='Quick question',
            body_text='Hi there, worth a quick call?',
            template_version='v1.0',
        )]
        self.analyze_calls = []
        self.draft_calls = []

    def analyze(self, raw_text, meta_description, tech_stack):
        self.analyze_calls.append(raw_text)
        return self._next(self.analyses, self.analyze_calls)

    def draft(self, analysis):
        self.draft_calls.append(analysis)
        return self._next(self.drafts, self.draft_calls)

    @staticmethod
    def _next(outcomes, calls):
        outcome = outcomes[min(len(calls), len(outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def stub_scraper():
    return StubScraper()


@pytest.fixture
def stub_generator():
    return StubGenerator()


@pytest.fixture
def stub_classes():
    """The stub capability classes, for tests that script their own outcomes."""
    return StubScraper, StubGenerator
