"""Tests for leadpipe.extensions — client constructors."""
from unittest.mock import MagicMock, patch

import pytest

from leadpipe.extensions import make_capabilities, make_job_queue, make_store
from leadpipe.pipeline.mock_capabilities import MockScraper, MockGenerator
from leadpipe.services.db import LeadStore
from leadpipe.services.generator import OpenAIGenerator
from leadpipe.services.scraper import HttpScraper


class TestMakeCapabilities:

    def test_mock(self):
        scraper, generator = make_capabilities(mock=True)
        assert isinstance(scraper, MockScraper)
        assert isinstance(generator, MockGenerator)

    def test_requires_api_key(self):
        with patch('leadpipe.config.OPENAI_API_KEY', None):
            with pytest.raises(RuntimeError, match='OPENAI_API_KEY'):
                make_capabilities(mock=False)

    def test_real_capabilities_get_breakers(self):
        breakers = {'scraper': MagicMock(), 'generator': MagicMock()}
        with patch('leadpipe.config.OPENAI_API_KEY', 'sk-test'):
            scraper, generator = make_capabilities(breakers, mock=False)
        assert isinstance(scraper, HttpScraper)
        assert isinstance(generator, OpenAIGenerator)
        assert scraper.breaker is breakers['scraper']
        assert generator.breaker is breakers['generator']
        generator.close()
        scraper.close()


class TestMakeStore:

    def test_sqlite_store(self, tmp_path):
        store, engine = make_store(f'sqlite:///{tmp_path}/leads.db')
        assert isinstance(store, LeadStore)
        assert engine.url.database.endswith('leads.db')
        engine.dispose()


class TestMakeJobQueue:

    def test_policy_from_config(self):
        connection = MagicMock()
        with patch('leadpipe.config.JOB_ATTEMPTS', 2), patch('leadpipe.extensions.JobQueue') as job_queue_cls:
            make_job_queue(connection)
        args, kwargs = job_queue_cls.call_args
        assert args == (connection,)
        assert kwargs['policy'].attempts == 2
