"""Tests for leadpipe.services.db — LeadStore transactions and read models."""
from unittest.mock import patch

import pytest

from leadpipe.models.analysis_report import AnalysisReport
from leadpipe.models.email_draft import EmailDraft
from leadpipe.models.lead import Lead
from leadpipe.models.scraped_data import ScrapedData
from leadpipe.pipeline.base import ScrapeResult, AnalysisResult, DraftResult, StaleLeadError
from leadpipe.pipeline.states import LeadStatus, Stage
from leadpipe.services.db import normalize_domain


def _analysis(model='SaaS'):
    return AnalysisResult(
        business_model=model,
        pain_points=['Manual onboarding'],
        suggested_solutions=['Onboarding chatbot'],
        model_id='stub-model',
    )


def _draft(subject='Quick question'):
    return DraftResult(subject_line=subject, body_text='Body', template_version='v1.0')


def _set_status(session_factory, lead_id, status, failed_stage=None):
    with session_factory() as session:
        lead = session.get(Lead, lead_id)
        lead.status = status
        lead.failed_stage = failed_stage
        session.commit()


def _count(session_factory, model, lead_id):
    with session_factory() as session:
        return session.query(model).filter_by(lead_id=lead_id).count()


class TestNormalizeDomain:

    @pytest.mark.parametrize('raw,expected', [
        ('example.com', 'example.com'),
        ('  Example.COM ', 'example.com'),
        ('https://example.com/', 'example.com'),
        ('http://example.com/about', 'example.com'),
    ])
    def test_normalizes(self, raw, expected):
        assert normalize_domain(raw) == expected

    @pytest.mark.parametrize('raw', ['', '   ', 'https://', None])
    def test_empty_raises(self, raw):
        with pytest.raises(ValueError):
            normalize_domain(raw)


class TestCreateLead:
    """create_lead() inserts NEW leads, unique per domain."""

    def test_creates_new_lead(self, store):
        lead, created = store.create_lead('https://Example.com/')
        assert created is True
        assert lead.domain == 'example.com'
        assert lead.status == LeadStatus.NEW
        assert lead.failed_stage is None
        assert store.get_lead(lead.id) == lead

    def test_existing_domain_returned_untouched(self, store, session_factory):
        first, _ = store.create_lead('example.com', company_name='Example')
        _set_status(session_factory, first.id, 'SCRAPED')

        again, created = store.create_lead('example.com')
        assert created is False
        assert again.id == first.id
        assert again.status == LeadStatus.SCRAPED
        assert again.company_name == 'Example'

    def test_invalid_domain(self, store):
        with pytest.raises(ValueError):
            store.create_lead('  ')

    def test_get_unknown_lead(self, store):
        assert store.get_lead('missing') is None


class TestCompleteScrape:
    """complete_scrape() writes ScrapedData and SCRAPED in one transaction."""

    def test_writes_row_and_status(self, store, session_factory):
        lead, _ = store.create_lead('example.com')
        store.complete_scrape(lead.id, ScrapeResult(
            raw_text='Hello', meta_description='Meta',
            social_links=['https://x.com/example'], tech_stack={'CMS': 'WordPress'},
        ))

        assert store.get_lead(lead.id).status == LeadStatus.SCRAPED
        scraped = store.get_scraped_data(lead.id)
        assert scraped.raw_text == 'Hello'
        assert scraped.meta_description == 'Meta'
        assert scraped.social_links == ['https://x.com/example']
        assert scraped.tech_stack == {'CMS': 'WordPress'}

    def test_stale_lead_writes_nothing(self, store, session_factory):
        lead, _ = store.create_lead('example.com')
        _set_status(session_factory, lead.id, 'SCRAPED')

        with pytest.raises(StaleLeadError):
            store.complete_scrape(lead.id, ScrapeResult(raw_text='Hello'))
        assert _count(session_factory, ScrapedData, lead.id) == 0

    def test_retry_after_failure_overwrites_single_row(self, store, session_factory):
        lead, _ = store.create_lead('example.com')
        store.complete_scrape(lead.id, ScrapeResult(raw_text='First'))
        # later stage failed and an operator re-ran the scrape
        _set_status(session_factory, lead.id, 'FAILED', 'scrape')

        store.complete_scrape(lead.id, ScrapeResult(raw_text='Second'))
        assert _count(session_factory, ScrapedData, lead.id) == 1
        assert store.get_scraped_data(lead.id).raw_text == 'Second'
        lead = store.get_lead(lead.id)
        assert lead.status == LeadStatus.SCRAPED
        assert lead.failed_stage is None

    def test_commit_failure_rolls_back_everything(self, store, session_factory):
        lead, _ = store.create_lead('example.com')
        with patch('leadpipe.services.db._advance', side_effect=RuntimeError('boom')):
            with pytest.raises(RuntimeError):
                store.complete_scrape(lead.id, ScrapeResult(raw_text='Hello'))
        assert store.get_lead(lead.id).status == LeadStatus.NEW
        assert _count(session_factory, ScrapedData, lead.id) == 0


class TestCompleteAnalysisAndDraft:

    def test_analysis(self, store, session_factory):
        lead, _ = store.create_lead('example.com')
        _set_status(session_factory, lead.id, 'SCRAPED')

        store.complete_analysis(lead.id, _analysis())

        assert store.get_lead(lead.id).status == LeadStatus.ANALYZED
        latest = store.get_latest_analysis(lead.id)
        assert latest.business_model == 'SaaS'
        assert latest.model_id == 'stub-model'

    def test_latest_analysis_is_newest(self, store, session_factory):
        lead, _ = store.create_lead('example.com')
        _set_status(session_factory, lead.id, 'SCRAPED')
        store.complete_analysis(lead.id, _analysis('Agency'))
        _set_status(session_factory, lead.id, 'FAILED', 'analyze')
        store.complete_analysis(lead.id, _analysis('SaaS'))

        assert _count(session_factory, AnalysisReport, lead.id) == 2
        assert store.get_latest_analysis(lead.id).business_model == 'SaaS'

    def test_analysis_requires_scraped(self, store, session_factory):
        lead, _ = store.create_lead('example.com')
        with pytest.raises(StaleLeadError):
            store.complete_analysis(lead.id, _analysis())
        assert _count(session_factory, AnalysisReport, lead.id) == 0

    def test_draft(self, store, session_factory):
        lead, _ = store.create_lead('example.com')
        _set_status(session_factory, lead.id, 'ANALYZED')

        store.complete_draft(lead.id, _draft())

        assert store.get_lead(lead.id).status == LeadStatus.DRAFTED
        with session_factory() as session:
            draft = session.query(EmailDraft).filter_by(lead_id=lead.id).one()
            assert draft.status == 'pending_review'
            assert draft.subject_line == 'Quick question'
            assert draft.template_version == 'v1.0'

    def test_duplicate_draft_refused(self, store, session_factory):
        lead, _ = store.create_lead('example.com')
        _set_status(session_factory, lead.id, 'ANALYZED')
        store.complete_draft(lead.id, _draft())

        with pytest.raises(StaleLeadError):
            store.complete_draft(lead.id, _draft('Again'))
        assert _count(session_factory, EmailDraft, lead.id) == 1


class TestMarkFailed:
    """mark_failed() is applied only while the stage still owns the lead."""

    def test_records_status_and_stage(self, store):
        lead, _ = store.create_lead('example.com')
        assert store.mark_failed(lead.id, Stage.SCRAPE, LeadStatus.FAILED) is True
        lead = store.get_lead(lead.id)
        assert lead.status == LeadStatus.FAILED
        assert lead.failed_stage == 'scrape'

    def test_repeat_failure_of_same_stage(self, store):
        lead, _ = store.create_lead('example.com')
        store.mark_failed(lead.id, 'scrape', 'FAILED')
        assert store.mark_failed(lead.id, 'scrape', 'RATE_LIMITED') is True
        assert store.get_lead(lead.id).status == LeadStatus.RATE_LIMITED

    def test_does_not_regress_finished_lead(self, store, session_factory):
        lead, _ = store.create_lead('example.com')
        _set_status(session_factory, lead.id, 'DRAFTED')
        assert store.mark_failed(lead.id, 'scrape', 'FAILED') is False
        assert store.get_lead(lead.id).status == LeadStatus.DRAFTED

    def test_unknown_lead(self, store):
        assert store.mark_failed('missing', 'scrape', 'FAILED') is False


class TestRetryableStage:

    def test_failed_lead(self, store):
        lead, _ = store.create_lead('example.com')
        store.mark_failed(lead.id, 'scrape', 'RATE_LIMITED')
        assert store.retryable_stage(lead.id) == Stage.SCRAPE

    def test_blocked_lead_not_retryable(self, store, session_factory):
        lead, _ = store.create_lead('example.com')
        _set_status(session_factory, lead.id, 'BLOCKED_BY_SAFETY', 'analyze')
        assert store.retryable_stage(lead.id) is None

    def test_healthy_lead_not_retryable(self, store):
        lead, _ = store.create_lead('example.com')
        assert store.retryable_stage(lead.id) is None


class TestReadModels:

    def test_lead_detail(self, store, session_factory):
        lead, _ = store.create_lead('example.com', company_name='Example Inc')
        store.complete_scrape(lead.id, ScrapeResult(raw_text='Hello'))
        store.complete_analysis(lead.id, _analysis())
        store.complete_draft(lead.id, _draft())

        detail = store.lead_detail(lead.id)
        assert detail['status'] == 'DRAFTED'
        assert detail['company_name'] == 'Example Inc'
        assert detail['scraped_data']['raw_text'] == 'Hello'
        assert [r['business_model'] for r in detail['analysis_reports']] == ['SaaS']
        assert detail['email_drafts'][0]['status'] == 'pending_review'

    def test_lead_detail_unknown(self, store):
        assert store.lead_detail('missing') is None

    def test_list_drafts_filters_by_status(self, store, session_factory):
        for domain in ('a.com', 'b.com'):
            lead, _ = store.create_lead(domain)
            _set_status(session_factory, lead.id, 'ANALYZED')
            store.complete_draft(lead.id, _draft(f'Hi {domain}'))
        with session_factory() as session:
            draft = session.query(EmailDraft).filter_by(subject_line='Hi a.com').one()
            draft.status = 'approved'
            session.commit()

        pending = store.list_drafts(status='pending_review')
        assert [d['subject_line'] for d in pending] == ['Hi b.com']
        assert pending[0]['lead'] == {'domain': 'b.com', 'company_name': None}
        assert len(store.list_drafts()) == 2
        assert len(store.list_drafts(limit=1)) == 1
