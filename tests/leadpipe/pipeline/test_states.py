"""Tests for leadpipe.pipeline.states — lead status transitions."""
import pytest

from leadpipe.pipeline.states import (
    LeadStatus, Stage, STAGE_ORDER, ENTRY_STATUS, SUCCESS_STATUS, NEXT_STAGE,
    RETRYABLE_STATUSES, TERMINAL_STATUSES, can_enter,
)


class TestStageTables:
    """Entry/success statuses chain the stages together."""

    def test_stage_order(self):
        assert STAGE_ORDER == [Stage.SCRAPE, Stage.ANALYZE, Stage.DRAFT]

    def test_success_of_each_stage_is_entry_of_the_next(self):
        for stage in STAGE_ORDER:
            nxt = NEXT_STAGE[stage]
            if nxt is not None:
                assert SUCCESS_STATUS[stage] == ENTRY_STATUS[nxt]

    def test_draft_is_last(self):
        assert NEXT_STAGE[Stage.DRAFT] is None
        assert SUCCESS_STATUS[Stage.DRAFT] == LeadStatus.DRAFTED

    def test_blocked_is_terminal_and_not_retryable(self):
        assert LeadStatus.BLOCKED_BY_SAFETY in TERMINAL_STATUSES
        assert LeadStatus.BLOCKED_BY_SAFETY not in RETRYABLE_STATUSES

    def test_rate_limited_is_retryable(self):
        assert LeadStatus.RATE_LIMITED in RETRYABLE_STATUSES


class TestCanEnter:
    """can_enter() guards every stage attempt."""

    @pytest.mark.parametrize('stage,status', [
        ('scrape', 'NEW'),
        ('analyze', 'SCRAPED'),
        ('draft', 'ANALYZED'),
    ])
    def test_entry_status_admits_stage(self, stage, status):
        assert can_enter(stage, status) is True

    @pytest.mark.parametrize('stage,status', [
        ('scrape', 'SCRAPED'),
        ('scrape', 'DRAFTED'),
        ('analyze', 'NEW'),
        ('analyze', 'ANALYZED'),
        ('draft', 'SCRAPED'),
        ('draft', 'DRAFTED'),
    ])
    def test_other_statuses_rejected(self, stage, status):
        assert can_enter(stage, status) is False

    def test_failed_lead_readmits_the_stage_that_failed(self):
        assert can_enter(Stage.ANALYZE, LeadStatus.FAILED, 'analyze') is True
        assert can_enter(Stage.ANALYZE, LeadStatus.RATE_LIMITED, 'analyze') is True

    def test_failed_lead_rejects_other_stages(self):
        assert can_enter(Stage.SCRAPE, LeadStatus.FAILED, 'analyze') is False
        assert can_enter(Stage.DRAFT, LeadStatus.FAILED, 'analyze') is False

    def test_failed_without_stage_rejects_everything(self):
        for stage in STAGE_ORDER:
            assert can_enter(stage, LeadStatus.FAILED, None) is False

    def test_blocked_lead_rejects_even_its_own_stage(self):
        assert can_enter(Stage.DRAFT, LeadStatus.BLOCKED_BY_SAFETY, 'draft') is False

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            can_enter('scrape', 'PENDING')
