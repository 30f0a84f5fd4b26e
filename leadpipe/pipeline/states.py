"""
Lead status state machine.

    NEW → SCRAPED → ANALYZED → DRAFTED

Any in-flight stage may instead move the lead into FAILED, RATE_LIMITED or
BLOCKED_BY_SAFETY. The lead remembers which stage failed (failed_stage) so
only that stage's retry can pick it back up.
"""
from enum import Enum


class LeadStatus(str, Enum):
    NEW = 'NEW'
    SCRAPED = 'SCRAPED'
    ANALYZED = 'ANALYZED'
    DRAFTED = 'DRAFTED'
    FAILED = 'FAILED'
    RATE_LIMITED = 'RATE_LIMITED'
    BLOCKED_BY_SAFETY = 'BLOCKED_BY_SAFETY'


class Stage(str, Enum):
    SCRAPE = 'scrape'
    ANALYZE = 'analyze'
    DRAFT = 'draft'


STAGE_ORDER = [Stage.SCRAPE, Stage.ANALYZE, Stage.DRAFT]

# Status a lead must hold before the stage runs
ENTRY_STATUS = {
    Stage.SCRAPE: LeadStatus.NEW,
    Stage.ANALYZE: LeadStatus.SCRAPED,
    Stage.DRAFT: LeadStatus.ANALYZED,
}

# Status a lead moves to when the stage succeeds
SUCCESS_STATUS = {
    Stage.SCRAPE: LeadStatus.SCRAPED,
    Stage.ANALYZE: LeadStatus.ANALYZED,
    Stage.DRAFT: LeadStatus.DRAFTED,
}

NEXT_STAGE = {
    Stage.SCRAPE: Stage.ANALYZE,
    Stage.ANALYZE: Stage.DRAFT,
    Stage.DRAFT: None,
}

# Failure states a stage retry is allowed to resume from
RETRYABLE_STATUSES = {LeadStatus.FAILED, LeadStatus.RATE_LIMITED}

TERMINAL_STATUSES = {LeadStatus.DRAFTED, LeadStatus.FAILED, LeadStatus.BLOCKED_BY_SAFETY}


def can_enter(stage, status, failed_stage=None):
    """
    True if a lead in `status` may be processed by `stage`.

    Either the lead sits at the stage's entry status, or the stage itself
    left it in a retryable failure state on an earlier attempt.
    """
    stage = Stage(stage)
    status = LeadStatus(status)
    if status == ENTRY_STATUS[stage]:
        return True
    return status in RETRYABLE_STATUSES and failed_stage == stage.value

