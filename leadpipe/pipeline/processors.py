"""
Stage processors — scrape → analyze → draft.

Each processor handles one job for one lead:
  1. Load the lead (and the previous stage's output)
  2. Call its capability (Scraper or Generator)
  3. Commit the stage output + status change in one transaction
  4. Enqueue the next stage

A processor either returns a StageOutcome (the job completes) or re-raises
the capability error so the queue retries per its policy. The lead is
always left in a status that matches its persisted rows.
"""
import logging
from abc import ABC, abstractmethod
from enum import Enum

from leadpipe.pipeline.base import (
    ErrorKind, FAILURE_STATUS, StaleLeadError, LeadPayload, StageJob, classify,
)
from leadpipe.pipeline.states import (
    Stage, SUCCESS_STATUS, NEXT_STAGE, can_enter,
)

logger = logging.getLogger('pipeline.processors')


class StageOutcome(str, Enum):
    COMPLETED = 'completed'
    SKIPPED = 'skipped'            # stale or duplicate job, nothing written
    MISSING_INPUT = 'missing_input'
    BLOCKED = 'blocked'            # safety rejection, not retried
    HANDOFF_REPAIRED = 'handoff_repaired'


class StageProcessor(ABC):
    """
    Shared job flow. Subclasses supply the stage, the input loader, the
    capability call and the persistence call.
    """
    stage: Stage = None
    label: str = ''

    def __init__(self, store, queue, notifier=None):
        self.store = store
        self.queue = queue
        self.notifier = notifier

    # ── Stage-specific hooks ──────────────────────────────────────────

    @abstractmethod
    def load_input(self, lead):
        """Return the capability input, or None if the prerequisite row is missing."""
        ...

    @abstractmethod
    def run_capability(self, lead, data):
        ...

    @abstractmethod
    def persist(self, lead, result):
        ...

    # ── Job flow ──────────────────────────────────────────────────────

    def process(self, job: StageJob) -> StageOutcome:
        logger.info(
            "[%s] Processing job %s for lead %s (attempt %d/%d)",
            self.label, job.job_id, job.lead_id, job.attempt, job.max_attempts,
        )

        lead = self.store.get_lead(job.lead_id)
        if lead is None:
            logger.error("[%s] Lead %s not found", self.label, job.lead_id)
            return StageOutcome.MISSING_INPUT

        if not can_enter(self.stage, lead.status, lead.failed_stage):
            return self._reject(job, lead)

        data = self.load_input(lead)
        if data is None:
            logger.error(
                "[%s] Prerequisite data for lead %s not found — completing without retry",
                self.label, lead.id,
            )
            return StageOutcome.MISSING_INPUT

        try:
            result = self.run_capability(lead, data)
            self.persist(lead, result)
        except StaleLeadError as e:
            logger.warning("[%s] %s — another attempt got there first", self.label, e)
            return StageOutcome.SKIPPED
        except Exception as e:
            return self._fail(job, lead, e)

        logger.info("[%s] Lead %s (%s) → %s", self.label, lead.id, lead.domain, SUCCESS_STATUS[self.stage].value)
        self._hand_off(lead.id)
        return StageOutcome.COMPLETED

    def _reject(self, job, lead):
        """Precondition unmet: complete the job without touching the lead."""
        if job.is_retry and lead.status == SUCCESS_STATUS[self.stage]:
            # An earlier attempt committed but died before enqueueing the next stage
            logger.warning(
                "[%s] Lead %s already %s on retry — re-issuing handoff",
                self.label, lead.id, lead.status.value,
            )
            self._hand_off(lead.id)
            return StageOutcome.HANDOFF_REPAIRED

        logger.warning(
            "[%s] Rejecting job %s: lead %s is %s (failed_stage=%s)",
            self.label, job.job_id, lead.id, lead.status.value, lead.failed_stage,
        )
        return StageOutcome.SKIPPED

    def _hand_off(self, lead_id):
        next_stage = NEXT_STAGE[self.stage]
        if next_stage is not None:
            self.queue.enqueue(next_stage, LeadPayload(lead_id))

    def _fail(self, job, lead, error):
        """
        Record the classified failure, then re-raise for the queue to retry.

        A safety block is swallowed only once BLOCKED_BY_SAFETY is stored;
        if the status write itself failed, the job is retried so a later
        attempt records it.
        """
        kind = classify(error)
        status = FAILURE_STATUS[kind]
        logger.error(
            "[%s] Error processing lead %s (%s, attempt %d/%d): %s",
            self.label, lead.id, kind.value, job.attempt, job.max_attempts, error,
        )

        recorded = True
        try:
            self.store.mark_failed(lead.id, self.stage, status)
        except Exception:
            # Store unreachable: the retry will record the status
            logger.exception("[%s] Could not record %s for lead %s", self.label, status.value, lead.id)
            recorded = False

        if kind == ErrorKind.SAFETY_BLOCKED and recorded:
            # The same request will be refused again; don't burn retries
            logger.warning("[%s] Lead %s blocked by safety policy — not retrying", self.label, lead.id)
            self._notify(lead, job, status, error)
            return StageOutcome.BLOCKED

        if job.is_final_attempt:
            logger.error(
                "[%s] Job %s for lead %s exhausted %d attempts — moving to dead-letter",
                self.label, job.job_id, lead.id, job.max_attempts,
            )
            self._notify(lead, job, status, error)
        raise error

    def _notify(self, lead, job, status, error):
        if self.notifier is not None:
            self.notifier.notify_dead_letter(self.stage.value, lead, job, status, error)


class ScrapeProcessor(StageProcessor):
    stage = Stage.SCRAPE
    label = 'Scraper'

    def __init__(self, store, queue, scraper, notifier=None):
        super().__init__(store, queue, notifier)
        self.scraper = scraper

    def load_input(self, lead):
        return lead.domain

    def run_capability(self, lead, domain):
        return self.scraper.scrape(domain)

    def persist(self, lead, result):
        self.store.complete_scrape(lead.id, result)


class AnalyzeProcessor(StageProcessor):
    stage = Stage.ANALYZE
    label = 'Analyst'

    def __init__(self, store, queue, generator, notifier=None):
        super().__init__(store, queue, notifier)
        self.generator = generator

    def load_input(self, lead):
        return self.store.get_scraped_data(lead.id)

    def run_capability(self, lead, scraped):
        return self.generator.analyze(scraped.raw_text, scraped.meta_description, scraped.tech_stack)

    def persist(self, lead, result):
        self.store.complete_analysis(lead.id, result)


class DraftProcessor(StageProcessor):
    stage = Stage.DRAFT
    label = 'Copywriter'

    def __init__(self, store, queue, generator, notifier=None):
        super().__init__(store, queue, notifier)
        self.generator = generator

    def load_input(self, lead):
        return self.store.get_latest_analysis(lead.id)

    def run_capability(self, lead, analysis):
        return self.generator.draft(analysis)

    def persist(self, lead, result):
        self.store.complete_draft(lead.id, result)


def build_processors(store, queue, scraper, generator, notifier=None):
    """stage → processor, as the worker host binds them."""
    return {
        Stage.SCRAPE: ScrapeProcessor(store, queue, scraper, notifier),
        Stage.ANALYZE: AnalyzeProcessor(store, queue, generator, notifier),
        Stage.DRAFT: DraftProcessor(store, queue, generator, notifier),
    }
