"""
Job queues — one durable RQ queue per pipeline stage.

Jobs are enqueued by dotted task path (leadpipe.pipeline.tasks.*) with the
lead payload as their only argument, so enqueueing never imports worker
code. Retry, backoff and retention come from a JobPolicy shared by all
three queues unless a caller overrides it.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from rq import Queue, Retry
from rq.job import Job

from leadpipe.config import QUEUE_NAMES
from leadpipe.pipeline.base import LeadPayload
from leadpipe.pipeline.states import Stage, STAGE_ORDER

logger = logging.getLogger('pipeline.queue')

TASKS = {
    Stage.SCRAPE: 'leadpipe.pipeline.tasks.scrape_lead',
    Stage.ANALYZE: 'leadpipe.pipeline.tasks.analyze_lead',
    Stage.DRAFT: 'leadpipe.pipeline.tasks.draft_lead',
}


@dataclass(frozen=True)
class JobPolicy:
    """Per-job delivery policy."""
    attempts: int = 5
    backoff_base: int = 5                        # seconds before the first retry
    timeout: int = 180                           # outer bound on one attempt
    keep_completed_seconds: int = 24 * 3600
    keep_completed_count: int = 1000
    keep_failed_seconds: int = 7 * 24 * 3600     # dead-letter retention

    def backoff_intervals(self) -> List[int]:
        """Delay before each retry: base, 2*base, 4*base, ..."""
        return [self.backoff_base * (2 ** i) for i in range(self.attempts - 1)]

    def retry(self) -> Optional[Retry]:
        if self.attempts <= 1:
            return None
        return Retry(max=self.attempts - 1, interval=self.backoff_intervals())

    @classmethod
    def from_config(cls):
        from leadpipe import config
        return cls(
            attempts=config.JOB_ATTEMPTS,
            backoff_base=config.BACKOFF_BASE,
            timeout=config.JOB_TIMEOUT,
            keep_completed_seconds=config.KEEP_COMPLETED_SECONDS,
            keep_completed_count=config.KEEP_COMPLETED_COUNT,
            keep_failed_seconds=config.KEEP_FAILED_SECONDS,
        )


@dataclass
class DeadLetter:
    """A job that exhausted its attempts."""
    job_id: str
    stage: str
    lead_id: Optional[str]
    reason: Optional[str]
    attempts: Optional[int]
    ended_at: Optional[str]

    def to_dict(self):
        return {
            'job_id': self.job_id,
            'stage': self.stage,
            'lead_id': self.lead_id,
            'reason': self.reason,
            'attempts': self.attempts,
            'ended_at': self.ended_at,
        }


class JobQueue:
    """
    The Scrape, Analyze and Draft queues behind one connection.

    Usage:
        jobs = JobQueue(redis_conn)
        job_id = jobs.enqueue('scrape', LeadPayload(lead_id))
    """

    def __init__(self, connection, policy: JobPolicy = None, queue_class=Queue):
        self.connection = connection
        self.policy = policy or JobPolicy()
        self._queues = {
            stage: queue_class(QUEUE_NAMES[stage.value], connection=connection)
            for stage in STAGE_ORDER
        }

    def queue(self, stage) -> Queue:
        return self._queues[Stage(stage)]

    # ── Submission ────────────────────────────────────────────────────

    def enqueue(self, stage, payload, policy: JobPolicy = None) -> str:
        """
        Durably enqueue one stage job for a lead and return its id.

        Does not wait for processing. Enqueueing the same lead/stage twice
        is allowed; the processors treat the second job as a no-op.
        """
        stage = Stage(stage)
        if isinstance(payload, dict):
            payload = LeadPayload.from_dict(payload)
        policy = policy or self.policy

        job = self.queue(stage).enqueue(
            TASKS[stage],
            args=(payload.to_dict(),),
            retry=policy.retry(),
            job_timeout=policy.timeout,
            result_ttl=policy.keep_completed_seconds,
            failure_ttl=policy.keep_failed_seconds,
            description=f'{stage.value} lead {payload.lead_id}',
            meta={
                'stage': stage.value,
                'lead_id': payload.lead_id,
                'max_attempts': policy.attempts,
            },
        )
        logger.info("Enqueued %s job %s for lead %s", stage.value, job.id, payload.lead_id)
        return job.id

    # ── Monitoring ────────────────────────────────────────────────────

    def counts(self) -> Dict[str, Dict[str, int]]:
        """Per-stage job counts by state."""
        out = {}
        for stage, q in self._queues.items():
            out[stage.value] = {
                'queued': q.count,
                'started': q.started_job_registry.count,
                'scheduled': q.scheduled_job_registry.count,
                'finished': q.finished_job_registry.count,
                'failed': q.failed_job_registry.count,
            }
        return out

    def failed_jobs(self, stage, limit: int = 5) -> List[DeadLetter]:
        """Most recent dead-letter records for a stage."""
        stage = Stage(stage)
        q = self.queue(stage)
        registry = q.failed_job_registry
        job_ids = registry.get_job_ids()[-limit:] if limit else registry.get_job_ids()

        letters = []
        for job in Job.fetch_many(list(reversed(job_ids)), connection=self.connection):
            if job is None:
                continue
            letters.append(_dead_letter(job, stage))
        return letters

    def requeue_failed(self, stage, job_id) -> None:
        """Move a dead-letter job back onto its queue (operator action)."""
        self.queue(stage).failed_job_registry.requeue(job_id)
        logger.info("Requeued dead-letter job %s on %s", job_id, Stage(stage).value)

    # ── Retention ─────────────────────────────────────────────────────

    def prune_completed(self) -> int:
        """
        Enforce the count bound on completed jobs. The time bound is
        handled by result_ttl. Returns the number of jobs removed.
        """
        keep = self.policy.keep_completed_count
        removed = 0
        for stage, q in self._queues.items():
            registry = q.finished_job_registry
            job_ids = registry.get_job_ids()   # oldest expiry first
            excess = job_ids[:-keep] if keep else job_ids
            for job_id in excess:
                registry.remove(job_id, delete_job=True)
                removed += 1
            if excess:
                logger.info("Pruned %d completed %s jobs", len(excess), stage.value)
        return removed

    def log_status(self):
        for stage, counts in self.counts().items():
            logger.info("Queue %s: %s", stage, counts)

    def close(self):
        self.connection.close()


def _dead_letter(job, stage) -> DeadLetter:
    reason = None
    result = job.latest_result()
    if result is not None:
        reason = result.exc_string
    meta = job.meta or {}
    max_attempts = meta.get('max_attempts')
    return DeadLetter(
        job_id=job.id,
        stage=stage.value,
        lead_id=meta.get('lead_id') or (job.args[0].get('lead_id') if job.args else None),
        reason=reason,
        attempts=max_attempts,
        ended_at=job.ended_at.isoformat() if job.ended_at else None,
    )
