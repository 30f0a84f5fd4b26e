"""
RQ entrypoints — the functions the queues name by dotted path.

A worker process binds its PipelineContext here at startup (see
pipeline.host) and unbinds it on shutdown. The entrypoints only validate
the payload, read the attempt counter off the RQ job and delegate to the
bound processor.
"""
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List

from rq import get_current_job

from leadpipe.pipeline.base import LeadPayload, PayloadError, StageJob
from leadpipe.pipeline.states import Stage

logger = logging.getLogger('pipeline.tasks')


@dataclass
class PipelineContext:
    """Everything a worker process opened at startup and must close on shutdown."""
    processors: Dict[Stage, object]
    closers: List[Callable[[], None]] = field(default_factory=list)

    def close(self):
        for close in reversed(self.closers):
            try:
                close()
            except Exception:
                logger.warning("Error while closing worker resource", exc_info=True)


_context = None


def bind(context: PipelineContext):
    global _context
    _context = context


def unbind():
    global _context
    ctx, _context = _context, None
    if ctx is not None:
        ctx.close()


def _processor(stage):
    if _context is None:
        raise RuntimeError("No pipeline context bound in this worker process")
    return _context.processors[stage]


def current_stage_job(payload: LeadPayload) -> StageJob:
    """Build the StageJob view of the RQ job currently executing."""
    job = get_current_job()
    if job is None:
        return StageJob(job_id='local', lead_id=payload.lead_id)

    max_attempts = int((job.meta or {}).get('max_attempts', 1))
    retries_left = job.retries_left if job.retries_left is not None else 0
    # retries_left is decremented each time RQ schedules a retry
    attempt = max_attempts - retries_left
    return StageJob(
        job_id=job.id,
        lead_id=payload.lead_id,
        attempt=max(1, attempt),
        max_attempts=max_attempts,
    )


def _run(stage, payload):
    try:
        payload = LeadPayload.from_dict(payload)
    except PayloadError:
        # Retrying a malformed payload can't help
        logger.error("Dropping %s job with invalid payload", stage.value, exc_info=True)
        return 'invalid_payload'
    outcome = _processor(stage).process(current_stage_job(payload))
    return outcome.value


def scrape_lead(payload):
    return _run(Stage.SCRAPE, payload)


def analyze_lead(payload):
    return _run(Stage.ANALYZE, payload)


def draft_lead(payload):
    return _run(Stage.DRAFT, payload)
