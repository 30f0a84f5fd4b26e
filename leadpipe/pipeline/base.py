"""
Pipeline stage contracts.

Capabilities (Scraper, Generator) return typed results and raise
CapabilityError subclasses tagged with an ErrorKind. Processors never look
at error messages; the tag alone decides the lead's failure status and
whether the queue should retry.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional

import redis
from sqlalchemy.exc import SQLAlchemyError

from leadpipe.pipeline.states import LeadStatus

RAW_TEXT_LIMIT = 10000


# ── Errors ────────────────────────────────────────────────────────────────────

class ErrorKind(str, Enum):
    TRANSIENT = 'transient'
    RATE_LIMITED = 'rate_limited'
    SAFETY_BLOCKED = 'safety_blocked'
    GENERIC = 'generic'


FAILURE_STATUS = {
    ErrorKind.TRANSIENT: LeadStatus.FAILED,
    ErrorKind.GENERIC: LeadStatus.FAILED,
    ErrorKind.RATE_LIMITED: LeadStatus.RATE_LIMITED,
    ErrorKind.SAFETY_BLOCKED: LeadStatus.BLOCKED_BY_SAFETY,
}


class CapabilityError(Exception):
    """Base for every error a Scraper or Generator raises."""
    kind = ErrorKind.GENERIC

    def __init__(self, message='', kind=None):
        super().__init__(message)
        if kind is not None:
            self.kind = ErrorKind(kind)


class ScrapeError(CapabilityError):
    pass


class FetchError(ScrapeError):
    """The page could not be fetched. Network-level failures are transient."""
    kind = ErrorKind.TRANSIENT


class ScrapeTimeout(ScrapeError):
    kind = ErrorKind.TRANSIENT


class GenerationError(CapabilityError):
    pass


class RateLimitedError(GenerationError):
    kind = ErrorKind.RATE_LIMITED


class SafetyBlockedError(GenerationError):
    kind = ErrorKind.SAFETY_BLOCKED


class GenerationTimeout(GenerationError):
    kind = ErrorKind.TRANSIENT


class StaleLeadError(Exception):
    """The lead's status no longer admits the stage (duplicate or stale job)."""

    def __init__(self, lead_id, stage, status):
        self.lead_id = lead_id
        self.stage = stage
        self.status = status
        super().__init__(f"Lead {lead_id} in status {status} does not admit stage '{stage}'")


class PayloadError(ValueError):
    """A job payload failed validation."""


def classify(exc) -> ErrorKind:
    """Map any exception raised while processing a job to an ErrorKind."""
    if isinstance(exc, CapabilityError):
        return exc.kind
    if isinstance(exc, (SQLAlchemyError, redis.ConnectionError, redis.TimeoutError, TimeoutError)):
        return ErrorKind.TRANSIENT
    return ErrorKind.GENERIC


# ── Job payload ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class LeadPayload:
    """The body of every stage job."""
    lead_id: str

    @classmethod
    def from_dict(cls, data) -> 'LeadPayload':
        if not isinstance(data, dict):
            raise PayloadError(f"Job payload must be a dict, got {type(data).__name__}")
        lead_id = data.get('lead_id')
        if not isinstance(lead_id, str) or not lead_id:
            raise PayloadError(f"Job payload has no usable lead_id: {data!r}")
        return cls(lead_id=lead_id)

    def to_dict(self) -> Dict[str, str]:
        return {'lead_id': self.lead_id}


@dataclass(frozen=True)
class StageJob:
    """A dequeued job as the processors see it."""
    job_id: str
    lead_id: str
    attempt: int = 1
    max_attempts: int = 1

    @property
    def is_retry(self) -> bool:
        return self.attempt > 1

    @property
    def is_final_attempt(self) -> bool:
        return self.attempt >= self.max_attempts


# ── Capability results ───────────────────────────────────────────────────────

@dataclass
class ScrapeResult:
    raw_text: str
    meta_description: Optional[str] = None
    social_links: List[str] = field(default_factory=list)
    tech_stack: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        self.raw_text = (self.raw_text or '')[:RAW_TEXT_LIMIT]
        # de-dupe, keep first-seen order
        self.social_links = list(dict.fromkeys(self.social_links or []))
        self.tech_stack = dict(self.tech_stack or {})


@dataclass
class AnalysisResult:
    business_model: str
    pain_points: List[str]
    suggested_solutions: List[str]
    model_id: str
    revenue_estimate: Optional[str] = None

    @classmethod
    def from_generated(cls, data, model_id) -> 'AnalysisResult':
        """Validate the JSON object a generation backend returned."""
        if not isinstance(data, dict):
            raise GenerationError("Analysis response is not a JSON object")
        business_model = data.get('business_model') or data.get('businessModel')
        if not isinstance(business_model, str) or not business_model.strip():
            raise GenerationError("Analysis response is missing business_model")
        pain_points = _string_list(data.get('pain_points', data.get('painPoints')), 'pain_points')
        solutions = _string_list(data.get('suggested_solutions', data.get('suggestedSolutions')), 'suggested_solutions')
        revenue = data.get('revenue_estimate', data.get('revenueEstimation'))
        if revenue is not None and not isinstance(revenue, str):
            revenue = str(revenue)
        return cls(
            business_model=business_model.strip(),
            pain_points=pain_points,
            suggested_solutions=solutions,
            model_id=model_id,
            revenue_estimate=revenue or None,
        )

    def to_dict(self):
        return asdict(self)


@dataclass
class DraftResult:
    subject_line: str
    body_text: str
    template_version: str

    @classmethod
    def from_generated(cls, data, template_version) -> 'DraftResult':
        if not isinstance(data, dict):
            raise GenerationError("Draft response is not a JSON object")
        subject = data.get('subject_line') or data.get('subjectLine')
        body = data.get('body_text') or data.get('bodyContent')
        if not isinstance(subject, str) or not subject.strip():
            raise GenerationError("Draft response is missing subject_line")
        if not isinstance(body, str) or not body.strip():
            raise GenerationError("Draft response is missing body_text")
        return cls(subject_line=subject.strip(), body_text=body.strip(), template_version=template_version)


def _string_list(value, name):
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise GenerationError(f"Analysis response field '{name}' must be a list of strings")
    return [v.strip() for v in value if v.strip()]


# ── Capabilities ─────────────────────────────────────────────────────────────

class Scraper(ABC):
    """Turns a domain into page text, metadata and technology signals."""

    @abstractmethod
    def scrape(self, domain: str) -> ScrapeResult:
        """
        Fetch and extract the lead's website.

        Raises:
            FetchError:    the page could not be retrieved.
            ScrapeTimeout: the fetch exceeded its time bound.
        """
        ...

    def close(self):
        pass


class Generator(ABC):
    """Generative backend for the analyze and draft stages."""

    @abstractmethod
    def analyze(self, raw_text: str, meta_description: Optional[str],
                tech_stack: Dict[str, str]) -> AnalysisResult:
        ...

    @abstractmethod
    def draft(self, analysis: AnalysisResult) -> DraftResult:
        ...

    def close(self):
        pass
