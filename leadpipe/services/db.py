"""
Lead Store — the authoritative record of every lead and its stage outputs.

Every status change commits in the same transaction as the row it
describes, under a lock on the lead row. A reader never sees SCRAPED
without ScrapedData, ANALYZED without an AnalysisReport, DRAFTED without
an EmailDraft.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError

from leadpipe.models.lead import Lead
from leadpipe.models.scraped_data import ScrapedData
from leadpipe.models.analysis_report import AnalysisReport
from leadpipe.models.email_draft import EmailDraft
from leadpipe.pipeline.base import (
    ScrapeResult, AnalysisResult, DraftResult, StaleLeadError,
)
from leadpipe.pipeline.states import (
    LeadStatus, Stage, SUCCESS_STATUS, RETRYABLE_STATUSES, can_enter,
)

logger = logging.getLogger('services.db')


@dataclass(frozen=True)
class LeadSnapshot:
    """Detached view of a lead row."""
    id: str
    domain: str
    status: LeadStatus
    failed_stage: Optional[str] = None
    company_name: Optional[str] = None

    @classmethod
    def of(cls, lead) -> 'LeadSnapshot':
        return cls(
            id=lead.id,
            domain=lead.domain,
            status=LeadStatus(lead.status),
            failed_stage=lead.failed_stage,
            company_name=lead.company_name,
        )

    def to_dict(self):
        return {
            'id': self.id,
            'domain': self.domain,
            'company_name': self.company_name,
            'status': self.status.value,
            'failed_stage': self.failed_stage,
        }


class LeadStore:
    """
    Transactional persistence for the pipeline.

    Takes a session factory so processors and routes can be handed a store
    bound to any engine (Postgres in production, in-memory SQLite in tests).
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory

    @contextmanager
    def session_scope(self):
        """One unit of work: commit on success, roll back on any error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ── Ingress ───────────────────────────────────────────────────────

    def create_lead(self, domain, company_name=None):
        """
        Return (snapshot, created). Leads are unique per domain; an existing
        lead is returned untouched.
        """
        domain = normalize_domain(domain)
        with self.session_scope() as session:
            lead = session.query(Lead).filter_by(domain=domain).first()
            if lead is not None:
                return LeadSnapshot.of(lead), False

        try:
            with self.session_scope() as session:
                lead = Lead(domain=domain, company_name=company_name, status=LeadStatus.NEW.value)
                session.add(lead)
                session.flush()
                snapshot = LeadSnapshot.of(lead)
            logger.info("Created lead %s for %s", snapshot.id, domain)
            return snapshot, True
        except IntegrityError:
            # Lost a race with another ingress request for the same domain
            with self.session_scope() as session:
                lead = session.query(Lead).filter_by(domain=domain).one()
                return LeadSnapshot.of(lead), False

    # ── Reads ─────────────────────────────────────────────────────────

    def get_lead(self, lead_id) -> Optional[LeadSnapshot]:
        with self.session_scope() as session:
            lead = session.get(Lead, lead_id)
            return LeadSnapshot.of(lead) if lead else None

    def get_scraped_data(self, lead_id) -> Optional[ScrapeResult]:
        with self.session_scope() as session:
            row = session.query(ScrapedData).filter_by(lead_id=lead_id).first()
            if row is None:
                return None
            return ScrapeResult(
                raw_text=row.raw_text,
                meta_description=row.meta_description,
                social_links=row.social_links or [],
                tech_stack=row.tech_stack or {},
            )

    def get_latest_analysis(self, lead_id) -> Optional[AnalysisResult]:
        with self.session_scope() as session:
            row = (
                session.query(AnalysisReport)
                .filter_by(lead_id=lead_id)
                .order_by(AnalysisReport.created_at.desc(), AnalysisReport.id.desc())
                .first()
            )
            if row is None:
                return None
            return AnalysisResult(
                business_model=row.business_model,
                pain_points=list(row.pain_points or []),
                suggested_solutions=list(row.suggested_solutions or []),
                model_id=row.model_used,
                revenue_estimate=row.revenue_estimate,
            )

    def lead_detail(self, lead_id) -> Optional[dict]:
        """Read model for status polling: the lead plus all of its stage outputs."""
        with self.session_scope() as session:
            lead = session.get(Lead, lead_id)
            if lead is None:
                return None
            scraped = session.query(ScrapedData).filter_by(lead_id=lead_id).first()
            reports = (
                session.query(AnalysisReport)
                .filter_by(lead_id=lead_id)
                .order_by(AnalysisReport.created_at.desc(), AnalysisReport.id.desc())
                .all()
            )
            drafts = (
                session.query(EmailDraft)
                .filter_by(lead_id=lead_id)
                .order_by(EmailDraft.created_at.desc(), EmailDraft.id.desc())
                .all()
            )
            detail = LeadSnapshot.of(lead).to_dict()
            detail.update({
                'created_at': _iso(lead.created_at),
                'updated_at': _iso(lead.updated_at),
                'scraped_data': _scraped_dict(scraped) if scraped else None,
                'analysis_reports': [_report_dict(r) for r in reports],
                'email_drafts': [_draft_dict(d) for d in drafts],
            })
            return detail

    def list_drafts(self, status=None, limit=100):
        """Drafts newest first, each with its lead's domain and company name."""
        with self.session_scope() as session:
            query = (
                session.query(EmailDraft, Lead.domain, Lead.company_name)
                .join(Lead, Lead.id == EmailDraft.lead_id)
            )
            if status:
                query = query.filter(EmailDraft.status == status)
            rows = query.order_by(EmailDraft.created_at.desc(), EmailDraft.id.desc()).limit(limit).all()
            out = []
            for draft, domain, company_name in rows:
                d = _draft_dict(draft)
                d['lead'] = {'domain': domain, 'company_name': company_name}
                out.append(d)
            return out

    # ── Stage transitions ─────────────────────────────────────────────

    def complete_scrape(self, lead_id, result: ScrapeResult) -> None:
        """Write ScrapedData and move the lead to SCRAPED, atomically."""
        with self.session_scope() as session:
            lead = self._lock_for_stage(session, lead_id, Stage.SCRAPE)
            row = session.query(ScrapedData).filter_by(lead_id=lead_id).first()
            if row is None:
                row = ScrapedData(lead_id=lead_id)
                session.add(row)
            # a rescrape after a failed later stage overwrites the single row
            row.raw_text = result.raw_text
            row.meta_description = result.meta_description
            row.social_links = list(result.social_links)
            row.tech_stack = dict(result.tech_stack)
            _advance(lead, Stage.SCRAPE)

    def complete_analysis(self, lead_id, result: AnalysisResult) -> None:
        """Insert an AnalysisReport and move the lead to ANALYZED, atomically."""
        with self.session_scope() as session:
            lead = self._lock_for_stage(session, lead_id, Stage.ANALYZE)
            session.add(AnalysisReport(
                lead_id=lead_id,
                business_model=result.business_model,
                pain_points=list(result.pain_points),
                suggested_solutions=list(result.suggested_solutions),
                revenue_estimate=result.revenue_estimate,
                model_used=result.model_id,
            ))
            _advance(lead, Stage.ANALYZE)

    def complete_draft(self, lead_id, result: DraftResult) -> None:
        """Insert an EmailDraft (pending review) and move the lead to DRAFTED, atomically."""
        with self.session_scope() as session:
            lead = self._lock_for_stage(session, lead_id, Stage.DRAFT)
            session.add(EmailDraft(
                lead_id=lead_id,
                subject_line=result.subject_line,
                body_text=result.body_text,
                status='pending_review',
                template_version=result.template_version,
            ))
            _advance(lead, Stage.DRAFT)

    def mark_failed(self, lead_id, stage, status) -> bool:
        """
        Record a classified failure for `stage`.

        Only applied while the stage still owns the lead, so a stale
        duplicate job can never knock a finished lead backwards. Returns
        False when the write was refused.
        """
        stage = Stage(stage)
        status = LeadStatus(status)
        with self.session_scope() as session:
            lead = self._locked(session, lead_id)
            if lead is None or not can_enter(stage, lead.status, lead.failed_stage):
                logger.warning(
                    "Not marking lead %s %s: stage '%s' no longer owns it (status=%s)",
                    lead_id, status.value, stage.value, lead.status if lead else None,
                )
                return False
            lead.status = status.value
            lead.failed_stage = stage.value
        logger.info("Lead %s marked %s during %s", lead_id, status.value, stage.value)
        return True

    def retryable_stage(self, lead_id) -> Optional[Stage]:
        """
        Stage an operator may re-enqueue for this lead, or None.

        Only FAILED and RATE_LIMITED leads are retryable; BLOCKED_BY_SAFETY
        is terminal.
        """
        lead = self.get_lead(lead_id)
        if lead is None or lead.status not in RETRYABLE_STATUSES or not lead.failed_stage:
            return None
        return Stage(lead.failed_stage)

    # ── Private helpers ───────────────────────────────────────────────

    def _locked(self, session, lead_id):
        # FOR UPDATE serializes concurrent attempts on one lead (no-op on SQLite)
        return session.query(Lead).filter_by(id=lead_id).with_for_update().first()

    def _lock_for_stage(self, session, lead_id, stage):
        lead = self._locked(session, lead_id)
        if lead is None or not can_enter(stage, lead.status, lead.failed_stage):
            raise StaleLeadError(lead_id, stage.value, lead.status if lead else None)
        return lead


def _advance(lead, stage):
    lead.status = SUCCESS_STATUS[stage].value
    lead.failed_stage = None


def normalize_domain(domain):
    """'https://Example.com/' → 'example.com'."""
    d = (domain or '').strip().lower()
    for prefix in ('https://', 'http://'):
        if d.startswith(prefix):
            d = d[len(prefix):]
    d = d.split('/', 1)[0]
    if not d:
        raise ValueError("Empty domain")
    return d


def _iso(dt):
    return dt.isoformat() if dt else None


def _scraped_dict(row):
    return {
        'raw_text': row.raw_text,
        'meta_description': row.meta_description,
        'social_links': row.social_links or [],
        'tech_stack': row.tech_stack or {},
        'created_at': _iso(row.created_at),
    }


def _report_dict(row):
    return {
        'id': row.id,
        'business_model': row.business_model,
        'pain_points': row.pain_points or [],
        'suggested_solutions': row.suggested_solutions or [],
        'revenue_estimate': row.revenue_estimate,
        'model_used': row.model_used,
        'created_at': _iso(row.created_at),
    }


def _draft_dict(row):
    return {
        'id': row.id,
        'lead_id': row.lead_id,
        'subject_line': row.subject_line,
        'body_text': row.body_text,
        'status': row.status,
        'template_version': row.template_version,
        'created_at': _iso(row.created_at),
    }
