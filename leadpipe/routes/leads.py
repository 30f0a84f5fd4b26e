"""
Lead routes — ingress (create + enqueue), status polling, operator retry.
"""
import logging

from flask import Blueprint, request, jsonify, current_app

from leadpipe.pipeline.base import LeadPayload
from leadpipe.pipeline.states import LeadStatus, Stage

logger = logging.getLogger('routes.leads')

bp = Blueprint('leads', __name__)


def _store():
    return current_app.extensions['lead_store']


def _jobs():
    return current_app.extensions['job_queue']


@bp.route('/leads', methods=['POST'])
def create_leads():
    """Create a lead per new domain and enqueue its scrape job."""
    data = request.get_json(silent=True) or {}
    domains = data.get('domains')
    if not isinstance(domains, list) or not domains:
        return jsonify({'error': "'domains' must be a non-empty list of strings"}), 400
    if not all(isinstance(d, str) and d.strip() for d in domains):
        return jsonify({'error': "every domain must be a non-empty string"}), 400

    try:
        results = []
        for domain in domains:
            lead, created = _store().create_lead(domain)
            # NEW leads are re-enqueued too, in case an earlier enqueue was lost
            if created or lead.status == LeadStatus.NEW:
                _jobs().enqueue(Stage.SCRAPE, LeadPayload(lead.id))
            results.append(lead.to_dict())
        return jsonify({'message': 'Leads processed', 'leads': results})

    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except Exception:
        logger.error("Error creating leads", exc_info=True)
        return jsonify({'error': 'Internal Server Error'}), 500


@bp.route('/leads/<lead_id>')
def get_lead(lead_id):
    """Lead status plus every stage output."""
    detail = _store().lead_detail(lead_id)
    if detail is None:
        return jsonify({'error': 'Lead not found'}), 404
    return jsonify(detail)


@bp.route('/leads/<lead_id>/retry', methods=['POST'])
def retry_lead(lead_id):
    """Re-enqueue the stage a FAILED or RATE_LIMITED lead stopped at."""
    lead = _store().get_lead(lead_id)
    if lead is None:
        return jsonify({'error': 'Lead not found'}), 404

    stage = _store().retryable_stage(lead_id)
    if stage is None:
        return jsonify({
            'error': f'Lead is {lead.status.value} and cannot be retried',
        }), 409

    job_id = _jobs().enqueue(stage, LeadPayload(lead_id))
    logger.info("Operator retry: lead %s re-enqueued at %s (job %s)", lead_id, stage.value, job_id)
    return jsonify({'lead_id': lead_id, 'stage': stage.value, 'job_id': job_id}), 202
