"""
Monitor routes — liveness, queue depth, dead-letter inspection, capability health.
"""
import logging
from datetime import datetime, timezone

from flask import Blueprint, request, jsonify, current_app

from leadpipe.pipeline.states import Stage

logger = logging.getLogger('routes.monitor')

bp = Blueprint('monitor', __name__)


@bp.route('/health')
def health():
    return jsonify({'status': 'ok', 'timestamp': datetime.now(timezone.utc).isoformat()})


@bp.route('/api/queues')
def queue_counts():
    """Per-stage job counts by state."""
    try:
        return jsonify(current_app.extensions['job_queue'].counts())
    except Exception as e:
        logger.error("Could not read queue counts", exc_info=True)
        return jsonify({'error': str(e)}), 503


@bp.route('/api/queues/<stage>/failed')
def failed_jobs(stage):
    """Most recent dead-letter jobs for one stage."""
    try:
        stage = Stage(stage)
    except ValueError:
        return jsonify({'error': f'Invalid stage: {stage}'}), 400
    limit = request.args.get('limit', 5, type=int)
    letters = current_app.extensions['job_queue'].failed_jobs(stage, limit=limit)
    return jsonify([letter.to_dict() for letter in letters])


@bp.route('/api/health')
def api_health():
    """Circuit breaker state for each capability."""
    breakers = current_app.extensions['breakers'] or {}
    return jsonify({'services': {name: cb.get_health() for name, cb in breakers.items()}})


@bp.route('/api/health/<service>/reset', methods=['POST'])
def reset_circuit(service):
    breakers = current_app.extensions['breakers'] or {}
    cb = breakers.get(service)
    if cb is None:
        return jsonify({'error': f'Unknown service: {service}'}), 404
    cb.reset()
    return jsonify({'ok': True, 'service': service})
