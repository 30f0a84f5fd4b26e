"""
Draft routes — the review list.
"""
from flask import Blueprint, request, jsonify, current_app

from leadpipe.models.email_draft import DRAFT_STATUSES

bp = Blueprint('drafts', __name__)


@bp.route('/drafts')
def list_drafts():
    """List drafts newest first, optionally filtered by review status."""
    status = request.args.get('status')
    if status and status not in DRAFT_STATUSES:
        return jsonify({'error': f'Invalid status: {status}'}), 400
    limit = request.args.get('limit', 100, type=int)
    drafts = current_app.extensions['lead_store'].list_drafts(status=status, limit=limit)
    return jsonify(drafts)
