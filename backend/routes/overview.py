"""
Team Overview Routes

- GET /teams/<id>/overview - Financial snapshot, quarterly P&L, spend per
  act, staff productivity and A&R pipeline counts
"""

from flask import Blueprint, jsonify
import logging

import label_db
from middleware.auth_middleware import require_auth, require_team_member
from overview import build_overview

logger = logging.getLogger(__name__)
overview_bp = Blueprint('overview', __name__)


@overview_bp.route('/teams/<team_id>/overview', methods=['GET'])
@require_auth
@require_team_member
def team_overview(team_id):
    try:
        artists = label_db.list_artists(team_id)
        artist_ids = [a['id'] for a in artists]

        result = build_overview(
            artists=artists,
            budgets=label_db.list_budgets(artist_ids),
            transactions=label_db.list_transactions(artist_ids),
            tasks=label_db.list_tasks(team_id=team_id),
            initiatives=label_db.list_initiatives(artist_ids),
            memberships=label_db.list_team_members(team_id),
            prospects=label_db.list_prospects(team_id),
        )
        return jsonify(result), 200

    except Exception as e:
        logger.error(f"Error building overview for team {team_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to build overview'}), 500
