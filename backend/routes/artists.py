"""
Artist Roster Routes

- GET /teams/<id>/artists - Roster with task/initiative counts
- POST /teams/<id>/artists - Add an artist
- GET /artists/<id> - Artist detail
- PATCH /artists/<id> - Inline edit of artist fields
"""

from flask import Blueprint, jsonify, request
import logging

import label_db
from middleware.auth_middleware import require_auth, require_team_member, check_team_access
from utils.helpers import pick_fields, safe_strip

logger = logging.getLogger(__name__)
artists_bp = Blueprint('artists', __name__)


def _load_artist(artist_id):
    """Artist row plus an error response when missing or not accessible"""
    artist = label_db.get_artist(artist_id)
    if not artist:
        return None, (jsonify({'error': 'Artist not found'}), 404)
    denied = check_team_access(artist['team_id'])
    if denied:
        return None, denied
    return artist, None


@artists_bp.route('/teams/<team_id>/artists', methods=['GET'])
@require_auth
@require_team_member
def list_artists(team_id):
    try:
        return jsonify(label_db.list_artists(team_id)), 200
    except Exception as e:
        logger.error(f"Error fetching artists for team {team_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to fetch artists'}), 500


@artists_bp.route('/teams/<team_id>/artists', methods=['POST'])
@require_auth
@require_team_member
def create_artist(team_id):
    """
    Returns:
        201: Artist row
        400: Missing name
    """
    data = request.get_json(silent=True) or {}
    if not safe_strip(data.get('name')):
        return jsonify({'error': 'Artist name is required'}), 400

    try:
        artist = label_db.create_artist(team_id, pick_fields(data, label_db.ARTIST_COLUMNS))
        return jsonify(artist), 201
    except Exception as e:
        logger.error(f"Error creating artist: {e}", exc_info=True)
        return jsonify({'error': 'Failed to create artist'}), 500


@artists_bp.route('/artists/<artist_id>', methods=['GET'])
@require_auth
def get_artist(artist_id):
    try:
        artist, error = _load_artist(artist_id)
        if error:
            return error
        return jsonify(artist), 200
    except Exception as e:
        logger.error(f"Error fetching artist {artist_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to fetch artist'}), 500


@artists_bp.route('/artists/<artist_id>', methods=['PATCH'])
@require_auth
def update_artist(artist_id):
    """
    Update editable artist fields; unknown fields are ignored

    Returns:
        200: Updated artist row
        400: No editable fields supplied
    """
    data = request.get_json(silent=True) or {}
    values = pick_fields(data, label_db.ARTIST_COLUMNS)
    if not values:
        return jsonify({'error': 'No editable fields supplied'}), 400
    if 'name' in values and not values['name']:
        return jsonify({'error': 'Artist name cannot be empty'}), 400

    try:
        artist, error = _load_artist(artist_id)
        if error:
            return error
        return jsonify(label_db.update_artist(artist_id, values)), 200
    except Exception as e:
        logger.error(f"Error updating artist {artist_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to update artist'}), 500
