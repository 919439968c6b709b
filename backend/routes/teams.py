"""
Team Routes

This module handles team membership operations:
- GET /teams - Teams the user belongs to (requires auth)
- POST /teams - Create a team owned by the user (requires auth)
- GET /teams/<id>/members - Team members with profiles (requires membership)
- POST /invites/accept - Join a team through an invite link (requires auth)
"""

from flask import Blueprint, jsonify, request, g
import logging

import label_db
from label_db import InviteError
from middleware.auth_middleware import require_auth, require_team_member
from utils.helpers import safe_strip

logger = logging.getLogger(__name__)
teams_bp = Blueprint('teams', __name__)


@teams_bp.route('/teams', methods=['GET'])
@require_auth
def list_teams():
    try:
        teams = label_db.list_teams_for_user(g.current_user['id'])
        return jsonify(teams), 200
    except Exception as e:
        logger.error(f"Error fetching teams: {e}", exc_info=True)
        return jsonify({'error': 'Failed to fetch teams'}), 500


@teams_bp.route('/teams', methods=['POST'])
@require_auth
def create_team():
    """
    Create a team; the creator becomes its owner

    Returns:
        201: Team row
        400: Missing name
    """
    data = request.get_json(silent=True) or {}
    name = safe_strip(data.get('name'))
    if not name:
        return jsonify({'error': 'Team name is required'}), 400

    try:
        team = label_db.create_team(name, g.current_user['id'])
        return jsonify(team), 201
    except Exception as e:
        logger.error(f"Error creating team: {e}", exc_info=True)
        return jsonify({'error': 'Failed to create team'}), 500


@teams_bp.route('/teams/<team_id>/members', methods=['GET'])
@require_auth
@require_team_member
def list_members(team_id):
    try:
        return jsonify(label_db.list_team_members(team_id)), 200
    except Exception as e:
        logger.error(f"Error fetching members for team {team_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to fetch team members'}), 500


@teams_bp.route('/invites/accept', methods=['POST'])
@require_auth
def accept_invite():
    """
    Accept an invite link

    Request body:
        {"token": "..."}

    Returns:
        200: {"success": true, "team_name", "role", "artists"}
        400: Missing token
        404: Unknown invite
        409: {"error", "already_member": true}
        410: Expired or already used
    """
    data = request.get_json(silent=True) or {}
    token = safe_strip(data.get('token'))
    if not token:
        return jsonify({'error': 'Missing token'}), 400

    try:
        return jsonify(label_db.accept_invite(token, g.current_user['id'])), 200
    except InviteError as e:
        body = {'error': str(e)}
        if e.already_member:
            body['already_member'] = True
        return jsonify(body), e.status
    except Exception as e:
        logger.error(f"Error accepting invite: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500
