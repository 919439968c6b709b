"""
A&R Prospect Routes

This module handles the A&R pipeline:
- GET /teams/<id>/prospects - Prospect list (?view=board groups by stage)
- POST /teams/<id>/prospects - Add a prospect
- GET /prospects/<id> - Prospect with engagements, contacts and latest deal
- PATCH /prospects/<id> - Update fields, including stage moves
- DELETE /prospects/<id> - Remove a prospect
- GET|POST /prospects/<id>/engagements - Engagement log
- GET|POST /prospects/<id>/contacts - Contacts
- GET|PUT /prospects/<id>/deal - Latest deal terms
"""

from flask import Blueprint, jsonify, request
import logging

import label_db
import pipeline
from middleware.auth_middleware import require_auth, require_team_member, check_team_access
from utils.helpers import pick_fields, safe_strip

logger = logging.getLogger(__name__)
prospects_bp = Blueprint('prospects', __name__)


def _load_prospect(prospect_id):
    prospect = label_db.get_prospect(prospect_id)
    if not prospect:
        return None, (jsonify({'error': 'Prospect not found'}), 404)
    denied = check_team_access(prospect['team_id'])
    if denied:
        return None, denied
    return prospect, None


def _with_follow_up(prospect):
    return {**prospect, 'follow_up': pipeline.follow_up_status(prospect.get('next_follow_up'))}


# =============================================================================
# PROSPECTS
# =============================================================================

@prospects_bp.route('/teams/<team_id>/prospects', methods=['GET'])
@require_auth
@require_team_member
def list_prospects(team_id):
    """
    Returns:
        200: {"prospects": [...], "counts": {total, stages, passed}}
             or, with ?view=board, {"board": {stage: [...]}, "counts": ...}
    """
    try:
        prospects = [_with_follow_up(p) for p in label_db.list_prospects(team_id)]
        counts = pipeline.stage_counts(prospects)
        if request.args.get('view') == 'board':
            return jsonify({'board': pipeline.group_by_stage(prospects), 'counts': counts}), 200
        return jsonify({'prospects': prospects, 'counts': counts}), 200
    except Exception as e:
        logger.error(f"Error fetching prospects for team {team_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to fetch prospects'}), 500


@prospects_bp.route('/teams/<team_id>/prospects', methods=['POST'])
@require_auth
@require_team_member
def create_prospect(team_id):
    data = request.get_json(silent=True) or {}
    values = pick_fields(data, label_db.PROSPECT_COLUMNS)
    if not values.get('artist_name'):
        return jsonify({'error': 'Artist name is required'}), 400

    values.setdefault('stage', pipeline.DEFAULT_STAGE)
    values.setdefault('priority', pipeline.DEFAULT_PRIORITY)
    error = pipeline.validate_prospect_fields(values)
    if error:
        return jsonify({'error': error}), 400

    try:
        return jsonify(label_db.create_prospect(team_id, values)), 201
    except Exception as e:
        logger.error(f"Error creating prospect: {e}", exc_info=True)
        return jsonify({'error': 'Failed to create prospect'}), 500


@prospects_bp.route('/prospects/<prospect_id>', methods=['GET'])
@require_auth
def get_prospect(prospect_id):
    try:
        prospect, error = _load_prospect(prospect_id)
        if error:
            return error

        result = _with_follow_up(prospect)
        result['engagements'] = label_db.list_engagements(prospect_id)
        result['contacts'] = label_db.list_contacts(prospect_id)
        result['deal'] = label_db.get_latest_deal(prospect_id)
        return jsonify(result), 200
    except Exception as e:
        logger.error(f"Error fetching prospect {prospect_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to fetch prospect'}), 500


@prospects_bp.route('/prospects/<prospect_id>', methods=['PATCH'])
@require_auth
def update_prospect(prospect_id):
    """
    Update a prospect. Any stage may be set from any other stage.

    Returns:
        200: Updated prospect
        400: Unknown stage/priority or no editable fields
    """
    data = request.get_json(silent=True) or {}
    values = pick_fields(data, label_db.PROSPECT_COLUMNS)
    if not values:
        return jsonify({'error': 'No editable fields supplied'}), 400
    error = pipeline.validate_prospect_fields(values)
    if error:
        return jsonify({'error': error}), 400

    try:
        prospect, error = _load_prospect(prospect_id)
        if error:
            return error
        return jsonify(label_db.update_prospect(prospect_id, values)), 200
    except Exception as e:
        logger.error(f"Error updating prospect {prospect_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to update prospect'}), 500


@prospects_bp.route('/prospects/<prospect_id>', methods=['DELETE'])
@require_auth
def delete_prospect(prospect_id):
    try:
        prospect, error = _load_prospect(prospect_id)
        if error:
            return error
        label_db.delete_prospect(prospect_id)
        return jsonify({'message': 'Prospect deleted'}), 200
    except Exception as e:
        logger.error(f"Error deleting prospect {prospect_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to delete prospect'}), 500


# =============================================================================
# ENGAGEMENTS AND CONTACTS
# =============================================================================

@prospects_bp.route('/prospects/<prospect_id>/engagements', methods=['GET'])
@require_auth
def list_engagements(prospect_id):
    try:
        prospect, error = _load_prospect(prospect_id)
        if error:
            return error
        return jsonify(label_db.list_engagements(prospect_id)), 200
    except Exception as e:
        logger.error(f"Error fetching engagements for {prospect_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to fetch engagements'}), 500


@prospects_bp.route('/prospects/<prospect_id>/engagements', methods=['POST'])
@require_auth
def create_engagement(prospect_id):
    data = request.get_json(silent=True) or {}
    values = pick_fields(data, label_db.ENGAGEMENT_COLUMNS)
    engagement_type = values.get('engagement_type')
    if engagement_type not in pipeline.ENGAGEMENT_TYPES:
        return jsonify({
            'error': f"engagement_type must be one of: {', '.join(pipeline.ENGAGEMENT_TYPES)}"
        }), 400

    try:
        prospect, error = _load_prospect(prospect_id)
        if error:
            return error
        return jsonify(label_db.create_engagement(prospect_id, values)), 201
    except Exception as e:
        logger.error(f"Error logging engagement for {prospect_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to log engagement'}), 500


@prospects_bp.route('/prospects/<prospect_id>/contacts', methods=['GET'])
@require_auth
def list_contacts(prospect_id):
    try:
        prospect, error = _load_prospect(prospect_id)
        if error:
            return error
        return jsonify(label_db.list_contacts(prospect_id)), 200
    except Exception as e:
        logger.error(f"Error fetching contacts for {prospect_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to fetch contacts'}), 500


@prospects_bp.route('/prospects/<prospect_id>/contacts', methods=['POST'])
@require_auth
def create_contact(prospect_id):
    data = request.get_json(silent=True) or {}
    if not safe_strip(data.get('name')):
        return jsonify({'error': 'Contact name is required'}), 400

    try:
        prospect, error = _load_prospect(prospect_id)
        if error:
            return error
        contact = label_db.create_contact(prospect_id, pick_fields(data, label_db.CONTACT_COLUMNS))
        return jsonify(contact), 201
    except Exception as e:
        logger.error(f"Error adding contact for {prospect_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to add contact'}), 500


# =============================================================================
# DEAL
# =============================================================================

@prospects_bp.route('/prospects/<prospect_id>/deal', methods=['GET'])
@require_auth
def get_deal(prospect_id):
    try:
        prospect, error = _load_prospect(prospect_id)
        if error:
            return error
        return jsonify(label_db.get_latest_deal(prospect_id)), 200
    except Exception as e:
        logger.error(f"Error fetching deal for {prospect_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to fetch deal'}), 500


@prospects_bp.route('/prospects/<prospect_id>/deal', methods=['PUT'])
@require_auth
def save_deal(prospect_id):
    """
    Save deal terms. Updates the latest deal if there is one, otherwise
    creates it.
    """
    data = request.get_json(silent=True) or {}
    values = pick_fields(data, label_db.DEAL_COLUMNS)

    status = values.get('deal_status')
    if status is not None and status not in pipeline.DEAL_STATUSES:
        return jsonify({'error': f"deal_status must be one of: {', '.join(pipeline.DEAL_STATUSES)}"}), 400
    deal_type = values.get('deal_type')
    if deal_type is not None and deal_type not in pipeline.DEAL_TYPES:
        return jsonify({'error': f"deal_type must be one of: {', '.join(pipeline.DEAL_TYPES)}"}), 400

    try:
        prospect, error = _load_prospect(prospect_id)
        if error:
            return error
        existing = label_db.get_latest_deal(prospect_id)
        deal = label_db.upsert_deal(prospect_id, values, deal_id=existing['id'] if existing else None)
        return jsonify(deal), 200
    except Exception as e:
        logger.error(f"Error saving deal for {prospect_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to save deal'}), 500
