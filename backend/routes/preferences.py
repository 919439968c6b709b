"""
Overview Layout Preference Routes

- GET /me/overview-sections - Current section order, visibility and hero
- PATCH /me/overview-sections - Apply one layout change

Preferences are stored per user. Collapse state is session-only and is
not accepted here.
"""

from flask import Blueprint, jsonify, request, g
import logging

from middleware.auth_middleware import require_auth
from preferences import ALL_SECTIONS, load_sections

logger = logging.getLogger(__name__)
preferences_bp = Blueprint('preferences', __name__)

SECTION_IDS = {s.id for s in ALL_SECTIONS}


@preferences_bp.route('/me/overview-sections', methods=['GET'])
@require_auth
def get_overview_sections():
    try:
        return jsonify(load_sections(g.current_user['id']).to_dict()), 200
    except Exception as e:
        logger.error(f"Error loading overview sections: {e}", exc_info=True)
        return jsonify({'error': 'Failed to load preferences'}), 500


@preferences_bp.route('/me/overview-sections', methods=['PATCH'])
@require_auth
def update_overview_sections():
    """
    Apply a layout change

    Request body, one of:
        {"action": "reorder", "order": ["kpis", ...]}   visible sections
        {"action": "toggle", "section_id": "kpis"}
        {"action": "show", "section_id": "kpis"}
        {"action": "hero", "section_id": "kpis" | null}

    Returns:
        200: Updated layout
        400: Unknown action or section
    """
    data = request.get_json(silent=True) or {}
    action = data.get('action')
    section_id = data.get('section_id')

    if action == 'reorder':
        order = data.get('order')
        if not isinstance(order, list) or not all(s in SECTION_IDS for s in order):
            return jsonify({'error': 'order must be a list of known section ids'}), 400
    elif action in ('toggle', 'show'):
        if section_id not in SECTION_IDS:
            return jsonify({'error': f"Unknown section '{section_id}'"}), 400
    elif action == 'hero':
        if section_id is not None and section_id not in SECTION_IDS:
            return jsonify({'error': f"Unknown section '{section_id}'"}), 400
    else:
        return jsonify({'error': 'action must be one of: reorder, toggle, show, hero'}), 400

    try:
        sections = load_sections(g.current_user['id'])
        if action == 'reorder':
            sections.set_order(order)
        elif action == 'toggle':
            sections.toggle_visibility(section_id)
        elif action == 'show':
            sections.show_section(section_id)
        else:
            sections.set_hero_section(section_id)
        return jsonify(sections.to_dict()), 200
    except Exception as e:
        logger.error(f"Error saving overview sections: {e}", exc_info=True)
        return jsonify({'error': 'Failed to save preferences'}), 500
