"""
Authentication middleware for protecting Flask routes

This module provides decorators for:
- require_auth: Require valid bearer access token
- require_team_member: Require membership of the team in the URL
"""

from functools import wraps
import logging

from flask import request, jsonify, g

import label_db
from auth_utils import decode_token, AuthConfigError

logger = logging.getLogger(__name__)


def _bearer_token():
    """Token from "Authorization: Bearer <token>", or None if malformed"""
    parts = request.headers.get('Authorization', '').split(' ')
    if len(parts) != 2 or parts[0] != 'Bearer' or not parts[1]:
        return None
    return parts[1]


def _user_from_payload(payload):
    return {
        'id': payload['sub'],
        'email': payload.get('email'),
    }


def require_auth(f):
    """
    Decorator to require valid access token

    Usage:
        @bp.route('/protected')
        @require_auth
        def protected_route():
            user = g.current_user
            return jsonify({'user': user})

    The decorated function will have access to g.current_user containing:
    - id: User UUID (token subject)
    - email: User email
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not request.headers.get('Authorization'):
            return jsonify({'error': 'No authorization header'}), 401

        token = _bearer_token()
        if token is None:
            return jsonify({'error': 'Invalid authorization header format'}), 401

        try:
            payload = decode_token(token)
            if not payload.get('sub'):
                return jsonify({'error': 'Invalid token subject'}), 401
            g.current_user = _user_from_payload(payload)
        except ValueError as e:
            return jsonify({'error': f'Invalid token: {str(e)}'}), 401
        except AuthConfigError as e:
            logger.error(str(e))
            return jsonify({'error': 'Authentication failed'}), 500

        return f(*args, **kwargs)

    return decorated_function


def check_team_access(team_id):
    """
    Verify the current user belongs to a team

    Returns:
        None when allowed (g.team_role is set), else a (response, 403) tuple
    """
    role = label_db.get_team_role(team_id, g.current_user['id'])
    if role is None:
        return jsonify({'error': 'You are not a member of this team'}), 403
    g.team_role = role
    return None


def require_team_member(f):
    """
    Decorator for routes with a <team_id> URL parameter. Apply after
    require_auth.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            denied = check_team_access(kwargs['team_id'])
        except Exception as e:
            logger.error(f"Error checking team membership: {e}", exc_info=True)
            return jsonify({'error': 'Failed to verify team membership'}), 500
        if denied:
            return denied
        return f(*args, **kwargs)

    return decorated_function
