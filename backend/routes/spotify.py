"""
Spotify Routes

- POST|GET /spotify-search - Artist search ({q} body or ?q=)
- POST|GET /spotify-artist - Artist detail with monthly listeners
"""

from flask import Blueprint, jsonify, request
import logging

from spotify_client import get_spotify_client

logger = logging.getLogger(__name__)
spotify_bp = Blueprint('spotify', __name__)


def _param(name):
    """Read a parameter from the JSON body on POST, the query string on GET"""
    if request.method == 'POST':
        return (request.get_json(silent=True) or {}).get(name)
    return request.args.get(name)


@spotify_bp.route('/spotify-search', methods=['GET', 'POST'])
def spotify_search():
    """
    Search Spotify artists

    Returns:
        200: {"artists": [{"id", "name", "genres", "images", "followers"}]}
        500: {"error": message}
    """
    try:
        query = _param('q') or ''
        artists = get_spotify_client().search_artists(str(query))
        return jsonify({'artists': artists}), 200
    except Exception as e:
        logger.error(f"Spotify search error: {e}")
        return jsonify({'error': str(e)}), 500


@spotify_bp.route('/spotify-artist', methods=['GET', 'POST'])
def spotify_artist():
    """
    Artist detail

    Returns:
        200: {"id", "name", "monthly_listeners", "followers", "genres",
              "images", "banner_url", "popularity"}
        400: {"error": "spotify_id is required"}
        500: {"error": message}
    """
    try:
        spotify_id = _param('spotify_id')
        if not spotify_id:
            return jsonify({'error': 'spotify_id is required'}), 400

        return jsonify(get_spotify_client().get_artist(spotify_id)), 200
    except Exception as e:
        logger.error(f"Spotify artist error: {e}")
        return jsonify({'error': str(e)}), 500
