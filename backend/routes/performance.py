"""
Artist Performance Routes

- POST /scrape-chartmasters - Scrape and store streaming stats (requires auth)
- GET /artists/<id>/performance - Stored snapshot with staleness flag
"""

from flask import Blueprint, jsonify, request, g
import logging

import label_db
from chartmasters import fetch_performance, ArtistMismatchError
from config import get_settings
from middleware.auth_middleware import require_auth, check_team_access
from performance import is_stale, format_revenue, format_stat

logger = logging.getLogger(__name__)
performance_bp = Blueprint('performance', __name__)

STAT_FIELDS = (
    'lead_streams_total', 'feat_streams_total', 'daily_streams',
    'monthly_streams', 'monthly_listeners_all',
)


@performance_bp.route('/scrape-chartmasters', methods=['POST'])
@require_auth
def scrape_chartmasters():
    """
    Scrape ChartMasters for one artist and upsert the snapshot

    Request body:
        {"artist_id": "uuid", "spotify_id": "...", "artist_name": "..."}

    Returns:
        200: {"success": true, "data": snapshot}
        400: Missing artist_id or spotify_id
        403: Not a member of the artist's team
        404: Artist not found, or ChartMasters returned no content
        422: {"error", "mismatch": true, "chartmasters_name"}
        500: Missing scraping key or scrape failure
    """
    try:
        api_key = get_settings().firecrawl_api_key
        if not api_key:
            return jsonify({'error': 'FIRECRAWL_API_KEY not configured'}), 500

        data = request.get_json(silent=True) or {}
        artist_id = data.get('artist_id')
        spotify_id = data.get('spotify_id')
        if not artist_id or not spotify_id:
            return jsonify({'error': 'artist_id and spotify_id are required'}), 400

        artist = label_db.get_artist(artist_id)
        if not artist:
            return jsonify({'error': 'Artist not found'}), 404

        denied = check_team_access(artist['team_id'])
        if denied:
            return denied

        performance = fetch_performance(spotify_id, data.get('artist_name'), api_key)
        if performance is None:
            return jsonify({'error': 'No content returned from ChartMasters'}), 404

        snapshot = label_db.upsert_performance_snapshot(
            artist_id, performance.to_dict(), raw_markdown=performance.raw_markdown
        )
        logger.info(f"Stored performance snapshot for artist {artist_id} "
                    f"(requested by {g.current_user['id']})")
        return jsonify({'success': True, 'data': snapshot}), 200

    except ArtistMismatchError as e:
        return jsonify({
            'error': str(e),
            'mismatch': True,
            'chartmasters_name': e.theirs,
        }), 422
    except Exception as e:
        logger.error(f"ChartMasters scrape error: {e}", exc_info=True)
        return jsonify({'error': str(e)}), 500


@performance_bp.route('/artists/<artist_id>/performance', methods=['GET'])
@require_auth
def get_artist_performance(artist_id):
    """
    Stored performance snapshot

    Returns:
        200: {"snapshot": {...} or null, "stale": bool,
              "formatted": {field: "1.2M", ...} or null}
        403: Not a member of the artist's team
        404: Artist not found
    """
    try:
        artist = label_db.get_artist(artist_id)
        if not artist:
            return jsonify({'error': 'Artist not found'}), 404

        denied = check_team_access(artist['team_id'])
        if denied:
            return denied

        snapshot = label_db.get_performance_snapshot(artist_id)
        formatted = None
        if snapshot:
            formatted = {
                field: format_stat(snapshot.get(field))
                for field in STAT_FIELDS
            }
            formatted['est_monthly_revenue'] = format_revenue(snapshot.get('est_monthly_revenue'))

        return jsonify({'snapshot': snapshot, 'stale': is_stale(snapshot), 'formatted': formatted}), 200

    except Exception as e:
        logger.error(f"Error fetching performance for artist {artist_id}: {e}", exc_info=True)
        return jsonify({'error': 'Failed to fetch performance data'}), 500
