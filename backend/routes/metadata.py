"""
Link Metadata Routes

- POST /scrape-link-metadata - Preview fields (title, description, image,
  favicon) for a URL
"""

from flask import Blueprint, jsonify, request
import logging

from config import get_settings
from link_metadata import LinkMetadataFetcher

logger = logging.getLogger(__name__)
metadata_bp = Blueprint('metadata', __name__)


@metadata_bp.route('/scrape-link-metadata', methods=['POST'])
def scrape_link_metadata():
    """
    Fetch link preview metadata

    Request body:
        {"url": "example.com/page"}

    Returns:
        200: {"success": true, "title", "description", "image", "favicon"}
             (fields are null when they could not be found)
        400: {"success": false, "error": "URL is required"}
        500: {"success": false, "error": message}
    """
    try:
        data = request.get_json(silent=True) or {}
        url = data.get('url')
        if not isinstance(url, str) or not url.strip():
            return jsonify({'success': False, 'error': 'URL is required'}), 400

        fetcher = LinkMetadataFetcher(firecrawl_api_key=get_settings().firecrawl_api_key)
        return jsonify(fetcher.fetch(url)), 200

    except Exception as e:
        logger.error(f"Error scraping link metadata: {e}", exc_info=True)
        return jsonify({'success': False, 'error': str(e)}), 500
