"""
Spotify API Client

Handles:
- Client-credentials token management (one cached token per client)
- Artist search and artist lookup with a single retry on 401/403
- Monthly-listener scraping from the public artist page

A single long-lived client is shared by the API workers via
get_spotify_client().
"""

import re
import time
import base64
import logging
import threading
from typing import Dict, List, Optional

import requests

from config import SPOTIFY_TOKEN_TIMEOUT, get_settings

logger = logging.getLogger(__name__)

TOKEN_URL = 'https://accounts.spotify.com/api/token'
API_BASE = 'https://api.spotify.com/v1'
ARTIST_PAGE_URL = 'https://open.spotify.com/artist/{spotify_id}'

SEARCH_LIMIT = 8
MIN_QUERY_LENGTH = 2
TOKEN_EXPIRY_MARGIN = 60

BROWSER_HEADERS = {
    'User-Agent': ('Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 '
                   '(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36'),
    'Accept': 'text/html,application/xhtml+xml',
    'Accept-Language': 'en-US,en;q=0.9',
}

MONTHLY_LISTENER_PATTERNS = [
    (re.compile(r'([\d,]+)\s+monthly\s+listener', re.I), True),
    (re.compile(r'monthlyListeners["\s:]+(\d+)', re.I), False),
    (re.compile(r'monthly.listener[^>]*?>([\d,]+)', re.I), True),
]


class SpotifyConfigError(Exception):
    """Raised when Spotify client credentials are not configured"""


class SpotifyAPIError(Exception):
    """Raised when Spotify returns a non-success response"""
    def __init__(self, message: str, status_code: int = None):
        self.status_code = status_code
        super().__init__(message)


class SpotifyClient:
    """
    Spotify Web API client with an in-memory bearer token cache.
    """

    def __init__(self, client_id: str = None, client_secret: str = None, session=None):
        """
        Initialize Spotify Client

        Args:
            client_id: Spotify app client id (falls back to SPOTIFY_CLIENT_ID)
            client_secret: Spotify app secret (falls back to SPOTIFY_CLIENT_SECRET)
            session: requests-compatible session (module `requests` by default)
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.session = session or requests
        self.access_token: Optional[str] = None
        self.token_expires = 0.0
        self._token_lock = threading.Lock()

        self.stats = {
            'token_requests': 0,
            'api_calls': 0,
            'token_retries': 0,
        }

    # ========================================================================
    # AUTHENTICATION
    # ========================================================================

    def _credentials(self):
        settings = get_settings()
        client_id = self.client_id or settings.spotify_client_id
        client_secret = self.client_secret or settings.spotify_client_secret
        if not client_id or not client_secret:
            logger.error("Spotify credentials not found; set SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET")
            raise SpotifyConfigError("Spotify credentials not configured")
        return client_id, client_secret

    def get_spotify_token(self) -> str:
        """
        Return a valid access token, requesting a new one only when the
        cached token is missing or expired

        Raises:
            SpotifyConfigError: credentials missing
            SpotifyAPIError: token endpoint returned an error
        """
        with self._token_lock:
            if self.access_token and time.time() < self.token_expires:
                return self.access_token

            client_id, client_secret = self._credentials()
            credentials_b64 = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()

            self.stats['token_requests'] += 1
            response = self.session.post(
                TOKEN_URL,
                headers={
                    'Authorization': f'Basic {credentials_b64}',
                    'Content-Type': 'application/x-www-form-urlencoded'
                },
                data={'grant_type': 'client_credentials'},
                timeout=SPOTIFY_TOKEN_TIMEOUT
            )

            if not response.ok:
                raise SpotifyAPIError(
                    f"Spotify token error: {response.status_code} {response.text}",
                    response.status_code
                )

            data = response.json()
            self.access_token = data['access_token']
            self.token_expires = time.time() + data['expires_in'] - TOKEN_EXPIRY_MARGIN

            logger.debug("Spotify authentication successful")
            return self.access_token

    def invalidate_token(self):
        """Drop the cached token so the next call re-authenticates"""
        with self._token_lock:
            self.access_token = None
            self.token_expires = 0.0

    def _get_with_token_retry(self, url: str, params: Dict = None):
        """
        GET an API URL; on 401/403 refresh the token and retry exactly once
        """
        token = self.get_spotify_token()
        self.stats['api_calls'] += 1
        response = self.session.get(url, params=params, headers={'Authorization': f'Bearer {token}'})

        if response.status_code in (401, 403):
            logger.warning(f"Spotify returned {response.status_code}; refreshing token and retrying once")
            self.stats['token_retries'] += 1
            self.invalidate_token()
            token = self.get_spotify_token()
            self.stats['api_calls'] += 1
            response = self.session.get(url, params=params, headers={'Authorization': f'Bearer {token}'})

        return response

    # ========================================================================
    # API METHODS
    # ========================================================================

    def search_artists(self, query: str) -> List[Dict]:
        """
        Search Spotify for artists

        Args:
            query: Free-text query; fewer than 2 characters returns []

        Returns:
            Up to 8 artists as {id, name, genres, images, followers}
        """
        query = (query or '').strip()
        if len(query) < MIN_QUERY_LENGTH:
            return []

        response = self._get_with_token_retry(
            f'{API_BASE}/search',
            params={'q': query, 'type': 'artist', 'limit': SEARCH_LIMIT}
        )

        if not response.ok:
            raise SpotifyAPIError(
                f"Spotify API error: {response.status_code} {response.text}",
                response.status_code
            )

        items = (response.json().get('artists') or {}).get('items') or []
        return [
            {
                'id': item.get('id'),
                'name': item.get('name'),
                'genres': item.get('genres') or [],
                'images': item.get('images') or [],
                'followers': (item.get('followers') or {}).get('total') or 0,
            }
            for item in items[:SEARCH_LIMIT]
        ]

    def scrape_monthly_listeners(self, spotify_id: str) -> int:
        """
        Read the monthly listener count from the public artist page

        Returns:
            Listener count, or 0 if the page could not be fetched or parsed
        """
        try:
            response = self.session.get(
                ARTIST_PAGE_URL.format(spotify_id=spotify_id),
                headers=BROWSER_HEADERS,
                timeout=10
            )
            if not response.ok:
                logger.info(f"Artist page scrape failed with status {response.status_code}")
                return 0

            html = response.text
            for pattern, has_commas in MONTHLY_LISTENER_PATTERNS:
                match = pattern.search(html)
                if match:
                    raw = match.group(1).replace(',', '') if has_commas else match.group(1)
                    return int(raw)

            logger.info(f"Could not parse monthly listeners for {spotify_id}")
            return 0
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.warning(f"Artist page scrape error for {spotify_id}: {e}")
            return 0

    def get_artist(self, spotify_id: str) -> Dict:
        """
        Artist detail from the API plus scraped monthly listeners

        Returns:
            {id, name, monthly_listeners, followers, genres, images,
             banner_url, popularity}
        """
        response = self._get_with_token_retry(f'{API_BASE}/artists/{spotify_id}')
        monthly_listeners = self.scrape_monthly_listeners(spotify_id)

        if not response.ok:
            raise SpotifyAPIError(f"Spotify artist error: {response.status_code}", response.status_code)

        artist = response.json()
        return {
            'id': artist.get('id'),
            'name': artist.get('name'),
            'monthly_listeners': monthly_listeners,
            'followers': (artist.get('followers') or {}).get('total') or 0,
            'genres': artist.get('genres') or [],
            'images': artist.get('images') or [],
            'banner_url': None,
            'popularity': artist.get('popularity') or 0,
        }


_client: Optional[SpotifyClient] = None
_client_lock = threading.Lock()


def get_spotify_client() -> SpotifyClient:
    """Process-wide client so the token cache survives across requests"""
    global _client
    with _client_lock:
        if _client is None:
            _client = SpotifyClient()
        return _client
