"""
Performance Snapshot Client

Client-side view of an artist's streaming performance:
- Staleness of the stored snapshot (older than 24 hours)
- PerformanceSync, which calls the scrape endpoint and refreshes the
  cached snapshot for the artist on success
- Compact number formatting for the performance pills
"""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

import requests

logger = logging.getLogger(__name__)

STALE_AFTER = timedelta(hours=24)

IDLE = 'idle'
SYNCING = 'syncing'


class PerformanceSyncError(Exception):
    """Raised when a sync call fails; message is safe to show to users"""
    def __init__(self, message: str, mismatch: bool = False, status_code: int = None):
        self.mismatch = mismatch
        self.status_code = status_code
        super().__init__(message)


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_stale(snapshot: Optional[Dict], now: datetime = None) -> bool:
    """
    A missing snapshot, or one scraped more than 24 hours ago, is stale
    """
    if not snapshot:
        return True
    scraped_at = _parse_timestamp(snapshot.get('scraped_at'))
    if scraped_at is None:
        return True
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now - scraped_at > STALE_AFTER


def _compact(n: float, units) -> Optional[str]:
    for threshold, suffix in units:
        if n >= threshold:
            return f"{n / threshold:.1f}".removesuffix('.0') + suffix
    return None


def format_stat(n) -> str:
    """1234567 -> '1.2M'; values under 1000 are printed as-is"""
    n = n or 0
    compact = _compact(n, ((1_000_000_000, 'B'), (1_000_000, 'M'), (1_000, 'K')))
    return compact if compact is not None else str(n)


def format_revenue(n) -> str:
    """26100 -> '$26.1K'; values under 1000 get thousands separators"""
    n = n or 0
    compact = _compact(n, ((1_000_000, 'M'), (1_000, 'K')))
    return f"${compact}" if compact is not None else f"${n:,}"


def _error_message(response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        if body.get('error'):
            return str(body['error'])
        if body.get('message'):
            return str(body['message'])
    text = (getattr(response, 'text', '') or '').strip()
    return text[:200] or f"Sync failed with status {response.status_code}"


class PerformanceSync:
    """
    Calls the performance sync endpoint and keeps a per-artist snapshot cache.

    State moves idle -> syncing -> idle. A second sync while one is in
    flight is refused rather than de-duplicated.

    Args:
        sync_url: URL of the scrape endpoint
        load_snapshot: callable(artist_id) -> snapshot dict or None
        auth_token: bearer token forwarded to the endpoint
        session: requests-compatible session
    """

    def __init__(self, sync_url: str, load_snapshot: Callable[[str], Optional[Dict]],
                 auth_token: str = None, session=None, timeout: float = 120):
        self.sync_url = sync_url
        self.load_snapshot = load_snapshot
        self.auth_token = auth_token
        self.session = session or requests
        self.timeout = timeout
        self.state = IDLE
        self.last_error: Optional[str] = None
        self._snapshots: Dict[str, Optional[Dict]] = {}
        self._state_lock = threading.Lock()

    @property
    def is_syncing(self) -> bool:
        return self.state == SYNCING

    def get_snapshot(self, artist_id: str) -> Optional[Dict]:
        """Cached snapshot for the artist, loading it on first use"""
        if artist_id not in self._snapshots:
            self._snapshots[artist_id] = self.load_snapshot(artist_id)
        return self._snapshots[artist_id]

    def invalidate(self, artist_id: str):
        self._snapshots.pop(artist_id, None)

    def is_stale(self, artist_id: str, now: datetime = None) -> bool:
        return is_stale(self.get_snapshot(artist_id), now=now)

    def sync(self, artist_id: str, spotify_id: Optional[str], artist_name: str = None) -> Optional[Dict]:
        """
        Trigger a server-side scrape for one artist

        Returns:
            The refreshed snapshot

        Raises:
            PerformanceSyncError: no Spotify id, sync already running, or the
                endpoint reported an error / name mismatch
        """
        if not spotify_id:
            raise PerformanceSyncError("No Spotify ID for this artist")

        with self._state_lock:
            if self.state == SYNCING:
                raise PerformanceSyncError("A sync is already in progress")
            self.state = SYNCING
            self.last_error = None

        try:
            headers = {'Content-Type': 'application/json'}
            if self.auth_token:
                headers['Authorization'] = f'Bearer {self.auth_token}'

            try:
                response = self.session.post(
                    self.sync_url,
                    json={'artist_id': artist_id, 'spotify_id': spotify_id, 'artist_name': artist_name},
                    headers=headers,
                    timeout=self.timeout,
                )
            except requests.exceptions.RequestException as e:
                raise PerformanceSyncError(f"Sync request failed: {e}")

            if not response.ok:
                try:
                    error_body = response.json()
                except ValueError:
                    error_body = None
                mismatch = isinstance(error_body, dict) and bool(error_body.get('mismatch'))
                raise PerformanceSyncError(_error_message(response), mismatch=mismatch,
                                           status_code=response.status_code)

            # A 2xx must carry a JSON object; proxy pages and lists are errors
            try:
                body = response.json()
            except ValueError:
                body = None
            if not isinstance(body, dict):
                raise PerformanceSyncError(_error_message(response), status_code=response.status_code)
            if body.get('error') or body.get('mismatch'):
                raise PerformanceSyncError(str(body.get('error') or 'Artist name mismatch'),
                                           mismatch=bool(body.get('mismatch')))

            logger.info(f"Performance data synced for artist {artist_id}")
            self.invalidate(artist_id)
            return self.get_snapshot(artist_id)

        except PerformanceSyncError as e:
            self.last_error = str(e)
            logger.warning(f"Sync failed for artist {artist_id}: {e}")
            raise
        finally:
            with self._state_lock:
                self.state = IDLE


def sync_stale_artists(syncer: PerformanceSync, artists, limit: int = None,
                       dry_run: bool = False, now: datetime = None) -> Dict:
    """
    Sync every artist whose snapshot is stale, one at a time

    Args:
        syncer: PerformanceSync used for staleness checks and syncs
        artists: rows with id, name and spotify_id, optionally scraped_at
        limit: stop after this many sync attempts
        dry_run: report what would be synced without calling the endpoint

    Returns:
        Stats dict: checked, fresh, synced, mismatched, errors
    """
    stats = {'checked': 0, 'fresh': 0, 'synced': 0, 'mismatched': 0, 'errors': 0}
    attempts = 0

    for artist in artists:
        if limit is not None and attempts >= limit:
            break
        stats['checked'] += 1

        # Listing rows carry scraped_at; only rows without it need a snapshot lookup
        if 'scraped_at' in artist:
            stale = is_stale(artist, now=now)
        else:
            stale = syncer.is_stale(artist['id'], now=now)
        if not stale:
            stats['fresh'] += 1
            continue

        attempts += 1
        if dry_run:
            logger.info(f"[DRY RUN] Would sync {artist['name']} ({artist['spotify_id']})")
            continue

        try:
            syncer.sync(artist['id'], artist['spotify_id'], artist['name'])
            stats['synced'] += 1
        except PerformanceSyncError as e:
            if e.mismatch:
                stats['mismatched'] += 1
            else:
                stats['errors'] += 1
            logger.error(f"Could not sync {artist['name']}: {e}")

    return stats
