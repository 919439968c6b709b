"""
Unit tests for performance.py
Snapshot staleness, the sync state machine and number formatting
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
import requests

from conftest import make_response
from performance import (
    IDLE,
    PerformanceSync,
    PerformanceSyncError,
    format_revenue,
    format_stat,
    is_stale,
    sync_stale_artists,
)

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
SYNC_URL = 'http://api.test/scrape-chartmasters'


def snapshot(hours_ago):
    return {'artist_id': 'art-1', 'scraped_at': (NOW - timedelta(hours=hours_ago)).isoformat()}


class TestStaleness:

    def test_missing_snapshot_is_stale(self):
        assert is_stale(None, now=NOW)

    def test_25_hours_is_stale(self):
        assert is_stale(snapshot(25), now=NOW)

    def test_1_hour_is_fresh(self):
        assert not is_stale(snapshot(1), now=NOW)

    def test_accepts_datetimes_and_z_suffix(self):
        assert not is_stale({'scraped_at': NOW - timedelta(hours=2)}, now=NOW)
        assert is_stale({'scraped_at': '2026-03-08T12:00:00Z'}, now=NOW)


class TestFormatting:

    @pytest.mark.parametrize('value, expected', [
        (999, '999'),
        (1_000, '1K'),
        (1_234_567, '1.2M'),
        (2_000_000_000, '2B'),
        (None, '0'),
    ])
    def test_format_stat(self, value, expected):
        assert format_stat(value) == expected

    @pytest.mark.parametrize('value, expected', [
        (26_100, '$26.1K'),
        (3_000_000, '$3M'),
        (950, '$950'),
    ])
    def test_format_revenue(self, value, expected):
        assert format_revenue(value) == expected


class TestPerformanceSync:

    def make_sync(self, response=None, loader=None):
        session = Mock()
        if response is not None:
            session.post.return_value = response
        loader = loader or Mock(return_value=snapshot(30))
        return PerformanceSync(SYNC_URL, loader, auth_token='tok', session=session), session, loader

    def test_requires_spotify_id(self):
        syncer, session, _ = self.make_sync()
        with pytest.raises(PerformanceSyncError):
            syncer.sync('art-1', None)
        session.post.assert_not_called()

    def test_success_refetches_snapshot(self):
        loader = Mock(side_effect=[snapshot(30), snapshot(0)])
        syncer, session, _ = self.make_sync(make_response(200, {'success': True}), loader)

        assert syncer.is_stale('art-1', now=NOW)
        result = syncer.sync('art-1', 'sp1', 'Tyler')

        assert result == snapshot(0)
        assert not syncer.is_stale('art-1', now=NOW)
        assert loader.call_count == 2
        args, kwargs = session.post.call_args
        assert args[0] == SYNC_URL
        assert kwargs['json'] == {'artist_id': 'art-1', 'spotify_id': 'sp1', 'artist_name': 'Tyler'}
        assert kwargs['headers']['Authorization'] == 'Bearer tok'
        assert syncer.state == IDLE

    def test_error_body_raises_and_resets_state(self):
        syncer, _, _ = self.make_sync(make_response(500, {'error': 'Firecrawl error 500'}))

        with pytest.raises(PerformanceSyncError) as exc_info:
            syncer.sync('art-1', 'sp1')

        assert str(exc_info.value) == 'Firecrawl error 500'
        assert syncer.last_error == 'Firecrawl error 500'
        assert syncer.state == IDLE

    def test_mismatch_flagged(self):
        syncer, _, _ = self.make_sync(make_response(422, {
            'error': 'ChartMasters returned data for "X"', 'mismatch': True, 'chartmasters_name': 'X',
        }))

        with pytest.raises(PerformanceSyncError) as exc_info:
            syncer.sync('art-1', 'sp1')

        assert exc_info.value.mismatch is True
        assert exc_info.value.status_code == 422

    @pytest.mark.parametrize('response', [
        make_response(200, text='<html>gateway</html>'),
        make_response(200, ['unexpected']),
    ])
    def test_unparseable_success_body_raises(self, response):
        loader = Mock(return_value=snapshot(30))
        syncer, _, _ = self.make_sync(response, loader)

        with pytest.raises(PerformanceSyncError) as exc_info:
            syncer.sync('art-1', 'sp1')

        assert exc_info.value.status_code == 200
        assert syncer.state == IDLE
        loader.assert_not_called()

    def test_html_body_message(self):
        syncer, _, _ = self.make_sync(make_response(200, text='<html>gateway</html>'))

        with pytest.raises(PerformanceSyncError) as exc_info:
            syncer.sync('art-1', 'sp1')

        assert str(exc_info.value) == '<html>gateway</html>'

    def test_network_error(self):
        syncer, session, _ = self.make_sync()
        session.post.side_effect = requests.exceptions.ConnectionError('refused')

        with pytest.raises(PerformanceSyncError):
            syncer.sync('art-1', 'sp1')
        assert syncer.state == IDLE

    def test_refuses_concurrent_sync(self):
        syncer, session, _ = self.make_sync(make_response(200, {}))
        syncer.state = 'syncing'

        with pytest.raises(PerformanceSyncError):
            syncer.sync('art-1', 'sp1')
        session.post.assert_not_called()


class TestSyncStaleArtists:

    ARTISTS = [
        {'id': 'fresh', 'name': 'Fresh', 'spotify_id': 'sp-f'},
        {'id': 'stale-1', 'name': 'Stale One', 'spotify_id': 'sp-1'},
        {'id': 'stale-2', 'name': 'Stale Two', 'spotify_id': 'sp-2'},
    ]

    def loader(self, artist_id):
        return snapshot(1) if artist_id == 'fresh' else snapshot(48)

    def test_only_stale_artists_synced(self):
        syncer = PerformanceSync(SYNC_URL, self.loader, session=Mock())
        syncer.sync = Mock()

        stats = sync_stale_artists(syncer, self.ARTISTS, now=NOW)

        assert stats['fresh'] == 1
        assert stats['synced'] == 2
        assert [c[0][0] for c in syncer.sync.call_args_list] == ['stale-1', 'stale-2']

    def test_dry_run_and_limit(self):
        syncer = PerformanceSync(SYNC_URL, self.loader, session=Mock())
        syncer.sync = Mock()

        stats = sync_stale_artists(syncer, self.ARTISTS, limit=1, dry_run=True, now=NOW)

        syncer.sync.assert_not_called()
        assert stats['synced'] == 0
        assert stats['checked'] == 2

    def test_errors_counted(self):
        syncer = PerformanceSync(SYNC_URL, self.loader, session=Mock())
        syncer.sync = Mock(side_effect=[PerformanceSyncError('mismatch', mismatch=True),
                                        PerformanceSyncError('down')])

        stats = sync_stale_artists(syncer, self.ARTISTS, now=NOW)

        assert stats['mismatched'] == 1
        assert stats['errors'] == 1

    def test_bad_response_does_not_stop_batch(self):
        session = Mock()
        session.post.side_effect = [
            make_response(200, text='<html>gateway</html>'),
            make_response(200, {'success': True}),
        ]
        syncer = PerformanceSync(SYNC_URL, self.loader, session=session)

        stats = sync_stale_artists(syncer, self.ARTISTS, now=NOW)

        assert stats['errors'] == 1
        assert stats['synced'] == 1
        assert session.post.call_count == 2
        assert session.post.call_args[1]['json']['artist_id'] == 'stale-2'

    def test_listing_timestamps_skip_snapshot_lookup(self):
        loader = Mock()
        syncer = PerformanceSync(SYNC_URL, loader, session=Mock())
        syncer.sync = Mock()
        rows = [
            {'id': 'fresh', 'name': 'Fresh', 'spotify_id': 'sp-f', 'scraped_at': NOW - timedelta(hours=2)},
            {'id': 'stale', 'name': 'Stale', 'spotify_id': 'sp-s', 'scraped_at': NOW - timedelta(hours=30)},
            {'id': 'never', 'name': 'Never', 'spotify_id': 'sp-n', 'scraped_at': None},
        ]

        stats = sync_stale_artists(syncer, rows, now=NOW)

        loader.assert_not_called()
        assert stats['fresh'] == 1
        assert [c[0][0] for c in syncer.sync.call_args_list] == ['stale', 'never']
