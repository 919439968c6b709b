"""
Unit tests for chartmasters.py
Number parsing, dashboard markdown parsing and the name check
"""
from unittest.mock import Mock

import pytest

from conftest import make_response
from chartmasters import (
    ArtistMismatchError,
    ScrapeError,
    fetch_performance,
    names_match,
    parse_chartmasters_markdown,
    parse_number,
    scrape_artist_dashboard,
)

DASHBOARD = """
# Artist dashboard

# Tyler, The Creator

Spotify statistics
Lead streams 12.4b
Feat streams 1.1b
Daily streams 9.8m
Monthly streams 290.5m

On-demand audio streams
Lead streams 18.2b
Feat streams 2b
Monthly listeners 45.3m
Monthly revenue $1.2m

Sales
Lead streams 1
"""


class TestParseNumber:

    @pytest.mark.parametrize('raw, expected', [
        ('335.1m', 335_100_000),
        ('$26.1k', 26_100),
        ('1.8b', 1_800_000_000),
        ('2t', 2_000_000_000_000),
        ('1,204', 1204),
        ('42', 42),
    ])
    def test_values(self, raw, expected):
        assert parse_number(raw) == expected

    def test_unparseable_is_zero(self):
        assert parse_number('n/a') == 0
        assert parse_number('') == 0
        assert parse_number(None) == 0


class TestParseMarkdown:

    def test_dashboard(self):
        data = parse_chartmasters_markdown(DASHBOARD)

        assert data.chartmasters_artist_name == 'Tyler, The Creator'
        # on-demand block overrides the Spotify block
        assert data.lead_streams_total == 18_200_000_000
        assert data.feat_streams_total == 2_000_000_000
        assert data.daily_streams == 9_800_000
        assert data.monthly_streams == 290_500_000
        assert data.monthly_listeners_all == 45_300_000
        assert data.est_monthly_revenue == 1_200_000
        assert data.raw_markdown == DASHBOARD

    def test_empty_markdown(self):
        data = parse_chartmasters_markdown('nothing here')
        assert data.lead_streams_total == 0
        assert data.chartmasters_artist_name == ''


class TestNamesMatch:

    def test_case_and_punctuation_ignored(self):
        assert names_match('Tyler, The Creator', 'tyler the creator')

    def test_containment_either_way(self):
        assert names_match('Beyonce', 'Beyonce Knowles')
        assert names_match('Beyonce Knowles', 'Beyonce')

    def test_empty_names_match(self):
        assert names_match('', 'Anyone')

    def test_different_artists(self):
        assert not names_match('Drake', 'Adele')


class TestScrape:

    def test_retries_once_on_server_error(self):
        session = Mock()
        session.post.side_effect = [
            make_response(502, text='bad gateway'),
            make_response(200, {'data': {'markdown': DASHBOARD}}),
        ]

        assert scrape_artist_dashboard('sp1', 'key', session=session) == DASHBOARD
        assert session.post.call_count == 2
        assert session.post.call_args[1]['json']['url'] == 'https://chartmasters.org/artist/sp1'

    def test_client_error_not_retried(self):
        session = Mock()
        session.post.return_value = make_response(401, {'error': 'bad key'})

        with pytest.raises(ScrapeError) as exc_info:
            scrape_artist_dashboard('sp1', 'key', session=session)

        assert exc_info.value.status_code == 401
        assert session.post.call_count == 1

    def test_no_markdown_returns_none(self):
        session = Mock()
        session.post.return_value = make_response(200, {'data': {}})
        assert fetch_performance('sp1', 'Tyler', 'key', session=session) is None

    def test_name_mismatch(self):
        session = Mock()
        session.post.return_value = make_response(200, {'data': {'markdown': DASHBOARD}})

        with pytest.raises(ArtistMismatchError) as exc_info:
            fetch_performance('sp1', 'Adele', 'key', session=session)

        assert exc_info.value.theirs == 'Tyler, The Creator'
        assert 'instead of "Adele"' in str(exc_info.value)
