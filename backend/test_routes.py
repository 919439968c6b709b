"""
Route tests using the Flask test client
Database functions and outbound HTTP are mocked
"""
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest

from conftest import TEST_TEAM_ID, TEST_USER_ID, make_response, make_token
from chartmasters import ArtistMismatchError, PerformanceData
from label_db import InviteError
from spotify_client import SpotifyClient

ARTIST = {'id': 'art-1', 'team_id': TEST_TEAM_ID, 'name': 'Ana', 'spotify_id': 'sp1'}


@pytest.fixture
def member():
    with patch('label_db.get_team_role', return_value='team_owner') as role:
        yield role


@pytest.fixture
def outsider():
    with patch('label_db.get_team_role', return_value=None) as role:
        yield role


class TestAuth:

    def test_missing_header(self, client):
        response = client.get('/teams')
        assert response.status_code == 401

    def test_bad_format(self, client):
        response = client.get('/teams', headers={'Authorization': 'Token abc'})
        assert response.status_code == 401

    def test_wrong_secret(self, client):
        token = make_token(secret='not-the-right-secret-but-long-enough-0000')
        response = client.get('/teams', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401

    def test_expired_token(self, client):
        token = make_token(expires_in=-60)
        response = client.get('/teams', headers={'Authorization': f'Bearer {token}'})
        assert response.status_code == 401
        assert 'expired' in response.get_json()['error']

    def test_non_member_forbidden(self, client, auth_headers, outsider):
        response = client.get(f'/teams/{TEST_TEAM_ID}/artists', headers=auth_headers)
        assert response.status_code == 403
        outsider.assert_called_once_with(TEST_TEAM_ID, TEST_USER_ID)


class TestMetadataRoute:

    def test_missing_url(self, client):
        response = client.post('/scrape-link-metadata', json={})
        assert response.status_code == 400
        assert response.get_json() == {'success': False, 'error': 'URL is required'}

    def test_best_effort_result(self, client):
        with patch('link_metadata.requests') as mock_requests:
            mock_requests.get.return_value = make_response(200, text='<title>Hello</title>')
            response = client.post('/scrape-link-metadata', json={'url': 'example.com'})

        assert response.status_code == 200
        body = response.get_json()
        assert body['success'] is True
        assert body['title'] == 'Hello'
        assert mock_requests.get.call_args[0][0] == 'https://example.com'

    def test_unexpected_error(self, client):
        with patch('routes.metadata.LinkMetadataFetcher') as fetcher_cls:
            fetcher_cls.return_value.fetch.side_effect = RuntimeError('kaboom')
            response = client.post('/scrape-link-metadata', json={'url': 'example.com'})

        assert response.status_code == 500
        assert response.get_json() == {'success': False, 'error': 'kaboom'}


class TestSpotifyRoutes:

    def test_short_query(self, client):
        session = Mock()
        with patch('routes.spotify.get_spotify_client', return_value=SpotifyClient(session=session)):
            response = client.get('/spotify-search?q=a')

        assert response.status_code == 200
        assert response.get_json() == {'artists': []}
        session.post.assert_not_called()
        session.get.assert_not_called()

    def test_post_search(self, client):
        session = Mock()
        session.post.return_value = make_response(200, {'access_token': 't', 'expires_in': 3600})
        session.get.return_value = make_response(200, {'artists': {'items': [{'id': 'x', 'name': 'Drake'}]}})

        with patch('routes.spotify.get_spotify_client', return_value=SpotifyClient(session=session)):
            response = client.post('/spotify-search', json={'q': 'Drake'})

        assert response.status_code == 200
        assert response.get_json()['artists'][0]['name'] == 'Drake'

    def test_repeated_401_is_500(self, client):
        session = Mock()
        session.post.return_value = make_response(200, {'access_token': 't', 'expires_in': 3600})
        session.get.return_value = make_response(401, text='unauthorized')

        with patch('routes.spotify.get_spotify_client', return_value=SpotifyClient(session=session)):
            response = client.get('/spotify-search?q=Drake')

        assert response.status_code == 500
        assert 'error' in response.get_json()
        assert session.get.call_count == 2

    def test_missing_credentials_is_500(self, client, monkeypatch):
        monkeypatch.delenv('SPOTIFY_CLIENT_ID', raising=False)
        session = Mock()

        with patch('routes.spotify.get_spotify_client', return_value=SpotifyClient(session=session)):
            response = client.get('/spotify-search?q=Drake')

        assert response.status_code == 500
        assert response.get_json() == {'error': 'Spotify credentials not configured'}
        session.post.assert_not_called()

    def test_artist_requires_id(self, client):
        response = client.post('/spotify-artist', json={})
        assert response.status_code == 400


class TestChartmastersRoute:

    def test_missing_key(self, client, auth_headers, monkeypatch):
        monkeypatch.delenv('FIRECRAWL_API_KEY', raising=False)
        response = client.post('/scrape-chartmasters', json={'artist_id': 'a', 'spotify_id': 's'},
                               headers=auth_headers)
        assert response.status_code == 500

    def test_requires_auth(self, client):
        response = client.post('/scrape-chartmasters', json={'artist_id': 'a', 'spotify_id': 's'})
        assert response.status_code == 401

    def test_missing_ids(self, client, auth_headers, monkeypatch):
        monkeypatch.setenv('FIRECRAWL_API_KEY', 'fc-key')
        response = client.post('/scrape-chartmasters', json={'artist_id': 'a'}, headers=auth_headers)
        assert response.status_code == 400

    def test_no_content(self, client, auth_headers, member, monkeypatch):
        monkeypatch.setenv('FIRECRAWL_API_KEY', 'fc-key')
        with patch('label_db.get_artist', return_value=ARTIST), \
                patch('routes.performance.fetch_performance', return_value=None):
            response = client.post('/scrape-chartmasters', json={'artist_id': 'a', 'spotify_id': 's'},
                                   headers=auth_headers)
        assert response.status_code == 404

    def test_mismatch(self, client, auth_headers, member, monkeypatch):
        monkeypatch.setenv('FIRECRAWL_API_KEY', 'fc-key')
        with patch('label_db.get_artist', return_value=ARTIST), \
                patch('routes.performance.fetch_performance',
                      side_effect=ArtistMismatchError('Ana', 'Someone Else')):
            response = client.post('/scrape-chartmasters',
                                   json={'artist_id': 'a', 'spotify_id': 's', 'artist_name': 'Ana'},
                                   headers=auth_headers)

        assert response.status_code == 422
        body = response.get_json()
        assert body['mismatch'] is True
        assert body['chartmasters_name'] == 'Someone Else'

    def test_success_upserts(self, client, auth_headers, member, monkeypatch):
        monkeypatch.setenv('FIRECRAWL_API_KEY', 'fc-key')
        data = PerformanceData(chartmasters_artist_name='Ana', lead_streams_total=5, raw_markdown='# md')
        stored = {'artist_id': 'a', 'lead_streams_total': 5}

        with patch('label_db.get_artist', return_value=ARTIST), \
                patch('routes.performance.fetch_performance', return_value=data), \
                patch('label_db.upsert_performance_snapshot', return_value=stored) as upsert:
            response = client.post('/scrape-chartmasters', json={'artist_id': 'a', 'spotify_id': 's'},
                                   headers=auth_headers)

        assert response.status_code == 200
        assert response.get_json() == {'success': True, 'data': stored}
        assert upsert.call_args[0][0] == 'a'
        assert upsert.call_args[1]['raw_markdown'] == '# md'

    def test_scrape_forbidden_for_other_team(self, client, auth_headers, outsider, monkeypatch):
        monkeypatch.setenv('FIRECRAWL_API_KEY', 'fc-key')
        other = {**ARTIST, 'team_id': 'other-team'}
        with patch('label_db.get_artist', return_value=other), \
                patch('routes.performance.fetch_performance') as fetch, \
                patch('label_db.upsert_performance_snapshot') as upsert:
            response = client.post('/scrape-chartmasters', json={'artist_id': 'art-1', 'spotify_id': 's'},
                                   headers=auth_headers)

        assert response.status_code == 403
        outsider.assert_called_once_with('other-team', TEST_USER_ID)
        fetch.assert_not_called()
        upsert.assert_not_called()

    def test_scrape_unknown_artist(self, client, auth_headers, monkeypatch):
        monkeypatch.setenv('FIRECRAWL_API_KEY', 'fc-key')
        with patch('label_db.get_artist', return_value=None), \
                patch('routes.performance.fetch_performance') as fetch:
            response = client.post('/scrape-chartmasters', json={'artist_id': 'nope', 'spotify_id': 's'},
                                   headers=auth_headers)

        assert response.status_code == 404
        fetch.assert_not_called()

    def test_stored_snapshot_with_staleness(self, client, auth_headers, member):
        snapshot = {'artist_id': 'art-1', 'lead_streams_total': 1_234_567, 'est_monthly_revenue': 26_100,
                    'scraped_at': datetime(2020, 1, 1, tzinfo=timezone.utc)}
        with patch('label_db.get_artist', return_value=ARTIST), \
                patch('label_db.get_performance_snapshot', return_value=snapshot):
            response = client.get('/artists/art-1/performance', headers=auth_headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body['stale'] is True
        assert body['formatted']['lead_streams_total'] == '1.2M'
        assert body['formatted']['est_monthly_revenue'] == '$26.1K'


class TestTeamRoutes:

    def test_create_team(self, client, auth_headers):
        with patch('label_db.create_team', return_value={'id': 't', 'name': 'Label'}) as create:
            response = client.post('/teams', json={'name': '  Label '}, headers=auth_headers)

        assert response.status_code == 201
        create.assert_called_once_with('Label', TEST_USER_ID)

    def test_create_team_requires_name(self, client, auth_headers):
        response = client.post('/teams', json={'name': ' '}, headers=auth_headers)
        assert response.status_code == 400

    def test_accept_invite_conflict(self, client, auth_headers):
        error = InviteError("You're already a member of this team", 409, already_member=True)
        with patch('label_db.accept_invite', side_effect=error):
            response = client.post('/invites/accept', json={'token': 'abc'}, headers=auth_headers)

        assert response.status_code == 409
        assert response.get_json()['already_member'] is True


class TestArtistRoutes:

    def test_list(self, client, auth_headers, member):
        with patch('label_db.list_artists', return_value=[ARTIST]):
            response = client.get(f'/teams/{TEST_TEAM_ID}/artists', headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json()[0]['name'] == 'Ana'

    def test_patch_ignores_unknown_fields(self, client, auth_headers, member):
        with patch('label_db.get_artist', return_value=ARTIST), \
                patch('label_db.update_artist', return_value={**ARTIST, 'name': 'Ana B'}) as update:
            response = client.patch('/artists/art-1', json={'name': 'Ana B', 'team_id': 'x'},
                                    headers=auth_headers)

        assert response.status_code == 200
        update.assert_called_once_with('art-1', {'name': 'Ana B'})

    def test_missing_artist(self, client, auth_headers, member):
        with patch('label_db.get_artist', return_value=None):
            response = client.get('/artists/nope', headers=auth_headers)
        assert response.status_code == 404


class TestTaskRoutes:

    def test_toggle_flips_state(self, client, auth_headers, member):
        task = {'id': 'task-1', 'team_id': TEST_TEAM_ID, 'is_completed': False}
        with patch('label_db.get_task', return_value=task), \
                patch('label_db.set_task_completed', return_value={**task, 'is_completed': True}) as done:
            response = client.post('/tasks/task-1/toggle', headers=auth_headers)

        assert response.status_code == 200
        done.assert_called_once_with('task-1', True)

    def test_create_requires_title(self, client, auth_headers, member):
        response = client.post('/tasks', json={'team_id': TEST_TEAM_ID}, headers=auth_headers)
        assert response.status_code == 400


class TestProspectRoutes:

    def test_create_defaults_stage_and_priority(self, client, auth_headers, member):
        with patch('label_db.create_prospect', side_effect=lambda team_id, values: values) as create:
            response = client.post(f'/teams/{TEST_TEAM_ID}/prospects',
                                   json={'artist_name': 'New Act'}, headers=auth_headers)

        assert response.status_code == 201
        values = create.call_args[0][1]
        assert values['stage'] == 'contacted'
        assert values['priority'] == 'medium'

    def test_any_stage_move_allowed(self, client, auth_headers, member):
        prospect = {'id': 'p1', 'team_id': TEST_TEAM_ID, 'stage': 'signed'}
        with patch('label_db.get_prospect', return_value=prospect), \
                patch('label_db.update_prospect', return_value={**prospect, 'stage': 'contacted'}):
            response = client.patch('/prospects/p1', json={'stage': 'contacted'}, headers=auth_headers)
        assert response.status_code == 200

    def test_unknown_stage_rejected(self, client, auth_headers, member):
        response = client.patch('/prospects/p1', json={'stage': 'maybe'}, headers=auth_headers)
        assert response.status_code == 400

    @pytest.mark.parametrize('body', [{'stage': ''}, {'priority': '  '}, {'stage': None}])
    def test_blank_stage_or_priority_rejected(self, client, auth_headers, member, body):
        with patch('label_db.update_prospect') as update:
            response = client.patch('/prospects/p1', json=body, headers=auth_headers)

        assert response.status_code == 400
        update.assert_not_called()

    def test_list_with_counts(self, client, auth_headers, member):
        prospects = [{'id': 'p1', 'stage': 'contacted', 'next_follow_up': None}]
        with patch('label_db.list_prospects', return_value=prospects):
            response = client.get(f'/teams/{TEST_TEAM_ID}/prospects', headers=auth_headers)

        body = response.get_json()
        assert body['counts']['total'] == 1
        assert body['prospects'][0]['follow_up'] is None


class TestOverviewRoute:

    def test_overview(self, client, auth_headers, member):
        with patch('label_db.list_artists', return_value=[ARTIST]), \
                patch('label_db.list_budgets', return_value=[]), \
                patch('label_db.list_transactions', return_value=[]), \
                patch('label_db.list_tasks', return_value=[]), \
                patch('label_db.list_initiatives', return_value=[]), \
                patch('label_db.list_team_members', return_value=[]), \
                patch('label_db.list_prospects', return_value=[]):
            response = client.get(f'/teams/{TEST_TEAM_ID}/overview', headers=auth_headers)

        assert response.status_code == 200
        body = response.get_json()
        assert body['artist_count'] == 1
        assert body['summary']['budget_utilization'] == 0


class TestHealth:

    def test_unhealthy_database(self, client):
        with patch('db_utils.execute_query', side_effect=RuntimeError('no db')):
            response = client.get('/health')
        assert response.status_code == 503
        assert response.get_json()['status'] == 'unhealthy'


class TestOverviewSectionRoutes:

    @pytest.fixture(autouse=True)
    def preferences_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv('PREFERENCES_DIR', str(tmp_path))
        return tmp_path

    def test_defaults(self, client, auth_headers):
        response = client.get('/me/overview-sections', headers=auth_headers)
        assert response.status_code == 200
        body = response.get_json()
        assert body['visible'][0] == 'kpis'
        assert body['hidden'] == []
        assert body['hero'] is None

    def test_toggle_persists_per_user(self, client, auth_headers, preferences_dir):
        response = client.patch('/me/overview-sections', json={'action': 'toggle', 'section_id': 'kpis'},
                                headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json()['hidden'] == [{'id': 'kpis', 'label': 'Financial Snapshot'}]
        assert (preferences_dir / TEST_USER_ID).is_dir()

        other = {'Authorization': f"Bearer {make_token(user_id='33333333-3333-3333-3333-333333333333')}"}
        assert client.get('/me/overview-sections', headers=other).get_json()['hidden'] == []

    def test_unknown_section_rejected(self, client, auth_headers):
        response = client.patch('/me/overview-sections', json={'action': 'hero', 'section_id': 'nope'},
                                headers=auth_headers)
        assert response.status_code == 400

    def test_unknown_action_rejected(self, client, auth_headers):
        response = client.patch('/me/overview-sections', json={'action': 'collapse', 'section_id': 'kpis'},
                                headers=auth_headers)
        assert response.status_code == 400
