"""
Shared pytest fixtures

Environment is set before any application module is imported so config,
db_utils and auth read test values.
"""
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import jwt
import pytest

TEST_JWT_SECRET = 'test-secret-for-label-desk-tokens-0123456789'
TEST_USER_ID = '11111111-1111-1111-1111-111111111111'
TEST_TEAM_ID = '22222222-2222-2222-2222-222222222222'

os.environ['SUPABASE_JWT_SECRET'] = TEST_JWT_SECRET
os.environ['SPOTIFY_CLIENT_ID'] = 'test-client-id'
os.environ['SPOTIFY_CLIENT_SECRET'] = 'test-client-secret'
os.environ.pop('FIRECRAWL_API_KEY', None)


def make_response(status_code=200, json_data=None, text=''):
    """requests.Response stand-in"""
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError('No JSON')
    else:
        response.json.return_value = json_data
    return response


def make_token(user_id=TEST_USER_ID, secret=TEST_JWT_SECRET, expires_in=3600, **claims):
    now = datetime.now(timezone.utc)
    payload = {
        'sub': user_id,
        'email': 'ana@example.com',
        'aud': 'authenticated',
        'iat': now,
        'exp': now + timedelta(seconds=expires_in),
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm='HS256')


@pytest.fixture
def app():
    from app import app as flask_app
    flask_app.config['TESTING'] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers():
    return {'Authorization': f'Bearer {make_token()}'}
