"""
Authentication utilities for bearer token validation

Access tokens are issued by the managed auth backend (HS256, audience
"authenticated", user id in `sub`). This module provides:
- Token validation and decoding
- Service token generation for internal callers such as batch scripts
"""

import jwt
from datetime import datetime, timedelta, timezone

from config import get_settings

JWT_ALGORITHM = 'HS256'
JWT_AUDIENCE = 'authenticated'
SERVICE_TOKEN_EXPIRY = timedelta(hours=1)


class AuthConfigError(Exception):
    """Raised when the token signing secret is not configured"""


def _secret() -> str:
    secret = get_settings().jwt_secret
    if not secret:
        raise AuthConfigError("SUPABASE_JWT_SECRET environment variable must be set")
    return secret


def decode_token(token: str) -> dict:
    """
    Decode and validate an access token

    Args:
        token: JWT token string

    Returns:
        Decoded token payload

    Raises:
        ValueError: If token is expired or invalid
        AuthConfigError: If no secret is configured
    """
    try:
        return jwt.decode(token, _secret(), algorithms=[JWT_ALGORITHM], audience=JWT_AUDIENCE)
    except jwt.ExpiredSignatureError:
        raise ValueError('Token has expired')
    except jwt.InvalidTokenError:
        raise ValueError('Invalid token')


def generate_service_token(user_id: str, email: str = None) -> str:
    """
    Generate a short-lived access token signed with the shared secret

    Args:
        user_id: UUID of the user the token acts as

    Returns:
        JWT token as string
    """
    now = datetime.now(timezone.utc)
    payload = {
        'sub': str(user_id),
        'email': email,
        'aud': JWT_AUDIENCE,
        'role': 'authenticated',
        'iat': now,
        'exp': now + SERVICE_TOKEN_EXPIRY,
    }
    return jwt.encode(payload, _secret(), algorithm=JWT_ALGORITHM)
