"""
Configuration Module for the Label Desk API
Handles logging setup, Flask app initialization and environment settings
"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


# Outbound request timeouts (seconds)
METADATA_FETCH_TIMEOUT = 5
METADATA_FALLBACK_TIMEOUT = 8
SPOTIFY_TOKEN_TIMEOUT = 10


@dataclass(frozen=True)
class Settings:
    """Settings read from the process environment"""
    spotify_client_id: Optional[str]
    spotify_client_secret: Optional[str]
    firecrawl_api_key: Optional[str]
    jwt_secret: Optional[str]
    performance_sync_url: str
    preferences_dir: Path


def get_settings():
    """
    Read settings from the environment

    Read on every call so a changed .env or test override is picked up
    without restarting the worker.

    Returns:
        Settings instance
    """
    return Settings(
        spotify_client_id=os.environ.get('SPOTIFY_CLIENT_ID') or None,
        spotify_client_secret=os.environ.get('SPOTIFY_CLIENT_SECRET') or None,
        firecrawl_api_key=os.environ.get('FIRECRAWL_API_KEY') or None,
        jwt_secret=os.environ.get('SUPABASE_JWT_SECRET') or None,
        performance_sync_url=os.environ.get(
            'PERFORMANCE_SYNC_URL', 'http://localhost:5001/scrape-chartmasters'
        ),
        preferences_dir=Path(os.environ.get(
            'PREFERENCES_DIR', Path.home() / '.label_desk'
        )),
    )


def configure_logging():
    """
    Configure application logging with standard format

    Returns:
        Logger instance for the config module
    """
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    return logging.getLogger(__name__)


def init_app_config(app):
    """
    Initialize Flask app configuration

    This sets up:
    - Custom JSON provider for date/decimal/uuid formatting

    Args:
        app: Flask application instance
    """
    from utils.json_provider import CustomJSONProvider
    app.json = CustomJSONProvider(app)


def set_db_pooling_mode():
    """
    Set database pooling mode environment variable

    This MUST be called before importing db_utils to ensure
    the connection pool is configured correctly.
    """
    os.environ['DB_USE_POOLING'] = 'true'
