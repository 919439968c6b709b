"""
Label Desk API Backend
A Flask API for roster, A&R pipeline, task and finance data plus the
link-metadata, Spotify and performance integrations
"""

from flask import Flask, request, jsonify
from flask_cors import CORS
import atexit
import logging
import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Configuration
from config import configure_logging, init_app_config, set_db_pooling_mode

# Set pooling mode BEFORE importing db_utils
set_db_pooling_mode()

# Import database tools
import db_utils as db_tools

logger = configure_logging()

# Create Flask app
app = Flask(__name__)
CORS(app)
init_app_config(app)

logger.info(f"Spotify credentials present: {bool(os.environ.get('SPOTIFY_CLIENT_ID'))}")
logger.info(f"Scraping API key present: {bool(os.environ.get('FIRECRAWL_API_KEY'))}")
logger.info(f"Flask app initialized in PID {os.getpid()}")

# Register all route blueprints
from routes import register_blueprints
register_blueprints(app)


@app.route('/')
def index():
    """Service banner"""
    return jsonify({'service': 'label-desk-api', 'status': 'ok'})


# Request/response logging
@app.before_request
def log_request():
    """Log incoming requests"""
    logger.info(f"{request.method} {request.path}")

@app.after_request
def log_response(response):
    """Log response status"""
    logger.info(f"{request.method} {request.path} - {response.status_code}")
    return response


def cleanup_connections():
    """Close the connection pool on shutdown"""
    logger.info("Shutting down connection pool...")
    db_tools.close_connection_pool()
    logger.info("Connection pool closed")

atexit.register(cleanup_connections)


if __name__ == '__main__':
    # Running directly with 'python app.py' (not gunicorn)
    logger.info("Starting Flask application directly (not gunicorn)...")
    logger.info("Database connection pool will initialize on first request")

    db_tools.start_keepalive_thread()

    try:
        app.run(debug=True, host='0.0.0.0', port=int(os.environ.get('PORT', 5001)))
    finally:
        logger.info("Shutting down...")
        db_tools.stop_keepalive_thread()
        db_tools.close_connection_pool()
        logger.info("Shutdown complete")
