# routes/__init__.py
"""
Blueprint registration helper
"""

def register_blueprints(app):
    """Register all application blueprints"""
    from routes.health import health_bp
    from routes.metadata import metadata_bp
    from routes.spotify import spotify_bp
    from routes.performance import performance_bp
    from routes.teams import teams_bp
    from routes.artists import artists_bp
    from routes.tasks import tasks_bp
    from routes.prospects import prospects_bp
    from routes.overview import overview_bp
    from routes.preferences import preferences_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(metadata_bp)
    app.register_blueprint(spotify_bp)
    app.register_blueprint(performance_bp)
    app.register_blueprint(teams_bp)
    app.register_blueprint(artists_bp)
    app.register_blueprint(tasks_bp)
    app.register_blueprint(prospects_bp)
    app.register_blueprint(overview_bp)
    app.register_blueprint(preferences_bp)
