"""
nORM - Routes
API endpoint registration
"""
from flask import Flask


def register_routes(app: Flask):
    """Register all API blueprints"""

    from norm.routes.auth import auth_bp
    from norm.routes.clients import clients_bp
    from norm.routes.alerts import alerts_bp
    from norm.routes.reputation import reputation_bp
    from norm.routes.social import social_bp
    from norm.routes.export import export_bp
    from norm.routes.wordpress import wordpress_bp
    from norm.routes.content import content_bp
    from norm.routes.cron import cron_bp

    # Register with /api prefix
    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(clients_bp, url_prefix='/api/clients')
    app.register_blueprint(alerts_bp, url_prefix='/api/alerts')
    app.register_blueprint(reputation_bp, url_prefix='/api/reputation')
    app.register_blueprint(social_bp, url_prefix='/api/social')
    app.register_blueprint(export_bp, url_prefix='/api/export')
    app.register_blueprint(wordpress_bp, url_prefix='/api/wordpress')
    app.register_blueprint(content_bp, url_prefix='/api/content')
    app.register_blueprint(cron_bp, url_prefix='/api/cron')
