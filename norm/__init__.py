"""
nORM - Online Reputation Management
Reputation monitoring, alerting and counter-content API
"""
from flask import Flask, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
import os
import logging

__version__ = "1.4.0"

logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Application factory pattern"""
    app = Flask(__name__)

    # Running behind a reverse proxy (Render, Vercel, etc.)
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    from norm.config import config
    # Use instance instead of class to support @property
    config_instance = config.get(config_name, config['default'])()
    app.config.from_object(config_instance)

    logging.basicConfig(level=app.config.get('LOG_LEVEL', 'INFO'))

    cors_origins = app.config.get('CORS_ORIGINS', '*')
    if cors_origins == '*' and config_name == 'production':
        logger.warning("SECURITY: CORS_ORIGINS is set to '*' in production! Set specific origins.")
    CORS(app, origins=cors_origins)

    limiter = Limiter(
        app=app,
        key_func=get_remote_address,
        default_limits=["1000 per day", "200 per hour"],
        storage_uri="memory://"
    )
    app.limiter = limiter

    from norm.database import init_db
    init_db(app)

    from norm.routes import register_routes
    register_routes(app)

    _register_error_handlers(app)

    @app.route('/health')
    def health():
        try:
            from norm.database import db
            db.session.execute(db.text('SELECT 1'))
            db_status = 'connected'
        except Exception as e:
            db_status = f'error: {str(e)[:50]}'

        return {
            'status': 'healthy' if db_status == 'connected' else 'degraded',
            'version': __version__,
            'database': db_status
        }

    @app.route('/api')
    def api_info():
        return {
            'name': 'nORM API',
            'version': __version__,
            'status': 'running',
            'endpoints': {
                'auth': '/api/auth',
                'clients': '/api/clients',
                'alerts': '/api/alerts',
                'reputation': '/api/reputation',
                'social': '/api/social',
                'export': '/api/export',
                'wordpress': '/api/wordpress',
                'content': '/api/content',
                'cron': '/api/cron'
            }
        }

    if not app.config.get('TESTING') and os.environ.get('ENABLE_SCHEDULER') == '1':
        try:
            from norm.services.scheduler_service import init_scheduler
            init_scheduler(app)
            app.logger.info("Background scheduler started")
        except Exception as e:
            app.logger.warning(f"Could not start scheduler: {e}")

    return app


def _register_error_handlers(app):
    """Serialize every failure to the {error, message} shape"""
    from norm.errors import AppError

    @app.errorhandler(AppError)
    def handle_app_error(error):
        if error.status_code >= 500:
            logger.error(f"{error.code}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        return jsonify({
            'error': error.name,
            'message': error.description
        }), error.code

    @app.errorhandler(Exception)
    def handle_exception(error):
        """Catch-all for unhandled exceptions"""
        logger.error(f"Unhandled exception: {error}", exc_info=True)
        return jsonify({
            'error': 'Internal Server Error',
            'message': 'An unexpected error occurred'
        }), 500
