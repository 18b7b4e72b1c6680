"""
nORM - Configuration
Environment-based configuration for different deployment stages
"""
import os
from datetime import timedelta


def _database_uri(default):
    """Read DATABASE_URL, rewriting Render/Supabase postgres:// prefixes for psycopg v3"""
    db_url = os.environ.get('DATABASE_URL', '')
    if not db_url:
        return default
    if db_url.startswith('postgres://'):
        db_url = db_url.replace('postgres://', 'postgresql+psycopg://', 1)
    elif db_url.startswith('postgresql://'):
        db_url = db_url.replace('postgresql://', 'postgresql+psycopg://', 1)
    return db_url


class BaseConfig:
    """Base configuration"""

    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')

    _is_production = os.environ.get('RENDER') or os.environ.get('FLASK_ENV') == 'production'
    if SECRET_KEY == 'dev-secret-key-change-in-production' and _is_production:
        import warnings
        warnings.warn("SECRET_KEY is using default dev value in production! Set SECRET_KEY env var.")

    ENV_NAME = 'base'
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    # CORS
    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*')

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        return _database_uri('sqlite:///norm.db')

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
    }

    # Public URL used in alert emails
    APP_URL = os.environ.get('APP_URL', 'http://localhost:5000')

    # Cron endpoints
    CRON_SECRET = os.environ.get('CRON_SECRET', '')

    # AI
    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY', '')
    CONTENT_AI_MODEL = os.environ.get('CONTENT_AI_MODEL', 'gpt-4o')
    FALLBACK_AI_MODEL = os.environ.get('FALLBACK_AI_MODEL', 'gpt-4o-mini')
    SENTIMENT_AI_MODEL = os.environ.get('SENTIMENT_AI_MODEL', 'gpt-4o-mini')
    AI_MAX_RETRIES = int(os.environ.get('AI_MAX_RETRIES', '3'))

    # SERP tracking (SerpAPI)
    SERPAPI_KEY = os.environ.get('SERPAPI_KEY', '')
    SERP_LOCATION = os.environ.get('SERP_LOCATION', 'Brazil')
    SERP_GOOGLE_DOMAIN = os.environ.get('SERP_GOOGLE_DOMAIN', 'google.com.br')
    SERP_LANGUAGE = os.environ.get('SERP_LANGUAGE', 'pt-br')
    SERP_COUNTRY = os.environ.get('SERP_COUNTRY', 'br')
    SERP_RESULT_COUNT = int(os.environ.get('SERP_RESULT_COUNT', '100'))

    # News (Google News RSS)
    NEWS_LANGUAGE = os.environ.get('NEWS_LANGUAGE', 'pt-BR')
    NEWS_COUNTRY = os.environ.get('NEWS_COUNTRY', 'BR')
    NEWS_ARTICLES_PER_TERM = int(os.environ.get('NEWS_ARTICLES_PER_TERM', '10'))

    # Social APIs
    META_GRAPH_VERSION = os.environ.get('META_GRAPH_VERSION', 'v19.0')

    # Email
    SENDGRID_API_KEY = os.environ.get('SENDGRID_API_KEY', '')
    FROM_EMAIL = os.environ.get('FROM_EMAIL', 'alerts@norm.app')
    FROM_NAME = os.environ.get('FROM_NAME', 'nORM Alerts')
    SMTP_HOST = os.environ.get('SMTP_HOST', 'smtp.gmail.com')
    SMTP_PORT = int(os.environ.get('SMTP_PORT', '587'))
    SMTP_USER = os.environ.get('SMTP_USER', '')
    SMTP_PASS = os.environ.get('SMTP_PASS', '')

    # Fernet key for third-party credentials at rest
    ENCRYPTION_KEY = os.environ.get('ENCRYPTION_KEY', '')

    # Rate limiting (Flask-Limiter)
    RATELIMIT_ENABLED = os.environ.get('RATELIMIT_ENABLED', 'true').lower() == 'true'

    # JWT Auth
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY', SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.environ.get('JWT_EXPIRES_HOURS', '24')))


class DevelopmentConfig(BaseConfig):
    """Development configuration"""
    ENV_NAME = 'development'
    DEBUG = True
    TESTING = False


class ProductionConfig(BaseConfig):
    """Production configuration"""
    ENV_NAME = 'production'
    DEBUG = False
    TESTING = False

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        return _database_uri('')


class TestingConfig(BaseConfig):
    """Testing configuration"""
    ENV_NAME = 'testing'
    DEBUG = True
    TESTING = True
    RATELIMIT_ENABLED = False

    @property
    def SQLALCHEMY_DATABASE_URI(self):
        return 'sqlite:///:memory:'

    SQLALCHEMY_ENGINE_OPTIONS = {}

    OPENAI_API_KEY = 'test-key'
    SERPAPI_KEY = 'test-serpapi-key'
    CRON_SECRET = 'test-cron-secret'
    JWT_SECRET_KEY = 'test-jwt-secret'
    APP_URL = 'https://norm.test'
    SENDGRID_API_KEY = ''
    SMTP_USER = ''
    SMTP_PASS = ''
    # Fixed Fernet key so encrypted fixtures decrypt across app instances
    ENCRYPTION_KEY = 'kXH0oQ7ZtX9mF7sJ1n2l0Yq3b5Zb8WcZ2kD0sF1aG4M='


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}
