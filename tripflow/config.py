"""
Configuration classes for TripFlow.
Supports Development, Testing, and Production environments.
"""
import os


class Config:
    """Base configuration with default settings."""

    # Security - SECRET_KEY is validated in production config
    _secret_key = os.environ.get('SECRET_KEY')
    if not _secret_key:
        import warnings
        warnings.warn(
            "SECRET_KEY not set in environment. Using insecure default key. "
            "Set SECRET_KEY environment variable for production!",
            UserWarning
        )
        _secret_key = 'dev-secret-key-change-in-production'
    SECRET_KEY = _secret_key

    # Database
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = (
        {}
        if os.environ.get('DATABASE_URL', 'sqlite').startswith('sqlite')
        else {
            'pool_pre_ping': True,
            'pool_recycle': 300,
        }
    )

    # Rate Limiting
    RATELIMIT_STORAGE_URI = 'memory://'
    RATELIMIT_DEFAULT = os.environ.get('RATE_LIMIT_GLOBAL', '100/minute')
    RATELIMIT_HEADERS_ENABLED = True

    # Mail
    MAIL_SERVER = os.environ.get('MAIL_SERVER', 'smtp.resend.com')
    MAIL_PORT = int(os.environ.get('MAIL_PORT', 587))
    MAIL_USE_TLS = os.environ.get('MAIL_USE_TLS', 'true').lower() == 'true'
    MAIL_USERNAME = os.environ.get('MAIL_USERNAME')
    MAIL_PASSWORD = os.environ.get('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = os.environ.get('MAIL_DEFAULT_SENDER', 'TripFlow <noreply@tripflow.app>')

    # Receipt attachments are fetched over HTTP before sending a report
    RECEIPT_FETCH_TIMEOUT = int(os.environ.get('RECEIPT_FETCH_TIMEOUT', 10))

    # Request size (JSON bodies only)
    MAX_CONTENT_LENGTH = 2 * 1024 * 1024  # 2 MB

    # Stripe (payment provider)
    STRIPE_SECRET_KEY = os.environ.get('STRIPE_SECRET_KEY')
    PAYMENT_CURRENCY = os.environ.get('PAYMENT_CURRENCY', 'eur')
    APP_URL = os.environ.get('APP_URL', 'http://localhost:5000')

    # Sentry (error monitoring, production only)
    SENTRY_DSN = os.environ.get('SENTRY_DSN')


class DevelopmentConfig(Config):
    """Development configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        'sqlite:///tripflow_dev.db'
    SQLALCHEMY_ECHO = False


class TestingConfig(Config):
    """Testing configuration."""

    TESTING = True
    DEBUG = True

    # Use SQLite in-memory for tests (portable, no external DB required)
    SQLALCHEMY_DATABASE_URI = os.environ.get('TEST_DATABASE_URL') or \
        'sqlite:///:memory:'
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Disable rate limiting in tests
    RATELIMIT_ENABLED = False

    # Stripe test values
    STRIPE_SECRET_KEY = 'sk_test_fake_key_for_testing'
    APP_URL = 'http://localhost'

    # Mail goes to the locmem backend
    MAIL_BACKEND = 'locmem'
    MAIL_DEFAULT_SENDER = 'TripFlow <test@tripflow.app>'

    SERVER_NAME = 'localhost'
    PREFERRED_URL_SCHEME = 'http'


class ProductionConfig(Config):
    """Production configuration."""

    DEBUG = False

    # SECRET_KEY and DATABASE_URL - validated in init_app (not at import time)
    SECRET_KEY = os.environ.get('SECRET_KEY')
    # Fix postgres:// → postgresql:// (SQLAlchemy 2.x requires postgresql://)
    _db_url = os.environ.get('DATABASE_URL', '')
    if _db_url.startswith('postgres://'):
        _db_url = _db_url.replace('postgres://', 'postgresql://', 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    # Redis for rate limiting (multi-worker consistency)
    RATELIMIT_STORAGE_URI = os.environ.get('REDIS_URL', 'memory://')

    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_pre_ping': True,
        'pool_recycle': 300,
        'pool_size': 10,
        'max_overflow': 20,
    }

    @classmethod
    def init_app(cls, app):
        """Production-specific initialization with validation."""
        import logging
        logger = logging.getLogger(__name__)

        if not cls.SECRET_KEY:
            raise ValueError("SECRET_KEY environment variable is required in production")
        if not cls.SQLALCHEMY_DATABASE_URI:
            raise ValueError("DATABASE_URL environment variable is required in production")

        if not os.environ.get('STRIPE_SECRET_KEY'):
            logger.warning(
                "STRIPE_SECRET_KEY not set: checkout and payment webhooks will fail. "
                "Set STRIPE_SECRET_KEY to enable paid plans."
            )

        if not os.environ.get('REDIS_URL'):
            logger.warning(
                "REDIS_URL not set: rate limiter uses in-memory storage. "
                "Each Gunicorn worker has independent counters."
            )

        if not os.environ.get('SENTRY_DSN'):
            logger.warning(
                "SENTRY_DSN not set: error tracking disabled. "
                "Set SENTRY_DSN for production error monitoring."
            )


# Configuration dictionary for easy access
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
