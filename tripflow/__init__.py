"""
TripFlow Application Factory.
Creates and configures the Flask application instance.
"""
import os
import json
import logging
import uuid
from datetime import datetime, timezone

import click
from flask import Flask, request, g
from marshmallow import ValidationError

from tripflow.config import config
from tripflow.extensions import init_extensions, db

MONTHS_FR = {
    1: 'janvier', 2: 'février', 3: 'mars', 4: 'avril', 5: 'mai', 6: 'juin',
    7: 'juillet', 8: 'août', 9: 'septembre', 10: 'octobre', 11: 'novembre', 12: 'décembre',
}


def _init_sentry(app):
    """Initialize Sentry error tracking for production."""
    dsn = app.config.get('SENTRY_DSN') or os.environ.get('SENTRY_DSN')
    if not dsn:
        app.logger.info('SENTRY_DSN not set, error tracking disabled.')
        return

    import sentry_sdk
    from sentry_sdk.integrations.flask import FlaskIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=dsn,
        integrations=[FlaskIntegration(), SqlalchemyIntegration()],
        traces_sample_rate=float(os.environ.get('SENTRY_TRACES_RATE', '0.1')),
        environment=os.environ.get('FLASK_ENV', 'production'),
        send_default_pii=False,
    )
    app.logger.info('Sentry error tracking initialized.')


def create_app(config_name=None):
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration to use (development, testing, production)

    Returns:
        Configured Flask application instance
    """
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    app = Flask(__name__)

    # Load configuration
    config_class = config[config_name]
    app.config.from_object(config_class)

    # Initialize Sentry (production only)
    if config_name == 'production':
        _init_sentry(app)

    # Call init_app if available (production validation happens here)
    if hasattr(config_class, 'init_app'):
        config_class.init_app(app)

    # Initialize extensions
    init_extensions(app)

    # Initialize Stripe API key
    if app.config.get('STRIPE_SECRET_KEY'):
        import stripe
        stripe.api_key = app.config['STRIPE_SECRET_KEY']

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Register CLI commands
    register_cli_commands(app)

    # Register template filters (French formatting for emails)
    register_template_filters(app)

    # Configure logging
    configure_logging(app)

    # Create database tables (development only)
    if config_name == 'development':
        with app.app_context():
            db.create_all()

    return app


def register_blueprints(app):
    """Register all application blueprints."""
    from tripflow.blueprints.api import api_bp
    from tripflow.blueprints.billing import billing_bp

    app.register_blueprint(api_bp, url_prefix='/api/v1')
    app.register_blueprint(billing_bp, url_prefix='/billing')

    # Models must be imported before create_all
    from tripflow import models  # noqa: F401


def register_error_handlers(app):
    """Register JSON error handlers for HTTP and business errors."""
    from flask import jsonify
    from tripflow.services.errors import TripFlowError, PlanLimitExceeded

    @app.errorhandler(TripFlowError)
    def business_error(error):
        body = {'error': {'code': error.code, 'message': str(error)}}
        if isinstance(error, PlanLimitExceeded):
            body['error']['details'] = {
                'trips_used': error.current,
                'max_trips': error.max_trips,
                'remaining_trips': error.remaining_trips,
            }
        return jsonify(body), error.status

    @app.errorhandler(ValidationError)
    def validation_error(error):
        return jsonify({'error': {
            'code': 'validation_error',
            'message': 'Données invalides.',
            'details': error.messages,
        }}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': {'code': 'not_found', 'message': 'Resource not found.'}}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': {'code': 'method_not_allowed', 'message': 'Méthode non autorisée'}}), 405

    @app.errorhandler(429)
    def ratelimit_error(error):
        return jsonify({'error': {'code': 'rate_limit_exceeded', 'message': 'Too many requests. Try again later.'}}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        request_id = g.get('request_id', '-')
        app.logger.error('500 Internal Server Error: %s (request_id=%s)', type(error).__name__, request_id, exc_info=True)
        return jsonify({'error': {'code': 'internal_error', 'message': 'Internal server error.', 'request_id': request_id}}), 500


def register_cli_commands(app):
    """Register custom CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all tables."""
        db.create_all()
        click.echo('Database tables created.')

    @app.cli.command('backfill-subscriptions')
    @click.option('--dry-run', is_flag=True, help='Only count profiles without subscription.')
    def backfill_subscriptions(dry_run):
        """Give legacy profiles without subscription the default free plan."""
        from tripflow.services.subscription_service import SubscriptionService

        count = SubscriptionService.backfill_missing_subscriptions(dry_run=dry_run)
        if dry_run:
            click.echo(f'{count} profile(s) without subscription.')
        else:
            click.echo(f'{count} profile(s) migrated to the free plan.')


def register_template_filters(app):
    """Register Jinja2 template filters for French formatting."""
    from tripflow.services.plan_service import PlanService
    from tripflow.utils.timezone import parse_datetime

    @app.template_filter('format_date_fr')
    def format_date_fr(value, fmt='numeric'):
        """Format a date in French without relying on system locale.

        Args:
            value: A date, datetime or ISO-format string.
            fmt: 'numeric' (15/03/2026) or 'short' (15 mars 2026).
        """
        if not value:
            return ''
        try:
            moment = parse_datetime(value)
        except ValueError:
            return value
        if fmt == 'short':
            return f"{moment.day} {MONTHS_FR[moment.month]} {moment.year}"
        return moment.strftime('%d/%m/%Y')

    @app.template_filter('format_price')
    def format_price(value, currency='EUR'):
        return PlanService.format_price(value or 0, currency)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production (cloud platforms)."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'module': record.module,
            'line': record.lineno,
        }
        # Add request_id if available
        try:
            log_entry['request_id'] = g.get('request_id', '-')
        except RuntimeError:
            pass  # Outside request context
        # Add exception info
        if record.exc_info and record.exc_info[0]:
            log_entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def configure_logging(app):
    """Configure application logging.

    Production: JSON to stdout (for cloud log aggregation).
    Development: plain text.
    """
    if app.testing:
        return

    # Request ID middleware
    @app.before_request
    def assign_request_id():
        g.request_id = request.headers.get('X-Request-ID', str(uuid.uuid4())[:8])

    @app.after_request
    def log_request(response):
        app.logger.info('%s %s %s', request.method, request.path, response.status_code)
        return response

    # app.logger is the 'tripflow' logger, module loggers propagate to it
    if not app.debug:
        # Production: JSON to stdout
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(JSONFormatter())
        stream_handler.setLevel(logging.INFO)

        # Clear existing handlers to avoid duplicates
        app.logger.handlers.clear()
        app.logger.addHandler(stream_handler)
        app.logger.setLevel(logging.INFO)
        app.logger.info('TripFlow startup (JSON logging)')
    else:
        # Development: plain text
        app.logger.setLevel(logging.DEBUG)
        app.logger.info('TripFlow startup (development)')
