"""
Eventful Application Factory.
Creates and configures the Flask application instance.
"""
import os
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone

import click
from flask import Flask, request, g, jsonify
from marshmallow import ValidationError

from eventful.config import config
from eventful.errors import TicketingError
from eventful.extensions import init_extensions, db


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

    # Production validation happens here
    if hasattr(config_class, 'init_app'):
        config_class.init_app(app)

    # Initialize extensions (includes the payment gateway adapter)
    init_extensions(app)

    # Enable response compression (gzip)
    from flask_compress import Compress
    Compress(app)

    register_blueprints(app)
    register_error_handlers(app)
    register_cli_commands(app)
    configure_logging(app)
    register_security_headers(app)

    # Import models so metadata is complete for create_all / migrations
    from eventful import models  # noqa: F401

    # Create database tables (development only)
    if config_name == 'development':
        with app.app_context():
            db.create_all()

    return app


def register_blueprints(app):
    """Register all application blueprints."""
    # REST API v1 (JWT auth, no CSRF needed)
    from eventful.blueprints.api import api_bp

    app.register_blueprint(api_bp, url_prefix='/api/v1')

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok'}), 200


def _is_api_request():
    """Check if the current request targets the API (returns JSON)."""
    return request.path.startswith('/api/')


def register_error_handlers(app):
    """Register error handlers. Every error leaves as the JSON error envelope."""

    @app.errorhandler(TicketingError)
    def ticketing_error(error):
        body = {'error': {'code': error.code, 'message': error.message}}
        if error.details:
            body['error']['details'] = error.details
        if error.status_code >= 500:
            db.session.rollback()
            app.logger.error('%s: %s (request_id=%s)', type(error).__name__, error.message, g.get('request_id', '-'))
            body['error']['request_id'] = g.get('request_id', '-')
        return jsonify(body), error.status_code

    @app.errorhandler(ValidationError)
    def validation_error(error):
        return jsonify({'error': {
            'code': 'validation_error',
            'message': 'Request body failed validation.',
            'details': error.messages,
        }}), 422

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'error': {'code': 'bad_request', 'message': 'Bad request.'}}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'error': {'code': 'not_found', 'message': 'Resource not found.'}}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'error': {'code': 'method_not_allowed', 'message': 'Method not allowed.'}}), 405

    @app.errorhandler(429)
    def ratelimit_error(error):
        return jsonify({'error': {'code': 'rate_limit_exceeded', 'message': 'Too many requests. Try again later.'}}), 429

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        request_id = g.get('request_id', '-')
        original = getattr(error, 'original_exception', None) or error
        app.logger.error('500 Internal Server Error: %s (request_id=%s)', type(original).__name__, request_id,
                         exc_info=original)
        return jsonify({'error': {
            'code': 'internal_error',
            'message': 'Internal server error.',
            'request_id': request_id,
        }}), 500


def register_cli_commands(app):
    """Register custom CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables."""
        db.create_all()
        print("Database tables created.")

    @app.cli.command('send-reminders')
    @click.option('--dry-run', is_flag=True, help='Preview without sending emails')
    def send_reminders(dry_run):
        """Deliver event reminders that are due."""
        from eventful.services.reminders import get_due_reminders, deliver_reminder

        print("=" * 50)
        print("EVENT REMINDERS")
        print("=" * 50)

        if dry_run:
            print("[DRY RUN] No emails will be sent")
            print()

        stats = {'sent': 0, 'errors': 0}
        due = get_due_reminders()
        print(f"\n{len(due)} reminder(s) due")

        for reminder in due:
            email = reminder.user.email
            if dry_run:
                print(f"  [DRY RUN] Would remind {email} about {reminder.event.title}")
                continue
            try:
                if deliver_reminder(reminder):
                    stats['sent'] += 1
                    print(f"  [OK] Reminder sent to {email}")
                else:
                    stats['errors'] += 1
                    print(f"  [ERROR] Failed to send to {email}")
            except Exception as e:
                db.session.rollback()
                stats['errors'] += 1
                print(f"  [ERROR] {email}: {e}")

        print()
        print("=" * 50)
        print("SUMMARY")
        print("=" * 50)
        print(f"Reminders sent: {stats['sent']}")
        print(f"Errors: {stats['errors']}")

    @app.cli.command('seed-demo')
    @click.option('--password', default='Password123!', help='Password for the demo accounts')
    def seed_demo(password):
        """Create a demo organizer, buyer, events, tiers and a promo code."""
        from eventful.models import User, UserRole, Event, TicketTier, PromoCode, DiscountType, ReminderUnit

        def _user(email, first_name, role):
            user = User.query.filter_by(email=email).first()
            if user:
                print(f"User already exists: {email}")
                return user
            user = User(email=email, first_name=first_name, last_name='Demo', role=role)
            user.set_password(password)
            db.session.add(user)
            db.session.flush()
            print(f"Created {role.value}: {email}")
            return user

        organizer = _user('organizer@eventful.test', 'Ada', UserRole.CREATOR)
        _user('buyer@eventful.test', 'Tunde', UserRole.EVENTEE)

        if Event.query.filter_by(creator_id=organizer.id).count():
            db.session.commit()
            print("Demo events already exist.")
            return

        start = datetime.utcnow().replace(hour=19, minute=0, second=0, microsecond=0) + timedelta(days=30)
        meetup = Event(
            creator_id=organizer.id, title='Lagos Tech Meetup', date=start,
            location='Yaba, Lagos', price=5000, capacity=100,
            default_reminder_value=1, default_reminder_unit=ReminderUnit.DAYS,
        )
        concert = Event(
            creator_id=organizer.id, title='Afrobeats Live', date=start + timedelta(days=7),
            location='Eko Hotel, Lagos', price=0, capacity=600,
            default_reminder_value=3, default_reminder_unit=ReminderUnit.HOURS,
        )
        db.session.add_all([meetup, concert])
        db.session.flush()

        db.session.add_all([
            TicketTier(event_id=concert.id, name='Regular', price=10000, capacity=500, sort_order=0),
            TicketTier(event_id=concert.id, name='VIP', price=50000, capacity=100, sort_order=1),
            PromoCode(code='EARLYBIRD', discount_type=DiscountType.PERCENTAGE, discount_value=20,
                      max_uses=50, creator_id=organizer.id),
        ])
        db.session.commit()
        print("Created 2 events, 2 tiers and promo code EARLYBIRD.")


class JSONFormatter(logging.Formatter):
    """JSON log formatter for production."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'message': record.getMessage(),
            'module': record.module,
            'line': record.lineno,
        }
        try:
            log_entry['request_id'] = g.get('request_id', '-')
        except RuntimeError:
            pass  # Outside request context
        if record.exc_info and record.exc_info[0]:
            log_entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False)


def configure_logging(app):
    """Configure application logging.

    Production: JSON to stdout.
    Development: plain text at DEBUG.
    """
    @app.before_request
    def assign_request_id():
        g.request_id = request.headers.get('X-Request-ID', str(uuid.uuid4())[:8])

    if app.testing:
        return

    @app.after_request
    def log_request(response):
        app.logger.info('%s %s %s', request.method, request.path, response.status_code)
        return response

    if not app.debug:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(JSONFormatter())
        stream_handler.setLevel(logging.INFO)

        # app.logger is the 'eventful' logger, so module loggers propagate here
        app.logger.handlers.clear()
        app.logger.addHandler(stream_handler)
        app.logger.setLevel(logging.INFO)
        app.logger.info('Eventful startup (JSON logging)')
    else:
        app.logger.setLevel(logging.DEBUG)
        app.logger.info('Eventful startup (development)')


def register_security_headers(app):
    """Register security headers for all responses."""

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['X-Permitted-Cross-Domain-Policies'] = 'none'
        response.headers['Cache-Control'] = 'no-store'

        # HSTS - Force HTTPS (1 year, include subdomains)
        if not app.debug:
            response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        response.headers['X-Request-ID'] = g.get('request_id', '-')
        return response
