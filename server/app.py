"""
Flask Application Factory.

Creates and configures the Flask app with extensions, services and
blueprints.

Usage:
    from server.app import create_app
    app = create_app()
"""

import atexit
import logging
import time
import uuid

from dotenv import load_dotenv
from flask import Flask, g, request

load_dotenv()

logger = logging.getLogger(__name__)

_QUIET_PATHS = ('/healthz', '/readyz')


def create_app(config=None, services=None):
    """Create and configure the Flask application.

    Args:
        config: Optional dict of config overrides (e.g. {'TESTING': True}).
        services: Optional pre-built GarageServices (tests inject fakes).

    Returns:
        Configured Flask app instance.
    """
    from config.settings import get_settings

    settings = get_settings()
    app = Flask(__name__)
    if config:
        app.config.update(config)

    # Configure logging
    from server.logging_config import configure_logging
    configure_logging(settings, app)

    # Initialize extensions (CORS, limiter)
    from server.extensions import init_extensions, init_services
    init_extensions(app, settings)

    # Database adapter, session authority, background loop
    services = init_services(app, settings, services)
    atexit.register(services.shutdown)

    # Register custom error handlers for APIError hierarchy
    from core.errors import register_error_handlers
    register_error_handlers(app, include_details=settings.is_development)

    _register_blueprints(app, settings)
    _register_middleware(app)

    logger.info(f"Garage API created (environment={settings.environment}, dialect={services.adapter.dialect.name})")
    return app


def _register_blueprints(app, settings):
    """Register all route blueprints."""
    from server.extensions import limiter

    # Health checks
    from server.routes.health import health_bp
    app.register_blueprint(health_bp)
    limiter.exempt(health_bp)

    # Auth
    from server.routes.auth_routes import auth_bp
    app.register_blueprint(auth_bp)

    # Apply auth rate limit to credential endpoints
    for endpoint in ('auth.login', 'auth.refresh'):
        app.view_functions[endpoint] = limiter.limit(settings.rate_limit.auth)(app.view_functions[endpoint])

    # Database monitoring
    from server.routes.database_routes import database_bp
    app.register_blueprint(database_bp)


def _register_middleware(app):
    """Register request tracking and security middleware."""

    @app.before_request
    def before_request_tracking():
        """Assign request ID and start the timer."""
        g.request_id = request.headers.get('X-Request-ID', str(uuid.uuid4())[:8])
        g.start_time = time.time()

    @app.after_request
    def after_request_tracking(response):
        """Log request completion with timing and add security headers."""
        duration_ms = 0
        if hasattr(g, 'start_time'):
            duration_ms = (time.time() - g.start_time) * 1000

        if hasattr(g, 'request_id'):
            response.headers['X-Request-ID'] = g.request_id

        log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
        if request.path in _QUIET_PATHS:
            log_level = logging.DEBUG

        logger.log(
            log_level,
            f"{request.method} {request.path} -> {response.status_code} ({duration_ms:.1f}ms)",
            extra={
                'request_id': getattr(g, 'request_id', 'unknown'),
                'method': request.method,
                'endpoint': request.path,
                'status_code': response.status_code,
                'duration_ms': round(duration_ms, 2),
                'remote_addr': request.remote_addr,
                'user': getattr(g, 'employee_email', None),
            }
        )

        # Security headers
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'
        response.headers['Referrer-Policy'] = 'strict-origin-when-cross-origin'
        response.headers['Content-Security-Policy'] = "default-src 'none'; frame-ancestors 'none'"
        response.headers['Strict-Transport-Security'] = 'max-age=31536000; includeSubDomains'

        return response
