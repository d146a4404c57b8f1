"""
Flask extension instances and the garage service container.

Centralized objects initialized via init_extensions(app) and
init_services(app). Import these in blueprints instead of creating new
instances.
"""

import logging
from typing import Optional

from flask import current_app
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from core.async_utils import BackgroundLoop
from core.db import DatabaseAdapter
from core.scheduler import MaintenanceScheduler
from server.auth.authority import SessionAuthority
from server.auth.directory import EmployeeDirectory
from server.auth.sessions import create_session_store
from server.auth.tokens import TokenIssuer

logger = logging.getLogger(__name__)

limiter: Optional[Limiter] = None  # Created in init_extensions with full config

EXTENSION_KEY = "garage"


# =============================================================================
# Flask extensions
# =============================================================================

def _get_rate_limit_storage(settings):
    """Get rate limit storage URI, falling back to memory if Redis unavailable."""
    storage = settings.rate_limit.storage
    if storage and storage.startswith('redis://'):
        try:
            import redis
            r = redis.from_url(storage, socket_timeout=1)
            r.ping()
            return storage
        except Exception:
            logger.warning("Redis unavailable for rate limiting, using in-memory storage")
            return "memory://"
    return storage or "memory://"


def init_extensions(app, settings):
    """Initialize CORS and the rate limiter.

    Args:
        app: Flask application instance
        settings: AppSettings
    """
    allowed_origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    CORS(app, origins=allowed_origins, supports_credentials=True)

    global limiter
    limiter = Limiter(
        key_func=get_remote_address,
        app=app,
        default_limits=[settings.rate_limit.default],
        storage_uri=_get_rate_limit_storage(settings),
        strategy="moving-window",
    )
    return limiter


# =============================================================================
# Service container
# =============================================================================

class GarageServices:
    """
    Database adapter, session authority and maintenance jobs sharing one
    background event loop. Flask handlers call run() to execute coroutines.
    """

    def __init__(
        self,
        settings,
        adapter: DatabaseAdapter,
        authority: SessionAuthority,
        loop: Optional[BackgroundLoop] = None,
        request_timeout: float = 30.0,
    ):
        self.settings = settings
        self.adapter = adapter
        self.authority = authority
        self.loop = loop or BackgroundLoop(name="garage-loop")
        self.request_timeout = request_timeout
        self.scheduler: Optional[MaintenanceScheduler] = None
        self._started = False

    @property
    def directory(self):
        return self.authority.directory

    @property
    def store(self):
        return self.authority.store

    def run(self, coro, timeout: Optional[float] = None):
        return self.loop.run(coro, timeout or self.request_timeout)

    def start(self, connect_database: bool = True, start_scheduler: bool = True):
        """Start the loop, open the database pool and schedule maintenance."""
        if self._started:
            return
        self.loop.start()
        self._started = True

        if connect_database:
            try:
                if self.run(self.adapter.connect()):
                    logger.info("Database connected")
            except Exception as e:
                # Health check job keeps trying to reconnect
                logger.error(f"Database unavailable at startup: {e}")

        if start_scheduler:
            database = self.settings.database
            self.scheduler = MaintenanceScheduler(
                self.adapter,
                self.authority,
                event_loop=self.loop.loop,
                session_sweep_interval=self.settings.sessions.cleanup_interval_seconds,
                health_check_interval=database.db_health_check_interval,
                stats_log_interval=database.db_stats_log_interval,
            )
            self.run(self._start_scheduler())

    async def _start_scheduler(self):
        self.scheduler.start()

    async def _stop_scheduler(self):
        self.scheduler.shutdown()

    def shutdown(self):
        """Stop jobs, release pools and stop the loop. Safe to call twice."""
        if not self._started:
            return
        self._started = False
        if self.scheduler is not None and self.scheduler.running:
            self.run(self._stop_scheduler())
        try:
            self.run(self.adapter.close())
            self.run(self.authority.store.close())
        except Exception as e:
            logger.warning(f"Error releasing resources during shutdown: {e}")
        self.loop.stop()
        logger.info("Garage services stopped")


def build_services(settings) -> GarageServices:
    """Wire the production services from settings."""
    adapter = DatabaseAdapter.from_settings(settings.database)
    issuer = TokenIssuer(
        settings.auth.jwt_secret.get_secret_value(),
        algorithm=settings.auth.jwt_algorithm,
        issuer=settings.auth.jwt_issuer,
        audience=settings.auth.jwt_audience,
        expires_in=settings.auth.access_token_expiry_seconds,
    )
    authority = SessionAuthority(
        EmployeeDirectory(adapter),
        create_session_store(settings),
        issuer,
        max_sessions=settings.sessions.max_per_user,
        session_ttl=settings.sessions.timeout_minutes * 60,
    )
    return GarageServices(settings, adapter, authority, request_timeout=settings.service_call_timeout)


def init_services(app, settings, services: Optional[GarageServices] = None) -> GarageServices:
    """Attach (and start) the service container on the app."""
    if services is None:
        services = build_services(settings)
        services.start()
    app.extensions[EXTENSION_KEY] = services
    return services


def get_services() -> GarageServices:
    """Service container of the current app."""
    return current_app.extensions[EXTENSION_KEY]
