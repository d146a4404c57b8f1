"""
Health check endpoints for the garage API.

Provides Kubernetes-compatible liveness and readiness probes.
"""

import logging
import time

from flask import Blueprint, jsonify

from server.extensions import get_services

logger = logging.getLogger(__name__)

# Create blueprint
health_bp = Blueprint('health', __name__)

_STARTED_AT = time.time()


@health_bp.route('/healthz', methods=['GET'])
def liveness():
    """Process is up; no dependency checks."""
    return jsonify({"status": "ok", "uptime_seconds": round(time.time() - _STARTED_AT, 1)})


@health_bp.route('/readyz', methods=['GET'])
def readiness():
    """Ready when the database adapter reports a live connection."""
    services = get_services()
    adapter = services.adapter
    ready = adapter.is_connected
    body = {
        "status": "ready" if ready else "not_ready",
        "checks": {
            "database": {
                "connected": ready,
                "dialect": adapter.dialect.name,
            },
        },
    }
    if not ready:
        logger.warning("Readiness check failed: database not connected")
    return jsonify(body), 200 if ready else 503
