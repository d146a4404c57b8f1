"""
Database monitoring endpoints.

Read-only views over the DatabaseAdapter statistics, plus an admin-only
metrics reset and configuration view.
"""

import logging

from flask import Blueprint, g, jsonify, request

from core.audit import AuditLevel, audit_log
from server.auth import Role, role_required, token_required
from server.extensions import get_services

logger = logging.getLogger(__name__)

database_bp = Blueprint('database', __name__, url_prefix='/api/database')


def _limit(default: int = 20, maximum: int = 100) -> int:
    return max(1, min(request.args.get("limit", default, type=int), maximum))


def _success(data, message=None):
    body = {"status": "success", "data": data}
    if message:
        body["message"] = message
    return jsonify(body)


@database_bp.route('/performance', methods=['GET'])
@token_required
def performance():
    adapter = get_services().adapter
    return _success({
        "query_stats": adapter.get_query_stats(),
        "pool_stats": adapter.get_pool_stats(),
        "is_connected": adapter.is_connected,
        "dialect": adapter.dialect.name,
    })


@database_bp.route('/health', methods=['GET'])
@token_required
def health():
    """Run one health probe now (reconnects on failure) and score the adapter."""
    services = get_services()
    healthy = services.run(services.adapter.check_health())
    body = {
        "status": "success" if healthy else "error",
        "data": {
            "healthy": healthy,
            "connection": services.adapter.get_connection_status(),
            "report": services.adapter.get_health_report(),
        },
    }
    return jsonify(body), 200 if healthy else 503


@database_bp.route('/connection/status', methods=['GET'])
@token_required
def connection_status():
    return _success(get_services().adapter.get_connection_status())


@database_bp.route('/connection/test', methods=['GET'])
@token_required
def connection_test():
    services = get_services()
    ok = services.run(services.adapter.test_connection())
    message = "Database connection test successful" if ok else "Database connection test failed"
    return jsonify({"status": "success" if ok else "error", "message": message, "data": {"connected": ok}}), (
        200 if ok else 503
    )


@database_bp.route('/queries/history', methods=['GET'])
@token_required
def query_history():
    """Recent attempts, newest first (up to 1000 kept)."""
    limit = _limit(default=50, maximum=1000)
    queries = get_services().adapter.get_query_history(limit)
    return _success({"queries": queries, "count": len(queries), "limit": limit})


@database_bp.route('/queries/slow', methods=['GET'])
@token_required
def slow_queries():
    adapter = get_services().adapter
    queries = adapter.get_slow_queries(_limit())
    return _success({"queries": queries, "count": len(queries), "threshold_ms": adapter.slow_query_threshold})


@database_bp.route('/queries/failed', methods=['GET'])
@token_required
def failed_queries():
    queries = get_services().adapter.get_failed_queries(_limit())
    return _success({"queries": queries, "count": len(queries)})


@database_bp.route('/config', methods=['GET'])
@role_required(Role.ADMIN)
def database_config():
    """Effective database configuration. Never includes the password."""
    db = get_services().settings.database
    return _success({
        "type": db.db_type,
        "host": db.db_host,
        "port": db.db_port,
        "database": db.db_name,
        "user": db.db_user,
        "pool_size": db.db_pool_size,
        "pool_min": db.db_pool_min,
        "connect_timeout": db.db_connect_timeout,
        "statement_timeout": db.db_statement_timeout,
        "slow_query_threshold": db.slow_query_threshold,
        "query_retries": db.db_query_retries,
    })


@database_bp.route('/metrics/reset', methods=['POST'])
@role_required(Role.ADMIN)
def reset_metrics():
    get_services().adapter.reset_query_stats()
    audit_log(
        "DB_METRICS_RESET",
        user_id=g.employee_id,
        level=AuditLevel.MEDIUM,
        ip=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    return _success({"reset": True}, message="Database metrics reset successfully")
