"""
Structured JSON logging configuration.

Configures the ``core`` and ``server`` logger trees from AppSettings
(LOG_LEVEL, LOG_FORMAT, LOG_FILE).
"""

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler

LOGGER_NAMES = ("core", "server")

# Context copied from `extra=` when present, grouped by who sets it
_REQUEST_FIELDS = (
    'request_id', 'user', 'endpoint', 'method', 'status_code', 'duration_ms',
    'remote_addr', 'error_id',
)
_QUERY_FIELDS = ('sql', 'params', 'dialect', 'query_stats', 'pool_stats')
_AUDIT_FIELDS = ('audit',)


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record.

    Every entry has ``timestamp`` (record creation, UTC, millisecond
    precision), ``level``, ``logger``, ``message`` and ``source``
    (module:function:line). On top of that:

    - request middleware and error handlers add the request fields
    - the database adapter adds ``sql`` (whitespace collapsed), ``params``,
      ``dialect`` and the ``query_stats``/``pool_stats`` snapshots
    - the audit trail adds the whole ``audit`` entry, already redacted

    Any other ``extra=`` attribute is dropped. Values JSON cannot encode are
    stringified.
    """

    def format(self, record):
        created = datetime.fromtimestamp(record.created, timezone.utc)
        log_entry = {
            'timestamp': created.isoformat(timespec='milliseconds').replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'source': f"{record.module}:{record.funcName}:{record.lineno}",
        }

        for group in (_REQUEST_FIELDS, _QUERY_FIELDS, _AUDIT_FIELDS):
            for attr in group:
                if hasattr(record, attr):
                    log_entry[attr] = getattr(record, attr)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def configure_logging(settings, app=None):
    """Configure structured logging for the API.

    Args:
        settings: AppSettings (log_level, log_format, log_file)
        app: Optional Flask app whose logger will be updated.

    Returns:
        The list of handlers installed.
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    if settings.log_format == 'json':
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
    handlers = [console_handler]

    if settings.log_file:
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        handlers.append(file_handler)

    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        logger.handlers = list(handlers)

    # Sync Flask's logger
    if app is not None:
        app.logger.handlers = list(handlers)
        app.logger.setLevel(level)

    return handlers
