"""
Centralized logging configuration for Fleetdesk
Provides structured JSON logging, correlation ids and request timing
"""

import os
import sys
import json
import uuid
import logging
from datetime import datetime, timezone
from typing import Dict, Any
from flask import has_request_context, request, g
import traceback

CORRELATION_HEADER = 'X-Correlation-ID'

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename', 'module',
    'exc_info', 'exc_text', 'stack_info', 'lineno', 'funcName', 'created', 'msecs',
    'relativeCreated', 'thread', 'threadName', 'processName', 'process', 'message',
    'taskName',
}


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging
    Includes correlation ID, request context and application metadata
    """

    def __init__(self):
        super().__init__()
        self.application_name = "fleetdesk"
        self.environment = os.environ.get('FLASK_ENV', 'development')

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'application': self.application_name,
            'environment': self.environment,
        }

        if has_request_context():
            if hasattr(g, 'correlation_id'):
                log_data['correlation_id'] = g.correlation_id
            log_data['request'] = {
                'method': request.method,
                'path': request.path,
                'remote_addr': request.remote_addr,
            }

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__ if record.exc_info[0] else None,
                'message': str(record.exc_info[1]) if record.exc_info[1] else None,
                'traceback': traceback.format_exception(*record.exc_info)
            }

        extra_fields = {key: value for key, value in record.__dict__.items()
                        if key not in _RESERVED_ATTRS and key != 'correlation_id'}
        if extra_fields:
            log_data['extra'] = extra_fields

        if record.levelno == logging.ERROR:
            log_data['location'] = {
                'file': record.pathname,
                'function': record.funcName,
                'line': record.lineno
            }

        return json.dumps(log_data, ensure_ascii=False, default=str)


class RequestContextFilter(logging.Filter):
    """Inject the request correlation id into every log record"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = g.correlation_id if has_request_context() and hasattr(g, 'correlation_id') else '-'
        return True


def setup_logging(app=None) -> None:
    """
    Configure root logging for the application.
    JSON output in production or when USE_JSON_LOGGING is set, a readable
    single-line format otherwise.
    """
    log_level = os.environ.get('LOG_LEVEL', 'INFO').upper()
    if log_level not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
        log_level = 'INFO'

    use_json_logging = (
        os.environ.get('USE_JSON_LOGGING', 'false').lower() == 'true' or
        os.environ.get('FLASK_ENV') == 'production'
    )

    if use_json_logging:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '[%(asctime)s] %(levelname)s in %(name)s [%(correlation_id)s]: %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(RequestContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    if os.environ.get('FLASK_ENV') == 'production':
        logging.getLogger('werkzeug').setLevel(logging.WARNING)
        logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)

    if app:
        app.logger.info(f"Logging configured: level={log_level}, json_format={use_json_logging}")


def assign_correlation_id():
    """Take the caller's correlation id or mint one for this request"""
    if has_request_context():
        g.correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())


def log_request_start():
    """Mark the start of request processing for timing"""
    if has_request_context():
        g.request_start_time = datetime.now().timestamp()


def log_request_end(response):
    """Log request completion with timing and echo the correlation id"""
    if not has_request_context():
        return response

    if hasattr(g, 'correlation_id'):
        response.headers[CORRELATION_HEADER] = g.correlation_id

    if hasattr(g, 'request_start_time'):
        duration = datetime.now().timestamp() - g.request_start_time
        extra_data = {
            'method': request.method,
            'path': request.path,
            'status_code': response.status_code,
            'duration_ms': round(duration * 1000, 2),
        }

        if response.status_code >= 500:
            log_level = logging.ERROR
        elif response.status_code >= 400 or duration > 5.0:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        logging.getLogger('requests').log(log_level, f"Request completed: {request.method} {request.path}",
                                          extra=extra_data)

    return response
