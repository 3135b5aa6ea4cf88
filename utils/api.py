"""
JSON API helpers shared by all blueprints:
response envelope, pagination arguments, path id parsing and the
app-wide error handlers.
"""

import logging
import math
import uuid
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from services.exceptions import FleetServiceError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def success_response(data: Any = None, status_code: int = 200, meta: Optional[Dict] = None):
    body = {'success': True, 'data': data}
    if meta is not None:
        body['meta'] = meta
    return jsonify(body), status_code


def error_response(code: str, message: str, status_code: int, errors: Optional[Dict] = None):
    body = {'success': False, 'error': code, 'message': message}
    if errors:
        body['errors'] = errors
    return jsonify(body), status_code


def build_meta(total: int, page: int, page_size: int) -> Dict[str, int]:
    return {
        'total': total,
        'page': page,
        'pageSize': page_size,
        'totalPages': math.ceil(total / page_size) if page_size else 0,
    }


def paginated_response(items, total: int, page: int, page_size: int):
    return success_response(items, meta=build_meta(total, page, page_size))


def _positive_int(name: str, raw: Optional[str], default: int) -> int:
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", errors={name: ['Not a valid integer.']})
    if value < 1:
        raise ValidationError(f"{name} must be at least 1", errors={name: ['Must be at least 1.']})
    return value


def get_pagination_args(default_size: int = DEFAULT_PAGE_SIZE,
                        max_size: int = MAX_PAGE_SIZE) -> Tuple[int, int]:
    """Read page and pageSize (or limit) from the query string"""
    page = _positive_int('page', request.args.get('page'), 1)
    raw_size = request.args.get('pageSize') or request.args.get('page_size') or request.args.get('limit')
    page_size = _positive_int('pageSize', raw_size, default_size)
    return page, min(page_size, max_size)


def parse_uuid(value: Optional[str], field: str = 'id') -> Optional[str]:
    """Validate a UUID path/query value and return it in canonical form"""
    if value is None or value == '':
        return None
    try:
        return str(uuid.UUID(str(value)))
    except (ValueError, AttributeError):
        raise ValidationError(f"Invalid {field}", errors={field: ['Not a valid UUID.']})


def parse_enum(enum_cls, value: Optional[str], field: str = 'status'):
    """Map a query-string value onto an enum member; 'all' and blank mean no filter"""
    if value is None or value.strip() == '' or value.strip().lower() == 'all':
        return None
    try:
        return enum_cls(value.strip())
    except ValueError:
        allowed = ', '.join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field}", errors={field: [f"Must be one of: {allowed}."]})


def parse_date_arg(value: Optional[str], field: str):
    if not value:
        return None
    try:
        return datetime.strptime(value, '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f"Invalid {field}", errors={field: ['Must be YYYY-MM-DD.']})


def get_json_body() -> Dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError('Request body must be a JSON object')
    return payload


def register_error_handlers(app):
    """Translate domain and HTTP errors into the JSON error envelope"""

    @app.errorhandler(FleetServiceError)
    def handle_service_error(error: FleetServiceError):
        if error.status_code >= 500:
            logger.error(f"Service error: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        code = (error.name or 'ERROR').upper().replace(' ', '_')
        return error_response(code, error.description or error.name, error.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        # Details stay in the server log only
        logger.error(f"Unhandled error on {request.method} {request.path}: {error}", exc_info=True)
        return error_response('INTERNAL_ERROR', 'An unexpected error occurred', 500)
