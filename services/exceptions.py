"""
Service Exceptions

Domain errors raised by the service layer. Route handlers never build error
responses for these themselves; the app-wide handlers in utils.api translate
them into the JSON error envelope using ``status_code`` and ``code``.
"""

from typing import Dict, List, Optional


class FleetServiceError(Exception):
    """Base class for all domain errors"""

    status_code = 500
    code = 'INTERNAL_ERROR'

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def to_dict(self) -> Dict:
        return {'success': False, 'error': self.code, 'message': self.message}


class NotFoundError(FleetServiceError):
    status_code = 404
    code = 'NOT_FOUND'


class ConflictError(FleetServiceError):
    status_code = 409
    code = 'CONFLICT'


class ForbiddenError(FleetServiceError):
    status_code = 403
    code = 'FORBIDDEN'


class ValidationError(FleetServiceError):
    status_code = 400
    code = 'VALIDATION_ERROR'

    def __init__(self, message: str, errors: Optional[Dict[str, List[str]]] = None):
        super().__init__(message)
        self.errors = errors or {}

    def to_dict(self) -> Dict:
        data = super().to_dict()
        if self.errors:
            data['errors'] = self.errors
        return data


class InvalidTransitionError(FleetServiceError):
    """Raised when a status change is not in the allowed-transition table"""
    status_code = 409
    code = 'INVALID_TRANSITION'

    def __init__(self, entity: str, current, requested):
        current_label = getattr(current, 'value', current)
        requested_label = getattr(requested, 'value', requested)
        super().__init__(f"{entity} cannot move from {current_label} to {requested_label}")
        self.current = current
        self.requested = requested
