"""
Audit Service

Centralized audit logging for workflow actions: trip requests, approval
decisions, assignments, trip costs and invoices. Entries are added to the
caller's session and committed with the caller's unit of work.
"""

from typing import Optional, Dict, Any, List
import logging
import json
from flask import has_request_context, request, g
from models import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    """Service class for centralized audit logging"""

    def __init__(self, session):
        self.session = session

    def log_action(self, action: str,
                   entity_type: Optional[str] = None,
                   entity_id: Optional[str] = None,
                   details: Optional[Dict[str, Any]] = None,
                   user_id: Optional[str] = None) -> AuditLog:
        """
        Record an audit event.

        Args:
            action: Action performed (e.g., 'decide_approval', 'pay_invoice')
            entity_type: Type of entity affected (e.g., 'trip_request', 'invoice')
            entity_id: ID of the affected entity
            details: Additional details about the action
            user_id: ID of user performing the action (None for system jobs)

        Returns:
            The pending AuditLog row
        """
        audit = AuditLog()
        audit.user_id = user_id
        audit.action = action
        audit.entity_type = entity_type
        audit.entity_id = entity_id
        audit.new_values = json.dumps(details, default=str) if details else None

        # Capture request context if available
        if has_request_context():
            audit.ip_address = request.remote_addr
            audit.user_agent = request.headers.get('User-Agent', '')[:255]
            audit.correlation_id = getattr(g, 'correlation_id', None)

        self.session.add(audit)

        # Let outer transaction handle the commit
        logger.debug(f"Audit logged: {action} on {entity_type}:{entity_id} by user {user_id}")
        return audit

    def get_entity_history(self, entity_type: str, entity_id: str, limit: int = 50) -> List[AuditLog]:
        """Audit history for one entity, newest first"""
        return self.session.query(AuditLog) \
            .filter_by(entity_type=entity_type, entity_id=entity_id) \
            .order_by(AuditLog.created_at.desc(), AuditLog.id.desc()) \
            .limit(limit).all()
