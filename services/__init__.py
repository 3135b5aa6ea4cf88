"""
Service Layer Architecture

Business logic for the trip lifecycle and billing workflow. Services are
constructed per request with an injected SQLAlchemy session; none of them
holds global state.

Services Architecture:
- **TripRequestService**: Trip request creation, edits while Pending, approval step seeding
- **ApprovalService**: Level-ordered approval workflow and step decisions
- **AssignmentService**: Vehicle/driver assignment lifecycle
- **GPSLogService**: Telemetry queries, live status, trip replay, CSV rows
- **TripCostService**: Itemized charges, totals and edit lock
- **InvoiceService**: Monthly vendor invoicing and payment cascade
- **TripLogService**: Planned versus actual trip records and CSV rows
- **DashboardService**: Employee trip summary
- **AuditService**: Audit trail inside the caller's transaction
"""

from .exceptions import (FleetServiceError, NotFoundError, ConflictError, ForbiddenError,
                         ValidationError, InvalidTransitionError)
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .trip_request_service import TripRequestService
from .approval_service import ApprovalService
from .assignment_service import AssignmentService
from .gps_log_service import GPSLogService
from .trip_cost_service import TripCostService
from .invoice_service import InvoiceService
from .trip_log_service import TripLogService
from .dashboard_service import DashboardService

__all__ = [
    'FleetServiceError',
    'NotFoundError',
    'ConflictError',
    'ForbiddenError',
    'ValidationError',
    'InvalidTransitionError',
    'TransactionHelper',
    'AuditService',
    'TripRequestService',
    'ApprovalService',
    'AssignmentService',
    'GPSLogService',
    'TripCostService',
    'InvoiceService',
    'TripLogService',
    'DashboardService',
]
