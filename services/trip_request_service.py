"""
Trip Request Service

Handles the trip request lifecycle on the requester side: creation with
request-number generation and approval-step seeding, edits while the
request is still Pending, and administrative deletion.
"""

from typing import Optional, Dict, Any, List, Tuple
import logging
import random
import time
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from models import (TripRequest, TripStatus, TripPriority, ApprovalStep, ApprovalStatus,
                    Assignment, User)
from utils.money import quantize_money
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .exceptions import NotFoundError, ConflictError, ForbiddenError, ValidationError

logger = logging.getLogger(__name__)

# Levels seeded on creation when approval is required
DEFAULT_APPROVAL_CHAIN = (
    (1, 'Line Manager'),
    (2, 'Department Head'),
)
FINANCE_APPROVAL_ROLE = 'Finance'

ENUM_FIELDS = {
    'priority': TripPriority,
    'status': TripStatus,
}
# Requesters may withdraw a Pending request; every other status change is workflow-driven
WITHDRAWABLE_STATUSES = {TripStatus.PENDING, TripStatus.CANCELLED}


def generate_request_number() -> str:
    """REQ-<last 6 digits of epoch millis>-<3 digit random>"""
    millis = str(int(time.time() * 1000))[-6:]
    return f"REQ-{millis}-{random.randint(0, 999):03d}"


class TripRequestService:
    """Service class for trip request operations"""

    def __init__(self, session, approval_cost_threshold=50000, default_currency: str = 'LKR'):
        self.session = session
        self.approval_cost_threshold = quantize_money(approval_cost_threshold)
        self.default_currency = default_currency
        self.audit_service = AuditService(session)

    def list_trip_requests(self, search: Optional[str] = None,
                           status: Optional[TripStatus] = None,
                           priority: Optional[TripPriority] = None,
                           department_id: Optional[str] = None,
                           requested_by_user_id: Optional[str] = None,
                           page: int = 1, page_size: int = 10) -> Tuple[List[TripRequest], int]:
        """
        Paginated trip requests, newest first.

        Search matches request number, from/to address or requester name
        (case-insensitive substring).
        """
        query = self.session.query(TripRequest).join(User, TripRequest.requested_by_user_id == User.id)

        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(
                TripRequest.request_number.ilike(pattern),
                TripRequest.from_address.ilike(pattern),
                TripRequest.to_address.ilike(pattern),
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
            ))
        if status:
            query = query.filter(TripRequest.status == status)
        if priority:
            query = query.filter(TripRequest.priority == priority)
        if department_id:
            query = query.filter(User.department_id == department_id)
        if requested_by_user_id:
            query = query.filter(TripRequest.requested_by_user_id == requested_by_user_id)

        total = query.count()
        items = query.order_by(TripRequest.created_at.desc(), TripRequest.id) \
                     .offset((page - 1) * page_size).limit(page_size).all()
        return items, total

    def get_trip_request(self, trip_request_id: str) -> TripRequest:
        trip = self.session.get(TripRequest, trip_request_id)
        if not trip:
            raise NotFoundError('Trip request not found')
        return trip

    @TransactionHelper.with_transaction
    def create_trip_request(self, data: Dict[str, Any], user_id: str) -> TripRequest:
        """
        Create a trip request in Pending status.

        When approval is required, approval steps are seeded: Line Manager
        and Department Head, plus Finance when the estimated cost reaches
        the configured threshold.
        """
        requester_id = data.pop('requested_by_user_id', None) or user_id
        if not self.session.get(User, requester_id):
            raise NotFoundError('Requesting user not found')

        trip = TripRequest()
        trip.requested_by_user_id = requester_id
        trip.request_number = data.pop('request_number', None) or generate_request_number()
        trip.status = TripStatus.PENDING
        trip.currency = self.default_currency
        trip.ac_required = True
        trip.approval_required = True
        trip.is_round_trip = False
        trip.passenger_count = 1
        self._apply_fields(trip, data)

        if self.session.query(TripRequest.id).filter_by(request_number=trip.request_number).first():
            raise ConflictError(f"Request number {trip.request_number} already exists")

        self.session.add(trip)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise ConflictError(f"Request number {trip.request_number} already exists") from e

        if trip.approval_required:
            self._seed_approval_steps(trip)

        self.audit_service.log_action('create_trip_request', 'trip_request', trip.id,
                                      {'request_number': trip.request_number,
                                       'estimated_cost': trip.estimated_cost},
                                      user_id=user_id)
        logger.info(f"Trip request {trip.request_number} created by user {user_id}")
        return trip

    @TransactionHelper.with_transaction
    def update_trip_request(self, trip_request_id: str, data: Dict[str, Any], user_id: str) -> TripRequest:
        """Edit a trip request; only Pending requests are editable"""
        trip = self.get_trip_request(trip_request_id)
        if trip.status != TripStatus.PENDING:
            logger.warning(f"Edit refused for trip {trip.request_number} in status {trip.status.value}")
            raise ForbiddenError(f"Trip request is {trip.status.value} and can no longer be edited")

        data.pop('requested_by_user_id', None)
        new_number = data.pop('request_number', None)
        if new_number and new_number != trip.request_number:
            if self.session.query(TripRequest.id).filter_by(request_number=new_number).first():
                raise ConflictError(f"Request number {new_number} already exists")
            trip.request_number = new_number

        if 'status' in data and TripStatus(data['status']) not in WITHDRAWABLE_STATUSES:
            raise ValidationError('Only withdrawal is allowed when editing a trip request',
                                  errors={'status': ['Must be Pending or Cancelled.']})

        # Partial updates are checked against the stored dates
        departure_date = data.get('departure_date', trip.departure_date)
        return_date = data.get('return_date', trip.return_date)
        if departure_date and return_date and return_date < departure_date:
            raise ValidationError('Return date cannot be before the departure date',
                                  errors={'return_date': ['Cannot be before the departure date.']})

        self._apply_fields(trip, data)
        self.audit_service.log_action('update_trip_request', 'trip_request', trip.id,
                                      {'fields': sorted(data.keys())}, user_id=user_id)
        return trip

    @TransactionHelper.with_transaction
    def delete_trip_request(self, trip_request_id: str, user_id: str) -> None:
        """Administrative delete; blocked while any assignment references the request"""
        trip = self.get_trip_request(trip_request_id)
        assignment_count = self.session.query(Assignment).filter_by(trip_request_id=trip.id).count()
        if assignment_count:
            raise ForbiddenError('Trip request has assignments and cannot be deleted')

        self.audit_service.log_action('delete_trip_request', 'trip_request', trip.id,
                                      {'request_number': trip.request_number}, user_id=user_id)
        self.session.delete(trip)
        logger.info(f"Trip request {trip.request_number} deleted by user {user_id}")

    @TransactionHelper.with_transaction
    def add_approval_step(self, trip_request_id: str, approval_level: int,
                          approver_id: Optional[str] = None,
                          approver_role: Optional[str] = None,
                          user_id: Optional[str] = None) -> ApprovalStep:
        trip = self.get_trip_request(trip_request_id)
        if trip.status != TripStatus.PENDING:
            raise ForbiddenError('Approval steps can only be added while the request is Pending')
        if approver_id and not self.session.get(User, approver_id):
            raise NotFoundError('Approver not found')
        if any(step.approval_level == approval_level for step in trip.approval_steps):
            raise ConflictError(f"Approval level {approval_level} already exists for this request")

        step = ApprovalStep(trip_request_id=trip.id,
                            approval_level=approval_level,
                            approver_id=approver_id,
                            approver_role=approver_role or 'Approver',
                            status=ApprovalStatus.PENDING)
        trip.approval_steps.append(step)
        self.session.flush()
        self.audit_service.log_action('add_approval_step', 'trip_request', trip.id,
                                      {'level': approval_level, 'role': step.approver_role},
                                      user_id=user_id)
        return step

    def _seed_approval_steps(self, trip: TripRequest) -> List[ApprovalStep]:
        chain = list(DEFAULT_APPROVAL_CHAIN)
        if quantize_money(trip.estimated_cost) >= self.approval_cost_threshold:
            chain.append((len(chain) + 1, FINANCE_APPROVAL_ROLE))

        steps = []
        for level, role in chain:
            step = ApprovalStep(trip_request_id=trip.id, approval_level=level,
                                approver_role=role, status=ApprovalStatus.PENDING)
            trip.approval_steps.append(step)
            steps.append(step)
        logger.debug(f"Seeded {len(steps)} approval steps for {trip.request_number}")
        return steps

    @staticmethod
    def _apply_fields(trip: TripRequest, data: Dict[str, Any]) -> None:
        for field, value in data.items():
            if field in ENUM_FIELDS:
                value = ENUM_FIELDS[field](value)
            elif field == 'estimated_cost':
                value = quantize_money(value)
            elif field == 'currency':
                value = value.upper()
            setattr(trip, field, value)
