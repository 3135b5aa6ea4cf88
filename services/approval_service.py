"""
Approval Service

Sequential, level-ordered approval workflow per trip request.

The aggregate status and the current level are never stored: they are
computed at read time from the step rows by the pure functions below.
"""

from typing import Optional, Dict, Any, List, Sequence, Tuple
import logging
from sqlalchemy import or_, update
from sqlalchemy.orm import selectinload
from models import TripRequest, TripStatus, ApprovalStep, ApprovalStatus, User
from utils.money import money_to_float
from timezone_utils import get_local_time_naive
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .exceptions import NotFoundError, ConflictError

logger = logging.getLogger(__name__)

PENDING_ASSIGNEE = 'Pending Assignee'


def sort_steps(steps: Sequence[ApprovalStep]) -> List[ApprovalStep]:
    return sorted(steps, key=lambda step: step.approval_level)


def calculate_final_status(steps: Sequence[ApprovalStep]) -> ApprovalStatus:
    """Rejected if any step is Rejected, Approved only if all are Approved, otherwise Pending"""
    if not steps:
        return ApprovalStatus.PENDING
    statuses = [step.status for step in steps]
    if ApprovalStatus.REJECTED in statuses:
        return ApprovalStatus.REJECTED
    if all(status == ApprovalStatus.APPROVED for status in statuses):
        return ApprovalStatus.APPROVED
    return ApprovalStatus.PENDING


def calculate_current_level(steps: Sequence[ApprovalStep]) -> int:
    """Lowest level not yet Approved; one past the last level when all are approved"""
    ordered = sort_steps(steps)
    for step in ordered:
        if step.status != ApprovalStatus.APPROVED:
            return step.approval_level
    return len(ordered) + 1


def _iso(value):
    return value.isoformat() if value else None


class ApprovalService:
    """Service class for the trip approval workflow"""

    def __init__(self, session, cost_threshold=50000):
        self.session = session
        self.cost_threshold = cost_threshold
        self.audit_service = AuditService(session)

    def _base_query(self, search_term: Optional[str]):
        query = self.session.query(TripRequest) \
            .join(User, TripRequest.requested_by_user_id == User.id) \
            .options(selectinload(TripRequest.approval_steps).selectinload(ApprovalStep.approver),
                     selectinload(TripRequest.requester).selectinload(User.department))
        if search_term:
            pattern = f"%{search_term.strip()}%"
            query = query.filter(or_(
                TripRequest.request_number.ilike(pattern),
                TripRequest.purpose_description.ilike(pattern),
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
            ))
        return query.order_by(TripRequest.created_at.desc(), TripRequest.id)

    def list_approvals(self, search_term: Optional[str] = None,
                       status: Optional[ApprovalStatus] = None,
                       page: int = 1, page_size: int = 10) -> Tuple[List[Dict[str, Any]], int]:
        """
        Trip requests mapped to their approval workflow view.

        The status filter applies to the computed final status, so when it
        is given the whole search result is aggregated before paginating and
        the total is the post-filter count.
        """
        query = self._base_query(search_term)

        if status is None:
            total = query.count()
            trips = query.offset((page - 1) * page_size).limit(page_size).all()
            return [self.map_approval(trip) for trip in trips], total

        mapped = [self.map_approval(trip) for trip in query.all()]
        filtered = [item for item in mapped if item['finalStatus'] == status.value]
        start = (page - 1) * page_size
        return filtered[start:start + page_size], len(filtered)

    def get_approval_detail(self, trip_request_id: str) -> Dict[str, Any]:
        trip = self.session.get(TripRequest, trip_request_id)
        if not trip:
            raise NotFoundError('Trip request not found')
        return self.map_approval(trip)

    @TransactionHelper.with_transaction
    def decide_step(self, step_id: str, status: ApprovalStatus,
                    comments: Optional[str], approver_id: str) -> Dict[str, Any]:
        """
        Approve or reject a single approval step.

        The write is conditional on the step still being Pending, so of two
        concurrent decisions only one succeeds; the other gets a Conflict.
        """
        step = self.session.get(ApprovalStep, step_id)
        if not step:
            raise NotFoundError('Approval step not found')
        if step.status != ApprovalStatus.PENDING:
            raise ConflictError('Request already processed')

        decided_at = get_local_time_naive()
        result = self.session.execute(
            update(ApprovalStep)
            .where(ApprovalStep.id == step_id, ApprovalStep.status == ApprovalStatus.PENDING)
            .values(status=status, comments=comments, approver_id=approver_id, decided_at=decided_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(f"Approval step {step_id} was decided concurrently")
            raise ConflictError('Request already processed')

        self.session.expire(step)
        trip = step.trip_request
        self.session.expire(trip, ['approval_steps'])
        final_status = calculate_final_status(trip.approval_steps)
        if final_status != ApprovalStatus.PENDING and trip.status == TripStatus.PENDING:
            trip.status = TripStatus(final_status.value)
            logger.info(f"Trip request {trip.request_number} is now {trip.status.value}")

        self.audit_service.log_action('decide_approval', 'approval_step', step_id,
                                      {'trip_request_id': trip.id, 'level': step.approval_level,
                                       'status': status.value, 'comments': comments},
                                      user_id=approver_id)
        logger.info(f"Approval step L{step.approval_level} of {trip.request_number} "
                    f"{status.value.lower()} by user {approver_id}")

        verb = 'approved' if status == ApprovalStatus.APPROVED else 'rejected'
        return {'id': step_id, 'status': status.value, 'message': f'Request {verb}'}

    def map_approval(self, trip: TripRequest) -> Dict[str, Any]:
        steps = sort_steps(trip.approval_steps)
        requester = trip.requester
        department = requester.department.name if requester and requester.department else 'Unassigned'

        return {
            'id': trip.id,
            'tripRequestId': trip.id,
            'requestNumber': trip.request_number,
            'requestedBy': {
                'name': requester.full_name if requester else None,
                'email': requester.email if requester else None,
                'employeeId': requester.employee_id if requester else None,
                'department': department,
            },
            'tripDetails': {
                'fromLocation': {'address': trip.from_address, 'lat': trip.from_lat, 'lng': trip.from_lng},
                'toLocation': {'address': trip.to_address, 'lat': trip.to_lat, 'lng': trip.to_lng},
                'departureDate': _iso(trip.departure_date),
                'departureTime': trip.departure_time,
                'returnDate': _iso(trip.return_date),
                'returnTime': trip.return_time,
                'isRoundTrip': bool(trip.is_round_trip),
            },
            'purpose': {
                'category': trip.purpose_category,
                'description': trip.purpose_description,
                'projectCode': trip.project_code,
                'costCenter': trip.cost_center,
                'businessJustification': trip.business_justification,
            },
            'priority': trip.priority.value if trip.priority else None,
            'tripStatus': trip.status.value if trip.status else None,
            'estimatedCost': money_to_float(trip.estimated_cost),
            'currency': trip.currency or 'LKR',
            'finalStatus': calculate_final_status(steps).value,
            'currentApprovalLevel': calculate_current_level(steps),
            'approvalWorkflow': [
                {
                    'id': step.id,
                    'level': step.approval_level,
                    'approverName': step.approver.full_name if step.approver else PENDING_ASSIGNEE,
                    'approverRole': step.approver_role or 'Approver',
                    'status': step.status.value,
                }
                for step in steps
            ],
            'approvalHistory': [
                {
                    'level': step.approval_level,
                    'approver': {
                        'name': step.approver.full_name if step.approver else PENDING_ASSIGNEE,
                        'role': step.approver_role or 'Approver',
                    },
                    'action': step.status.value,
                    'timestamp': _iso(step.decided_at),
                    'comments': step.comments,
                }
                for step in steps if step.status != ApprovalStatus.PENDING
            ],
            'approvalRules': {'costThreshold': money_to_float(self.cost_threshold)},
            'createdAt': _iso(trip.created_at),
        }
