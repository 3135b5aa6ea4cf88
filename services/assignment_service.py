"""
Assignment Service

Binds a vehicle and driver to a trip request and tracks the assignment
lifecycle through the assignment state machine. Vehicle and driver detail
overrides are stored on the assignment itself and never written back.
"""

from typing import Optional, Dict, Any, List, Tuple
import logging
from sqlalchemy import or_
from sqlalchemy.orm import aliased
from models import (Assignment, AssignmentStatus, TripRequest, TripStatus, Vehicle, Driver)
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .state_machine import ASSIGNMENT_STATE_MACHINE
from .exceptions import NotFoundError, ForbiddenError

logger = logging.getLogger(__name__)

# Trip statuses that can still receive an assignment
ASSIGNABLE_TRIP_STATUSES = {TripStatus.APPROVED, TripStatus.ASSIGNED}

# Trip status to promote when an assignment reaches a status
TRIP_STATUS_FOR_ASSIGNMENT = {
    AssignmentStatus.ASSIGNED: TripStatus.ASSIGNED,
    AssignmentStatus.STARTED: TripStatus.IN_PROGRESS,
    AssignmentStatus.COMPLETED: TripStatus.COMPLETED,
}


class AssignmentService:
    """Service class for trip assignment operations"""

    def __init__(self, session):
        self.session = session
        self.audit_service = AuditService(session)

    def list_assignments(self, search: Optional[str] = None,
                         status: Optional[AssignmentStatus] = None,
                         trip_request_id: Optional[str] = None,
                         vehicle_id: Optional[str] = None,
                         driver_id: Optional[str] = None,
                         page: int = 1, page_size: int = 10) -> Tuple[List[Assignment], int]:
        """
        Paginated assignments, newest first.

        Search matches the trip request number, vehicle registration or
        driver name.
        """
        trip_alias = aliased(TripRequest)
        query = self.session.query(Assignment) \
            .join(trip_alias, Assignment.trip_request_id == trip_alias.id) \
            .join(Vehicle, Assignment.vehicle_id == Vehicle.id) \
            .join(Driver, Assignment.driver_id == Driver.id)

        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(
                trip_alias.request_number.ilike(pattern),
                Vehicle.registration_number.ilike(pattern),
                Driver.first_name.ilike(pattern),
                Driver.last_name.ilike(pattern),
            ))
        if status:
            query = query.filter(Assignment.status == status)
        if trip_request_id:
            query = query.filter(Assignment.trip_request_id == trip_request_id)
        if vehicle_id:
            query = query.filter(Assignment.vehicle_id == vehicle_id)
        if driver_id:
            query = query.filter(Assignment.driver_id == driver_id)

        total = query.count()
        items = query.order_by(Assignment.created_at.desc(), Assignment.id) \
                     .offset((page - 1) * page_size).limit(page_size).all()
        return items, total

    def get_assignment(self, assignment_id: str) -> Assignment:
        assignment = self.session.get(Assignment, assignment_id)
        if not assignment:
            raise NotFoundError('Trip assignment not found')
        return assignment

    @TransactionHelper.with_transaction
    def create_assignment(self, data: Dict[str, Any], assigned_by_id: str) -> Assignment:
        """
        Assign a vehicle and driver to a trip request.

        Vehicle/driver availability overlap is not checked.
        """
        trip = self.session.get(TripRequest, data['trip_request_id'])
        if not trip:
            raise NotFoundError('Trip request not found')
        if not self.session.get(Vehicle, data['vehicle_id']):
            raise NotFoundError('Vehicle not found')
        if not self.session.get(Driver, data['driver_id']):
            raise NotFoundError('Driver not found')

        if not self._is_assignable(trip):
            raise ForbiddenError(f"Trip request is {trip.status.value} and cannot be assigned")

        status = ASSIGNMENT_STATE_MACHINE.validate_initial(
            AssignmentStatus(data.get('status') or AssignmentStatus.ASSIGNED.value))

        assignment = Assignment(
            trip_request_id=trip.id,
            vehicle_id=data['vehicle_id'],
            driver_id=data['driver_id'],
            assigned_by_id=assigned_by_id,
            status=status,
            scheduled_departure=data['scheduled_departure'],
            scheduled_return=data.get('scheduled_return'),
            assignment_notes=data.get('assignment_notes'),
        )
        self.session.add(assignment)
        self.session.flush()

        self._sync_trip_status(trip, status)
        self.audit_service.log_action('create_assignment', 'assignment', assignment.id,
                                      {'trip_request_id': trip.id, 'vehicle_id': assignment.vehicle_id,
                                       'driver_id': assignment.driver_id},
                                      user_id=assigned_by_id)
        logger.info(f"Trip {trip.request_number} assigned vehicle {assignment.vehicle_id} "
                    f"and driver {assignment.driver_id}")
        return assignment

    @TransactionHelper.with_transaction
    def update_assignment(self, assignment_id: str, data: Dict[str, Any],
                          user_id: Optional[str] = None,
                          vehicle_details: Optional[Dict[str, Any]] = None,
                          driver_details: Optional[Dict[str, Any]] = None) -> Assignment:
        """Partially update an assignment; status changes must follow the state machine"""
        assignment = self.get_assignment(assignment_id)
        previous_status = assignment.status

        if 'status' in data:
            requested = AssignmentStatus(data.pop('status'))
            assignment.status = ASSIGNMENT_STATE_MACHINE.validate(previous_status, requested)

        for reference, model in (('vehicle_id', Vehicle), ('driver_id', Driver)):
            if reference in data and not self.session.get(model, data[reference]):
                raise NotFoundError(f"{model.__name__} not found")
        if 'trip_request_id' in data and data['trip_request_id'] != assignment.trip_request_id:
            raise ForbiddenError('An assignment cannot be moved to another trip request')
        data.pop('trip_request_id', None)

        for field, value in data.items():
            setattr(assignment, field, value)

        if vehicle_details:
            assignment.vehicle_details = {**(assignment.vehicle_details or {}), **vehicle_details}
        if driver_details:
            assignment.driver_details = {**(assignment.driver_details or {}), **driver_details}

        if assignment.status != previous_status:
            self._sync_trip_status(assignment.trip_request, assignment.status)
            logger.info(f"Assignment {assignment.id} moved {previous_status.value} -> {assignment.status.value}")

        self.audit_service.log_action('update_assignment', 'assignment', assignment.id,
                                      {'from_status': previous_status.value,
                                       'to_status': assignment.status.value,
                                       'fields': sorted(data.keys())},
                                      user_id=user_id)
        return assignment

    @staticmethod
    def _is_assignable(trip: TripRequest) -> bool:
        if trip.status in ASSIGNABLE_TRIP_STATUSES:
            return True
        # Requests that skip approval stay Pending until assigned
        return trip.status == TripStatus.PENDING and not trip.approval_required

    @staticmethod
    def _sync_trip_status(trip: TripRequest, status: AssignmentStatus) -> None:
        target = TRIP_STATUS_FOR_ASSIGNMENT.get(status)
        if target and trip.status != target:
            logger.debug(f"Trip {trip.request_number} status {trip.status.value} -> {target.value}")
            trip.status = target
