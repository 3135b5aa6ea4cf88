"""
Workflow tests for vehicle and driver assignments
"""

from datetime import timedelta

import pytest

from models import TripStatus, AssignmentStatus
from services import AssignmentService, ForbiddenError, NotFoundError, InvalidTransitionError
from tests.factories import TripRequestFactory, VehicleFactory, DriverFactory, AssignmentFactory
from timezone_utils import get_local_time_naive


def assignment_payload(trip, vehicle, driver, **overrides):
    payload = {
        'trip_request_id': trip.id,
        'vehicle_id': vehicle.id,
        'driver_id': driver.id,
        'scheduled_departure': get_local_time_naive() + timedelta(days=2),
    }
    payload.update(overrides)
    return payload


@pytest.mark.workflow
class TestCreateAssignment:
    """Binding a vehicle and driver to a trip"""

    def test_approved_trip_becomes_assigned(self, db_session, employee):
        trip = TripRequestFactory(requester=employee, status=TripStatus.APPROVED)
        assignment = AssignmentService(db_session).create_assignment(
            assignment_payload(trip, VehicleFactory(), DriverFactory()), assigned_by_id=employee.id)

        assert assignment.status == AssignmentStatus.ASSIGNED
        db_session.refresh(trip)
        assert trip.status == TripStatus.ASSIGNED

    def test_pending_trip_needing_approval_is_forbidden(self, db_session, employee):
        trip = TripRequestFactory(requester=employee, status=TripStatus.PENDING)
        with pytest.raises(ForbiddenError):
            AssignmentService(db_session).create_assignment(
                assignment_payload(trip, VehicleFactory(), DriverFactory()), assigned_by_id=employee.id)

    def test_pending_trip_without_approval_can_be_assigned(self, db_session, employee):
        trip = TripRequestFactory(requester=employee, status=TripStatus.PENDING, approval_required=False)
        assignment = AssignmentService(db_session).create_assignment(
            assignment_payload(trip, VehicleFactory(), DriverFactory()), assigned_by_id=employee.id)
        assert assignment.trip_request.status == TripStatus.ASSIGNED

    def test_unknown_vehicle_not_found(self, db_session, employee):
        trip = TripRequestFactory(requester=employee, status=TripStatus.APPROVED)
        payload = assignment_payload(trip, VehicleFactory(), DriverFactory(),
                                     vehicle_id='11111111-1111-1111-1111-111111111111')
        with pytest.raises(NotFoundError):
            AssignmentService(db_session).create_assignment(payload, assigned_by_id=employee.id)

    def test_initial_status_must_be_assigned(self, db_session, employee):
        trip = TripRequestFactory(requester=employee, status=TripStatus.APPROVED)
        payload = assignment_payload(trip, VehicleFactory(), DriverFactory(), status='Started')
        with pytest.raises(InvalidTransitionError):
            AssignmentService(db_session).create_assignment(payload, assigned_by_id=employee.id)


@pytest.mark.workflow
class TestUpdateAssignment:
    """Lifecycle transitions and detail overrides"""

    def test_full_lifecycle_syncs_trip_status(self, db_session):
        assignment = AssignmentFactory()
        service = AssignmentService(db_session)

        service.update_assignment(assignment.id, {'status': 'Accepted'})
        service.update_assignment(assignment.id, {'status': 'Started'})
        assert assignment.trip_request.status == TripStatus.IN_PROGRESS

        service.update_assignment(assignment.id, {'status': 'Completed'})
        assert assignment.status == AssignmentStatus.COMPLETED
        assert assignment.trip_request.status == TripStatus.COMPLETED

    def test_completed_cannot_restart(self, db_session):
        assignment = AssignmentFactory(status=AssignmentStatus.COMPLETED)
        with pytest.raises(InvalidTransitionError):
            AssignmentService(db_session).update_assignment(assignment.id, {'status': 'Started'})

    def test_same_status_update_is_allowed(self, db_session):
        assignment = AssignmentFactory()
        updated = AssignmentService(db_session).update_assignment(
            assignment.id, {'status': 'Assigned', 'assignment_notes': 'Gate 3 pickup'})
        assert updated.assignment_notes == 'Gate 3 pickup'

    def test_detail_overrides_stay_on_assignment(self, db_session):
        assignment = AssignmentFactory()
        vehicle = assignment.vehicle
        AssignmentService(db_session).update_assignment(
            assignment.id, {}, vehicle_details={'mileage': 48250.0, 'status': 'Maintenance'},
            driver_details={'license_expiry_date': '2030-01-31'})

        db_session.refresh(assignment)
        db_session.refresh(vehicle)
        assert assignment.vehicle_details == {'mileage': 48250.0, 'status': 'Maintenance'}
        assert assignment.driver_details == {'license_expiry_date': '2030-01-31'}
        assert vehicle.operational_status.value == 'Active'

    def test_cannot_move_to_another_trip(self, db_session):
        assignment = AssignmentFactory()
        other = TripRequestFactory(status=TripStatus.APPROVED)
        with pytest.raises(ForbiddenError):
            AssignmentService(db_session).update_assignment(assignment.id, {'trip_request_id': other.id})

    def test_search_by_registration(self, db_session):
        target = AssignmentFactory(vehicle=VehicleFactory(registration_number='CAB-7788'))
        AssignmentFactory()
        items, total = AssignmentService(db_session).list_assignments(search='7788')
        assert total == 1
        assert items[0].id == target.id
