"""
Integration tests for the JSON API
"""

from datetime import datetime, timedelta

import pytest

from models import TripStatus, ApprovalStatus, TripLogStatus
from tests.factories import (TripRequestFactory, ApprovalStepFactory, AssignmentFactory, GPSLogFactory,
                             CabServiceFactory, VehicleFactory, TripCostFactory, TripLogFactory)
from timezone_utils import get_local_date


@pytest.mark.integration
class TestEnvelope:
    """Authentication and the shared error envelope"""

    def test_health_check(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'ok'

    def test_missing_token(self, client):
        response = client.get('/api/trip-requests')
        body = response.get_json()
        assert response.status_code == 401
        assert body['success'] is False
        assert body['error'] == 'UNAUTHORIZED'

    def test_malformed_id(self, client, auth_headers):
        response = client.get('/api/trip-requests/not-a-uuid', headers=auth_headers)
        body = response.get_json()
        assert response.status_code == 400
        assert body['error'] == 'VALIDATION_ERROR'
        assert 'id' in body['errors']

    def test_unknown_id(self, client, auth_headers):
        response = client.get('/api/trip-requests/00000000-0000-0000-0000-000000000000', headers=auth_headers)
        assert response.status_code == 404
        assert response.get_json() == {'success': False, 'error': 'NOT_FOUND',
                                       'message': 'Trip request not found'}

    def test_correlation_id_is_echoed(self, client):
        response = client.get('/health', headers={'X-Correlation-ID': 'abc-123'})
        assert response.headers['X-Correlation-ID'] == 'abc-123'

    def test_correlation_id_is_minted(self, client):
        assert client.get('/health').headers.get('X-Correlation-ID')


@pytest.mark.integration
class TestTripRequestApi:

    def test_create_and_list(self, client, auth_headers, employee):
        payload = {
            'from_address': 'Head Office, Colombo 03',
            'to_address': 'Galle Fort',
            'departure_date': (get_local_date() + timedelta(days=4)).isoformat(),
            'departure_time': '06:45',
            'purpose_category': 'Client Visit',
            'purpose_description': 'Contract signing',
            'priority': 'Urgent',
            'estimated_cost': 64000,
        }
        response = client.post('/api/trip-requests', json=payload, headers=auth_headers)
        body = response.get_json()

        assert response.status_code == 201
        assert body['data']['status'] == 'Pending'
        assert body['data']['requestedBy']['id'] == employee.id
        assert len(body['data']['approvalSteps']) == 3

        response = client.get('/api/trip-requests?status=Pending', headers=auth_headers)
        body = response.get_json()
        assert body['meta'] == {'total': 1, 'page': 1, 'pageSize': 10, 'totalPages': 1}

    def test_missing_required_fields(self, client, auth_headers):
        response = client.post('/api/trip-requests', json={'priority': 'High'}, headers=auth_headers)
        body = response.get_json()
        assert response.status_code == 400
        assert 'from_address' in body['errors']

    def test_invalid_status_filter(self, client, auth_headers):
        response = client.get('/api/trip-requests?status=Parked', headers=auth_headers)
        assert response.status_code == 400

    def test_detail_includes_audit_history(self, client, auth_headers, employee):
        trip = TripRequestFactory(requester=employee)
        client.patch(f'/api/trip-requests/{trip.id}', json={'luggage': '2 bags'}, headers=auth_headers)

        response = client.get(f'/api/trip-requests/{trip.id}', headers=auth_headers)
        history = response.get_json()['data']['auditHistory']

        assert response.status_code == 200
        assert [entry['action'] for entry in history] == ['update_trip_request']
        assert history[0]['userId'] == employee.id

    def test_edit_only_withdraws(self, client, auth_headers, employee):
        trip = TripRequestFactory(requester=employee)

        response = client.patch(f'/api/trip-requests/{trip.id}', json={'status': 'Approved'},
                                headers=auth_headers)
        assert response.status_code == 400
        assert 'status' in response.get_json()['errors']

        response = client.patch(f'/api/trip-requests/{trip.id}', json={'status': 'Cancelled'},
                                headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json()['data']['status'] == 'Cancelled'

    def test_return_date_only_update_is_validated(self, client, auth_headers, employee):
        trip = TripRequestFactory(requester=employee)
        response = client.patch(f'/api/trip-requests/{trip.id}',
                                json={'return_date': (trip.departure_date - timedelta(days=2)).isoformat()},
                                headers=auth_headers)
        assert response.status_code == 400
        assert 'return_date' in response.get_json()['errors']


@pytest.mark.integration
class TestApprovalApi:

    def test_decide_then_conflict(self, client, approver_headers, employee):
        trip = TripRequestFactory(requester=employee)
        step = ApprovalStepFactory(trip_request=trip, approval_level=1)

        response = client.patch(f'/api/trip-approvals/{step.id}', json={'status': 'Approved'},
                                headers=approver_headers)
        assert response.status_code == 200
        assert response.get_json()['data']['message'] == 'Request approved'

        response = client.patch(f'/api/trip-approvals/{step.id}', json={'status': 'Rejected'},
                                headers=approver_headers)
        assert response.status_code == 409
        assert response.get_json()['error'] == 'CONFLICT'

        detail = client.get(f'/api/trip-approvals/{trip.id}', headers=approver_headers).get_json()['data']
        assert detail['finalStatus'] == ApprovalStatus.APPROVED.value

    def test_pending_is_not_a_decision(self, client, approver_headers, employee):
        step = ApprovalStepFactory(trip_request=TripRequestFactory(requester=employee), approval_level=1)
        response = client.patch(f'/api/trip-approvals/{step.id}', json={'status': 'Pending'},
                                headers=approver_headers)
        assert response.status_code == 400


@pytest.mark.integration
class TestGpsApi:

    def test_ingest_and_export(self, client, auth_headers):
        vehicle = VehicleFactory(registration_number='CAB-9001')
        response = client.post('/api/gps-logs', json={'logs': [{
            'vehicle_id': vehicle.id,
            'latitude': 6.9271,
            'longitude': 79.8612,
            'speed': 35,
            'ignition_status': 'On',
            'device_timestamp': '2024-03-04 09:15:00',
        }]}, headers=auth_headers)
        assert response.status_code == 201
        assert response.get_json()['data']['ingested'] == 1

        response = client.post('/api/gps-logs/export', json={'status': 'active'}, headers=auth_headers)
        lines = response.get_data(as_text=True).splitlines()

        assert response.status_code == 200
        assert response.mimetype == 'text/csv'
        assert 'attachment; filename=gps_logs_' in response.headers['Content-Disposition']
        assert lines[0].startswith('Vehicle Number,Driver Name,Request Number')
        assert lines[1].startswith('CAB-9001,Unassigned,')

    def test_bad_entry_reports_index(self, client, auth_headers):
        vehicle = VehicleFactory()
        response = client.post('/api/gps-logs', json={'logs': [
            {'vehicle_id': vehicle.id, 'latitude': 6.9, 'longitude': 79.8,
             'device_timestamp': '2024-03-04 09:15:00'},
            {'vehicle_id': vehicle.id, 'latitude': 123.0, 'longitude': 79.8,
             'device_timestamp': '2024-03-04 09:15:00'},
        ]}, headers=auth_headers)
        assert response.status_code == 400
        assert '1' in response.get_json()['errors']

    def test_replay(self, client, auth_headers):
        assignment = AssignmentFactory()
        GPSLogFactory(assignment=assignment, vehicle=assignment.vehicle, latitude=0.0, longitude=0.0,
                      device_timestamp=datetime(2024, 3, 4, 8, 0))
        GPSLogFactory(assignment=assignment, vehicle=assignment.vehicle, latitude=0.0, longitude=1.0,
                      device_timestamp=datetime(2024, 3, 4, 8, 30))

        response = client.get(f'/api/gps-logs/replay/{assignment.id}', headers=auth_headers)
        data = response.get_json()['data']
        assert data['distance'] == pytest.approx(111.19, abs=0.5)
        assert data['durationMinutes'] == 30


@pytest.mark.integration
class TestInvoiceApi:

    def test_preview_without_trips(self, client, auth_headers):
        vendor = CabServiceFactory()
        response = client.get(f'/api/invoices/preview?cab_service_id={vendor.id}&month=2024-03',
                              headers=auth_headers)
        assert response.status_code == 404
        assert response.get_json()['message'] == 'No uninvoiced trips found for 2024-03'

    def test_preview_requires_arguments(self, client, auth_headers):
        response = client.get('/api/invoices/preview', headers=auth_headers)
        assert response.status_code == 400
        assert set(response.get_json()['errors']) == {'cab_service_id', 'month'}

    def test_generate_and_pay(self, client, auth_headers):
        vendor = CabServiceFactory(name='Acme Cabs')
        TripCostFactory(assignment=AssignmentFactory(vehicle=VehicleFactory(cab_service=vendor)),
                        created_at=datetime(2024, 3, 12, 10, 0))

        response = client.post('/api/invoices/generate', json={
            'cab_service_id': vendor.id,
            'month': '2024-03',
            'due_date': (get_local_date() + timedelta(days=30)).isoformat(),
        }, headers=auth_headers)
        invoice = response.get_json()['data']
        assert response.status_code == 201
        assert invoice['status'] == 'Pending'
        assert invoice['tripCount'] == 1

        response = client.post(f"/api/invoices/{invoice['id']}/pay", json={'transaction_id': 'BANK-9'},
                               headers=auth_headers)
        assert response.status_code == 200
        assert response.get_json()['data']['status'] == 'Paid'

        response = client.post(f"/api/invoices/{invoice['id']}/pay", json={}, headers=auth_headers)
        assert response.status_code == 409


@pytest.mark.integration
class TestTripLogApi:

    def test_create_complete_and_export(self, client, auth_headers):
        assignment = AssignmentFactory(vehicle=VehicleFactory(registration_number='CAB-7002'))
        response = client.post('/api/trip-logs', json={
            'trip_request_id': assignment.trip_request_id,
            'assignment_id': assignment.id,
            'trip_number': 'TL-2024-0042',
            'trip_date': '2024-03-04',
            'from_location': 'Head Office, Colombo 03',
            'to_location': 'Galle Fort',
        }, headers=auth_headers)
        created = response.get_json()['data']
        assert response.status_code == 201
        assert created['tripStatus'] == 'Not Started'
        assert created['vehicleRegistration'] == 'CAB-7002'

        response = client.patch(f"/api/trip-logs/{created['id']}", json={
            'actual_departure': '2024-03-04T06:45:00',
            'actual_arrival': '2024-03-04T09:20:30',
            'total_cost': 18250,
            'on_time': True,
        }, headers=auth_headers)
        updated = response.get_json()['data']
        assert response.status_code == 200
        assert updated['tripStatus'] == 'Completed'
        assert updated['totalDuration'] == 155
        assert updated['onTime'] is True

        response = client.get('/api/trip-logs/export?status=Completed', headers=auth_headers)
        lines = response.get_data(as_text=True).splitlines()
        assert response.status_code == 200
        assert response.mimetype == 'text/csv'
        assert 'attachment; filename=trip_logs_' in response.headers['Content-Disposition']
        assert lines[0] == 'Trip Number,Date,Status,Passenger,Driver,Vehicle,From,To,Actual Distance,Cost'
        assert lines[1].startswith('TL-2024-0042,2024-03-04,Completed,')
        assert lines[1].endswith('18250.00')

    def test_completed_log_is_frozen(self, client, auth_headers):
        log = TripLogFactory(trip_status=TripLogStatus.COMPLETED)
        response = client.patch(f'/api/trip-logs/{log.id}', json={'comments': 'late'}, headers=auth_headers)
        assert response.status_code == 403
        assert response.get_json()['error'] == 'FORBIDDEN'

    def test_rating_out_of_range(self, client, auth_headers):
        log = TripLogFactory()
        response = client.patch(f'/api/trip-logs/{log.id}', json={'overall_rating': 6}, headers=auth_headers)
        assert response.status_code == 400
        assert 'overall_rating' in response.get_json()['errors']

    def test_list_filters_and_delete(self, client, auth_headers):
        keep = TripLogFactory(trip_status=TripLogStatus.IN_TRANSIT)
        TripLogFactory()

        response = client.get('/api/trip-logs', query_string={'status': 'In Transit'}, headers=auth_headers)
        body = response.get_json()
        assert body['meta']['total'] == 1
        assert body['data'][0]['id'] == keep.id

        assert client.delete(f'/api/trip-logs/{keep.id}', headers=auth_headers).status_code == 200
        assert client.get(f'/api/trip-logs/{keep.id}', headers=auth_headers).status_code == 404


@pytest.mark.integration
class TestEmployeeDashboard:

    def test_dashboard_counts(self, client, auth_headers, employee):
        TripRequestFactory(requester=employee)
        TripRequestFactory(requester=employee, status=TripStatus.COMPLETED,
                           departure_date=get_local_date() - timedelta(days=10))
        TripRequestFactory()

        response = client.get('/api/employee-dashboard', headers=auth_headers)
        data = response.get_json()['data']

        assert response.status_code == 200
        assert data['user']['department'] == 'Engineering'
        assert data['stats']['totalTrips'] == 2
        assert len(data['upcomingTrips']) == 1


@pytest.mark.integration
def test_cli_mark_overdue(runner):
    result = runner.invoke(args=['fleet', 'mark-overdue'])
    assert result.exit_code == 0
    assert '0 invoice(s) marked overdue' in result.output
