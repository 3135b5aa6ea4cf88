"""
Workflow tests for GPS telemetry queries, replay and ingestion
"""

from datetime import datetime, timedelta

import pytest

from models import GPSLog, IgnitionStatus, VehicleStatus
from services import GPSLogService, NotFoundError, ValidationError
from tests.factories import (VehicleFactory, DriverFactory, AssignmentFactory, GPSLogFactory,
                             GPSDeviceFactory)

TRIP_START = datetime(2024, 3, 4, 8, 0)


def ping(assignment, minutes, latitude=0.0, longitude=0.0, speed=0.0):
    return GPSLogFactory(assignment=assignment, vehicle=assignment.vehicle, driver=assignment.driver,
                         latitude=latitude, longitude=longitude, speed=speed,
                         ignition_status=IgnitionStatus.ON,
                         device_timestamp=TRIP_START + timedelta(minutes=minutes))


@pytest.mark.workflow
class TestTripReplay:
    """Route reconstruction for an assignment"""

    def test_single_point_trip(self, db_session):
        assignment = AssignmentFactory()
        ping(assignment, 0, speed=12)

        replay = GPSLogService(db_session).get_trip_replay(assignment.id)

        assert replay['distance'] == 0
        assert replay['durationMinutes'] == 0
        assert replay['totalPoints'] == 1
        assert replay['maxSpeed'] == 12

    def test_one_degree_of_longitude(self, db_session):
        assignment = AssignmentFactory()
        ping(assignment, 0, 0.0, 0.0, speed=40)
        ping(assignment, 10, 0.0, 1.0, speed=61)

        replay = GPSLogService(db_session).get_trip_replay(assignment.id)

        assert replay['distance'] == pytest.approx(111.19, abs=0.5)
        assert replay['durationMinutes'] == 10
        assert replay['avgSpeed'] == 51
        assert replay['maxSpeed'] == 61
        assert replay['requestNumber'] == assignment.trip_request.request_number
        assert replay['vehicleNumber'] == assignment.vehicle.registration_number
        assert replay['sampled'] is False

    def test_stationary_pings_do_not_lower_average(self, db_session):
        assignment = AssignmentFactory()
        ping(assignment, 0, speed=0)
        ping(assignment, 1, speed=30)
        ping(assignment, 2, speed=0)

        assert GPSLogService(db_session).get_trip_replay(assignment.id)['avgSpeed'] == 30

    def test_long_trip_is_sampled(self, db_session):
        assignment = AssignmentFactory()
        for minute in range(60):
            ping(assignment, minute, 0.0, minute * 0.001)

        replay = GPSLogService(db_session, replay_max_points=50).get_trip_replay(assignment.id)
        points = replay['routePoints']

        assert replay['sampled'] is True
        assert replay['totalPoints'] == 60
        assert len(points) <= 50
        assert points[0]['timestamp'] == TRIP_START.isoformat()
        assert points[-1]['timestamp'] == (TRIP_START + timedelta(minutes=59)).isoformat()
        assert replay['durationMinutes'] == 59

    def test_trip_without_pings(self, db_session):
        with pytest.raises(NotFoundError):
            GPSLogService(db_session).get_trip_replay(AssignmentFactory().id)


@pytest.mark.workflow
class TestQueryLogs:
    """Filtered, paginated log listing"""

    def test_status_filters(self, db_session):
        moving = GPSLogFactory(ignition_status=IgnitionStatus.ON, speed=48)
        idle = GPSLogFactory(ignition_status=IgnitionStatus.ON, speed=3)
        GPSLogFactory(ignition_status=IgnitionStatus.OFF)
        panic = GPSLogFactory(ignition_status=IgnitionStatus.ON, speed=48, panic_button=True)
        GPSLogFactory(vehicle=VehicleFactory(operational_status=VehicleStatus.MAINTENANCE))
        service = GPSLogService(db_session)

        items, total = service.query_logs(status='emergency')
        assert total == 1 and items[0]['id'] == panic.id
        assert items[0]['status'] == 'Emergency'

        items, _ = service.query_logs(status='idle')
        assert idle.id in [item['id'] for item in items]

        items, _ = service.query_logs(status='active')
        assert {item['id'] for item in items} == {moving.id, panic.id}

        _, total = service.query_logs(status='maintenance')
        assert total == 1
        _, total = service.query_logs(status='all')
        assert total == 5

    def test_unknown_status_rejected(self, db_session):
        with pytest.raises(ValidationError):
            GPSLogService(db_session).query_logs(status='parked')

    def test_search_by_driver_and_registration(self, db_session):
        driver = DriverFactory(first_name='Kasun', last_name='Silva')
        target = GPSLogFactory(driver=driver, vehicle=VehicleFactory(registration_number='CAB-4411'))
        GPSLogFactory()
        service = GPSLogService(db_session)

        for term in ('kasun', '4411'):
            items, total = service.query_logs(search_term=term)
            assert total == 1
            assert items[0]['id'] == target.id
            assert items[0]['driverName'] == 'Kasun Silva'

    def test_pagination(self, db_session):
        for _ in range(7):
            GPSLogFactory()
        items, total = GPSLogService(db_session).query_logs(page=2, limit=5)
        assert total == 7
        assert len(items) == 2

    def test_missing_driver_shows_unassigned(self, db_session):
        GPSLogFactory(driver=None)
        items, _ = GPSLogService(db_session).query_logs()
        assert items[0]['driverName'] == 'Unassigned'
        assert items[0]['requestNumber'] is None


@pytest.mark.workflow
class TestLogDetail:

    def test_device_info_included(self, db_session):
        device = GPSDeviceFactory(imei='356938035643809')
        log = GPSLogFactory(vehicle=device.vehicle)

        detail = GPSLogService(db_session).get_log(log.id)

        assert detail['deviceInfo']['imei'] == '356938035643809'
        assert detail['deviceInfo']['manufacturer'] == 'Teltonika'

    def test_vehicle_without_device(self, db_session):
        detail = GPSLogService(db_session).get_log(GPSLogFactory().id)
        assert detail['deviceInfo'] is None

    def test_unknown_log(self, db_session):
        with pytest.raises(NotFoundError):
            GPSLogService(db_session).get_log('44444444-4444-4444-4444-444444444444')


@pytest.mark.workflow
class TestIngestAndExport:

    def entry(self, vehicle, **overrides):
        values = {
            'vehicle_id': vehicle.id,
            'latitude': 6.9271,
            'longitude': 79.8612,
            'speed': 22.0,
            'ignition_status': 'On',
            'device_timestamp': datetime(2024, 3, 4, 9, 15),
        }
        values.update(overrides)
        return values

    def test_batch_ingest(self, db_session):
        vehicle = VehicleFactory()
        logs = GPSLogService(db_session).ingest_logs(
            [self.entry(vehicle), self.entry(vehicle, panic_button=True)])

        assert len(logs) == 2
        assert db_session.query(GPSLog).count() == 2
        assert all(log.server_timestamp is not None for log in logs)
        assert [log.panic_button for log in logs] == [False, True]

    def test_batch_cap(self, db_session):
        vehicle = VehicleFactory()
        with pytest.raises(ValidationError):
            GPSLogService(db_session, ingest_max_batch=2).ingest_logs([self.entry(vehicle)] * 3)

    def test_unknown_vehicle_rolls_back_batch(self, db_session):
        vehicle = VehicleFactory()
        stranger = self.entry(vehicle, vehicle_id='55555555-5555-5555-5555-555555555555')
        with pytest.raises(NotFoundError):
            GPSLogService(db_session).ingest_logs([self.entry(vehicle), stranger])
        assert db_session.query(GPSLog).count() == 0

    def test_export_rows(self, db_session):
        assignment = AssignmentFactory()
        GPSLogFactory(assignment=assignment, vehicle=assignment.vehicle, driver=assignment.driver,
                      address='Galle Road', battery_level=81, panic_button=True)

        rows = list(GPSLogService(db_session).iter_export_rows())

        assert len(rows) == 1
        row = rows[0]
        assert row[0] == assignment.vehicle.registration_number
        assert row[2] == assignment.trip_request.request_number
        assert row[5] == 'Galle Road'
        assert row[7] == 'Emergency'
        assert row[9] == 'Yes'
        assert row[12] == 81

    def test_export_respects_limit(self, db_session):
        for _ in range(4):
            GPSLogFactory()
        assert len(list(GPSLogService(db_session, export_limit=3).iter_export_rows())) == 3
