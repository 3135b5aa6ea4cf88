"""
GPS Log Service

Telemetry ingestion and queries: filtered log listing with a derived live
status, single-log detail with device metadata, trip replay statistics and
CSV export rows. Logs are append-only; nothing here updates a stored ping.
"""

from typing import Optional, Dict, Any, List, Iterator, Tuple
import logging
import math
from sqlalchemy import or_, and_
from sqlalchemy.orm import aliased, joinedload
from models import (GPSLog, Vehicle, VehicleStatus, Driver, Assignment, TripRequest,
                    IgnitionStatus)
from timezone_utils import get_local_time_naive
from utils.geo import haversine_km
from .transaction_helper import TransactionHelper
from .exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MOVING_SPEED_KMH = 5

STATUS_EMERGENCY = 'Emergency'
STATUS_MAINTENANCE = 'Maintenance'
STATUS_ACTIVE = 'Active'
STATUS_IDLE = 'Idle'
STATUS_OFFLINE = 'Offline'

STATUS_FILTERS = ('all', 'active', 'idle', 'offline', 'emergency', 'maintenance')

CSV_HEADERS = [
    'Vehicle Number', 'Driver Name', 'Request Number', 'Latitude', 'Longitude',
    'Address', 'Speed (km/h)', 'Status', 'Ignition', 'Panic Button', 'Timestamp',
    'Mileage (km)', 'Battery Level (%)',
]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def derive_live_status(panic_button: bool, vehicle_status: Optional[VehicleStatus],
                       ignition_status: Optional[IgnitionStatus], speed: Optional[float]) -> str:
    """
    Live status precedence: panic > vehicle maintenance > moving > idle > offline
    """
    if panic_button:
        return STATUS_EMERGENCY
    if vehicle_status == VehicleStatus.MAINTENANCE:
        return STATUS_MAINTENANCE
    if ignition_status == IgnitionStatus.ON:
        return STATUS_ACTIVE if (speed or 0) > MOVING_SPEED_KMH else STATUS_IDLE
    return STATUS_OFFLINE


def status_predicate(status: str):
    """Translate a UI status filter into a SQL predicate (None for 'all')"""
    if status == 'emergency':
        return GPSLog.panic_button.is_(True)
    if status == 'maintenance':
        return Vehicle.operational_status == VehicleStatus.MAINTENANCE
    if status == 'offline':
        return GPSLog.ignition_status == IgnitionStatus.OFF
    if status == 'active':
        return and_(GPSLog.ignition_status == IgnitionStatus.ON, GPSLog.speed > MOVING_SPEED_KMH)
    if status == 'idle':
        return and_(GPSLog.ignition_status == IgnitionStatus.ON,
                    or_(GPSLog.speed <= MOVING_SPEED_KMH, GPSLog.speed.is_(None)))
    return None


def _iso(value):
    return value.isoformat() if value else None


class GPSLogService:
    """Service class for GPS telemetry"""

    def __init__(self, session, replay_max_points: int = 5000, export_limit: int = 10000,
                 ingest_max_batch: int = 500):
        self.session = session
        self.replay_max_points = max(int(replay_max_points), 2)
        self.export_limit = export_limit
        self.ingest_max_batch = ingest_max_batch

    def _filtered_query(self, search_term: Optional[str] = None, status: Optional[str] = None,
                        vehicle_id: Optional[str] = None, driver_id: Optional[str] = None):
        status = (status or 'all').lower()
        if status not in STATUS_FILTERS:
            raise ValidationError(f"Unknown status filter: {status}",
                                  errors={'status': [f"Must be one of {', '.join(STATUS_FILTERS)}"]})

        trip_alias = aliased(TripRequest)
        query = self.session.query(GPSLog) \
            .join(Vehicle, GPSLog.vehicle_id == Vehicle.id) \
            .outerjoin(Driver, GPSLog.driver_id == Driver.id) \
            .outerjoin(Assignment, GPSLog.assignment_id == Assignment.id) \
            .outerjoin(trip_alias, Assignment.trip_request_id == trip_alias.id) \
            .options(joinedload(GPSLog.vehicle), joinedload(GPSLog.driver),
                     joinedload(GPSLog.assignment).joinedload(Assignment.trip_request))

        if vehicle_id:
            query = query.filter(GPSLog.vehicle_id == vehicle_id)
        if driver_id:
            query = query.filter(GPSLog.driver_id == driver_id)

        predicate = status_predicate(status)
        if predicate is not None:
            query = query.filter(predicate)

        if search_term:
            pattern = f"%{search_term.strip()}%"
            query = query.filter(or_(
                Vehicle.registration_number.ilike(pattern),
                Driver.first_name.ilike(pattern),
                Driver.last_name.ilike(pattern),
                trip_alias.request_number.ilike(pattern),
                GPSLog.address.ilike(pattern),
            ))

        return query.order_by(GPSLog.server_timestamp.desc(), GPSLog.id)

    def query_logs(self, page: int = 1, limit: int = 10, search_term: Optional[str] = None,
                   status: Optional[str] = None, vehicle_id: Optional[str] = None,
                   driver_id: Optional[str] = None) -> Tuple[List[Dict[str, Any]], int]:
        query = self._filtered_query(search_term, status, vehicle_id, driver_id)
        total = query.count()
        logs = query.offset((page - 1) * limit).limit(limit).all()
        return [self.format_log(log) for log in logs], total

    def get_log(self, log_id: str) -> Dict[str, Any]:
        log = self.session.get(GPSLog, log_id)
        if not log:
            raise NotFoundError('GPS Log not found')

        formatted = self.format_log(log)
        device = log.vehicle.gps_devices[0] if log.vehicle and log.vehicle.gps_devices else None
        formatted['deviceInfo'] = {
            'deviceId': device.device_id,
            'imei': device.imei,
            'firmwareVersion': device.firmware_version,
            'manufacturer': device.manufacturer,
            'networkProvider': device.network_provider,
        } if device else None
        return formatted

    def get_trip_replay(self, assignment_id: str) -> Dict[str, Any]:
        """
        Route reconstruction for one assignment.

        Statistics are computed in a single streaming pass over the rows.
        Route points are stride-sampled down to ``replay_max_points`` when
        the trip has more pings, always keeping the first and last point.
        """
        base = self.session.query(GPSLog).filter(GPSLog.assignment_id == assignment_id)
        point_count = base.count()
        if point_count == 0:
            raise NotFoundError('No route data found for this trip')

        stride = 1
        if point_count > self.replay_max_points:
            stride = math.ceil(point_count / (self.replay_max_points - 1))

        rows = self.session.query(GPSLog.device_timestamp, GPSLog.latitude, GPSLog.longitude,
                                  GPSLog.speed, GPSLog.heading) \
            .filter(GPSLog.assignment_id == assignment_id) \
            .order_by(GPSLog.device_timestamp.asc(), GPSLog.id) \
            .yield_per(1000)

        total_distance = 0.0
        speed_sum = 0.0
        speed_samples = 0
        max_speed = 0.0
        start_time = end_time = None
        previous = last_point = None
        route_points = []

        for index, row in enumerate(rows):
            if previous is not None:
                total_distance += haversine_km(previous.latitude, previous.longitude,
                                               row.latitude, row.longitude)
            else:
                start_time = row.device_timestamp
            previous = row
            end_time = row.device_timestamp

            speed = row.speed or 0.0
            if speed > 0:
                speed_sum += speed
                speed_samples += 1
                max_speed = max(max_speed, speed)

            point = {
                'timestamp': _iso(row.device_timestamp),
                'latitude': row.latitude,
                'longitude': row.longitude,
                'speed': speed,
                'heading': row.heading,
            }
            if index % stride == 0:
                route_points.append(point)
                last_point = None
            else:
                last_point = point

        if last_point is not None:
            route_points.append(last_point)

        assignment = self.session.get(Assignment, assignment_id)
        duration_seconds = (end_time - start_time).total_seconds()

        return {
            'tripId': assignment_id,
            'requestNumber': assignment.trip_request.request_number if assignment and assignment.trip_request else None,
            'vehicleNumber': assignment.vehicle.registration_number if assignment and assignment.vehicle else None,
            'startTime': _iso(start_time),
            'endTime': _iso(end_time),
            'distance': round(total_distance, 2),
            'durationMinutes': round_half_up(duration_seconds / 60),
            'avgSpeed': round_half_up(speed_sum / speed_samples) if speed_samples else 0,
            'maxSpeed': round_half_up(max_speed),
            'totalPoints': point_count,
            'sampled': stride > 1,
            'routePoints': route_points,
        }

    @TransactionHelper.with_transaction
    def ingest_logs(self, entries: List[Dict[str, Any]]) -> List[GPSLog]:
        """Append a batch of validated pings"""
        if not entries:
            raise ValidationError('At least one GPS log is required')
        if len(entries) > self.ingest_max_batch:
            raise ValidationError(f"Batch exceeds the maximum of {self.ingest_max_batch} logs")

        vehicle_ids = {entry['vehicle_id'] for entry in entries}
        known = {row.id for row in self.session.query(Vehicle.id).filter(Vehicle.id.in_(vehicle_ids))}
        missing = vehicle_ids - known
        if missing:
            raise NotFoundError(f"Vehicle not found: {sorted(missing)[0]}")

        received_at = get_local_time_naive()
        logs = []
        for entry in entries:
            values = dict(entry)
            ignition = values.pop('ignition_status', None)
            panic = values.pop('panic_button', False)
            log = GPSLog(**values)
            log.ignition_status = IgnitionStatus(ignition) if ignition else IgnitionStatus.OFF
            log.panic_button = bool(panic)
            log.server_timestamp = received_at
            self.session.add(log)
            logs.append(log)

        self.session.flush()
        panic_count = sum(1 for log in logs if log.panic_button)
        if panic_count:
            logger.warning(f"{panic_count} panic button ping(s) received in batch")
        logger.info(f"Ingested {len(logs)} GPS logs for {len(vehicle_ids)} vehicle(s)")
        return logs

    def iter_export_rows(self, search_term: Optional[str] = None, status: Optional[str] = None,
                         vehicle_id: Optional[str] = None, driver_id: Optional[str] = None) -> Iterator[List[Any]]:
        """CSV rows (without header) for the filtered logs, capped at export_limit"""
        query = self._filtered_query(search_term, status, vehicle_id, driver_id).limit(self.export_limit)
        for log in query:
            formatted = self.format_log(log)
            location = formatted['location']
            yield [
                formatted['vehicleNumber'],
                formatted['driverName'],
                formatted['requestNumber'] or '',
                location['latitude'],
                location['longitude'],
                location['address'] or '',
                location['speed'],
                formatted['status'],
                formatted['ignitionStatus'],
                'Yes' if formatted['panicButton'] else 'No',
                location['timestamp'] or '',
                formatted['mileage'] if formatted['mileage'] is not None else '',
                formatted['batteryLevel'] if formatted['batteryLevel'] is not None else '',
            ]

    @staticmethod
    def format_log(log: GPSLog) -> Dict[str, Any]:
        vehicle = log.vehicle
        driver = log.driver
        assignment = log.assignment
        ignition = log.ignition_status or IgnitionStatus.OFF
        speed = log.speed or 0.0

        return {
            'id': log.id,
            'vehicleId': log.vehicle_id,
            'vehicleNumber': vehicle.registration_number if vehicle else 'N/A',
            'driverId': log.driver_id,
            'driverName': driver.full_name if driver else 'Unassigned',
            'assignmentId': log.assignment_id,
            'requestNumber': assignment.trip_request.request_number
            if assignment and assignment.trip_request else None,
            'location': {
                'latitude': log.latitude,
                'longitude': log.longitude,
                'address': log.address,
                'speed': speed,
                'heading': log.heading,
                'accuracy': log.accuracy,
                'altitude': log.altitude,
                'timestamp': _iso(log.device_timestamp),
            },
            'status': derive_live_status(bool(log.panic_button),
                                         vehicle.operational_status if vehicle else None,
                                         ignition, speed),
            'ignitionStatus': ignition.value,
            'mileage': log.mileage,
            'batteryLevel': log.battery_level,
            'signalStrength': log.signal_strength,
            'panicButton': bool(log.panic_button),
            'geofenceStatus': log.geofence_status,
            'speedAlerts': {
                'currentSpeed': speed,
                'speedLimit': log.speed_limit,
                'isViolation': bool(log.speed_violation),
                'violationCount': log.violation_count or 0,
            },
            'lastPing': _iso(log.server_timestamp),
        }
