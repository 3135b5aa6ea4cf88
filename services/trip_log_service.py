"""
Trip Log Service

The per-trip operational log: planned versus actual times and distance,
the costs and rating noted by the fleet desk, and a CSV export of the
filtered list. Completed and Cancelled logs are final.
"""

from typing import Optional, Dict, Any, List, Tuple, Iterator
from datetime import datetime, date
import logging
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from models import TripLog, TripLogStatus, TripRequest, Assignment
from timezone_utils import get_local_date
from utils.money import quantize_money
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .exceptions import NotFoundError, ConflictError, ForbiddenError, ValidationError

logger = logging.getLogger(__name__)

FINAL_STATUSES = {TripLogStatus.COMPLETED, TripLogStatus.CANCELLED}
MONEY_FIELDS = ('total_cost', 'fuel_cost', 'toll_charges')
CSV_HEADERS = ['Trip Number', 'Date', 'Status', 'Passenger', 'Driver', 'Vehicle',
               'From', 'To', 'Actual Distance', 'Cost']


def duration_minutes(departure: Optional[datetime], arrival: Optional[datetime]) -> Optional[int]:
    """Whole minutes between departure and arrival, rounded down"""
    if not departure or not arrival:
        return None
    return int((arrival - departure).total_seconds() // 60)


class TripLogService:
    """Service class for trip log operations"""

    def __init__(self, session, export_limit: int = 10000):
        self.session = session
        self.export_limit = export_limit
        self.audit_service = AuditService(session)

    def _filtered_query(self, search: Optional[str] = None, status: Optional[TripLogStatus] = None,
                        start_date: Optional[date] = None, end_date: Optional[date] = None):
        query = self.session.query(TripLog)
        if status:
            query = query.filter(TripLog.trip_status == status)
        if start_date:
            query = query.filter(TripLog.trip_date >= start_date)
        if end_date:
            query = query.filter(TripLog.trip_date <= end_date)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(
                TripLog.trip_number.ilike(pattern),
                TripLog.passenger_name.ilike(pattern),
                TripLog.driver_name.ilike(pattern),
                TripLog.vehicle_registration.ilike(pattern),
                TripLog.from_location.ilike(pattern),
                TripLog.to_location.ilike(pattern),
            ))
        return query.order_by(TripLog.trip_date.desc(), TripLog.created_at.desc())

    def list_trip_logs(self, search: Optional[str] = None, status: Optional[TripLogStatus] = None,
                       start_date: Optional[date] = None, end_date: Optional[date] = None,
                       page: int = 1, page_size: int = 10) -> Tuple[List[TripLog], int]:
        query = self._filtered_query(search, status, start_date, end_date)
        total = query.order_by(None).count()
        items = query.offset((page - 1) * page_size).limit(page_size).all()
        return items, total

    def get_trip_log(self, log_id: str) -> TripLog:
        log = self.session.get(TripLog, log_id)
        if not log:
            raise NotFoundError('Trip log not found')
        return log

    @TransactionHelper.with_transaction
    def create_trip_log(self, data: Dict[str, Any], user_id: Optional[str] = None) -> TripLog:
        """
        Open a log for an assignment of the given trip request.

        Passenger, driver and vehicle labels default to the names on the
        linked rows when the client does not send them.
        """
        trip = self.session.get(TripRequest, data['trip_request_id'])
        if not trip:
            raise NotFoundError('Trip request not found')
        assignment = self.session.get(Assignment, data['assignment_id'])
        if not assignment:
            raise NotFoundError('Trip assignment not found')
        if assignment.trip_request_id != trip.id:
            raise ValidationError('Assignment belongs to a different trip request',
                                  errors={'assignment_id': ['Must be an assignment of the trip request.']})
        if self.session.query(TripLog.id).filter_by(trip_number=data['trip_number']).first():
            raise ConflictError(f"Trip number {data['trip_number']} already exists")

        log = TripLog()
        for field, value in data.items():
            setattr(log, field, value)
        log.trip_date = data.get('trip_date') or get_local_date()
        log.trip_status = TripLogStatus(data.get('trip_status') or TripLogStatus.NOT_STARTED.value)
        if log.planned_distance is not None:
            log.planned_distance = quantize_money(log.planned_distance)

        requester = trip.requester
        if not log.passenger_name and requester:
            log.passenger_name = requester.full_name
        if not log.passenger_department and requester and requester.department:
            log.passenger_department = requester.department.name
        if not log.driver_name and assignment.driver:
            log.driver_name = assignment.driver.full_name
        if not log.vehicle_registration and assignment.vehicle:
            log.vehicle_registration = assignment.vehicle.registration_number

        self.session.add(log)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise ConflictError(f"Trip number {log.trip_number} already exists") from e

        self.audit_service.log_action('create_trip_log', 'trip_log', log.id,
                                      {'trip_number': log.trip_number, 'assignment_id': assignment.id},
                                      user_id=user_id)
        logger.info(f"Trip log {log.trip_number} opened for assignment {assignment.id}")
        return log

    @TransactionHelper.with_transaction
    def update_trip_log(self, log_id: str, data: Dict[str, Any], user_id: Optional[str] = None) -> TripLog:
        """
        Record actuals. When both actual times are known the duration is
        recomputed, and the log is closed as Completed unless a status was sent.
        """
        log = self.get_trip_log(log_id)
        self._ensure_open(log)

        departure = data.get('actual_departure', log.actual_departure)
        arrival = data.get('actual_arrival', log.actual_arrival)
        if departure and arrival and arrival < departure:
            raise ValidationError('Actual arrival cannot be before actual departure',
                                  errors={'actual_arrival': ['Cannot be before the actual departure.']})

        for field, value in data.items():
            if field == 'trip_status':
                value = TripLogStatus(value)
            elif field in MONEY_FIELDS or field == 'actual_distance':
                value = quantize_money(value)
            setattr(log, field, value)

        if ('actual_departure' in data or 'actual_arrival' in data) and departure and arrival:
            log.total_duration = duration_minutes(departure, arrival)
            if 'trip_status' not in data:
                log.trip_status = TripLogStatus.COMPLETED

        self.audit_service.log_action('update_trip_log', 'trip_log', log.id,
                                      {'fields': sorted(data.keys()), 'trip_status': log.trip_status.value},
                                      user_id=user_id)
        return log

    @TransactionHelper.with_transaction
    def delete_trip_log(self, log_id: str, user_id: Optional[str] = None) -> None:
        log = self.get_trip_log(log_id)
        self.audit_service.log_action('delete_trip_log', 'trip_log', log.id,
                                      {'trip_number': log.trip_number}, user_id=user_id)
        self.session.delete(log)
        logger.info(f"Trip log {log.trip_number} deleted")

    def iter_export_rows(self, search: Optional[str] = None, status: Optional[TripLogStatus] = None,
                         start_date: Optional[date] = None,
                         end_date: Optional[date] = None) -> Iterator[List[Any]]:
        """CSV rows (without header) in CSV_HEADERS order, capped at export_limit"""
        query = self._filtered_query(search, status, start_date, end_date).limit(self.export_limit)
        for log in query:
            yield [
                log.trip_number,
                log.trip_date.isoformat(),
                log.trip_status.value,
                log.passenger_name or '',
                log.driver_name or '',
                log.vehicle_registration or '',
                log.from_location,
                log.to_location,
                log.actual_distance if log.actual_distance is not None else '',
                log.total_cost if log.total_cost is not None else '',
            ]

    @staticmethod
    def _ensure_open(log: TripLog) -> None:
        if log.trip_status in FINAL_STATUSES:
            logger.warning(f"Edit refused for final trip log {log.trip_number} ({log.trip_status.value})")
            raise ForbiddenError(f"Cannot modify a trip log with status: {log.trip_status.value}")
