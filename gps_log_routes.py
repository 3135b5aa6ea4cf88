"""
GPS telemetry API
Filtered log queries with live status, batch ingestion, trip replay and
CSV export.
"""

from datetime import datetime
from io import StringIO
import logging

from flask import Blueprint, Response, request, current_app
from flask_jwt_extended import jwt_required
from defusedcsv import csv

from app import db
from forms import GPSLogForm, load_json_form
from services import GPSLogService
from services.exceptions import ValidationError
from services.gps_log_service import CSV_HEADERS
from utils.api import success_response, paginated_response, get_pagination_args, parse_uuid, get_json_body

gps_logs_bp = Blueprint('gps_logs', __name__, url_prefix='/api/gps-logs')

logger = logging.getLogger(__name__)


def _service():
    config = current_app.config
    return GPSLogService(db.session,
                         replay_max_points=config['GPS_REPLAY_MAX_POINTS'],
                         export_limit=config['GPS_EXPORT_LIMIT'],
                         ingest_max_batch=config['GPS_INGEST_MAX_BATCH'])


def _clean_entry(entry, index=None):
    try:
        data = load_json_form(GPSLogForm, entry)
    except ValidationError as e:
        if index is None:
            raise
        raise ValidationError(f"Invalid GPS log at index {index}", errors={str(index): e.errors})
    for field in ('vehicle_id', 'driver_id', 'assignment_id'):
        if field in data:
            data[field] = parse_uuid(data[field], field)
    return data


@gps_logs_bp.route('', methods=['GET'])
@jwt_required()
def query_logs():
    page, limit = get_pagination_args()
    items, total = _service().query_logs(
        page=page, limit=limit,
        search_term=request.args.get('search'),
        status=request.args.get('status'),
        vehicle_id=parse_uuid(request.args.get('vehicleId'), 'vehicleId'),
        driver_id=parse_uuid(request.args.get('driverId'), 'driverId'),
    )
    return paginated_response(items, total, page, limit)


@gps_logs_bp.route('', methods=['POST'])
@jwt_required()
def ingest_logs():
    """Accepts a single ping or {"logs": [...]}"""
    payload = get_json_body()
    if 'logs' in payload:
        if not isinstance(payload['logs'], list):
            raise ValidationError('logs must be a list', errors={'logs': ['Must be a list.']})
        entries = [_clean_entry(entry, index) for index, entry in enumerate(payload['logs'])]
    else:
        entries = [_clean_entry(payload)]

    service = _service()
    logs = service.ingest_logs(entries)
    return success_response({'ingested': len(logs), 'ids': [log.id for log in logs]}, 201)


@gps_logs_bp.route('/<log_id>', methods=['GET'])
@jwt_required()
def get_log(log_id):
    return success_response(_service().get_log(parse_uuid(log_id)))


@gps_logs_bp.route('/replay/<assignment_id>', methods=['GET'])
@jwt_required()
def get_trip_replay(assignment_id):
    return success_response(_service().get_trip_replay(parse_uuid(assignment_id, 'assignment_id')))


@gps_logs_bp.route('/export', methods=['POST'])
@jwt_required()
def export_logs():
    """CSV of the filtered logs, capped at GPS_EXPORT_LIMIT rows"""
    filters = get_json_body()
    rows = _service().iter_export_rows(
        search_term=filters.get('search'),
        status=filters.get('status'),
        vehicle_id=parse_uuid(filters.get('vehicle_id'), 'vehicle_id'),
        driver_id=parse_uuid(filters.get('driver_id'), 'driver_id'),
    )

    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADERS)
    count = 0
    for row in rows:
        writer.writerow(row)
        count += 1
    logger.info(f"GPS export generated with {count} rows")

    return Response(
        output.getvalue(),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename=gps_logs_{datetime.now().strftime("%Y%m%d_%H%M%S")}.csv'}
    )
