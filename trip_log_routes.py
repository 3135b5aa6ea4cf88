"""
Trip log API
Planned versus actual records per trip, with CSV export of the filtered list
"""

from datetime import datetime
from io import StringIO
import logging

from flask import Blueprint, Response, request, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
from defusedcsv import csv

from app import db
from forms import TripLogForm, TripLogUpdateForm, load_json_form
from models import TripLogStatus
from services import TripLogService
from services.trip_log_service import CSV_HEADERS
from utils.api import (success_response, paginated_response, get_pagination_args, parse_uuid,
                       parse_enum, parse_date_arg, get_json_body)
from utils.serializers import serialize_trip_log

trip_logs_bp = Blueprint('trip_logs', __name__, url_prefix='/api/trip-logs')

logger = logging.getLogger(__name__)


def _service():
    return TripLogService(db.session, export_limit=current_app.config['GPS_EXPORT_LIMIT'])


def _list_filters():
    return {
        'search': request.args.get('search'),
        'status': parse_enum(TripLogStatus, request.args.get('status')),
        'start_date': parse_date_arg(request.args.get('startDate'), 'startDate'),
        'end_date': parse_date_arg(request.args.get('endDate'), 'endDate'),
    }


@trip_logs_bp.route('', methods=['GET'])
@jwt_required()
def list_trip_logs():
    page, page_size = get_pagination_args()
    logs, total = _service().list_trip_logs(page=page, page_size=page_size, **_list_filters())
    return paginated_response([serialize_trip_log(log) for log in logs], total, page, page_size)


@trip_logs_bp.route('/export', methods=['GET'])
@jwt_required()
def export_trip_logs():
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADERS)
    count = 0
    for row in _service().iter_export_rows(**_list_filters()):
        writer.writerow(row)
        count += 1
    logger.info(f"Trip log export generated with {count} rows")

    return Response(
        output.getvalue(),
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename=trip_logs_{datetime.now().strftime("%Y%m%d_%H%M%S")}.csv'}
    )


@trip_logs_bp.route('', methods=['POST'])
@jwt_required()
def create_trip_log():
    data = load_json_form(TripLogForm, get_json_body())
    for field in ('trip_request_id', 'assignment_id'):
        data[field] = parse_uuid(data[field], field)
    log = _service().create_trip_log(data, user_id=get_jwt_identity())
    return success_response(serialize_trip_log(log), 201)


@trip_logs_bp.route('/<log_id>', methods=['GET'])
@jwt_required()
def get_trip_log(log_id):
    return success_response(serialize_trip_log(_service().get_trip_log(parse_uuid(log_id))))


@trip_logs_bp.route('/<log_id>', methods=['PUT', 'PATCH'])
@jwt_required()
def update_trip_log(log_id):
    log_id = parse_uuid(log_id)
    data = load_json_form(TripLogUpdateForm, get_json_body())
    log = _service().update_trip_log(log_id, data, user_id=get_jwt_identity())
    return success_response(serialize_trip_log(log))


@trip_logs_bp.route('/<log_id>', methods=['DELETE'])
@jwt_required()
def delete_trip_log(log_id):
    log_id = parse_uuid(log_id)
    _service().delete_trip_log(log_id, user_id=get_jwt_identity())
    return success_response({'id': log_id, 'message': 'Trip log deleted'})
