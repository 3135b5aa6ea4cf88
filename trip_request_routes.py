"""
Trip request API
Employees create and edit their requests while Pending; approval steps are
seeded on creation and can be added explicitly.
"""

from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity
import logging

from app import db
from forms import TripRequestForm, TripRequestUpdateForm, ApprovalStepForm, load_json_form
from models import TripStatus, TripPriority
from services import TripRequestService, AuditService
from utils.api import (success_response, paginated_response, get_pagination_args, parse_uuid,
                       parse_enum, get_json_body)
from utils.serializers import serialize_trip_request, serialize_approval_step, serialize_audit_entry

trip_requests_bp = Blueprint('trip_requests', __name__, url_prefix='/api/trip-requests')

logger = logging.getLogger(__name__)


def _service():
    return TripRequestService(db.session,
                              approval_cost_threshold=current_app.config['APPROVAL_COST_THRESHOLD'],
                              default_currency=current_app.config['DEFAULT_CURRENCY'])


@trip_requests_bp.route('', methods=['GET'])
@jwt_required()
def list_trip_requests():
    page, page_size = get_pagination_args()
    trips, total = _service().list_trip_requests(
        search=request.args.get('search'),
        status=parse_enum(TripStatus, request.args.get('status')),
        priority=parse_enum(TripPriority, request.args.get('priority'), 'priority'),
        department_id=parse_uuid(request.args.get('departmentId'), 'departmentId'),
        requested_by_user_id=parse_uuid(request.args.get('requestedBy'), 'requestedBy'),
        page=page, page_size=page_size,
    )
    return paginated_response([serialize_trip_request(trip) for trip in trips], total, page, page_size)


@trip_requests_bp.route('', methods=['POST'])
@jwt_required()
def create_trip_request():
    data = load_json_form(TripRequestForm, get_json_body())
    trip = _service().create_trip_request(data, user_id=get_jwt_identity())
    return success_response(serialize_trip_request(trip, include_related=True), 201)


@trip_requests_bp.route('/<trip_request_id>', methods=['GET'])
@jwt_required()
def get_trip_request(trip_request_id):
    trip = _service().get_trip_request(parse_uuid(trip_request_id))
    data = serialize_trip_request(trip, include_related=True)
    data['auditHistory'] = [serialize_audit_entry(entry) for entry in
                             AuditService(db.session).get_entity_history('trip_request', trip.id)]
    return success_response(data)


@trip_requests_bp.route('/<trip_request_id>', methods=['PUT', 'PATCH'])
@jwt_required()
def update_trip_request(trip_request_id):
    trip_request_id = parse_uuid(trip_request_id)
    data = load_json_form(TripRequestUpdateForm, get_json_body())
    trip = _service().update_trip_request(trip_request_id, data, user_id=get_jwt_identity())
    return success_response(serialize_trip_request(trip, include_related=True))


@trip_requests_bp.route('/<trip_request_id>', methods=['DELETE'])
@jwt_required()
def delete_trip_request(trip_request_id):
    trip_request_id = parse_uuid(trip_request_id)
    _service().delete_trip_request(trip_request_id, user_id=get_jwt_identity())
    return success_response({'id': trip_request_id, 'message': 'Trip request deleted'})


@trip_requests_bp.route('/<trip_request_id>/approval-steps', methods=['POST'])
@jwt_required()
def add_approval_step(trip_request_id):
    trip_request_id = parse_uuid(trip_request_id)
    data = load_json_form(ApprovalStepForm, get_json_body())
    step = _service().add_approval_step(
        trip_request_id,
        approval_level=data['approval_level'],
        approver_id=parse_uuid(data.get('approver_id'), 'approver_id'),
        approver_role=data.get('approver_role'),
        user_id=get_jwt_identity(),
    )
    return success_response(serialize_approval_step(step), 201)
