"""
Trip assignment API
Dispatchers assign a vehicle and driver to approved trip requests and move
the assignment through its lifecycle.
"""

from flask import Blueprint, request
from flask_jwt_extended import jwt_required, get_jwt_identity

from app import db
from forms import AssignmentForm, AssignmentUpdateForm, VehicleDetailsForm, DriverDetailsForm, load_json_form
from models import AssignmentStatus
from services import AssignmentService
from services.exceptions import ValidationError
from utils.api import success_response, paginated_response, get_pagination_args, parse_uuid, parse_enum, get_json_body
from utils.serializers import serialize_assignment

trip_assignments_bp = Blueprint('trip_assignments', __name__, url_prefix='/api/trip-assignments')

REFERENCE_FIELDS = ('trip_request_id', 'vehicle_id', 'driver_id')


def _nested_details(payload, key, form_class):
    """Validate an optional nested override object such as vehicleDetails"""
    details = payload.get(key)
    if details is None:
        return None
    if not isinstance(details, dict):
        raise ValidationError(f"{key} must be an object", errors={key: ['Must be an object.']})
    cleaned = load_json_form(form_class, details)
    # Stored as JSON
    return {name: value.isoformat() if hasattr(value, 'isoformat') else value
            for name, value in cleaned.items()}


def _canonical_references(data):
    for field in REFERENCE_FIELDS:
        if field in data:
            data[field] = parse_uuid(data[field], field)
    return data


@trip_assignments_bp.route('', methods=['GET'])
@jwt_required()
def list_assignments():
    page, page_size = get_pagination_args()
    assignments, total = AssignmentService(db.session).list_assignments(
        search=request.args.get('search'),
        status=parse_enum(AssignmentStatus, request.args.get('status')),
        trip_request_id=parse_uuid(request.args.get('tripRequestId'), 'tripRequestId'),
        vehicle_id=parse_uuid(request.args.get('vehicleId'), 'vehicleId'),
        driver_id=parse_uuid(request.args.get('driverId'), 'driverId'),
        page=page, page_size=page_size,
    )
    return paginated_response([serialize_assignment(a) for a in assignments], total, page, page_size)


@trip_assignments_bp.route('', methods=['POST'])
@jwt_required()
def create_assignment():
    data = _canonical_references(load_json_form(AssignmentForm, get_json_body()))
    assignment = AssignmentService(db.session).create_assignment(data, assigned_by_id=get_jwt_identity())
    return success_response(serialize_assignment(assignment), 201)


@trip_assignments_bp.route('/<assignment_id>', methods=['GET'])
@jwt_required()
def get_assignment(assignment_id):
    assignment = AssignmentService(db.session).get_assignment(parse_uuid(assignment_id))
    return success_response(serialize_assignment(assignment))


@trip_assignments_bp.route('/<assignment_id>', methods=['PATCH', 'PUT'])
@jwt_required()
def update_assignment(assignment_id):
    assignment_id = parse_uuid(assignment_id)
    payload = get_json_body()
    data = _canonical_references(load_json_form(AssignmentUpdateForm, payload))
    assignment = AssignmentService(db.session).update_assignment(
        assignment_id, data,
        user_id=get_jwt_identity(),
        vehicle_details=_nested_details(payload, 'vehicleDetails', VehicleDetailsForm),
        driver_details=_nested_details(payload, 'driverDetails', DriverDetailsForm),
    )
    return success_response(serialize_assignment(assignment))
