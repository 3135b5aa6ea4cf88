"""
Trip cost API
Itemized charges per assignment, standalone cost invoicing and payment
"""

from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity

from app import db
from forms import TripCostForm, TripCostUpdateForm, CostInvoiceForm, PaymentForm, load_json_form
from models import CostPaymentStatus
from services import TripCostService
from utils.api import (success_response, paginated_response, get_pagination_args, parse_uuid,
                       parse_enum, parse_date_arg, get_json_body)
from utils.serializers import serialize_trip_cost

trip_costs_bp = Blueprint('trip_costs', __name__, url_prefix='/api/trip-costs')


def _service():
    return TripCostService(db.session, default_currency=current_app.config['DEFAULT_CURRENCY'])


def _canonical_references(data):
    for field in ('assignment_id', 'vendor_id'):
        if field in data:
            data[field] = parse_uuid(data[field], field)
    return data


@trip_costs_bp.route('', methods=['GET'])
@jwt_required()
def list_trip_costs():
    page, page_size = get_pagination_args()
    costs, total = _service().list_trip_costs(
        status=parse_enum(CostPaymentStatus, request.args.get('status')),
        vendor_id=parse_uuid(request.args.get('vendorId'), 'vendorId'),
        assignment_id=parse_uuid(request.args.get('assignmentId'), 'assignmentId'),
        start_date=parse_date_arg(request.args.get('startDate'), 'startDate'),
        end_date=parse_date_arg(request.args.get('endDate'), 'endDate'),
        page=page, page_size=page_size,
    )
    return paginated_response([serialize_trip_cost(cost) for cost in costs], total, page, page_size)


@trip_costs_bp.route('', methods=['POST'])
@jwt_required()
def create_trip_cost():
    data = _canonical_references(load_json_form(TripCostForm, get_json_body()))
    cost = _service().create_trip_cost(data, user_id=get_jwt_identity())
    return success_response(serialize_trip_cost(cost), 201)


@trip_costs_bp.route('/<cost_id>', methods=['GET'])
@jwt_required()
def get_trip_cost(cost_id):
    return success_response(serialize_trip_cost(_service().get_trip_cost(parse_uuid(cost_id))))


@trip_costs_bp.route('/<cost_id>', methods=['PUT', 'PATCH'])
@jwt_required()
def update_trip_cost(cost_id):
    cost_id = parse_uuid(cost_id)
    data = _canonical_references(load_json_form(TripCostUpdateForm, get_json_body()))
    cost = _service().update_trip_cost(cost_id, data, user_id=get_jwt_identity())
    return success_response(serialize_trip_cost(cost))


@trip_costs_bp.route('/<cost_id>', methods=['DELETE'])
@jwt_required()
def delete_trip_cost(cost_id):
    cost_id = parse_uuid(cost_id)
    _service().delete_trip_cost(cost_id, user_id=get_jwt_identity())
    return success_response({'id': cost_id, 'message': 'Trip cost deleted'})


@trip_costs_bp.route('/<cost_id>/generate-invoice', methods=['POST'])
@jwt_required()
def generate_cost_invoice(cost_id):
    cost_id = parse_uuid(cost_id)
    data = load_json_form(CostInvoiceForm, get_json_body())
    cost = _service().generate_cost_invoice(cost_id, notes=data.get('notes'), due_date=data.get('due_date'),
                                            user_id=get_jwt_identity())
    return success_response(serialize_trip_cost(cost))


@trip_costs_bp.route('/<cost_id>/record-payment', methods=['POST'])
@jwt_required()
def record_cost_payment(cost_id):
    cost_id = parse_uuid(cost_id)
    data = load_json_form(PaymentForm, get_json_body())
    cost = _service().record_cost_payment(cost_id,
                                          payment_method=data.get('payment_method'),
                                          transaction_id=data.get('transaction_id'),
                                          notes=data.get('notes'),
                                          paid_at=data.get('paid_at'),
                                          user_id=get_jwt_identity())
    return success_response(serialize_trip_cost(cost))
