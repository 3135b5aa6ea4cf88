"""
Vendor invoice API
Monthly preview and generation per cab service, listing and payment
"""

from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity

from app import db
from forms import InvoiceGenerateForm, PaymentForm, load_json_form
from models import InvoiceStatus
from services import InvoiceService, NotFoundError
from services.exceptions import ValidationError
from utils.api import success_response, paginated_response, get_pagination_args, parse_uuid, parse_enum, get_json_body
from utils.serializers import serialize_invoice

invoices_bp = Blueprint('invoices', __name__, url_prefix='/api/invoices')


def _service():
    return InvoiceService(db.session, default_currency=current_app.config['DEFAULT_CURRENCY'])


@invoices_bp.route('', methods=['GET'])
@jwt_required()
def list_invoices():
    page, page_size = get_pagination_args()
    invoices, total = _service().list_invoices(
        cab_service_id=parse_uuid(request.args.get('cabServiceId'), 'cabServiceId'),
        status=parse_enum(InvoiceStatus, request.args.get('status')),
        month=request.args.get('month') or None,
        page=page, page_size=page_size,
    )
    return paginated_response([serialize_invoice(invoice) for invoice in invoices], total, page, page_size)


@invoices_bp.route('/preview', methods=['GET'])
@jwt_required()
def preview_invoice():
    cab_service_id = parse_uuid(request.args.get('cab_service_id'), 'cab_service_id')
    month = request.args.get('month')
    missing = [name for name, value in (('cab_service_id', cab_service_id), ('month', month)) if not value]
    if missing:
        raise ValidationError('cab_service_id and month are required',
                              errors={name: ['This field is required.'] for name in missing})

    draft = _service().preview_draft(cab_service_id, month)
    if draft is None:
        raise NotFoundError(f"No uninvoiced trips found for {month}")
    return success_response(draft)


@invoices_bp.route('/generate', methods=['POST'])
@jwt_required()
def generate_invoice():
    data = load_json_form(InvoiceGenerateForm, get_json_body())
    invoice = _service().generate_invoice(parse_uuid(data['cab_service_id'], 'cab_service_id'),
                                          data['month'], data['due_date'],
                                          notes=data.get('notes'), user_id=get_jwt_identity())
    return success_response(serialize_invoice(invoice, include_trips=True), 201)


@invoices_bp.route('/<invoice_id>', methods=['GET'])
@jwt_required()
def get_invoice(invoice_id):
    invoice = _service().get_invoice(parse_uuid(invoice_id))
    return success_response(serialize_invoice(invoice, include_trips=True))


@invoices_bp.route('/<invoice_id>/pay', methods=['POST'])
@jwt_required()
def pay_invoice(invoice_id):
    invoice_id = parse_uuid(invoice_id)
    data = load_json_form(PaymentForm, get_json_body())
    invoice = _service().record_payment(invoice_id,
                                        paid_at=data.get('paid_at'),
                                        transaction_id=data.get('transaction_id'),
                                        payment_method=data.get('payment_method'),
                                        notes=data.get('notes'),
                                        user_id=get_jwt_identity())
    return success_response(serialize_invoice(invoice, include_trips=True))
