"""
Trip approval API
Approval workflow view per trip request and step-level decisions
"""

from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity

from app import db
from forms import ApprovalDecisionForm, load_json_form
from models import ApprovalStatus
from services import ApprovalService
from utils.api import success_response, paginated_response, get_pagination_args, parse_uuid, parse_enum, get_json_body

trip_approvals_bp = Blueprint('trip_approvals', __name__, url_prefix='/api/trip-approvals')


def _service():
    return ApprovalService(db.session, cost_threshold=current_app.config['APPROVAL_COST_THRESHOLD'])


@trip_approvals_bp.route('', methods=['GET'])
@jwt_required()
def list_approvals():
    """Trip requests with their approval workflow; status filters on the computed final status"""
    page, page_size = get_pagination_args()
    items, total = _service().list_approvals(
        search_term=request.args.get('search'),
        status=parse_enum(ApprovalStatus, request.args.get('status')),
        page=page, page_size=page_size,
    )
    return paginated_response(items, total, page, page_size)


@trip_approvals_bp.route('/<trip_request_id>', methods=['GET'])
@jwt_required()
def get_approval(trip_request_id):
    return success_response(_service().get_approval_detail(parse_uuid(trip_request_id)))


@trip_approvals_bp.route('/<step_id>', methods=['PATCH'])
@jwt_required()
def decide_approval_step(step_id):
    step_id = parse_uuid(step_id)
    data = load_json_form(ApprovalDecisionForm, get_json_body())
    result = _service().decide_step(step_id, ApprovalStatus(data['status']),
                                    data.get('comments'), approver_id=get_jwt_identity())
    return success_response(result)
