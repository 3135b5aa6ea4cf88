from flask import Blueprint
from flask_jwt_extended import jwt_required, get_jwt_identity

from app import db
from services import DashboardService
from utils.api import success_response
from utils.serializers import serialize_user_summary, serialize_trip_request

employee_bp = Blueprint('employee', __name__, url_prefix='/api')


@employee_bp.route('/employee-dashboard', methods=['GET'])
@jwt_required()
def employee_dashboard():
    """Trip summary for the signed-in employee"""
    dashboard = DashboardService(db.session).get_employee_dashboard(get_jwt_identity())
    return success_response({
        'user': serialize_user_summary(dashboard['user']),
        'stats': dashboard['stats'],
        'recentTrips': [serialize_trip_request(trip) for trip in dashboard['recentTrips']],
        'upcomingTrips': [serialize_trip_request(trip) for trip in dashboard['upcomingTrips']],
    })
