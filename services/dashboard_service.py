"""
Dashboard Service

Employee-facing summary of the caller's own trip requests.
"""

from typing import Dict, Any
import logging
from models import TripRequest, TripStatus, User
from timezone_utils import get_local_date
from .exceptions import NotFoundError

logger = logging.getLogger(__name__)


class DashboardService:
    """Service class for dashboard statistics"""

    def __init__(self, session):
        self.session = session

    def get_employee_dashboard(self, user_id: str) -> Dict[str, Any]:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError('User not found')

        trips = self.session.query(TripRequest) \
            .filter(TripRequest.requested_by_user_id == user_id) \
            .order_by(TripRequest.departure_date.desc(), TripRequest.created_at.desc()) \
            .all()

        today = get_local_date()
        stats = {
            'totalTrips': len(trips),
            'pendingRequests': sum(1 for trip in trips if trip.status == TripStatus.PENDING),
            'approvedTrips': sum(1 for trip in trips if trip.status == TripStatus.APPROVED),
            'completedTrips': sum(1 for trip in trips if trip.status == TripStatus.COMPLETED),
        }

        return {
            'user': user,
            'stats': stats,
            'recentTrips': [trip for trip in trips if trip.departure_date <= today],
            'upcomingTrips': [trip for trip in trips if trip.departure_date > today],
        }
