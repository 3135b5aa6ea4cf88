"""
camelCase JSON views of the workflow models
"""

from typing import Any, Dict, Optional

from utils.money import money_to_float


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def _value(enum_member) -> Optional[str]:
    return enum_member.value if enum_member is not None else None


def serialize_user_summary(user) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {
        'id': user.id,
        'firstName': user.first_name,
        'lastName': user.last_name,
        'email': user.email,
        'employeeId': user.employee_id,
        'departmentId': user.department_id,
        'department': user.department.name if user.department else 'Unassigned',
    }


def serialize_audit_entry(entry) -> Dict[str, Any]:
    return {
        'action': entry.action,
        'userId': entry.user_id,
        'createdAt': _iso(entry.created_at),
    }


def serialize_approval_step(step) -> Dict[str, Any]:
    return {
        'id': step.id,
        'level': step.approval_level,
        'approverId': step.approver_id,
        'approverRole': step.approver_role,
        'status': _value(step.status),
        'comments': step.comments,
        'decidedAt': _iso(step.decided_at),
    }


def serialize_trip_request(trip, include_related: bool = False) -> Dict[str, Any]:
    data = {
        'id': trip.id,
        'requestNumber': trip.request_number,
        'requestedBy': serialize_user_summary(trip.requester),
        'tripDetails': {
            'fromLocation': {'address': trip.from_address, 'lat': trip.from_lat, 'lng': trip.from_lng},
            'toLocation': {'address': trip.to_address, 'lat': trip.to_lat, 'lng': trip.to_lng},
            'departureDate': _iso(trip.departure_date),
            'departureTime': trip.departure_time,
            'returnDate': _iso(trip.return_date),
            'returnTime': trip.return_time,
            'isRoundTrip': bool(trip.is_round_trip),
            'estimatedDistance': trip.estimated_distance,
            'estimatedDuration': trip.estimated_duration,
        },
        'purpose': {
            'category': trip.purpose_category,
            'description': trip.purpose_description,
            'projectCode': trip.project_code,
            'costCenter': trip.cost_center,
            'businessJustification': trip.business_justification,
        },
        'requirements': {
            'vehicleType': trip.vehicle_type,
            'passengerCount': trip.passenger_count,
            'luggage': trip.luggage,
            'acRequired': bool(trip.ac_required),
            'specialRequirements': trip.special_requirements,
        },
        'priority': _value(trip.priority),
        'status': _value(trip.status),
        'estimatedCost': money_to_float(trip.estimated_cost),
        'currency': trip.currency,
        'approvalRequired': bool(trip.approval_required),
        'createdAt': _iso(trip.created_at),
        'updatedAt': _iso(trip.updated_at),
    }
    if include_related:
        data['approvalSteps'] = [serialize_approval_step(step)
                                 for step in sorted(trip.approval_steps, key=lambda s: s.approval_level)]
        data['assignments'] = [serialize_assignment(assignment) for assignment in trip.assignments]
    return data


def serialize_assignment(assignment) -> Dict[str, Any]:
    vehicle = assignment.vehicle
    driver = assignment.driver
    trip = assignment.trip_request
    return {
        'id': assignment.id,
        'tripRequestId': assignment.trip_request_id,
        'requestNumber': trip.request_number if trip else None,
        'vehicleId': assignment.vehicle_id,
        'vehicleNumber': vehicle.registration_number if vehicle else None,
        'driverId': assignment.driver_id,
        'driverName': driver.full_name if driver else None,
        'assignedById': assignment.assigned_by_id,
        'status': _value(assignment.status),
        'scheduledDeparture': _iso(assignment.scheduled_departure),
        'scheduledReturn': _iso(assignment.scheduled_return),
        'assignmentNotes': assignment.assignment_notes,
        'vehicleDetails': assignment.vehicle_details or {},
        'driverDetails': assignment.driver_details or {},
        'createdAt': _iso(assignment.created_at),
        'updatedAt': _iso(assignment.updated_at),
    }


def serialize_trip_cost(cost) -> Dict[str, Any]:
    data = {
        'id': cost.id,
        'assignmentId': cost.assignment_id,
        'vendorId': cost.vendor_id,
    }
    for field in cost.CHARGE_FIELDS + ('discount', 'sub_total', 'tax_amount', 'total_cost'):
        head, *rest = field.split('_')
        data[head + ''.join(part.title() for part in rest)] = money_to_float(getattr(cost, field))
    data.update({
        'taxPercentage': float(cost.tax_percentage or 0),
        'currency': cost.currency,
        'invoiceId': cost.invoice_id,
        'invoiceNumber': cost.invoice_number,
        'invoiceDate': _iso(cost.invoice_date),
        'paymentStatus': _value(cost.payment_status),
        'paymentMethod': _value(cost.payment_method),
        'paidAt': _iso(cost.paid_at),
        'details': cost.details or {},
        'createdAt': _iso(cost.created_at),
        'updatedAt': _iso(cost.updated_at),
    })
    return data


def serialize_invoice(invoice, include_trips: bool = False) -> Dict[str, Any]:
    from services.invoice_service import display_month

    data = {
        'id': invoice.id,
        'invoiceNumber': invoice.invoice_number,
        'cabServiceId': invoice.cab_service_id,
        'cabServiceName': invoice.cab_service.name if invoice.cab_service else None,
        'month': invoice.billing_month,
        'displayMonth': display_month(invoice.billing_month),
        'totalAmount': money_to_float(invoice.total_amount),
        'currency': invoice.currency,
        'status': _value(invoice.status),
        'invoiceDate': _iso(invoice.invoice_date),
        'dueDate': _iso(invoice.due_date),
        'paidDate': _iso(invoice.paid_date),
        'transactionId': invoice.transaction_id,
        'paymentMethod': _value(invoice.payment_method),
        'notes': invoice.notes,
        'tripCount': len(invoice.trip_costs),
        'createdAt': _iso(invoice.created_at),
    }
    if include_trips:
        data['tripCosts'] = [serialize_trip_cost(cost) for cost in invoice.trip_costs]
    return data


def _money_or_none(value) -> Optional[float]:
    return money_to_float(value) if value is not None else None


def serialize_trip_log(log) -> Dict[str, Any]:
    return {
        'id': log.id,
        'tripRequestId': log.trip_request_id,
        'assignmentId': log.assignment_id,
        'requestNumber': log.trip_request.request_number if log.trip_request else None,
        'tripNumber': log.trip_number,
        'tripDate': _iso(log.trip_date),
        'tripStatus': _value(log.trip_status),
        'fromLocation': log.from_location,
        'toLocation': log.to_location,
        'passengerName': log.passenger_name,
        'passengerDepartment': log.passenger_department,
        'driverName': log.driver_name,
        'vehicleRegistration': log.vehicle_registration,
        'plannedDistance': _money_or_none(log.planned_distance),
        'actualDistance': _money_or_none(log.actual_distance),
        'plannedDeparture': _iso(log.planned_departure),
        'plannedArrival': _iso(log.planned_arrival),
        'actualDeparture': _iso(log.actual_departure),
        'actualArrival': _iso(log.actual_arrival),
        'totalDuration': log.total_duration,
        'totalCost': _money_or_none(log.total_cost),
        'fuelCost': _money_or_none(log.fuel_cost),
        'tollCharges': _money_or_none(log.toll_charges),
        'onTime': log.on_time,
        'overallRating': log.overall_rating,
        'comments': log.comments,
        'createdAt': _iso(log.created_at),
        'updatedAt': _iso(log.updated_at),
    }
