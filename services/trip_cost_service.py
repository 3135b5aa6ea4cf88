"""
Trip Cost Service

Itemized charges per assignment, total computation and the edit lock that
freezes a cost once it is invoiced or paid.

Total rule: sub_total = sum of the itemized charges - discount;
tax_amount = sub_total * tax_percentage / 100 rounded half-up to cents;
total_cost = sub_total + tax_amount. Tax is applied once to the sum, never
per item.
"""

from typing import Optional, Dict, Any, List, Tuple
from datetime import datetime, date, time as dt_time, timedelta
from decimal import Decimal
import logging
import time
from models import (TripCost, CostPaymentStatus, Assignment, Vehicle, PaymentMethod)
from timezone_utils import get_local_time_naive, get_local_date
from utils.money import quantize_money, to_decimal
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .state_machine import TRIP_COST_STATE_MACHINE
from .exceptions import NotFoundError, ConflictError, ForbiddenError, ValidationError

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = {CostPaymentStatus.DRAFT, CostPaymentStatus.PENDING}
AMOUNT_FIELDS = TripCost.CHARGE_FIELDS + ('discount', 'tax_percentage')


def calculate_totals(charges: Dict[str, Any]) -> Dict[str, Decimal]:
    """Compute sub_total, tax_amount and total_cost from itemized charges"""
    items_total = sum((to_decimal(charges.get(field)) for field in TripCost.CHARGE_FIELDS), Decimal('0'))
    sub_total = quantize_money(items_total - to_decimal(charges.get('discount')))
    tax_amount = quantize_money(sub_total * to_decimal(charges.get('tax_percentage')) / Decimal('100'))
    return {
        'sub_total': sub_total,
        'tax_amount': tax_amount,
        'total_cost': sub_total + tax_amount,
    }


def is_edit_locked(cost: TripCost) -> bool:
    """Locked unless Draft/Pending, and locked once an invoice number is attached beyond Draft"""
    if cost.payment_status not in EDITABLE_STATUSES:
        return True
    return bool(cost.invoice_number) and cost.payment_status != CostPaymentStatus.DRAFT


class TripCostService:
    """Service class for trip cost operations"""

    def __init__(self, session, default_currency: str = 'LKR'):
        self.session = session
        self.default_currency = default_currency
        self.audit_service = AuditService(session)

    def list_trip_costs(self, status: Optional[CostPaymentStatus] = None,
                        vendor_id: Optional[str] = None,
                        assignment_id: Optional[str] = None,
                        start_date: Optional[date] = None,
                        end_date: Optional[date] = None,
                        page: int = 1, page_size: int = 10) -> Tuple[List[TripCost], int]:
        query = self.session.query(TripCost)
        if status:
            query = query.filter(TripCost.payment_status == status)
        if vendor_id:
            # Same attribution as vendor invoicing: the assigned vehicle's cab service
            query = query.join(Assignment, TripCost.assignment_id == Assignment.id) \
                         .join(Vehicle, Assignment.vehicle_id == Vehicle.id) \
                         .filter(Vehicle.cab_service_id == vendor_id)
        if assignment_id:
            query = query.filter(TripCost.assignment_id == assignment_id)
        if start_date:
            query = query.filter(TripCost.created_at >= datetime.combine(start_date, dt_time.min))
        if end_date:
            # end_date is inclusive
            query = query.filter(TripCost.created_at < datetime.combine(end_date + timedelta(days=1), dt_time.min))

        total = query.count()
        items = query.order_by(TripCost.created_at.desc(), TripCost.id) \
                     .offset((page - 1) * page_size).limit(page_size).all()
        return items, total

    def get_trip_cost(self, cost_id: str) -> TripCost:
        cost = self.session.get(TripCost, cost_id)
        if not cost:
            raise NotFoundError('Trip cost not found')
        return cost

    @TransactionHelper.with_transaction
    def create_trip_cost(self, data: Dict[str, Any], user_id: Optional[str] = None) -> TripCost:
        """Record itemized charges for an assignment; new costs always start as Draft"""
        assignment = self.session.get(Assignment, data['assignment_id'])
        if not assignment:
            raise NotFoundError('Trip assignment not found')

        cost = TripCost()
        cost.assignment_id = assignment.id
        cost.vendor_id = self._vendor_for(assignment, data.get('vendor_id'))
        cost.currency = (data.get('currency') or self.default_currency).upper()
        for field in AMOUNT_FIELDS:
            setattr(cost, field, quantize_money(data.get(field)))
        cost.payment_status = TRIP_COST_STATE_MACHINE.validate_initial(CostPaymentStatus.DRAFT)
        self._recalculate(cost)

        self.session.add(cost)
        self.session.flush()
        self.audit_service.log_action('create_trip_cost', 'trip_cost', cost.id,
                                      {'assignment_id': assignment.id, 'total_cost': cost.total_cost},
                                      user_id=user_id)
        logger.info(f"Trip cost {cost.id} created for assignment {assignment.id}: {cost.total_cost}")
        return cost

    @TransactionHelper.with_transaction
    def update_trip_cost(self, cost_id: str, data: Dict[str, Any], user_id: Optional[str] = None) -> TripCost:
        cost = self.get_trip_cost(cost_id)
        self._ensure_editable(cost)

        if 'assignment_id' in data and data['assignment_id'] != cost.assignment_id:
            assignment = self.session.get(Assignment, data['assignment_id'])
            if not assignment:
                raise NotFoundError('Trip assignment not found')
            cost.assignment_id = assignment.id
            cost.vendor_id = self._vendor_for(assignment, data.get('vendor_id'))
        elif 'vendor_id' in data:
            self._vendor_for(cost.assignment, data['vendor_id'])
        if 'currency' in data:
            cost.currency = data['currency'].upper()
        for field in AMOUNT_FIELDS:
            if field in data:
                setattr(cost, field, quantize_money(data[field]))
        self._recalculate(cost)

        self.audit_service.log_action('update_trip_cost', 'trip_cost', cost.id,
                                      {'fields': sorted(data.keys()), 'total_cost': cost.total_cost},
                                      user_id=user_id)
        return cost

    @TransactionHelper.with_transaction
    def delete_trip_cost(self, cost_id: str, user_id: Optional[str] = None) -> None:
        cost = self.get_trip_cost(cost_id)
        self._ensure_editable(cost)
        if cost.invoice_id:
            raise ForbiddenError('Trip cost is linked to an invoice and cannot be deleted')
        self.audit_service.log_action('delete_trip_cost', 'trip_cost', cost.id,
                                      {'total_cost': cost.total_cost}, user_id=user_id)
        self.session.delete(cost)

    @TransactionHelper.with_transaction
    def generate_cost_invoice(self, cost_id: str, notes: Optional[str] = None,
                              due_date: Optional[date] = None,
                              user_id: Optional[str] = None) -> TripCost:
        """Issue a standalone invoice number for one cost (Draft -> Pending)"""
        cost = self.get_trip_cost(cost_id)
        if cost.invoice_number:
            raise ForbiddenError('Trip cost already has an invoice number')
        cost.payment_status = TRIP_COST_STATE_MACHINE.validate(cost.payment_status, CostPaymentStatus.PENDING)

        cost.invoice_number = f"INV-{int(time.time() * 1000)}"
        cost.invoice_date = get_local_date()
        cost.details = {**(cost.details or {}), 'notes': notes,
                        'due_date': due_date.isoformat() if due_date else None}

        self.audit_service.log_action('generate_cost_invoice', 'trip_cost', cost.id,
                                      {'invoice_number': cost.invoice_number}, user_id=user_id)
        logger.info(f"Trip cost {cost.id} invoiced as {cost.invoice_number}")
        return cost

    @TransactionHelper.with_transaction
    def record_cost_payment(self, cost_id: str, payment_method: Optional[str] = None,
                            transaction_id: Optional[str] = None, notes: Optional[str] = None,
                            paid_at: Optional[datetime] = None,
                            user_id: Optional[str] = None) -> TripCost:
        """Mark a single cost Paid; Paid costs are immutable afterwards"""
        cost = self.get_trip_cost(cost_id)
        if cost.payment_status == CostPaymentStatus.PAID:
            raise ConflictError('Trip cost is already paid')
        if cost.invoice_id:
            raise ForbiddenError('Trip cost is billed on a vendor invoice; record the payment on the invoice')
        cost.payment_status = TRIP_COST_STATE_MACHINE.validate(cost.payment_status, CostPaymentStatus.PAID)

        paid_at = paid_at or get_local_time_naive()
        if paid_at > get_local_time_naive():
            raise ValidationError('Payment date cannot be in the future',
                                  errors={'paid_at': ['Cannot be in the future.']})

        cost.payment_method = PaymentMethod(payment_method) if payment_method else None
        cost.paid_at = paid_at
        cost.details = {**(cost.details or {}), 'transaction_id': transaction_id, 'payment_notes': notes}

        self.audit_service.log_action('record_cost_payment', 'trip_cost', cost.id,
                                      {'payment_method': payment_method, 'transaction_id': transaction_id},
                                      user_id=user_id)
        logger.info(f"Trip cost {cost.id} paid")
        return cost

    @staticmethod
    def _vendor_for(assignment: Assignment, requested: Optional[str] = None) -> Optional[str]:
        """The vendor is always the cab service that owns the assigned vehicle"""
        vendor_id = assignment.vehicle.cab_service_id if assignment.vehicle else None
        if requested and requested != vendor_id:
            raise ValidationError('Vendor does not match the assigned vehicle',
                                  errors={'vendor_id': ["Must be the assigned vehicle's cab service."]})
        return vendor_id

    @staticmethod
    def _ensure_editable(cost: TripCost) -> None:
        if is_edit_locked(cost):
            logger.warning(f"Edit refused for locked trip cost {cost.id} ({cost.payment_status.value})")
            raise ForbiddenError(f"Trip cost is {cost.payment_status.value} and can no longer be modified")

    @staticmethod
    def _recalculate(cost: TripCost) -> None:
        totals = calculate_totals({field: getattr(cost, field) for field in AMOUNT_FIELDS})
        if totals['sub_total'] < 0:
            raise ValidationError('Discount cannot exceed the itemized charges',
                                  errors={'discount': ['Exceeds the sum of charges.']})
        for field, value in totals.items():
            setattr(cost, field, value)
