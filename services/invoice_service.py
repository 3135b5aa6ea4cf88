"""
Invoice Service

Monthly vendor invoicing: batches every uninvoiced trip cost of a cab
service for a billing month into one invoice, records payment, and marks
overdue invoices. Every multi-row change (linking costs, cascading payment)
happens inside a single unit of work.
"""

from typing import Optional, Dict, Any, List, Tuple
from datetime import datetime, date
from decimal import Decimal
import logging
import time
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from models import (Invoice, InvoiceStatus, TripCost, CostPaymentStatus, CabService,
                    Assignment, Vehicle, PaymentMethod)
from timezone_utils import get_local_time_naive, get_local_date
from utils.money import quantize_money, money_to_float
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .state_machine import INVOICE_STATE_MACHINE
from .exceptions import NotFoundError, ConflictError, ValidationError

logger = logging.getLogger(__name__)


def month_window(month: str) -> Tuple[datetime, datetime]:
    """[first day 00:00, first day of next month 00:00) for a YYYY-MM string"""
    try:
        start = datetime.strptime(month, '%Y-%m')
    except (TypeError, ValueError):
        raise ValidationError('Month must be YYYY-MM', errors={'month': ['Must be YYYY-MM.']})
    if start.month == 12:
        end = start.replace(year=start.year + 1, month=1)
    else:
        end = start.replace(month=start.month + 1)
    return start, end


def display_month(month: str) -> str:
    return datetime.strptime(month, '%Y-%m').strftime('%B %Y')


def generate_invoice_number(cab_service_id: str, month: str) -> str:
    """INV-<first 8 of vendor id>-<YYYYMM>-<epoch millis>"""
    return f"INV-{cab_service_id[:8].upper()}-{month.replace('-', '')}-{int(time.time() * 1000)}"


def _append_note(existing: Optional[str], note: str) -> str:
    return f"{existing}\n{note}" if existing else note


class InvoiceService:
    """Service class for vendor invoicing"""

    def __init__(self, session, default_currency: str = 'LKR'):
        self.session = session
        self.default_currency = default_currency
        self.audit_service = AuditService(session)

    def _uninvoiced_costs_query(self, cab_service_id: str, month: str):
        # Window is on the trip cost's creation time, not the trip date.
        # Costs already invoiced on their own (no longer Draft) are excluded.
        start, end = month_window(month)
        return self.session.query(TripCost) \
            .join(Assignment, TripCost.assignment_id == Assignment.id) \
            .join(Vehicle, Assignment.vehicle_id == Vehicle.id) \
            .filter(Vehicle.cab_service_id == cab_service_id,
                    TripCost.invoice_id.is_(None),
                    TripCost.payment_status == CostPaymentStatus.DRAFT,
                    TripCost.created_at >= start,
                    TripCost.created_at < end) \
            .order_by(TripCost.created_at, TripCost.id)

    def _get_cab_service(self, cab_service_id: str) -> CabService:
        vendor = self.session.get(CabService, cab_service_id)
        if not vendor:
            raise NotFoundError('Cab service not found')
        return vendor

    def preview_draft(self, cab_service_id: str, month: str) -> Optional[Dict[str, Any]]:
        """
        Preview what an invoice for this vendor and month would contain.

        Returns None when there are no uninvoiced trip costs.
        """
        vendor = self._get_cab_service(cab_service_id)
        costs = self._uninvoiced_costs_query(cab_service_id, month).all()
        if not costs:
            return None

        return {
            'cabServiceId': vendor.id,
            'cabServiceName': vendor.name,
            'month': month,
            'displayMonth': display_month(month),
            'trips': [self._trip_line(cost) for cost in costs],
            'tripCount': len(costs),
            'totalAmount': float(sum((quantize_money(cost.total_cost) for cost in costs), Decimal('0'))),
        }

    @TransactionHelper.with_transaction
    def generate_invoice(self, cab_service_id: str, month: str, due_date: date,
                         notes: Optional[str] = None, user_id: Optional[str] = None) -> Invoice:
        """
        Create the vendor's invoice for a month.

        With no billable trips the invoice is still created, as a zero-total
        NoCharges invoice. Otherwise every matched cost is linked to the
        invoice and moved to Pending in the same transaction.
        """
        vendor = self._get_cab_service(cab_service_id)
        if due_date <= get_local_date():
            raise ValidationError('Due date must be in the future', errors={'due_date': ['Must be in the future.']})

        costs = self._uninvoiced_costs_query(cab_service_id, month).all()
        total = sum((quantize_money(cost.total_cost) for cost in costs), Decimal('0'))

        invoice = Invoice()
        invoice.invoice_number = generate_invoice_number(vendor.id, month)
        invoice.cab_service_id = vendor.id
        invoice.billing_month = month
        invoice.invoice_date = get_local_date()
        invoice.due_date = due_date
        invoice.currency = costs[0].currency if costs else self.default_currency
        invoice.created_by_id = user_id
        invoice.notes = notes or None

        if costs:
            invoice.status = INVOICE_STATE_MACHINE.validate_initial(InvoiceStatus.PENDING)
            invoice.total_amount = quantize_money(total)
        else:
            invoice.status = INVOICE_STATE_MACHINE.validate_initial(InvoiceStatus.NO_CHARGES)
            invoice.total_amount = Decimal('0.00')
            invoice.notes = _append_note(invoice.notes, f"No billable trips for {month}.")

        self.session.add(invoice)
        try:
            self.session.flush()
        except IntegrityError as e:
            raise ConflictError(f"Invoice number {invoice.invoice_number} already exists") from e

        if costs:
            cost_ids = [cost.id for cost in costs]
            result = self.session.execute(
                update(TripCost)
                .where(TripCost.id.in_(cost_ids), TripCost.invoice_id.is_(None),
                       TripCost.payment_status == CostPaymentStatus.DRAFT)
                .values(invoice_id=invoice.id,
                        invoice_number=invoice.invoice_number,
                        invoice_date=invoice.invoice_date,
                        payment_status=CostPaymentStatus.PENDING,
                        updated_at=get_local_time_naive())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != len(cost_ids):
                logger.warning(f"Invoice {invoice.invoice_number}: expected {len(cost_ids)} costs, "
                               f"linked {result.rowcount}")
                raise ConflictError('Some trip costs were invoiced concurrently; retry the generation')
            for cost in costs:
                self.session.expire(cost)

        self.audit_service.log_action('generate_invoice', 'invoice', invoice.id,
                                      {'invoice_number': invoice.invoice_number, 'month': month,
                                       'trip_count': len(costs), 'total_amount': invoice.total_amount,
                                       'status': invoice.status.value},
                                      user_id=user_id)
        logger.info(f"Invoice {invoice.invoice_number} generated for {vendor.name} {month}: "
                    f"{len(costs)} trips, total {invoice.total_amount}")
        return invoice

    @TransactionHelper.with_transaction
    def record_payment(self, invoice_id: str, paid_at: Optional[datetime] = None,
                       transaction_id: Optional[str] = None,
                       payment_method: Optional[str] = None,
                       notes: Optional[str] = None,
                       user_id: Optional[str] = None) -> Invoice:
        """
        Mark an invoice Paid and cascade Paid to every trip cost linked to it.
        Both updates commit or roll back together.
        """
        invoice = self.get_invoice(invoice_id)
        if invoice.status == InvoiceStatus.PAID:
            raise ConflictError('Invoice is already paid')
        invoice.status = INVOICE_STATE_MACHINE.validate(invoice.status, InvoiceStatus.PAID)

        now = get_local_time_naive()
        paid_at = paid_at or now
        if paid_at > now:
            raise ValidationError('Payment date cannot be in the future',
                                  errors={'paid_at': ['Cannot be in the future.']})

        method = PaymentMethod(payment_method) if payment_method else None
        invoice.paid_date = paid_at
        invoice.transaction_id = transaction_id
        invoice.payment_method = method

        note = f"Payment recorded on {paid_at.date().isoformat()}"
        if transaction_id:
            note += f" (transaction {transaction_id})"
        if notes:
            note += f": {notes}"
        invoice.notes = _append_note(invoice.notes, note)

        result = self.session.execute(
            update(TripCost)
            .where(TripCost.invoice_id == invoice.id,
                   TripCost.payment_status != CostPaymentStatus.PAID)
            .values(payment_status=CostPaymentStatus.PAID, payment_method=method,
                    paid_at=paid_at, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        for cost in invoice.trip_costs:
            self.session.expire(cost)

        self.audit_service.log_action('pay_invoice', 'invoice', invoice.id,
                                      {'transaction_id': transaction_id, 'trip_costs_paid': result.rowcount},
                                      user_id=user_id)
        logger.info(f"Invoice {invoice.invoice_number} paid; {result.rowcount} trip costs marked Paid")
        return invoice

    @TransactionHelper.with_transaction
    def mark_overdue(self, as_of: Optional[date] = None) -> List[Invoice]:
        """Move Pending invoices past their due date (and their costs) to Overdue"""
        as_of = as_of or get_local_date()
        invoices = self.session.query(Invoice) \
            .filter(Invoice.status == InvoiceStatus.PENDING,
                    Invoice.due_date.isnot(None),
                    Invoice.due_date < as_of).all()

        for invoice in invoices:
            invoice.status = INVOICE_STATE_MACHINE.validate(invoice.status, InvoiceStatus.OVERDUE)
            self.session.execute(
                update(TripCost)
                .where(TripCost.invoice_id == invoice.id,
                       TripCost.payment_status == CostPaymentStatus.PENDING)
                .values(payment_status=CostPaymentStatus.OVERDUE)
                .execution_options(synchronize_session=False)
            )
            self.audit_service.log_action('mark_invoice_overdue', 'invoice', invoice.id,
                                          {'due_date': invoice.due_date, 'as_of': as_of})

        if invoices:
            logger.info(f"Marked {len(invoices)} invoice(s) overdue as of {as_of}")
        return invoices

    def list_invoices(self, cab_service_id: Optional[str] = None,
                      status: Optional[InvoiceStatus] = None,
                      month: Optional[str] = None,
                      page: int = 1, page_size: int = 10) -> Tuple[List[Invoice], int]:
        query = self.session.query(Invoice)
        if cab_service_id:
            query = query.filter(Invoice.cab_service_id == cab_service_id)
        if status:
            query = query.filter(Invoice.status == status)
        if month:
            month_window(month)
            query = query.filter(Invoice.billing_month == month)

        total = query.count()
        items = query.order_by(Invoice.created_at.desc(), Invoice.id) \
                     .offset((page - 1) * page_size).limit(page_size).all()
        return items, total

    def get_invoice(self, invoice_id: str) -> Invoice:
        invoice = self.session.get(Invoice, invoice_id)
        if not invoice:
            raise NotFoundError('Invoice not found')
        return invoice

    @staticmethod
    def _trip_line(cost: TripCost) -> Dict[str, Any]:
        assignment = cost.assignment
        trip = assignment.trip_request if assignment else None
        return {
            'tripCostId': cost.id,
            'assignmentId': cost.assignment_id,
            'requestNumber': trip.request_number if trip else None,
            'vehicleNumber': assignment.vehicle.registration_number if assignment and assignment.vehicle else None,
            'departureDate': trip.departure_date.isoformat() if trip and trip.departure_date else None,
            'totalCost': money_to_float(cost.total_cost),
            'createdAt': cost.created_at.isoformat() if cost.created_at else None,
        }
