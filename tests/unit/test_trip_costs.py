"""
Unit tests for trip cost totals and the edit lock
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from models import CostPaymentStatus
from services.trip_cost_service import calculate_totals, is_edit_locked
from utils.money import quantize_money, to_decimal


@pytest.mark.unit
class TestCalculateTotals:
    """Sum the charges, subtract the discount, then apply tax once"""

    def test_charges_without_tax(self):
        totals = calculate_totals({'base_fare': '3000', 'toll_charges': '450.50', 'parking_charges': 200})
        assert totals['sub_total'] == Decimal('3650.50')
        assert totals['tax_amount'] == Decimal('0.00')
        assert totals['total_cost'] == Decimal('3650.50')

    def test_discount_reduces_sub_total(self):
        totals = calculate_totals({'base_fare': 5000, 'discount': 500})
        assert totals['sub_total'] == Decimal('4500.00')

    def test_tax_applied_to_sum_and_rounded_half_up(self):
        # 100.10 * 18% = 18.018 -> 18.02; 0.05 * 10% = 0.005 -> 0.01
        totals = calculate_totals({'base_fare': '100.10', 'tax_percentage': 18})
        assert totals['tax_amount'] == Decimal('18.02')
        assert totals['total_cost'] == Decimal('118.12')
        assert calculate_totals({'other_charges': '0.05', 'tax_percentage': 10})['tax_amount'] == Decimal('0.01')

    def test_missing_items_count_as_zero(self):
        totals = calculate_totals({})
        assert totals == {'sub_total': Decimal('0.00'), 'tax_amount': Decimal('0.00'),
                          'total_cost': Decimal('0.00')}


@pytest.mark.unit
class TestEditLock:
    """Paid and Overdue costs are frozen; Pending is frozen once invoiced"""

    @pytest.mark.parametrize('status, invoice_number, locked', [
        (CostPaymentStatus.DRAFT, None, False),
        (CostPaymentStatus.PENDING, None, False),
        (CostPaymentStatus.PENDING, 'INV-1', True),
        (CostPaymentStatus.PAID, None, True),
        (CostPaymentStatus.PAID, 'INV-1', True),
        (CostPaymentStatus.OVERDUE, 'INV-1', True),
    ])
    def test_lock_matrix(self, status, invoice_number, locked):
        cost = SimpleNamespace(payment_status=status, invoice_number=invoice_number)
        assert is_edit_locked(cost) is locked


@pytest.mark.unit
class TestMoneyHelpers:

    def test_float_input_does_not_carry_binary_noise(self):
        assert to_decimal(0.1) == Decimal('0.1')

    def test_quantize_rounds_half_up(self):
        assert quantize_money('2.345') == Decimal('2.35')
        assert quantize_money(None) == Decimal('0.00')

    def test_invalid_amount(self):
        with pytest.raises(ValueError):
            to_decimal('abc')
