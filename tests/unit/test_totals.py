"""
Unit tests for the totals calculator.
"""

from dataclasses import dataclass
from decimal import Decimal

import pytest

from gestionfarma.models import PaymentMethod
from gestionfarma.services.totals_service import compute_totals, line_subtotal, rounding_unit_for


@dataclass
class Line:
    subtotal: Decimal


def lines(*amounts):
    return [Line(Decimal(a)) for a in amounts]


class TestSubtotalAndDiscount:

    def test_empty_cart_is_zero(self):
        totals = compute_totals([])
        assert totals.subtotal == Decimal('0.00')
        assert totals.amount_due == Decimal('0.00')
        assert totals.change == Decimal('0.00')

    def test_subtotal_sums_lines(self):
        totals = compute_totals(lines('5.00', '12.50', '0.00'))
        assert totals.subtotal == Decimal('17.50')

    def test_percent_discount(self):
        totals = compute_totals(lines('50.00'), discount_percent=Decimal('10'))
        assert totals.discount == Decimal('5.00')
        assert totals.net == Decimal('45.00')

    def test_amount_discount_wins_over_percent(self):
        totals = compute_totals(lines('50.00'), discount_percent=Decimal('10'), discount_amount=Decimal('3.00'))
        assert totals.discount == Decimal('3.00')
        assert totals.net == Decimal('47.00')

    def test_discount_never_exceeds_subtotal(self):
        totals = compute_totals(lines('8.00'), discount_amount=Decimal('20.00'))
        assert totals.discount == Decimal('8.00')
        assert totals.net == Decimal('0.00')
        assert totals.amount_due == Decimal('0.00')


class TestTax:

    def test_tax_is_included_in_price(self):
        totals = compute_totals(lines('118.00'), payment_method=PaymentMethod.MOBILE_WALLET)
        assert totals.tax_base == Decimal('100.00')
        assert totals.tax == Decimal('18.00')
        assert totals.tax_base + totals.tax == totals.net

    def test_custom_tax_rate(self):
        totals = compute_totals(lines('110.00'), tax_rate=Decimal('0.10'))
        assert totals.tax_base == Decimal('100.00')
        assert totals.tax == Decimal('10.00')


class TestRounding:

    def test_cash_rounds_to_ten_cents(self):
        assert rounding_unit_for('CASH') == Decimal('0.10')
        assert rounding_unit_for('YAPE') == Decimal('0.01')

    def test_cash_rounding_half_up(self):
        totals = compute_totals(lines('12.35'), payment_method='CASH')
        assert totals.amount_due == Decimal('12.40')
        assert totals.rounding == Decimal('0.05')

    def test_cash_rounding_down(self):
        totals = compute_totals(lines('12.34'), payment_method='CASH')
        assert totals.amount_due == Decimal('12.30')
        assert totals.rounding == Decimal('-0.04')

    def test_electronic_payment_is_not_rounded(self):
        totals = compute_totals(lines('12.34'), payment_method=PaymentMethod.BANK_TRANSFER)
        assert totals.amount_due == Decimal('12.34')
        assert totals.rounding == Decimal('0.00')

    def test_cash_rounding_stays_within_half_unit(self):
        for cents in range(0, 1000, 7):
            net = Decimal(cents) / 100
            totals = compute_totals([Line(net)], payment_method='CASH')
            assert Decimal('-0.05') <= totals.rounding <= Decimal('0.05')
            assert totals.amount_due % Decimal('0.10') == 0

    def test_many_small_lines_do_not_drift(self):
        totals = compute_totals([Line(Decimal('0.10'))] * 50, payment_method='CASH')
        assert totals.subtotal == Decimal('5.00')
        assert totals.amount_due == Decimal('5.00')


class TestChange:

    def test_change_for_cash(self):
        totals = compute_totals(lines('17.50'), payment_method='CASH', amount_tendered=Decimal('20'))
        assert totals.change == Decimal('2.50')

    def test_negative_change_when_tendered_short(self):
        totals = compute_totals(lines('17.50'), payment_method='CASH', amount_tendered=Decimal('10'))
        assert totals.change == Decimal('-7.50')

    def test_no_change_for_electronic_payments(self):
        totals = compute_totals(lines('17.50'), payment_method='YAPE', amount_tendered=Decimal('20'))
        assert totals.change == Decimal('0.00')


class TestLineSubtotal:

    @pytest.mark.parametrize('qty,price,expected', [
        (1, '5.00', '5.00'),
        (3, '1.335', '4.02'),
        (12, '0.10', '1.20'),
    ])
    def test_line_subtotal(self, qty, price, expected):
        assert line_subtotal(qty, Decimal(price)) == Decimal(expected)

    def test_to_dict_uses_strings(self):
        data = compute_totals(lines('5.00')).to_dict()
        assert data['amount_due'] == '5.00'
        assert set(data) == {'subtotal', 'discount', 'net', 'tax_base', 'tax', 'rounding', 'amount_due', 'change'}
