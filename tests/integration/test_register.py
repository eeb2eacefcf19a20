"""
Integration tests for cash register (caja) opening and closing reconciliation.
"""

from decimal import Decimal

import pytest

from gestionfarma.exceptions import RegisterError, ValidationError, NotFoundError
from gestionfarma.models import RegisterStatus
from gestionfarma.services import sale_draft_service as cart_service
from gestionfarma.services.register_service import (
    open_register, close_register, compute_summary, get_open_register,
    list_register_history, preview_difference, RegisterSummary
)
from gestionfarma.services.sales_service import finalize_sale


def _sell(session, ctx, product, quantity, payment_method='CASH'):
    cart_service.add_item(session, ctx, product.id, quantity=quantity)
    return finalize_sale(session, ctx, payment_method=payment_method)


@pytest.fixture
def register_with_sales(session, ctx, product):
    """Register opened with 50.00, one cash sale of 15.00 and one Yape sale of 10.00."""
    register = open_register(session, ctx, Decimal('50.00'))
    _sell(session, ctx, product, 3)
    _sell(session, ctx, product, 2, payment_method='YAPE')
    return register


class TestOpenRegister:

    def test_open(self, session, ctx):
        register = open_register(session, ctx, Decimal('100'))
        assert register.status == RegisterStatus.OPEN
        assert register.opening_float == Decimal('100.00')
        assert get_open_register(session, ctx).id == register.id

    def test_second_open_is_rejected(self, session, ctx):
        open_register(session, ctx, Decimal('0'))
        with pytest.raises(RegisterError):
            open_register(session, ctx, Decimal('10'))

    def test_negative_float(self, session, ctx):
        with pytest.raises(ValidationError):
            open_register(session, ctx, Decimal('-1'))
        assert get_open_register(session, ctx) is None


class TestCloseRegister:

    def test_summary_by_payment_method(self, session, ctx, register_with_sales):
        summary = compute_summary(session, ctx, register_with_sales)
        assert summary.cash == Decimal('15.00')
        assert summary.mobile_wallet == Decimal('10.00')
        assert summary.total_sales == Decimal('25.00')
        assert summary.expected_cash == Decimal('65.00')
        assert summary.sales_count == 2

    @pytest.mark.parametrize('counted,surplus,shortfall', [
        ('65.00', '0.00', '0.00'),
        ('70.00', '5.00', '0.00'),
        ('60.00', '0.00', '5.00'),
    ])
    def test_close_reconciles_counted_cash(self, session, ctx, register_with_sales, counted, surplus, shortfall):
        register = close_register(session, ctx, register_with_sales.id, Decimal(counted))

        assert register.status == RegisterStatus.CLOSED
        assert register.closed_at is not None
        assert register.system_total == Decimal('65.00')
        assert register.cash_total == Decimal('15.00')
        assert register.mobile_wallet_total == Decimal('10.00')
        assert register.physical_cash == Decimal(counted)
        assert register.surplus == Decimal(surplus)
        assert register.shortfall == Decimal(shortfall)

    def test_close_twice(self, session, ctx, register_with_sales):
        close_register(session, ctx, register_with_sales.id, Decimal('65'))
        with pytest.raises(RegisterError):
            close_register(session, ctx, register_with_sales.id, Decimal('65'))

    def test_negative_counted_cash(self, session, ctx, register_with_sales):
        with pytest.raises(ValidationError):
            close_register(session, ctx, register_with_sales.id, Decimal('-5'))
        assert get_open_register(session, ctx) is not None

    def test_register_of_other_site(self, session, ctx, other_ctx):
        register = open_register(session, other_ctx, Decimal('10'))
        with pytest.raises(NotFoundError):
            close_register(session, ctx, register.id, Decimal('10'))

    def test_sales_after_close_do_not_count(self, session, ctx, product, register_with_sales):
        closed = close_register(session, ctx, register_with_sales.id, Decimal('65'))
        _sell(session, ctx, product, 1)
        summary = compute_summary(session, ctx, closed)
        assert summary.cash == Decimal('15.00')

    def test_history(self, session, ctx, register_with_sales):
        close_register(session, ctx, register_with_sales.id, Decimal('65'))
        second = open_register(session, ctx, Decimal('20'))

        history = list_register_history(session, ctx)
        assert [r.id for r in history][:2] == [second.id, register_with_sales.id]


def test_preview_difference():
    summary = RegisterSummary(opening_float=Decimal('50.00'), cash=Decimal('15.00'))
    assert preview_difference(summary, Decimal('62.50')) == (
        Decimal('-2.50'), Decimal('0.00'), Decimal('2.50')
    )
