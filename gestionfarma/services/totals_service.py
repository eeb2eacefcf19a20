"""Totals Service - pure money arithmetic for the POS cart."""
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from gestionfarma.models.sale import PaymentMethod, normalize_payment_method

CENT = Decimal('0.01')
CASH_ROUNDING_UNIT = Decimal('0.10')
DEFAULT_TAX_RATE = Decimal('0.18')  # IGV, prices are tax-inclusive


def _money(value) -> Decimal:
    if value is None:
        return Decimal('0.00')
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_subtotal(quantity, unit_price) -> Decimal:
    """Subtotal of one cart line rounded to the cent."""
    return _money(Decimal(quantity) * _money(unit_price))


def rounding_unit_for(payment_method) -> Decimal:
    """Cash rounds to ten cents, electronic payments to the cent."""
    if normalize_payment_method(payment_method) == PaymentMethod.CASH:
        return CASH_ROUNDING_UNIT
    return CENT


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount: Decimal
    net: Decimal
    tax_base: Decimal
    tax: Decimal
    rounding: Decimal
    amount_due: Decimal
    change: Decimal

    def to_dict(self) -> dict:
        return {key: str(value) for key, value in asdict(self).items()}


def compute_totals(
    lines: Iterable,
    discount_percent=Decimal('0'),
    discount_amount=Decimal('0'),
    payment_method=PaymentMethod.CASH,
    amount_tendered: Optional[Decimal] = None,
    tax_rate: Decimal = DEFAULT_TAX_RATE
) -> Totals:
    """
    Compute the totals breakdown of a cart.

    Args:
        lines: Cart lines (anything with a `subtotal` attribute)
        discount_percent: Percentage discount, ignored when discount_amount > 0
        discount_amount: Fixed discount amount
        payment_method: Drives the rounding unit and whether change is given
        amount_tendered: Cash handed over by the client
        tax_rate: VAT rate included in prices

    Returns:
        Totals with every amount quantized to the cent
    """
    subtotal = sum((_money(line.subtotal) for line in lines), Decimal('0.00'))
    discount_percent = Decimal(str(discount_percent or 0))
    discount_amount = _money(discount_amount)

    if discount_amount > 0:
        discount = discount_amount
    else:
        discount = _money(subtotal * discount_percent / Decimal('100'))
    # A discount never makes the sale negative
    discount = min(discount, subtotal)

    net = subtotal - discount
    tax_base = _money(net / (Decimal('1') + Decimal(str(tax_rate))))
    tax = net - tax_base

    unit = rounding_unit_for(payment_method)
    amount_due = _money((net / unit).quantize(Decimal('1'), rounding=ROUND_HALF_UP) * unit)
    rounding = amount_due - net

    tendered = _money(amount_tendered)
    if normalize_payment_method(payment_method) == PaymentMethod.CASH and tendered > 0:
        change = tendered - amount_due
    else:
        change = Decimal('0.00')

    return Totals(
        subtotal=subtotal,
        discount=discount,
        net=net,
        tax_base=tax_base,
        tax=tax,
        rounding=rounding,
        amount_due=amount_due,
        change=change,
    )
