"""Parsing helpers for numbers coming from request payloads."""
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from gestionfarma.exceptions import ValidationError


def parse_money(value, field: str = 'monto', allow_negative: bool = False) -> Decimal:
    """
    Parse an amount such as 1234.5, "1234.50" or "1,234.50" to a 2-place Decimal.

    Raises:
        ValidationError: if the value is empty, malformed or negative.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f'El campo {field} es obligatorio.')

    cleaned = str(value).strip().replace('S/', '').replace(',', '').strip()
    try:
        amount = Decimal(cleaned)
    except (InvalidOperation, ValueError):
        raise ValidationError(f'Formato inválido para {field}. Usá 1,234.56')

    if not amount.is_finite():
        raise ValidationError(f'Formato inválido para {field}. Usá 1,234.56')
    if amount < 0 and not allow_negative:
        raise ValidationError(f'El campo {field} no puede ser negativo.')

    return amount.quantize(Decimal('0.01'))


def parse_optional_money(value, field: str = 'monto') -> Optional[Decimal]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_money(value, field)


def parse_int(value, field: str) -> int:
    try:
        return int(str(value).strip())
    except (ValueError, TypeError):
        raise ValidationError(f'El campo {field} debe ser un número entero.')


def parse_date(value, field: str = 'fecha') -> Optional[date]:
    """Parse an ISO date (YYYY-MM-DD); empty values give None."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
    except ValueError:
        raise ValidationError(f'Fecha inválida para {field}. Usá AAAA-MM-DD')
