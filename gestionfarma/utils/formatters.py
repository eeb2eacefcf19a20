"""
Utilidades de formateo para recibos, notificaciones y respuestas.
Formatos peruanos: S/ 1,234.50 y fechas DD/MM/YYYY.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Union


def num_pe(value: Union[int, float, Decimal, str, None], decimals: int = 2) -> str:
    """
    Formatea un número con coma para miles y punto decimal.
    
    Examples:
        num_pe(1500) -> "1,500.00"
        num_pe(1500.5, 1) -> "1,500.5"
        num_pe(None) -> "-"
    """
    if value is None or value == "":
        return "-"
    
    try:
        num = Decimal(str(value)).quantize(Decimal(10) ** -decimals)
    except (InvalidOperation, ValueError, TypeError):
        return "-"
    
    return f"{num:,.{decimals}f}"


def money_pe(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Formatea un monto en soles con exactamente 2 decimales.
    
    Examples:
        money_pe(5) -> "S/ 5.00"
        money_pe(Decimal('-3.5')) -> "-S/ 3.50"
        money_pe(None) -> "-"
    """
    formatted = num_pe(value, 2)
    if formatted == "-":
        return formatted
    if formatted.startswith('-'):
        return f"-S/ {formatted[1:]}"
    return f"S/ {formatted}"


def date_pe(value: Union[date, datetime, None]) -> str:
    """
    Formatea una fecha: DD/MM/YYYY
    
    Examples:
        date_pe(date(2026, 1, 12)) -> "12/01/2026"
    """
    if value is None:
        return "-"
    
    if isinstance(value, datetime):
        value = value.date()
    
    if not isinstance(value, date):
        return "-"
    
    return value.strftime("%d/%m/%Y")


def datetime_pe(value: Union[datetime, None], with_time: bool = True) -> str:
    """
    Formatea un datetime: DD/MM/YYYY HH:MM
    
    Examples:
        datetime_pe(datetime(2026, 1, 12, 15, 30)) -> "12/01/2026 15:30"
    """
    if value is None or not isinstance(value, datetime):
        return "-"
    
    if with_time:
        return value.strftime("%d/%m/%Y %H:%M")
    return value.strftime("%d/%m/%Y")
