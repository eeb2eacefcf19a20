"""
Register Service - cash register (caja) open/close reconciliation.

A register session is one cashier's accountability period. Closing it
compares the counted cash with opening float + cash sales and stamps the
surplus or shortfall. Closed sessions are immutable.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from gestionfarma.context import TenantContext
from gestionfarma.database import transaction
from gestionfarma.exceptions import NotFoundError, RegisterError, ValidationError
from gestionfarma.models import (
    RegisterSession, RegisterStatus, Sale, SaleStatus, PaymentMethod, normalize_payment_method
)

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


@dataclass
class RegisterSummary:
    """System totals of a register session, by payment method."""
    opening_float: Decimal
    cash: Decimal = ZERO
    mobile_wallet: Decimal = ZERO
    bank_transfer: Decimal = ZERO
    other: Decimal = ZERO
    sales_count: int = 0

    @property
    def total_sales(self) -> Decimal:
        return self.cash + self.mobile_wallet + self.bank_transfer + self.other

    @property
    def expected_cash(self) -> Decimal:
        """Cash that should be in the drawer: opening float plus cash sales."""
        return self.opening_float + self.cash

    def to_dict(self) -> dict:
        return {
            'opening_float': str(self.opening_float),
            'cash': str(self.cash),
            'mobile_wallet': str(self.mobile_wallet),
            'bank_transfer': str(self.bank_transfer),
            'other': str(self.other),
            'total_sales': str(self.total_sales),
            'expected_cash': str(self.expected_cash),
            'sales_count': self.sales_count,
        }


def _bucket_for(method) -> PaymentMethod:
    # Unknown methods count as cash so they are reconciled against the drawer
    try:
        return normalize_payment_method(method)
    except ValueError:
        logger.warning(f"Unknown payment method '{method}' counted as cash")
        return PaymentMethod.CASH


def get_open_register(session: Session, ctx: TenantContext) -> Optional[RegisterSession]:
    ctx.require()
    return session.query(RegisterSession).filter(
        *ctx.scope(RegisterSession),
        RegisterSession.user_id == ctx.user_id,
        RegisterSession.status == RegisterStatus.OPEN
    ).order_by(RegisterSession.id.desc()).first()


def get_register(session: Session, ctx: TenantContext, register_id: int) -> RegisterSession:
    register = session.query(RegisterSession).filter(
        RegisterSession.id == register_id,
        *ctx.scope(RegisterSession)
    ).first()
    if not register:
        raise NotFoundError('Caja no encontrada.')
    return register


def open_register(session: Session, ctx: TenantContext, opening_float: Decimal) -> RegisterSession:
    """
    Open a register session with an initial cash float.

    Raises:
        ValidationError: negative float
        RegisterError: the user already has an open register in this site
    """
    ctx.require()
    opening_float = Decimal(str(opening_float)).quantize(Decimal('0.01'))
    if opening_float < 0:
        raise ValidationError('El monto inicial no puede ser negativo.')

    with transaction(session):
        existing = get_open_register(session, ctx)
        if existing:
            raise RegisterError(f'Ya tienes una caja abierta (#{existing.id}).')

        register = RegisterSession(
            site_id=ctx.site_id,
            company_id=ctx.company_id,
            user_id=ctx.user_id,
            status=RegisterStatus.OPEN,
            opening_float=opening_float,
            opened_at=datetime.now(),
        )
        session.add(register)
        session.flush()

    logger.info(f"Register #{register.id} opened by user {ctx.user_id} with {opening_float}")
    return register


def compute_summary(session: Session, ctx: TenantContext, register: RegisterSession) -> RegisterSummary:
    """
    Sum the owner's COMPLETED sales since the register was opened (and up
    to its close, for closed sessions), grouped by payment method.
    """
    query = session.query(Sale.payment_method, Sale.amount_due).filter(
        *ctx.scope(Sale),
        Sale.user_id == register.user_id,
        Sale.status == SaleStatus.COMPLETED,
        Sale.completed_at >= register.opened_at
    )
    if register.closed_at:
        query = query.filter(Sale.completed_at <= register.closed_at)

    totals = {method: ZERO for method in PaymentMethod}
    count = 0
    for method, amount in query.all():
        totals[_bucket_for(method)] += Decimal(str(amount or 0))
        count += 1

    return RegisterSummary(
        opening_float=Decimal(str(register.opening_float or 0)),
        cash=totals[PaymentMethod.CASH],
        mobile_wallet=totals[PaymentMethod.MOBILE_WALLET],
        bank_transfer=totals[PaymentMethod.BANK_TRANSFER],
        other=totals[PaymentMethod.OTHER],
        sales_count=count,
    )


def preview_difference(summary: RegisterSummary, physical_cash: Decimal) -> Tuple[Decimal, Decimal, Decimal]:
    """
    Returns:
        (difference, surplus, shortfall) where difference = counted - expected cash
    """
    difference = Decimal(str(physical_cash)).quantize(Decimal('0.01')) - summary.expected_cash
    return difference, max(difference, ZERO), max(-difference, ZERO)


def close_register(session: Session, ctx: TenantContext, register_id: int,
                   physical_cash: Decimal) -> RegisterSession:
    """
    Close a register session against the physically counted cash.

    Raises:
        ValidationError: negative counted cash
        RegisterError: session already closed or owned by another user
    """
    ctx.require()
    physical_cash = Decimal(str(physical_cash)).quantize(Decimal('0.01'))
    if physical_cash < 0:
        raise ValidationError('El efectivo contado no puede ser negativo.')

    with transaction(session):
        register = get_register(session, ctx, register_id)
        if register.status != RegisterStatus.OPEN:
            raise RegisterError('La caja ya está cerrada.')
        if register.user_id != ctx.user_id:
            raise RegisterError('Solo el usuario que abrió la caja puede cerrarla.')

        summary = compute_summary(session, ctx, register)
        difference, surplus, shortfall = preview_difference(summary, physical_cash)

        register.status = RegisterStatus.CLOSED
        register.closed_at = datetime.now()
        register.cash_total = summary.cash
        register.mobile_wallet_total = summary.mobile_wallet
        register.bank_transfer_total = summary.bank_transfer
        register.other_total = summary.other
        register.system_total = summary.expected_cash
        register.physical_cash = physical_cash
        register.surplus = surplus
        register.shortfall = shortfall

    logger.info(f"Register #{register_id} closed. Difference: {difference}")
    return register


def list_register_history(session: Session, ctx: TenantContext, user_id: Optional[int] = None,
                          limit: int = 30) -> List[RegisterSession]:
    query = session.query(RegisterSession).filter(*ctx.scope(RegisterSession))
    if user_id:
        query = query.filter(RegisterSession.user_id == user_id)
    return query.order_by(RegisterSession.opened_at.desc(), RegisterSession.id.desc()).limit(limit).all()


def serialize_register(register: RegisterSession) -> dict:
    def money(value):
        return str(value) if value is not None else None

    return {
        'id': register.id,
        'user_id': register.user_id,
        'status': register.status.value,
        'opening_float': money(register.opening_float),
        'opened_at': register.opened_at.isoformat() if register.opened_at else None,
        'closed_at': register.closed_at.isoformat() if register.closed_at else None,
        'cash_total': money(register.cash_total),
        'mobile_wallet_total': money(register.mobile_wallet_total),
        'bank_transfer_total': money(register.bank_transfer_total),
        'other_total': money(register.other_total),
        'system_total': money(register.system_total),
        'physical_cash': money(register.physical_cash),
        'surplus': money(register.surplus),
        'shortfall': money(register.shortfall),
    }
