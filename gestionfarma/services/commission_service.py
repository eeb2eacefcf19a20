"""
Commission Service - rules management and commission generation.

Commissions are only generated for COMPLETED sales. Generation is
idempotent per (sale line, rule) so the backfill job can be re-run.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from sqlalchemy import or_, func
from sqlalchemy.orm import Session

from gestionfarma.context import TenantContext
from gestionfarma.database import transaction
from gestionfarma.exceptions import NotFoundError, ValidationError
from gestionfarma.utils.number_format import parse_money, parse_date, parse_int
from gestionfarma.models import (
    CommissionRule, CommissionRecord, CommissionType, Product,
    Sale, SaleLine, SaleLineType, SaleStatus
)

logger = logging.getLogger(__name__)


def compute_commission(rule: CommissionRule, line: SaleLine) -> Decimal:
    """
    Commission owed for one sold line under `rule`.

    PERCENTAGE: line subtotal x value / 100.
    FIXED_AMOUNT: base units sold (quantity x units per selection) x value.
    """
    value = Decimal(str(rule.value))
    if rule.type == CommissionType.PERCENTAGE:
        amount = Decimal(str(line.subtotal)) * value / Decimal('100')
    else:
        amount = Decimal(line.quantity * (line.units_per_selection or 1)) * value
    return amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def get_active_rule(session: Session, ctx: TenantContext, product_id: int,
                    on_day: Optional[date] = None) -> Optional[CommissionRule]:
    """Most recent active rule for a product whose validity window includes `on_day`."""
    on_day = on_day or date.today()
    return session.query(CommissionRule).filter(
        *ctx.scope(CommissionRule),
        CommissionRule.product_id == product_id,
        CommissionRule.active == True,
        CommissionRule.start_date <= on_day,
        or_(CommissionRule.end_date.is_(None), CommissionRule.end_date >= on_day)
    ).order_by(CommissionRule.start_date.desc(), CommissionRule.id.desc()).first()


def generate_commissions(session: Session, ctx: TenantContext, sale: Sale,
                         on_day: Optional[date] = None) -> List[CommissionRecord]:
    """
    Write commission records for the normal lines of a completed sale.

    Lines without an active rule, with a non-positive amount, or already
    commissioned under the same rule are skipped. Does not commit.
    """
    if sale.status != SaleStatus.COMPLETED:
        return []
    if not sale.user_id:
        logger.warning(f"Sale #{sale.id} has no selling user, commissions skipped")
        return []

    on_day = on_day or (sale.completed_at.date() if sale.completed_at else date.today())
    records = []

    for line in sale.lines:
        if line.line_type != SaleLineType.NORMAL or not line.product_id:
            continue
        rule = get_active_rule(session, ctx, line.product_id, on_day)
        if not rule:
            continue
        amount = compute_commission(rule, line)
        if amount <= 0:
            continue

        exists = session.query(CommissionRecord.id).filter(
            CommissionRecord.sale_line_id == line.id,
            CommissionRecord.rule_id == rule.id
        ).first()
        if exists:
            continue

        record = CommissionRecord(
            site_id=sale.site_id,
            company_id=sale.company_id,
            sale_id=sale.id,
            sale_line_id=line.id,
            rule_id=rule.id,
            product_id=line.product_id,
            user_id=sale.user_id,
            amount=amount,
            created_at=datetime.now(),
        )
        session.add(record)
        records.append(record)

    session.flush()
    return records


def generate_commissions_safely(session: Session, ctx: TenantContext, sale_id: int) -> int:
    """
    Best-effort commission step run after a sale is committed.

    Failures are logged and swallowed; the backfill job picks the sale up later.
    """
    try:
        sale = session.query(Sale).filter(Sale.id == sale_id, *ctx.scope(Sale)).first()
        if not sale:
            return 0
        records = generate_commissions(session, ctx, sale)
        session.commit()
        return len(records)
    except Exception as e:
        session.rollback()
        logger.error(f"Error generating commissions for sale #{sale_id}: {e}", exc_info=True)
        return 0


def backfill_commissions(session: Session, ctx: TenantContext, since: Optional[date] = None) -> int:
    """
    Regenerate missing commission records for completed sales.

    Returns:
        Number of records created
    """
    query = session.query(Sale).filter(
        *ctx.scope(Sale),
        Sale.status == SaleStatus.COMPLETED
    )
    if since:
        query = query.filter(Sale.completed_at >= datetime.combine(since, time.min))

    created = 0
    for sale in query.order_by(Sale.id).all():
        with transaction(session):
            created += len(generate_commissions(session, ctx, sale))
    if created:
        logger.info(f"[COMMISSIONS] Backfilled {created} records for {ctx.tenant_key}")
    return created


# =====================================================
# RULES
# =====================================================

def _parse_rule_fields(data: dict, partial: bool = False) -> dict:
    fields = {}
    if 'product_id' in data or not partial:
        if data.get('product_id') in (None, ''):
            raise ValidationError('El producto es obligatorio.')
        fields['product_id'] = parse_int(data['product_id'], 'product_id')
    if 'type' in data or not partial:
        raw_type = str(data.get('type') or '').strip()
        try:
            fields['type'] = CommissionType[raw_type.upper()] if raw_type.upper() in CommissionType.__members__ \
                else CommissionType(raw_type.lower())
        except ValueError:
            raise ValidationError(f'Tipo de comisión inválido: {raw_type}')
    if 'value' in data or not partial:
        fields['value'] = parse_money(data.get('value'), 'valor')
        if fields['value'] <= 0:
            raise ValidationError('El valor de la comisión debe ser mayor a 0.')
    if 'start_date' in data or not partial:
        fields['start_date'] = parse_date(data.get('start_date'), 'fecha de inicio') or date.today()
    if 'end_date' in data:
        fields['end_date'] = parse_date(data.get('end_date'), 'fecha de fin')
    if 'active' in data:
        fields['active'] = bool(data['active'])

    if fields.get('type') == CommissionType.PERCENTAGE and fields.get('value', 0) > 100:
        raise ValidationError('El porcentaje no puede superar 100.')
    return fields


def create_rule(session: Session, ctx: TenantContext, data: dict) -> CommissionRule:
    ctx.require()
    fields = _parse_rule_fields(data)

    with transaction(session):
        product = session.query(Product).filter(
            Product.id == fields['product_id'], *ctx.scope(Product)
        ).first()
        if not product:
            raise NotFoundError('Producto no encontrado.')
        if fields.get('end_date') and fields['end_date'] < fields['start_date']:
            raise ValidationError('La fecha de fin no puede ser anterior a la de inicio.')

        fields.setdefault('active', True)
        rule = CommissionRule(site_id=ctx.site_id, company_id=ctx.company_id, **fields)
        session.add(rule)
        session.flush()

    logger.info(f"Commission rule #{rule.id} created for product #{rule.product_id}")
    return rule


def update_rule(session: Session, ctx: TenantContext, rule_id: int, data: dict) -> CommissionRule:
    ctx.require()
    fields = _parse_rule_fields(data, partial=True)

    with transaction(session):
        rule = session.query(CommissionRule).filter(
            CommissionRule.id == rule_id, *ctx.scope(CommissionRule)
        ).first()
        if not rule:
            raise NotFoundError('Regla de comisión no encontrada.')
        if 'product_id' in fields:
            product = session.query(Product).filter(
                Product.id == fields['product_id'], *ctx.scope(Product)
            ).first()
            if not product:
                raise NotFoundError('Producto no encontrado.')
        for key, value in fields.items():
            setattr(rule, key, value)
        if rule.end_date and rule.end_date < rule.start_date:
            raise ValidationError('La fecha de fin no puede ser anterior a la de inicio.')
        if rule.type == CommissionType.PERCENTAGE and Decimal(str(rule.value)) > 100:
            raise ValidationError('El porcentaje no puede superar 100.')

    return rule


def list_rules(session: Session, ctx: TenantContext, active_only: bool = False) -> List[CommissionRule]:
    query = session.query(CommissionRule).filter(*ctx.scope(CommissionRule))
    if active_only:
        query = query.filter(CommissionRule.active == True)
    return query.order_by(CommissionRule.id.desc()).all()


def serialize_rule(rule: CommissionRule) -> dict:
    return {
        'id': rule.id,
        'product_id': rule.product_id,
        'product_name': rule.product.name if rule.product else None,
        'type': rule.type.value,
        'value': str(rule.value),
        'start_date': rule.start_date.isoformat() if rule.start_date else None,
        'end_date': rule.end_date.isoformat() if rule.end_date else None,
        'active': rule.active,
    }


# =====================================================
# REPORT
# =====================================================

@dataclass
class CommissionReport:
    start: date
    end: date
    records: list
    total: Decimal

    def to_dict(self) -> dict:
        return {
            'start': self.start.isoformat(),
            'end': self.end.isoformat(),
            'total': str(self.total),
            'count': len(self.records),
            'records': [
                {
                    'id': r.id,
                    'sale_id': r.sale_id,
                    'sale_line_id': r.sale_line_id,
                    'product_id': r.product_id,
                    'product_name': r.product.name if r.product else None,
                    'user_id': r.user_id,
                    'amount': str(r.amount),
                    'created_at': r.created_at.isoformat() if r.created_at else None,
                }
                for r in self.records
            ],
        }


def commission_report(session: Session, ctx: TenantContext, start: date, end: date,
                      user_id: Optional[int] = None) -> CommissionReport:
    """Commission records created between `start` and `end` (inclusive)."""
    if end < start:
        raise ValidationError('La fecha de fin no puede ser anterior a la de inicio.')

    filters = [
        *ctx.scope(CommissionRecord),
        CommissionRecord.created_at >= datetime.combine(start, time.min),
        CommissionRecord.created_at < datetime.combine(end + timedelta(days=1), time.min),
    ]
    if user_id:
        filters.append(CommissionRecord.user_id == user_id)

    records = session.query(CommissionRecord).filter(*filters).order_by(CommissionRecord.id).all()
    total = session.query(func.coalesce(func.sum(CommissionRecord.amount), 0)).filter(*filters).scalar()
    return CommissionReport(
        start=start,
        end=end,
        records=records,
        total=Decimal(str(total)).quantize(Decimal('0.01')),
    )
