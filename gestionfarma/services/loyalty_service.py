"""
Loyalty Service - points accrual, redemption catalog and redemption audit.

Point balances only move inside a transaction that also completes a sale
(or records a direct redemption), and every decrement is a conditional
UPDATE so a balance cannot go below zero.
"""
import logging
from datetime import date, datetime
from decimal import Decimal, ROUND_FLOOR
from typing import List, Optional, Tuple

from sqlalchemy import update, or_
from sqlalchemy.orm import Session

from gestionfarma.context import TenantContext
from gestionfarma.database import transaction
from gestionfarma.exceptions import BusinessLogicError, InsufficientPointsError, NotFoundError
from gestionfarma.models import (
    Customer, Promotion, RedeemableProduct, RedeemableStatus, RedemptionHistory,
    Sale, SaleLineType
)

logger = logging.getLogger(__name__)


def active_promotions(session: Session, ctx: TenantContext, on_day: Optional[date] = None) -> List[Promotion]:
    on_day = on_day or date.today()
    return session.query(Promotion).filter(
        *ctx.scope(Promotion),
        Promotion.active == True,
        Promotion.start_date <= on_day,
        or_(Promotion.end_date.is_(None), Promotion.end_date >= on_day)
    ).order_by(Promotion.start_date.desc()).all()


def points_multiplier(session: Session, ctx: TenantContext, promotion_id: Optional[int],
                      on_day: Optional[date] = None) -> Decimal:
    """Multiplier of the chosen promotion; 1 when none is chosen or it is not running."""
    if not promotion_id:
        return Decimal('1')
    promotion = session.query(Promotion).filter(
        Promotion.id == promotion_id, *ctx.scope(Promotion)
    ).first()
    if not promotion or not promotion.is_active_on(on_day or date.today()):
        return Decimal('1')
    return Decimal(str(promotion.multiplier))


def points_to_earn(amount_due: Decimal, multiplier: Decimal = Decimal('1')) -> int:
    """floor(amount paid x multiplier)."""
    points = (Decimal(str(amount_due)) * Decimal(str(multiplier))).to_integral_value(rounding=ROUND_FLOOR)
    return max(int(points), 0)


def list_redeemables(session: Session, ctx: TenantContext, client: Optional[Customer] = None,
                     on_day: Optional[date] = None) -> List[RedeemableProduct]:
    """
    Redeemable products of running promotions with stock left.

    With a client, the ones they can afford come first; then by points cost.
    """
    on_day = on_day or date.today()
    promotion_ids = [p.id for p in active_promotions(session, ctx, on_day)]
    if not promotion_ids:
        return []

    items = session.query(RedeemableProduct).filter(
        *ctx.scope(RedeemableProduct),
        RedeemableProduct.promotion_id.in_(promotion_ids),
        RedeemableProduct.stock > 0
    ).all()

    balance = client.points if client else None
    return sorted(
        items,
        key=lambda item: (balance is not None and item.points_required > balance, item.points_required, item.id)
    )


def _take_points(session: Session, client: Customer, spent: int, earned: int = 0) -> None:
    """Apply a points movement; fails if the balance cannot cover `spent`."""
    result = session.execute(
        update(Customer)
        .where(Customer.id == client.id, Customer.points >= spent)
        .values(points=Customer.points - spent + earned)
    )
    if result.rowcount != 1:
        session.refresh(client)
        raise InsufficientPointsError(client.name, spent, client.points)


def _take_redeemable_unit(session: Session, redeemable: RedeemableProduct) -> None:
    result = session.execute(
        update(RedeemableProduct)
        .where(RedeemableProduct.id == redeemable.id, RedeemableProduct.stock >= 1)
        .values(stock=RedeemableProduct.stock - 1)
    )
    if result.rowcount != 1:
        raise BusinessLogicError(f'"{redeemable.name}" está agotado.')
    session.execute(
        update(RedeemableProduct)
        .where(RedeemableProduct.id == redeemable.id, RedeemableProduct.stock <= 0)
        .values(status=RedeemableStatus.EXHAUSTED)
    )


def _record_redemption(session: Session, ctx: TenantContext, client: Customer,
                       redeemable: RedeemableProduct, points: int, sale_id: Optional[int] = None) -> RedemptionHistory:
    entry = RedemptionHistory(
        site_id=ctx.site_id,
        company_id=ctx.company_id,
        client_id=client.id,
        redeemable_product_id=redeemable.id,
        sale_id=sale_id,
        product_name=redeemable.name,
        points_used=points,
        user_id=ctx.user_id,
        created_at=datetime.now(),
    )
    session.add(entry)
    return entry


def apply_loyalty(session: Session, ctx: TenantContext, sale: Sale, amount_due: Decimal) -> Tuple[int, int]:
    """
    Earn and redeem points for a sale being completed. Does not commit.

    new balance = balance + floor(amount_due x multiplier) - points of redeemed lines

    Returns:
        (points_earned, points_redeemed)

    Raises:
        InsufficientPointsError: balance no longer covers the redemptions
    """
    if not sale.client_id:
        return 0, 0

    client = session.query(Customer).filter(
        Customer.id == sale.client_id, *ctx.scope(Customer)
    ).first()
    if not client:
        raise NotFoundError('Cliente no encontrado.')

    redeemed_lines = [line for line in sale.lines if line.line_type == SaleLineType.REDEEMED]
    redeemed = sum(line.points_cost for line in redeemed_lines)
    earned = points_to_earn(amount_due, points_multiplier(session, ctx, sale.promotion_id))

    _take_points(session, client, redeemed, earned)

    for line in redeemed_lines:
        redeemable = line.redeemable_product
        if redeemable is None:
            raise NotFoundError(f'Producto canjeable "{line.product_name}" no encontrado.')
        _take_redeemable_unit(session, redeemable)
        _record_redemption(session, ctx, client, redeemable, line.points_cost, sale.id)

    sale.points_earned = earned
    sale.points_redeemed = redeemed
    session.flush()

    logger.info(f"Sale #{sale.id}: client #{client.id} +{earned} -{redeemed} points")
    return earned, redeemed


def redeem_directly(session: Session, ctx: TenantContext, client_id: int, redeemable_id: int) -> RedemptionHistory:
    """
    Exchange points for a redeemable product outside of a sale.

    Points, redeemable stock and the audit row are written in one transaction.
    """
    ctx.require()

    with transaction(session):
        client = session.query(Customer).filter(
            Customer.id == client_id, *ctx.scope(Customer)
        ).first()
        if not client:
            raise NotFoundError('Cliente no encontrado.')
        redeemable = session.query(RedeemableProduct).filter(
            RedeemableProduct.id == redeemable_id, *ctx.scope(RedeemableProduct)
        ).first()
        if not redeemable:
            raise NotFoundError('Producto canjeable no encontrado.')
        if redeemable.status == RedeemableStatus.EXHAUSTED or redeemable.stock <= 0:
            raise BusinessLogicError(f'"{redeemable.name}" está agotado.')
        if client.points < redeemable.points_required:
            raise InsufficientPointsError(client.name, redeemable.points_required, client.points)

        _take_points(session, client, redeemable.points_required)
        _take_redeemable_unit(session, redeemable)
        entry = _record_redemption(session, ctx, client, redeemable, redeemable.points_required)
        session.flush()

    logger.info(f"Client #{client_id} redeemed '{entry.product_name}' for {entry.points_used} points")
    return entry


def redemption_history(session: Session, ctx: TenantContext, client_id: int) -> List[RedemptionHistory]:
    return session.query(RedemptionHistory).filter(
        *ctx.scope(RedemptionHistory),
        RedemptionHistory.client_id == client_id
    ).order_by(RedemptionHistory.id.desc()).all()


def serialize_redeemable(item: RedeemableProduct, client: Optional[Customer] = None) -> dict:
    return {
        'id': item.id,
        'name': item.name,
        'points_required': item.points_required,
        'stock': item.stock,
        'status': item.status.value,
        'promotion_id': item.promotion_id,
        'affordable': client.points >= item.points_required if client else None,
    }


def serialize_redemption(entry: RedemptionHistory) -> dict:
    return {
        'id': entry.id,
        'client_id': entry.client_id,
        'redeemable_product_id': entry.redeemable_product_id,
        'sale_id': entry.sale_id,
        'product_name': entry.product_name,
        'points_used': entry.points_used,
        'created_at': entry.created_at.isoformat() if entry.created_at else None,
    }
