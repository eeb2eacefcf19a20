"""
Sales service - sale finalization (tenant-scoped).

Completing a sale is split in two:

1. One transaction stamps the sale COMPLETED with its totals, moves the
   client's points (earned and redeemed), consumes redeemable stock and
   bumps product sale counters. Money and points never diverge.
2. Best-effort side effects run afterwards, each on its own: commission
   records, low-stock / large-sale notifications and the `sale_completed`
   signal. Their failures are logged and never undo the sale; missing
   commissions are regenerated by `flask backfill-commissions`.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy import update
from sqlalchemy.orm import Session

from gestionfarma.context import TenantContext
from gestionfarma.database import transaction
from gestionfarma.events import sale_completed
from gestionfarma.exceptions import BusinessLogicError, NotFoundError, ValidationError
from gestionfarma.models import (
    Product, Sale, SaleStatus, SaleLineType, Customer, PaymentMethod, normalize_payment_method
)
from gestionfarma.services import notification_service
from gestionfarma.services.commission_service import generate_commissions_safely
from gestionfarma.services.loyalty_service import apply_loyalty
from gestionfarma.services.sale_draft_service import get_pending_sale
from gestionfarma.services.totals_service import compute_totals, Totals, DEFAULT_TAX_RATE

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = ('boleta', 'factura')


@dataclass
class FinalizedSale:
    sale_id: int
    client_name: str
    payment_method: PaymentMethod
    totals: Totals
    points_earned: int = 0
    points_redeemed: int = 0
    commissions: int = 0

    def to_dict(self) -> dict:
        return {
            'sale_id': self.sale_id,
            'client_name': self.client_name,
            'payment_method': self.payment_method.value,
            'totals': self.totals.to_dict(),
            'points_earned': self.points_earned,
            'points_redeemed': self.points_redeemed,
            'commissions': self.commissions,
        }


def finalize_sale(
    session: Session,
    ctx: TenantContext,
    payment_method='CASH',
    amount_tendered: Optional[Decimal] = None,
    client_id: Optional[int] = None,
    document_type: str = 'boleta',
    tax_rate: Decimal = DEFAULT_TAX_RATE,
    walk_in_name: Optional[str] = None,
    large_sale_threshold: Optional[Decimal] = None
) -> FinalizedSale:
    """
    Complete the user's pending sale.

    Args:
        payment_method: CASH, MOBILE_WALLET, BANK_TRANSFER, OTHER (Spanish labels accepted)
        amount_tendered: Cash handed over; must cover the amount due when given
        client_id: Attach this client before completing (keeps the cart's client if None)
        document_type: 'boleta' or 'factura'
        walk_in_name: Client name for sales without a client (WALK_IN_CLIENT_NAME by default)
        large_sale_threshold: Amount that raises a large-sale alert (LARGE_SALE_THRESHOLD by default)

    Raises:
        BusinessLogicError: empty cart
        ValidationError: bad payment data
        InsufficientPointsError: client balance no longer covers the redemptions
    """
    ctx.require()
    if walk_in_name is None:
        walk_in_name = current_app.config['WALK_IN_CLIENT_NAME']
    try:
        method = normalize_payment_method(payment_method)
    except ValueError as e:
        raise ValidationError(str(e))
    document_type = (document_type or 'boleta').lower()
    if document_type not in DOCUMENT_TYPES:
        raise ValidationError(f'Tipo de comprobante inválido: {document_type}')

    with transaction(session):
        sale = get_pending_sale(session, ctx)
        if not sale or not sale.lines:
            raise BusinessLogicError('El carrito está vacío.')

        if client_id is not None and client_id != sale.client_id:
            client = session.query(Customer).filter(
                Customer.id == client_id, *ctx.scope(Customer)
            ).first()
            if not client:
                raise NotFoundError('Cliente no encontrado.')
            if any(line.line_type == SaleLineType.REDEEMED for line in sale.lines):
                raise BusinessLogicError('Quite los productos canjeados antes de cambiar de cliente.')
            sale.client_id = client.id
            sale.client_name = client.name

        totals = compute_totals(
            sale.lines,
            discount_percent=sale.discount_percent,
            discount_amount=sale.discount_amount,
            payment_method=method,
            amount_tendered=amount_tendered,
            tax_rate=tax_rate,
        )
        if method == PaymentMethod.CASH and amount_tendered and totals.change < 0:
            raise ValidationError('El monto recibido es menor al total a pagar.')

        client = None
        if sale.client_id:
            client = session.query(Customer).filter(
                Customer.id == sale.client_id, *ctx.scope(Customer)
            ).first()
        client_name = client.name if client else walk_in_name

        sale.status = SaleStatus.COMPLETED
        sale.payment_method = method.value
        sale.document_type = document_type
        sale.subtotal = totals.subtotal
        sale.amount_due = totals.amount_due
        sale.amount_tendered = Decimal(str(amount_tendered)) if amount_tendered else None
        sale.change_amount = totals.change
        sale.client_name = client_name
        sale.completed_at = datetime.now()
        session.flush()

        points_earned, points_redeemed = apply_loyalty(session, ctx, sale, totals.amount_due)

        sold_product_ids = []
        for line in sale.lines:
            if line.line_type != SaleLineType.NORMAL:
                continue
            session.execute(
                update(Product)
                .where(Product.id == line.product_id)
                .values(sold_count=Product.sold_count + line.reserved_units)
            )
            if line.product_id not in sold_product_ids:
                sold_product_ids.append(line.product_id)

        sale_id = sale.id

    logger.info(f"Sale #{sale_id} completed: {totals.amount_due} ({method.value}) by user {ctx.user_id}")

    commissions = generate_commissions_safely(session, ctx, sale_id)
    _notify_after_sale(session, ctx, sale_id, sold_product_ids, totals.amount_due, large_sale_threshold)

    try:
        sale_completed.send(ctx, sale_id=sale_id, amount_due=totals.amount_due, payment_method=method)
    except Exception as e:
        logger.error(f"sale_completed listener failed for sale #{sale_id}: {e}", exc_info=True)

    return FinalizedSale(
        sale_id=sale_id,
        client_name=client_name,
        payment_method=method,
        totals=totals,
        points_earned=points_earned,
        points_redeemed=points_redeemed,
        commissions=commissions,
    )


def _notify_after_sale(session: Session, ctx: TenantContext, sale_id: int, product_ids: list,
                       amount_due: Decimal, threshold: Optional[Decimal]) -> None:
    for product_id in product_ids:
        product = session.query(Product).filter(Product.id == product_id, *ctx.scope(Product)).first()
        if product:
            notification_service.notify_low_stock(session, ctx, product)
    notification_service.notify_large_sale(session, ctx, sale_id, amount_due, threshold)


def get_completed_sale(session: Session, ctx: TenantContext, sale_id: int) -> Sale:
    sale = session.query(Sale).filter(
        Sale.id == sale_id,
        *ctx.scope(Sale),
        Sale.status == SaleStatus.COMPLETED
    ).first()
    if not sale:
        raise NotFoundError('Venta no encontrada.')
    return sale


def sale_totals(sale: Sale, tax_rate: Decimal = DEFAULT_TAX_RATE) -> Totals:
    """Recompute the totals breakdown of a stored sale."""
    return compute_totals(
        sale.lines,
        discount_percent=sale.discount_percent,
        discount_amount=sale.discount_amount,
        payment_method=sale.payment_method or PaymentMethod.CASH,
        amount_tendered=sale.amount_tendered,
        tax_rate=tax_rate,
    )
