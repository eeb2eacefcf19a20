"""
Notification Service - in-app alerts (tenant-scoped).

Alerts are fire-and-forget: every creator commits on its own, logs and
swallows its failures, and never creates a second UNREAD alert for the
same (type, reference).
"""
import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional

from flask import current_app
from sqlalchemy.orm import Session

from gestionfarma.context import TenantContext
from gestionfarma.exceptions import NotFoundError
from gestionfarma.models import Notification, NotificationType, NotificationStatus, Product
from gestionfarma.utils.formatters import money_pe, date_pe

logger = logging.getLogger(__name__)


def _has_unread(session: Session, ctx: TenantContext, type_: NotificationType, reference_id: int) -> bool:
    return session.query(Notification.id).filter(
        *ctx.scope(Notification),
        Notification.type == type_,
        Notification.reference_id == reference_id,
        Notification.status == NotificationStatus.UNREAD
    ).first() is not None


def _create_once(session: Session, ctx: TenantContext, type_: NotificationType,
                 reference_id: int, message: str) -> Optional[Notification]:
    """Insert an UNREAD notification unless an identical one is pending."""
    try:
        if _has_unread(session, ctx, type_, reference_id):
            return None
        notification = Notification(
            site_id=ctx.site_id,
            company_id=ctx.company_id,
            type=type_,
            status=NotificationStatus.UNREAD,
            message=message,
            reference_id=reference_id,
        )
        session.add(notification)
        session.commit()
        return notification
    except Exception as e:
        session.rollback()
        logger.error(f"Error creating {type_.value} notification for #{reference_id}: {e}")
        return None


def notify_low_stock(session: Session, ctx: TenantContext, product: Product) -> Optional[Notification]:
    """Alert when on-hand stock is at or below the product's minimum."""
    stock = product.on_hand_qty
    if product.min_stock_qty is None or stock > product.min_stock_qty:
        return None
    message = f'¡Stock bajo! El producto "{product.name}" solo tiene {stock} unidades restantes.'
    return _create_once(session, ctx, NotificationType.LOW_STOCK, product.id, message)


def notify_large_sale(session: Session, ctx: TenantContext, sale_id: int, amount_due: Decimal,
                      threshold: Optional[Decimal] = None) -> Optional[Notification]:
    """Alert on sales of `threshold` (LARGE_SALE_THRESHOLD by default) or more."""
    if threshold is None:
        threshold = current_app.config['LARGE_SALE_THRESHOLD']
    if amount_due is None or Decimal(amount_due) < threshold:
        return None
    message = f'¡Venta grande registrada! Venta N°{sale_id} por un total de {money_pe(amount_due)}.'
    return _create_once(session, ctx, NotificationType.LARGE_SALE, sale_id, message)


def notify_new_client(session: Session, ctx: TenantContext, client) -> Optional[Notification]:
    message = f'Nuevo cliente registrado: {client.name}. ¡Dale la bienvenida!'
    return _create_once(session, ctx, NotificationType.NEW_CLIENT, client.id, message)


def check_product_expirations(session: Session, ctx: TenantContext, days: Optional[int] = None,
                              today: Optional[date] = None) -> int:
    """
    Scan products expired or expiring within `days` and alert once per product.

    Returns:
        Number of notifications created
    """
    if days is None:
        days = current_app.config['EXPIRING_DAYS']
    today = today or date.today()
    limit = today + timedelta(days=days)
    created = 0

    try:
        products = session.query(Product).filter(
            *ctx.scope(Product),
            Product.expiration_date.isnot(None),
            Product.expiration_date <= limit
        ).order_by(Product.expiration_date).all()
    except Exception as e:
        session.rollback()
        logger.error(f"Error checking product expirations for {ctx.tenant_key}: {e}")
        return 0

    for product in products:
        if product.expiration_date < today:
            type_ = NotificationType.EXPIRED_PRODUCT
            message = (f'¡Producto vencido! "{product.name}" expiró el '
                       f'{date_pe(product.expiration_date)}. Retirar de stock.')
        else:
            type_ = NotificationType.EXPIRING_PRODUCT
            remaining = (product.expiration_date - today).days
            message = f'El producto "{product.name}" vence en {remaining} día(s).'
        if _create_once(session, ctx, type_, product.id, message):
            created += 1

    if created:
        logger.info(f"[EXPIRATIONS] {created} notifications created for {ctx.tenant_key}")
    return created


def list_notifications(session: Session, ctx: TenantContext, unread_only: bool = True,
                       limit: int = 50) -> List[Notification]:
    query = session.query(Notification).filter(*ctx.scope(Notification))
    if unread_only:
        query = query.filter(Notification.status == NotificationStatus.UNREAD)
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def count_unread(session: Session, ctx: TenantContext) -> int:
    return session.query(Notification).filter(
        *ctx.scope(Notification),
        Notification.status == NotificationStatus.UNREAD
    ).count()


def mark_read(session: Session, ctx: TenantContext, notification_id: int) -> Notification:
    notification = session.query(Notification).filter(
        Notification.id == notification_id,
        *ctx.scope(Notification)
    ).first()
    if not notification:
        raise NotFoundError('Notificación no encontrada.')
    notification.status = NotificationStatus.READ
    session.commit()
    return notification


def mark_all_read(session: Session, ctx: TenantContext) -> int:
    count = session.query(Notification).filter(
        *ctx.scope(Notification),
        Notification.status == NotificationStatus.UNREAD
    ).update({Notification.status: NotificationStatus.READ}, synchronize_session=False)
    session.commit()
    return count


def serialize_notification(notification: Notification) -> dict:
    return {
        'id': notification.id,
        'type': notification.type.value,
        'status': notification.status.value,
        'message': notification.message,
        'reference_id': notification.reference_id,
        'created_at': notification.created_at.isoformat() if notification.created_at else None,
    }
