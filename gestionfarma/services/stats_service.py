"""Header stats - the small counters every open POS screen polls."""
import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from gestionfarma.context import TenantContext
from gestionfarma.models import Product, ProductStock, Sale, SaleStatus
from gestionfarma.services.cache_service import get_cache
from gestionfarma.services.notification_service import count_unread

logger = logging.getLogger(__name__)

CACHE_MODULE = 'stats'


def compute_header_stats(session: Session, ctx: TenantContext, today: Optional[date] = None) -> dict:
    """Today's completed sales, products at or below minimum stock and unread alerts."""
    today = today or date.today()
    start = datetime.combine(today, time.min)
    end = start + timedelta(days=1)

    sales_count, sales_total = session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.amount_due), 0)
    ).filter(
        *ctx.scope(Sale),
        Sale.status == SaleStatus.COMPLETED,
        Sale.completed_at >= start,
        Sale.completed_at < end
    ).one()

    low_stock = session.query(func.count(Product.id)).outerjoin(
        ProductStock, ProductStock.product_id == Product.id
    ).filter(
        *ctx.scope(Product),
        Product.active == True,
        func.coalesce(ProductStock.on_hand_qty, 0) <= Product.min_stock_qty
    ).scalar()

    return {
        'date': today.isoformat(),
        'sales_count': int(sales_count or 0),
        'sales_total': Decimal(str(sales_total)).quantize(Decimal('0.01')),
        'low_stock_count': int(low_stock or 0),
        'unread_notifications': count_unread(session, ctx),
    }


def get_header_stats(session: Session, ctx: TenantContext, ttl: Optional[int] = None) -> dict:
    """Cached header stats for the tenant."""
    return get_cache().memoize(
        ctx.tenant_key,
        CACHE_MODULE,
        f'header:{date.today().isoformat()}',
        lambda: compute_header_stats(session, ctx),
        ttl=ttl
    )


def invalidate_header_stats(ctx: TenantContext) -> None:
    """Drop cached stats (called when a sale completes)."""
    try:
        get_cache().invalidate_module(ctx.tenant_key, CACHE_MODULE)
    except Exception as e:
        logger.warning(f"Could not invalidate stats cache for {ctx.tenant_key}: {e}")


def on_sale_completed(sender, **extra):
    """sale_completed listener; `sender` is the TenantContext of the sale."""
    invalidate_header_stats(sender)
