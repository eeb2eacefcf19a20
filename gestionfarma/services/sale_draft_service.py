"""
Sale Draft Service - the POS cart engine (tenant-scoped).

The cart is the set of lines of the single PENDING sale owned by the
current user in the current (site, company). Every mutation reserves or
releases product stock with a conditional UPDATE and writes the sale
lines in the same database transaction, so stock and cart never drift.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import List, Optional, Union

from sqlalchemy import update
from sqlalchemy.orm import Session

from gestionfarma.context import TenantContext
from gestionfarma.database import transaction
from gestionfarma.exceptions import (
    BusinessLogicError, NotFoundError, ValidationError,
    InsufficientStockError, InsufficientPointsError
)
from gestionfarma.models import (
    Product, ProductStock, Sale, SaleLine, SaleStatus, SaleLineType, SaleUnit,
    Customer, Promotion, RedeemableProduct, PaymentMethod
)
from gestionfarma.services.totals_service import compute_totals, line_subtotal, DEFAULT_TAX_RATE

logger = logging.getLogger(__name__)


# =====================================================
# CART VIEW
# =====================================================

@dataclass
class NormalCartLine:
    """A sale of inventory: reserves quantity x units_per_selection base units."""
    line_id: int
    product_id: int
    product_name: str
    unit: SaleUnit
    quantity: int
    units_per_selection: int
    unit_price: Decimal
    subtotal: Decimal
    units_available: List[SaleUnit] = field(default_factory=list)

    @property
    def reserved_units(self) -> int:
        return self.quantity * self.units_per_selection

    def to_dict(self) -> dict:
        return {
            'type': SaleLineType.NORMAL.value,
            'line_id': self.line_id,
            'product_id': self.product_id,
            'product_name': self.product_name,
            'unit': self.unit.value,
            'quantity': self.quantity,
            'units_per_selection': self.units_per_selection,
            'unit_price': str(self.unit_price),
            'subtotal': str(self.subtotal),
            'units_available': [u.value for u in self.units_available],
        }


@dataclass
class RedeemedCartLine:
    """A loyalty redemption: free, costs points at completion."""
    line_id: int
    redeemable_product_id: int
    product_name: str
    points_cost: int
    quantity: int = 1
    unit_price: Decimal = Decimal('0.00')
    subtotal: Decimal = Decimal('0.00')

    def to_dict(self) -> dict:
        return {
            'type': SaleLineType.REDEEMED.value,
            'line_id': self.line_id,
            'redeemable_product_id': self.redeemable_product_id,
            'product_name': self.product_name,
            'points_cost': self.points_cost,
            'quantity': self.quantity,
            'unit_price': str(self.unit_price),
            'subtotal': str(self.subtotal),
        }


CartLine = Union[NormalCartLine, RedeemedCartLine]


@dataclass
class Cart:
    """In-memory reflection of the pending sale."""
    sale_id: Optional[int] = None
    lines: List[CartLine] = field(default_factory=list)
    client_id: Optional[int] = None
    client_name: Optional[str] = None
    client_points: int = 0
    discount_percent: Decimal = Decimal('0')
    discount_amount: Decimal = Decimal('0.00')
    promotion_id: Optional[int] = None
    receipt_note: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def normal_lines(self) -> List[NormalCartLine]:
        return [line for line in self.lines if isinstance(line, NormalCartLine)]

    @property
    def redeemed_lines(self) -> List[RedeemedCartLine]:
        return [line for line in self.lines if isinstance(line, RedeemedCartLine)]

    @property
    def points_to_redeem(self) -> int:
        return sum(line.points_cost for line in self.redeemed_lines)

    def find_line(self, product_id: int, unit: Optional[SaleUnit] = None) -> Optional[NormalCartLine]:
        for line in self.normal_lines:
            if line.product_id == product_id and (unit is None or line.unit == unit):
                return line
        return None

    def totals(self, payment_method=PaymentMethod.CASH, amount_tendered=None, tax_rate=DEFAULT_TAX_RATE):
        return compute_totals(
            self.lines,
            discount_percent=self.discount_percent,
            discount_amount=self.discount_amount,
            payment_method=payment_method,
            amount_tendered=amount_tendered,
            tax_rate=tax_rate,
        )

    def to_dict(self, payment_method=PaymentMethod.CASH, tax_rate=DEFAULT_TAX_RATE) -> dict:
        return {
            'sale_id': self.sale_id,
            'lines': [line.to_dict() for line in self.lines],
            'client': {
                'id': self.client_id,
                'name': self.client_name,
                'points': self.client_points,
            } if self.client_id else None,
            'discount_percent': str(self.discount_percent),
            'discount_amount': str(self.discount_amount),
            'promotion_id': self.promotion_id,
            'receipt_note': self.receipt_note,
            'points_to_redeem': self.points_to_redeem,
            'totals': self.totals(payment_method, tax_rate=tax_rate).to_dict(),
        }


# =====================================================
# PENDING SALE
# =====================================================

def get_pending_sale(session: Session, ctx: TenantContext) -> Optional[Sale]:
    """Return the user's PENDING sale in this tenant, if any."""
    ctx.require()
    return session.query(Sale).filter(
        *ctx.scope(Sale),
        Sale.user_id == ctx.user_id,
        Sale.status == SaleStatus.PENDING
    ).order_by(Sale.id.desc()).first()


def find_or_create_pending_sale(session: Session, ctx: TenantContext) -> Sale:
    """
    Get the existing PENDING sale or create an empty one.
    One pending sale per user per tenant.
    """
    sale = get_pending_sale(session, ctx)
    if sale:
        return sale

    sale = Sale(
        site_id=ctx.site_id,
        company_id=ctx.company_id,
        user_id=ctx.user_id,
        username=ctx.username,
        status=SaleStatus.PENDING,
        payment_method=PaymentMethod.CASH.value,
        subtotal=Decimal('0.00'),
        amount_due=Decimal('0.00'),
        discount_percent=Decimal('0'),
        discount_amount=Decimal('0.00'),
    )
    session.add(sale)
    session.flush()
    logger.info(f"Pending sale #{sale.id} created for user {ctx.user_id} ({ctx.tenant_key})")
    return sale


def _require_pending_sale(session: Session, ctx: TenantContext) -> Sale:
    sale = get_pending_sale(session, ctx)
    if not sale:
        raise NotFoundError('No hay una venta en curso.')
    return sale


def _find_line(sale: Sale, product_id: int, unit: Optional[SaleUnit] = None) -> Optional[SaleLine]:
    for line in sale.lines:
        if line.line_type != SaleLineType.NORMAL or line.product_id != product_id:
            continue
        if unit is None or line.unit == unit:
            return line
    return None


def _get_product(session: Session, ctx: TenantContext, product_id: int, require_active: bool = True) -> Product:
    product = session.query(Product).filter(
        Product.id == product_id,
        *ctx.scope(Product)
    ).first()
    if not product:
        raise NotFoundError('Producto no encontrado.')
    if require_active and not product.active:
        raise BusinessLogicError(f'El producto "{product.name}" no está activo.')
    return product


def _parse_unit(value) -> SaleUnit:
    try:
        return SaleUnit.parse(value)
    except ValueError as e:
        raise ValidationError(str(e))


def _parse_quantity(value, allow_non_positive: bool = False) -> int:
    try:
        qty = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError('Cantidad inválida.')
    if qty != qty.to_integral_value():
        raise ValidationError('La cantidad debe ser un número entero.')
    if qty <= 0 and not allow_non_positive:
        raise ValidationError('La cantidad debe ser mayor a 0.')
    return int(qty)


# =====================================================
# STOCK
# =====================================================

def current_stock(session: Session, product_id: int) -> int:
    """On-hand base units straight from the database."""
    qty = session.query(ProductStock.on_hand_qty).filter(
        ProductStock.product_id == product_id
    ).scalar()
    return qty or 0


def reserve_stock(session: Session, product: Product, units: int, required: int = None, reserved: int = 0) -> None:
    """
    Atomically take `units` base units out of stock.

    The decrement only applies while on_hand_qty >= units, so two registers
    racing for the last unit cannot both win.

    Raises:
        InsufficientStockError: reporting `required` against what this line
            could use (current stock plus what it already holds)
    """
    if units <= 0:
        return
    result = session.execute(
        update(ProductStock)
        .where(ProductStock.product_id == product.id, ProductStock.on_hand_qty >= units)
        .values(on_hand_qty=ProductStock.on_hand_qty - units)
    )
    if result.rowcount != 1:
        available = current_stock(session, product.id) + reserved
        raise InsufficientStockError(product.name, required if required is not None else units, available)


def release_stock(session: Session, product_id: int, units: int) -> None:
    """Return `units` base units to stock."""
    if units <= 0:
        return
    session.execute(
        update(ProductStock)
        .where(ProductStock.product_id == product_id)
        .values(on_hand_qty=ProductStock.on_hand_qty + units)
    )


def _set_line_quantity(session: Session, product: Product, line: SaleLine, quantity: int,
                       unit: Optional[SaleUnit] = None) -> None:
    """Re-reserve stock for a line moving to `quantity` (and optionally a new tier)."""
    target_unit = unit or line.unit
    factor = product.units_per(target_unit)
    required = quantity * factor
    reserved = line.reserved_units
    delta = required - reserved

    if delta > 0:
        reserve_stock(session, product, delta, required=required, reserved=reserved)
    elif delta < 0:
        release_stock(session, product.id, -delta)

    if unit is not None and unit != line.unit:
        line.unit = unit
        line.unit_price = product.price_for(unit)
    line.quantity = quantity
    line.units_per_selection = factor
    line.subtotal = line_subtotal(quantity, line.unit_price)


def _check_unit_change(sale: Sale, product: Product, new_unit: SaleUnit) -> None:
    if _find_line(sale, product.id, new_unit) is not None:
        raise BusinessLogicError(f'El producto ya está en el carrito como {new_unit.value}.')
    if new_unit not in product.available_units():
        raise ValidationError(f'"{product.name}" no se vende por {new_unit.value}.')


def _delete_line(session: Session, sale: Sale, line: SaleLine) -> None:
    if line.line_type == SaleLineType.NORMAL:
        release_stock(session, line.product_id, line.reserved_units)
    sale.lines.remove(line)
    session.flush()


# =====================================================
# CART OPERATIONS
# =====================================================

def load_cart(session: Session, ctx: TenantContext) -> Cart:
    """
    Rebuild the cart from the persisted pending sale.

    Normal lines are resolved against current products (for the units they
    can switch to), redeemed lines keep their snapshot. The client is taken
    from the sale, falling back on the stored client name.
    """
    sale = get_pending_sale(session, ctx)
    if not sale:
        return Cart()

    lines: List[CartLine] = []
    for row in sale.lines:
        if row.line_type == SaleLineType.REDEEMED:
            lines.append(RedeemedCartLine(
                line_id=row.id,
                redeemable_product_id=row.redeemable_product_id,
                product_name=row.product_name,
                points_cost=row.points_cost,
                quantity=row.quantity,
            ))
        else:
            product = row.product
            lines.append(NormalCartLine(
                line_id=row.id,
                product_id=row.product_id,
                product_name=product.name if product else row.product_name,
                unit=row.unit,
                quantity=row.quantity,
                units_per_selection=row.units_per_selection,
                unit_price=Decimal(row.unit_price),
                subtotal=Decimal(row.subtotal),
                units_available=product.available_units() if product else [row.unit],
            ))

    client = None
    if sale.client_id:
        client = sale.client
    elif sale.client_name:
        client = session.query(Customer).filter(
            *ctx.scope(Customer),
            Customer.name == sale.client_name
        ).first()

    return Cart(
        sale_id=sale.id,
        lines=lines,
        client_id=client.id if client else None,
        client_name=client.name if client else None,
        client_points=client.points if client else 0,
        discount_percent=Decimal(sale.discount_percent or 0),
        discount_amount=Decimal(sale.discount_amount or 0),
        promotion_id=sale.promotion_id,
        receipt_note=sale.receipt_note,
    )


def add_item(session: Session, ctx: TenantContext, product_id: int, quantity=1,
             unit=SaleUnit.UNIT) -> Cart:
    """
    Add a product to the cart.

    A line already holding the same (product, unit) is merged by raising its
    quantity. New lines are priced at the unit price for UNIT and at 0 for
    packaged tiers until the unit is changed explicitly.

    Raises:
        ValidationError: quantity is not a positive integer or the product has no price for `unit`
        InsufficientStockError: not enough stock; nothing is changed
    """
    ctx.require()
    quantity = _parse_quantity(quantity)
    unit = _parse_unit(unit)

    with transaction(session):
        sale = find_or_create_pending_sale(session, ctx)
        product = _get_product(session, ctx, product_id)
        if unit != SaleUnit.UNIT and unit not in product.available_units():
            raise ValidationError(f'"{product.name}" no se vende por {unit.value}.')

        line = _find_line(sale, product.id, unit)
        if line:
            _set_line_quantity(session, product, line, line.quantity + quantity)
        else:
            factor = product.units_per(unit)
            reserve_stock(session, product, quantity * factor)
            price = product.price_for(SaleUnit.UNIT) if unit == SaleUnit.UNIT else Decimal('0.00')
            sale.lines.append(SaleLine(
                site_id=ctx.site_id,
                company_id=ctx.company_id,
                line_type=SaleLineType.NORMAL,
                product_id=product.id,
                product_name=product.name,
                unit=unit,
                quantity=quantity,
                units_per_selection=factor,
                unit_price=price,
                subtotal=line_subtotal(quantity, price),
                points_cost=0,
            ))
        session.flush()

    return load_cart(session, ctx)


def update_quantity(session: Session, ctx: TenantContext, product_id: int, quantity,
                    unit=None, auto_tier: bool = True, new_unit=None) -> Cart:
    """
    Set the quantity of a cart line; anything below 1 removes it.

    With `new_unit` the line also switches tier, in the same transaction: a
    rejected quantity leaves both unit and quantity as they were.

    With `auto_tier`, a UNIT line whose new quantity equals a priced packaging
    size (package, then box, then blister) becomes 1 x that tier at its price.

    Raises:
        NotFoundError: no such line in the cart
        ValidationError: `new_unit` is not sold for this product
        InsufficientStockError: the line keeps its previous quantity
    """
    ctx.require()
    quantity = _parse_quantity(quantity, allow_non_positive=True)
    unit = _parse_unit(unit) if unit is not None else None
    new_unit = _parse_unit(new_unit) if new_unit is not None else None
    if quantity < 1:
        return remove_item(session, ctx, product_id, unit)

    with transaction(session):
        sale = _require_pending_sale(session, ctx)
        line = _find_line(sale, product_id, unit)
        if not line:
            raise NotFoundError('El producto no está en el carrito.')
        product = _get_product(session, ctx, product_id, require_active=False)

        if new_unit == line.unit:
            new_unit = None
        if new_unit is not None:
            _check_unit_change(sale, product, new_unit)

        tier = None
        if new_unit is None and auto_tier and line.unit == SaleUnit.UNIT:
            tier = product.tier_for_quantity(quantity)
            if tier is not None and _find_line(sale, product.id, tier) is not None:
                tier = None

        if tier is not None:
            logger.info(f"Sale #{sale.id}: {quantity} x {product.name} promoted to 1 {tier.value}")
            _set_line_quantity(session, product, line, 1, unit=tier)
        else:
            _set_line_quantity(session, product, line, quantity, unit=new_unit)
        session.flush()

    return load_cart(session, ctx)


def change_unit(session: Session, ctx: TenantContext, product_id: int, new_unit, unit=None) -> Cart:
    """
    Switch a line to another sale-unit tier keeping its quantity.

    Stock is re-reserved for the new size and the line takes the tier price.
    """
    ctx.require()
    new_unit = _parse_unit(new_unit)
    unit = _parse_unit(unit) if unit is not None else None

    with transaction(session):
        sale = _require_pending_sale(session, ctx)
        line = _find_line(sale, product_id, unit)
        if not line:
            raise NotFoundError('El producto no está en el carrito.')
        if line.unit != new_unit:
            product = _get_product(session, ctx, product_id, require_active=False)
            _check_unit_change(sale, product, new_unit)
            _set_line_quantity(session, product, line, line.quantity, unit=new_unit)
            session.flush()

    return load_cart(session, ctx)


def remove_item(session: Session, ctx: TenantContext, product_id: int, unit=None) -> Cart:
    """Remove a product line and give its stock back."""
    ctx.require()
    unit = _parse_unit(unit) if unit is not None else None

    with transaction(session):
        sale = _require_pending_sale(session, ctx)
        line = _find_line(sale, product_id, unit)
        if not line:
            raise NotFoundError('El producto no está en el carrito.')
        _delete_line(session, sale, line)

    return load_cart(session, ctx)


def remove_redeemed(session: Session, ctx: TenantContext, line_id: int) -> Cart:
    """Drop a redemption line. Points were never deducted, so nothing to give back."""
    ctx.require()

    with transaction(session):
        sale = _require_pending_sale(session, ctx)
        line = next((l for l in sale.lines if l.id == line_id and l.line_type == SaleLineType.REDEEMED), None)
        if not line:
            raise NotFoundError('El canje no está en el carrito.')
        _delete_line(session, sale, line)

    return load_cart(session, ctx)


def redeem_points(session: Session, ctx: TenantContext, redeemable_id: int) -> Cart:
    """
    Add a redeemable product paid with the selected client's points.

    Points and the redeemable stock are only touched when the sale is
    completed.

    Raises:
        ValidationError: no client selected
        InsufficientPointsError: client balance below the item's cost
    """
    ctx.require()

    with transaction(session):
        sale = get_pending_sale(session, ctx)
        if not sale or not sale.client_id:
            raise ValidationError('Seleccione un cliente para canjear puntos.')
        client = session.query(Customer).filter(
            Customer.id == sale.client_id,
            *ctx.scope(Customer)
        ).first()
        if not client:
            raise NotFoundError('Cliente no encontrado.')

        redeemable = session.query(RedeemableProduct).filter(
            RedeemableProduct.id == redeemable_id,
            *ctx.scope(RedeemableProduct)
        ).first()
        if not redeemable:
            raise NotFoundError('Producto canjeable no encontrado.')
        if redeemable.stock <= 0:
            raise BusinessLogicError(f'"{redeemable.name}" está agotado.')
        if client.points < redeemable.points_required:
            raise InsufficientPointsError(client.name, redeemable.points_required, client.points)

        sale.lines.append(SaleLine(
            site_id=ctx.site_id,
            company_id=ctx.company_id,
            line_type=SaleLineType.REDEEMED,
            redeemable_product_id=redeemable.id,
            product_name=redeemable.name,
            unit=SaleUnit.UNIT,
            quantity=1,
            units_per_selection=1,
            unit_price=Decimal('0.00'),
            subtotal=Decimal('0.00'),
            points_cost=redeemable.points_required,
        ))
        session.flush()

    return load_cart(session, ctx)


def select_client(session: Session, ctx: TenantContext, client_id: Optional[int]) -> Cart:
    """Attach a client to the pending sale (None goes back to walk-in)."""
    ctx.require()

    with transaction(session):
        sale = find_or_create_pending_sale(session, ctx)
        client = None
        if client_id is not None:
            client = session.query(Customer).filter(
                Customer.id == client_id,
                *ctx.scope(Customer)
            ).first()
            if not client:
                raise NotFoundError('Cliente no encontrado.')

        new_client_id = client.id if client else None
        has_redemptions = any(line.line_type == SaleLineType.REDEEMED for line in sale.lines)
        if new_client_id != sale.client_id and has_redemptions:
            raise BusinessLogicError('Quite los productos canjeados antes de cambiar de cliente.')

        sale.client_id = new_client_id
        sale.client_name = client.name if client else None

    return load_cart(session, ctx)


def set_discount(session: Session, ctx: TenantContext, percent=None, amount=None) -> Cart:
    """
    Set the sale discount as a percentage or as a fixed amount.

    The two are exclusive: setting one resets the other to 0. Passing
    neither clears the discount.
    """
    ctx.require()
    try:
        percent = Decimal(str(percent or 0))
        amount = Decimal(str(amount or 0)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError):
        raise ValidationError('Descuento inválido.')

    if percent < 0 or percent > 100:
        raise ValidationError('El descuento debe estar entre 0 y 100%.')
    if amount < 0:
        raise ValidationError('El monto de descuento no puede ser negativo.')
    if percent > 0 and amount > 0:
        raise ValidationError('Use un descuento porcentual o un monto fijo, no ambos.')

    with transaction(session):
        sale = find_or_create_pending_sale(session, ctx)
        if amount > 0:
            sale.discount_amount = amount
            sale.discount_percent = Decimal('0')
        else:
            sale.discount_percent = percent
            sale.discount_amount = Decimal('0.00')

    return load_cart(session, ctx)


def set_receipt_note(session: Session, ctx: TenantContext, note: Optional[str]) -> Cart:
    """Free text printed at the bottom of the receipt."""
    ctx.require()
    note = (note or '').strip()[:500] or None

    with transaction(session):
        sale = find_or_create_pending_sale(session, ctx)
        sale.receipt_note = note

    return load_cart(session, ctx)


def set_promotion(session: Session, ctx: TenantContext, promotion_id: Optional[int]) -> Cart:
    """Choose the promotion whose multiplier applies to points earned."""
    ctx.require()

    with transaction(session):
        sale = find_or_create_pending_sale(session, ctx)
        if promotion_id is None:
            sale.promotion_id = None
        else:
            promotion = session.query(Promotion).filter(
                Promotion.id == promotion_id,
                *ctx.scope(Promotion)
            ).first()
            if not promotion:
                raise NotFoundError('Promoción no encontrada.')
            if not promotion.is_active_on(date.today()):
                raise BusinessLogicError(f'La promoción "{promotion.name}" no está vigente.')
            sale.promotion_id = promotion.id

    return load_cart(session, ctx)


def cancel_sale(session: Session, ctx: TenantContext) -> Cart:
    """
    Abort the pending sale: return every reserved unit to stock and mark
    the sale CANCELLED with zero totals. No-op when there is no pending sale.
    """
    ctx.require()

    with transaction(session):
        sale = get_pending_sale(session, ctx)
        if not sale:
            return Cart()
        for line in sale.lines:
            if line.line_type == SaleLineType.NORMAL:
                release_stock(session, line.product_id, line.reserved_units)
        sale.status = SaleStatus.CANCELLED
        sale.subtotal = Decimal('0.00')
        sale.amount_due = Decimal('0.00')
        sale.discount_percent = Decimal('0')
        sale.discount_amount = Decimal('0.00')
        sale_id = sale.id

    logger.info(f"Sale #{sale_id} cancelled by user {ctx.user_id}")
    return Cart()
