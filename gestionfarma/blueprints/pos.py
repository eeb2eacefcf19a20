"""POS blueprint - cart, redemptions, finalization and receipts (JSON, tenant-scoped)."""
from datetime import datetime
from typing import Tuple

from flask import Blueprint, request, jsonify, send_file, current_app, g, Response

from gestionfarma.database import get_session
from gestionfarma.exceptions import ValidationError
from gestionfarma.middleware import require_login, require_tenant
from gestionfarma.models import Customer, normalize_payment_method
from gestionfarma.services import sale_draft_service, sales_service
from gestionfarma.services.loyalty_service import list_redeemables, serialize_redeemable
from gestionfarma.services.receipt_service import render_receipt_pdf
from gestionfarma.utils.number_format import parse_int, parse_optional_money

pos_bp = Blueprint('pos', __name__, url_prefix='/pos')


def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


def _cart_response(cart, status: int = 200) -> Tuple[Response, int]:
    return jsonify({
        'status': 'ok',
        'cart': cart.to_dict(tax_rate=current_app.config['TAX_RATE']),
    }), status


def _optional_id(value, field: str):
    if value in (None, '', 'null'):
        return None
    return parse_int(value, field)


@pos_bp.route('/cart', methods=['GET'])
@require_login
@require_tenant
def get_cart():
    """Current cart rebuilt from the pending sale."""
    cart = sale_draft_service.load_cart(get_session(), g.ctx)
    return _cart_response(cart)


@pos_bp.route('/cart/items', methods=['POST'])
@require_login
@require_tenant
def add_item():
    payload = _payload()
    if not payload.get('product_id'):
        raise ValidationError('Falta el ID del producto.')
    product_id = parse_int(payload['product_id'], 'product_id')

    current_app.logger.info(f"[cart_add] {g.ctx.tenant_key} product_id={product_id} qty={payload.get('quantity', 1)}")
    cart = sale_draft_service.add_item(
        get_session(), g.ctx, product_id,
        quantity=payload.get('quantity', 1),
        unit=payload.get('unit') or 'UNIT'
    )
    return _cart_response(cart, 201)


@pos_bp.route('/cart/items/<int:product_id>', methods=['PATCH'])
@require_login
@require_tenant
def update_item(product_id: int):
    """Change quantity and/or sale unit of a line. `unit` selects the line, `new_unit` switches it."""
    payload = _payload()
    db_session = get_session()
    unit = payload.get('unit')
    new_unit = payload.get('new_unit') or None

    if 'quantity' in payload:
        cart = sale_draft_service.update_quantity(
            db_session, g.ctx, product_id, payload['quantity'],
            unit=unit,
            new_unit=new_unit,
            auto_tier=current_app.config.get('POS_AUTO_TIER_PROMOTION', True)
        )
    elif new_unit:
        cart = sale_draft_service.change_unit(db_session, g.ctx, product_id, new_unit, unit=unit)
    else:
        raise ValidationError('Indique la cantidad o la unidad de venta.')
    return _cart_response(cart)


@pos_bp.route('/cart/items/<int:product_id>', methods=['DELETE'])
@require_login
@require_tenant
def remove_item(product_id: int):
    cart = sale_draft_service.remove_item(get_session(), g.ctx, product_id, unit=request.args.get('unit'))
    return _cart_response(cart)


@pos_bp.route('/cart/redeem', methods=['POST'])
@require_login
@require_tenant
def redeem():
    payload = _payload()
    redeemable_id = parse_int(payload.get('redeemable_id'), 'redeemable_id')
    cart = sale_draft_service.redeem_points(get_session(), g.ctx, redeemable_id)
    return _cart_response(cart, 201)


@pos_bp.route('/cart/redeem/<int:line_id>', methods=['DELETE'])
@require_login
@require_tenant
def remove_redeemed(line_id: int):
    cart = sale_draft_service.remove_redeemed(get_session(), g.ctx, line_id)
    return _cart_response(cart)


@pos_bp.route('/cart/client', methods=['POST'])
@require_login
@require_tenant
def select_client():
    client_id = _optional_id(_payload().get('client_id'), 'client_id')
    cart = sale_draft_service.select_client(get_session(), g.ctx, client_id)
    return _cart_response(cart)


@pos_bp.route('/cart/discount', methods=['POST'])
@require_login
@require_tenant
def set_discount():
    payload = _payload()
    cart = sale_draft_service.set_discount(
        get_session(), g.ctx,
        percent=payload.get('percent') or None,
        amount=payload.get('amount') or None
    )
    return _cart_response(cart)


@pos_bp.route('/cart/note', methods=['POST'])
@require_login
@require_tenant
def set_note():
    cart = sale_draft_service.set_receipt_note(get_session(), g.ctx, _payload().get('note'))
    return _cart_response(cart)


@pos_bp.route('/cart/promotion', methods=['POST'])
@require_login
@require_tenant
def set_promotion():
    promotion_id = _optional_id(_payload().get('promotion_id'), 'promotion_id')
    cart = sale_draft_service.set_promotion(get_session(), g.ctx, promotion_id)
    return _cart_response(cart)


@pos_bp.route('/cart/totals', methods=['GET'])
@require_login
@require_tenant
def cart_totals():
    """Totals preview for a payment method and tendered cash (query args)."""
    try:
        method = normalize_payment_method(request.args.get('payment_method'))
    except ValueError as e:
        raise ValidationError(str(e))
    tendered = parse_optional_money(request.args.get('amount_tendered'), 'monto recibido')

    cart = sale_draft_service.load_cart(get_session(), g.ctx)
    totals = cart.totals(method, amount_tendered=tendered, tax_rate=current_app.config['TAX_RATE'])
    return jsonify({'status': 'ok', 'payment_method': method.value, 'totals': totals.to_dict()})


@pos_bp.route('/cart/finalize', methods=['POST'])
@require_login
@require_tenant
def finalize():
    payload = _payload()
    result = sales_service.finalize_sale(
        get_session(), g.ctx,
        payment_method=payload.get('payment_method') or 'CASH',
        amount_tendered=parse_optional_money(payload.get('amount_tendered'), 'monto recibido'),
        client_id=_optional_id(payload.get('client_id'), 'client_id'),
        document_type=payload.get('document_type') or 'boleta',
        tax_rate=current_app.config['TAX_RATE'],
    )
    return jsonify({'status': 'ok', 'category': 'success', 'sale': result.to_dict()}), 201


@pos_bp.route('/cart/cancel', methods=['POST'])
@require_login
@require_tenant
def cancel():
    cart = sale_draft_service.cancel_sale(get_session(), g.ctx)
    return _cart_response(cart)


@pos_bp.route('/sales/<int:sale_id>/receipt.pdf', methods=['GET'])
@require_login
@require_tenant
def receipt_pdf(sale_id: int):
    """Printable receipt of a completed sale."""
    config = current_app.config
    sale = sales_service.get_completed_sale(get_session(), g.ctx, sale_id)
    totals = sales_service.sale_totals(sale, config['TAX_RATE'])

    business_info = {
        'name': config.get('BUSINESS_NAME', 'GestionFarma'),
        'tax_id': config.get('BUSINESS_TAX_ID', ''),
        'address': config.get('BUSINESS_ADDRESS', ''),
        'phone': config.get('BUSINESS_PHONE', ''),
    }
    tax_label = f"{(config['TAX_RATE'] * 100).normalize():f}%"
    pdf_buffer = render_receipt_pdf(
        sale,
        sale.client_name or config['WALK_IN_CLIENT_NAME'],
        totals,
        business_info,
        tax_rate_label=tax_label
    )

    stamp = (sale.completed_at or datetime.now()).strftime('%Y%m%d_%H%M%S')
    return send_file(
        pdf_buffer,
        mimetype='application/pdf',
        as_attachment=request.args.get('download') == '1',
        download_name=f"venta_{sale.id}_{stamp}.pdf"
    )


@pos_bp.route('/redeemables', methods=['GET'])
@require_login
@require_tenant
def redeemables():
    """Redeemable catalog, affordable items first for the cart's client."""
    db_session = get_session()
    client = None
    client_id = _optional_id(request.args.get('client_id'), 'client_id')
    if client_id is None:
        client_id = sale_draft_service.load_cart(db_session, g.ctx).client_id
    if client_id is not None:
        client = db_session.query(Customer).filter(
            Customer.id == client_id, *g.ctx.scope(Customer)
        ).first()

    items = list_redeemables(db_session, g.ctx, client)
    return jsonify({
        'status': 'ok',
        'client_points': client.points if client else 0,
        'items': [serialize_redeemable(item, client) for item in items],
    })
