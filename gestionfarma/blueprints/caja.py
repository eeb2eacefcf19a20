"""Caja blueprint - cash register sessions (JSON, tenant-scoped)."""
from flask import Blueprint, request, jsonify, g

from gestionfarma.database import get_session
from gestionfarma.middleware import require_login, require_tenant
from gestionfarma.services import register_service
from gestionfarma.utils.number_format import parse_money, parse_optional_money

caja_bp = Blueprint('caja', __name__, url_prefix='/caja')


def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


@caja_bp.route('/current', methods=['GET'])
@require_login
@require_tenant
def current():
    """The user's open register with its running summary (null if none)."""
    db_session = get_session()
    register = register_service.get_open_register(db_session, g.ctx)
    if not register:
        return jsonify({'status': 'ok', 'register': None})

    summary = register_service.compute_summary(db_session, g.ctx, register)
    return jsonify({
        'status': 'ok',
        'register': register_service.serialize_register(register),
        'summary': summary.to_dict(),
    })


@caja_bp.route('/open', methods=['POST'])
@require_login
@require_tenant
def open_register():
    opening_float = parse_money(_payload().get('opening_float', '0'), 'monto inicial')
    register = register_service.open_register(get_session(), g.ctx, opening_float)
    return jsonify({
        'status': 'ok',
        'category': 'success',
        'message': 'Caja abierta.',
        'register': register_service.serialize_register(register),
    }), 201


@caja_bp.route('/<int:register_id>/summary', methods=['GET'])
@require_login
@require_tenant
def summary(register_id: int):
    """System totals; with ?physical_cash= also previews the difference."""
    db_session = get_session()
    register = register_service.get_register(db_session, g.ctx, register_id)
    result = register_service.compute_summary(db_session, g.ctx, register)

    data = {
        'status': 'ok',
        'register': register_service.serialize_register(register),
        'summary': result.to_dict(),
    }
    physical_cash = parse_optional_money(request.args.get('physical_cash'), 'efectivo contado')
    if physical_cash is not None:
        difference, surplus, shortfall = register_service.preview_difference(result, physical_cash)
        data['preview'] = {
            'physical_cash': str(physical_cash),
            'difference': str(difference),
            'surplus': str(surplus),
            'shortfall': str(shortfall),
        }
    return jsonify(data)


@caja_bp.route('/<int:register_id>/close', methods=['POST'])
@require_login
@require_tenant
def close_register(register_id: int):
    physical_cash = parse_money(_payload().get('physical_cash'), 'efectivo contado')
    register = register_service.close_register(get_session(), g.ctx, register_id, physical_cash)
    return jsonify({
        'status': 'ok',
        'category': 'success',
        'message': 'Caja cerrada.',
        'register': register_service.serialize_register(register),
    })


@caja_bp.route('/history', methods=['GET'])
@require_login
@require_tenant
def history():
    user_id = request.args.get('user_id', type=int)
    limit = min(request.args.get('limit', 30, type=int), 200)
    registers = register_service.list_register_history(get_session(), g.ctx, user_id=user_id, limit=limit)
    return jsonify({
        'status': 'ok',
        'registers': [register_service.serialize_register(r) for r in registers],
    })
