"""Commissions blueprint - rule management and report (JSON, tenant-scoped)."""
from datetime import date

from flask import Blueprint, request, jsonify, g

from gestionfarma.database import get_session
from gestionfarma.middleware import require_login, require_tenant
from gestionfarma.services import commission_service
from gestionfarma.utils.number_format import parse_date

commissions_bp = Blueprint('commissions', __name__, url_prefix='/commissions')


def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


@commissions_bp.route('/rules', methods=['GET'])
@require_login
@require_tenant
def list_rules():
    active_only = request.args.get('active') == '1'
    rules = commission_service.list_rules(get_session(), g.ctx, active_only=active_only)
    return jsonify({'status': 'ok', 'rules': [commission_service.serialize_rule(r) for r in rules]})


@commissions_bp.route('/rules', methods=['POST'])
@require_login
@require_tenant
def create_rule():
    rule = commission_service.create_rule(get_session(), g.ctx, _payload())
    return jsonify({
        'status': 'ok',
        'category': 'success',
        'rule': commission_service.serialize_rule(rule),
    }), 201


@commissions_bp.route('/rules/<int:rule_id>', methods=['PATCH', 'PUT'])
@require_login
@require_tenant
def update_rule(rule_id: int):
    rule = commission_service.update_rule(get_session(), g.ctx, rule_id, _payload())
    return jsonify({'status': 'ok', 'rule': commission_service.serialize_rule(rule)})


@commissions_bp.route('/rules/<int:rule_id>', methods=['DELETE'])
@require_login
@require_tenant
def deactivate_rule(rule_id: int):
    """Rules are never deleted (records point at them); they are deactivated."""
    rule = commission_service.update_rule(get_session(), g.ctx, rule_id, {'active': False})
    return jsonify({'status': 'ok', 'rule': commission_service.serialize_rule(rule)})


@commissions_bp.route('/report', methods=['GET'])
@require_login
@require_tenant
def report():
    """Commission records in [start, end]; defaults to the current month."""
    today = date.today()
    start = parse_date(request.args.get('start'), 'desde') or today.replace(day=1)
    end = parse_date(request.args.get('end'), 'hasta') or today
    user_id = request.args.get('user_id', type=int)

    result = commission_service.commission_report(get_session(), g.ctx, start, end, user_id=user_id)
    return jsonify({'status': 'ok', 'report': result.to_dict()})
