"""Clients blueprint - search, registration and points redemption (JSON, tenant-scoped)."""
from flask import Blueprint, request, jsonify, g

from gestionfarma.database import get_session
from gestionfarma.middleware import require_login, require_tenant
from gestionfarma.services import customer_service, loyalty_service
from gestionfarma.utils.number_format import parse_int

clients_bp = Blueprint('clients', __name__, url_prefix='/clients')


def _payload() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


@clients_bp.route('/', methods=['GET'])
@require_login
@require_tenant
def search():
    limit = min(request.args.get('limit', 20, type=int), 100)
    clients = customer_service.search_customers(get_session(), g.ctx, request.args.get('q', ''), limit=limit)
    return jsonify({'status': 'ok', 'clients': [customer_service.serialize_customer(c) for c in clients]})


@clients_bp.route('/', methods=['POST'])
@require_login
@require_tenant
def create():
    client = customer_service.create_customer(get_session(), g.ctx, _payload())
    return jsonify({
        'status': 'ok',
        'category': 'success',
        'message': f'Cliente "{client.name}" registrado.',
        'client': customer_service.serialize_customer(client),
    }), 201


@clients_bp.route('/<int:client_id>', methods=['GET'])
@require_login
@require_tenant
def detail(client_id: int):
    client = customer_service.get_customer(get_session(), g.ctx, client_id)
    return jsonify({'status': 'ok', 'client': customer_service.serialize_customer(client)})


@clients_bp.route('/<int:client_id>/redeem', methods=['POST'])
@require_login
@require_tenant
def redeem(client_id: int):
    """Exchange points for a redeemable product outside of a sale."""
    db_session = get_session()
    redeemable_id = parse_int(_payload().get('redeemable_id'), 'redeemable_id')
    entry = loyalty_service.redeem_directly(db_session, g.ctx, client_id, redeemable_id)
    client = customer_service.get_customer(db_session, g.ctx, client_id)
    return jsonify({
        'status': 'ok',
        'category': 'success',
        'redemption': loyalty_service.serialize_redemption(entry),
        'client': customer_service.serialize_customer(client),
    }), 201


@clients_bp.route('/<int:client_id>/history', methods=['GET'])
@require_login
@require_tenant
def history(client_id: int):
    db_session = get_session()
    customer_service.get_customer(db_session, g.ctx, client_id)
    entries = loyalty_service.redemption_history(db_session, g.ctx, client_id)
    return jsonify({'status': 'ok', 'history': [loyalty_service.serialize_redemption(e) for e in entries]})
