"""Notifications blueprint - alert feed and header stats (JSON, tenant-scoped)."""
from flask import Blueprint, request, jsonify, current_app, g

from gestionfarma.database import get_session
from gestionfarma.middleware import require_login, require_tenant
from gestionfarma.services import notification_service
from gestionfarma.services.stats_service import get_header_stats

notifications_bp = Blueprint('notifications', __name__)


@notifications_bp.route('/notifications', methods=['GET'])
@require_login
@require_tenant
def list_notifications():
    db_session = get_session()
    unread_only = request.args.get('all') != '1'
    limit = min(request.args.get('limit', 50, type=int), 200)
    items = notification_service.list_notifications(db_session, g.ctx, unread_only=unread_only, limit=limit)
    return jsonify({
        'status': 'ok',
        'unread': notification_service.count_unread(db_session, g.ctx),
        'notifications': [notification_service.serialize_notification(n) for n in items],
    })


@notifications_bp.route('/notifications/<int:notification_id>/read', methods=['POST'])
@require_login
@require_tenant
def mark_read(notification_id: int):
    notification = notification_service.mark_read(get_session(), g.ctx, notification_id)
    return jsonify({'status': 'ok', 'notification': notification_service.serialize_notification(notification)})


@notifications_bp.route('/notifications/read-all', methods=['POST'])
@require_login
@require_tenant
def mark_all_read():
    count = notification_service.mark_all_read(get_session(), g.ctx)
    return jsonify({'status': 'ok', 'updated': count})


@notifications_bp.route('/stats/header', methods=['GET'])
@require_login
@require_tenant
def header_stats():
    """Counters shown in the POS header (cached per tenant)."""
    stats = get_header_stats(get_session(), g.ctx, ttl=current_app.config.get('CACHE_STATS_TTL'))
    return jsonify({
        'status': 'ok',
        'stats': {key: str(value) if key == 'sales_total' else value for key, value in stats.items()},
    })
