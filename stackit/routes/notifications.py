from flask import Blueprint, g, jsonify

from ..auth import token_required
from ..db import get_store
from ..errors import Forbidden, NotFound
from ..serializers import serialize_notification

bp = Blueprint('notifications', __name__)


@bp.route('/notifications', methods=['GET'])
@token_required
def get_notifications():
    """Notifications of the current user, newest first"""
    with get_store().session() as repo:
        notifications = repo.list_notifications(g.current_user['id'])
        unread_count = repo.count_unread(g.current_user['id'])

    return jsonify({
        'success': True,
        'notifications': [serialize_notification(n) for n in notifications],
        'unread_count': unread_count
    }), 200


@bp.route('/notifications/<int:notification_id>/read', methods=['PUT'])
@token_required
def mark_notification_read(notification_id):
    with get_store().session() as repo:
        notification = repo.get_notification(notification_id)
        if not notification:
            raise NotFound('Notification not found')
        if notification['recipient_id'] != g.current_user['id']:
            raise Forbidden()
        notification = repo.mark_notification_read(notification_id)

    return jsonify({'success': True, 'notification': serialize_notification(notification)}), 200


@bp.route('/notifications/read-all', methods=['PUT'])
@token_required
def mark_all_notifications_read():
    with get_store().session() as repo:
        updated = repo.mark_all_read(g.current_user['id'])

    return jsonify({
        'success': True,
        'message': 'All notifications marked as read',
        'updated': updated
    }), 200
