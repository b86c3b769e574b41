"""
API v1 in-app notification endpoints.
"""
from flask import request, jsonify

from eventful.blueprints.api import api_bp
from eventful.blueprints.api.decorators import jwt_required
from eventful.blueprints.api.helpers import api_success, paginate_query
from eventful.blueprints.api.schemas import NotificationSchema
from eventful.errors import NotFound
from eventful.extensions import db
from eventful.models.notification import Notification


@api_bp.route('/notifications', methods=['GET'])
@jwt_required
def api_list_notifications():
    """The caller's notifications, newest first, with the unread count in meta."""
    user = request.api_user
    body = paginate_query(Notification.for_user(user.id), NotificationSchema())
    body['meta']['unread'] = Notification.get_unread_count(user.id)
    return jsonify(body), 200


@api_bp.route('/notifications/unread-count', methods=['GET'])
@jwt_required
def api_unread_notification_count():
    return api_success({'count': Notification.get_unread_count(request.api_user.id)})


@api_bp.route('/notifications/<int:notification_id>/read', methods=['PUT'])
@jwt_required
def api_mark_notification_read(notification_id):
    notification = db.session.get(Notification, notification_id)
    # Other users' notifications are reported as missing
    if notification is None or notification.user_id != request.api_user.id:
        raise NotFound('Notification not found')

    notification.mark_as_read()
    return api_success(NotificationSchema().dump(notification))


@api_bp.route('/notifications/read-all', methods=['PUT'])
@jwt_required
def api_mark_all_notifications_read():
    updated = Notification.mark_all_read(request.api_user.id)
    return api_success({'updated': updated})
