"""Socket.IO channel for live notifications.

Clients connect with ``auth={"token": "<jwt>"}`` and are put in the room
``user:<id>``; every notification stored for that user is pushed there as
a ``newNotification`` event.
"""
from flask import current_app, request
from flask_socketio import ConnectionRefusedError, SocketIO, join_room

from .auth import load_user_from_token
from .errors import StackItError
from .serializers import serialize_notification

socketio = SocketIO()


def user_room(user_id):
    return f'user:{user_id}'


def push_notifications(notifications):
    for notification in notifications:
        socketio.emit('newNotification', serialize_notification(notification),
                      to=user_room(notification['recipient_id']))
        current_app.logger.debug('Pushed notification %s to user %s',
                                 notification['id'], notification['recipient_id'])


@socketio.on('connect')
def on_connect(auth=None):
    token = (auth or {}).get('token') or request.args.get('token')
    try:
        user = load_user_from_token(token)
    except StackItError as e:
        current_app.logger.info('[SocketIO] refused sid=%s: %s', request.sid, e.message)
        raise ConnectionRefusedError(e.message)

    join_room(user_room(user['id']))
    current_app.logger.info('[SocketIO] user %s connected sid=%s', user['id'], request.sid)


@socketio.on('disconnect')
def on_disconnect(*args):
    current_app.logger.debug('[SocketIO] client disconnected: sid=%s', request.sid)
