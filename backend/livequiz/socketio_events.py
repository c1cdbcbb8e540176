from flask import current_app, request
from flask_socketio import emit

from livequiz import socketio, ENGINE_KEY
from livequiz.services.sessions.commands import parse_command
from livequiz.services.sessions.errors import SessionError
from livequiz.services.sessions.events import Inbound, Outbound
from livequiz.services.sessions.gateway import WS_NAMESPACE


def _engine():
    return current_app.extensions[ENGINE_KEY]


def handle_connect():
    emit('connected', {'message': f'Connected to {WS_NAMESPACE}'})


def handle_disconnect(reason=None):
    _engine().disconnect(request.sid)


def handle_message(kind: Inbound, data) -> None:
    """Single entry point for every inbound client event.

    Session errors go back to the requesting connection only; anything else
    is logged and reported as a generic error.
    """
    sid = request.sid
    try:
        command = parse_command(kind, data)
        _engine().dispatch(sid, command)
    except SessionError as exc:
        current_app.logger.info(f"[rejected] event={kind.value} conn={sid} error={exc.message!r}")
        emit(exc.event.value, exc.to_payload())
    except Exception:
        current_app.logger.exception(f"[handler-error] event={kind.value} conn={sid}")
        emit(Outbound.ERROR.value, {'message': 'Internal error'})


def _handler_for(kind: Inbound):
    def handler(data=None):
        handle_message(kind, data)
    handler.__name__ = f"handle_{kind.value}"
    return handler


def register_socketio_handlers(namespace: str = WS_NAMESPACE) -> None:
    """Register Socket.IO event handlers on the live quiz namespace."""
    socketio.on_event('connect', handle_connect, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
    for kind in Inbound:
        socketio.on_event(kind.value, _handler_for(kind), namespace=namespace)
