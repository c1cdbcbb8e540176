from .events import Outbound


WS_NAMESPACE = '/ws'


def lobby_room(lobby_id: str) -> str:
    return f"lobby:{lobby_id}"


class SocketIOGateway:
    """Broadcast gateway over a Flask-SocketIO server.

    Uses the server object directly so it works both inside event handlers
    and from background timer tasks (no request context needed).
    """

    def __init__(self, socketio, namespace: str = WS_NAMESPACE):
        self._socketio = socketio
        self._namespace = namespace

    def join(self, connection_id: str, lobby_id: str) -> None:
        self._socketio.server.enter_room(connection_id, lobby_room(lobby_id), namespace=self._namespace)

    def leave(self, connection_id: str, lobby_id: str) -> None:
        self._socketio.server.leave_room(connection_id, lobby_room(lobby_id), namespace=self._namespace)

    def broadcast(self, lobby_id: str, event: Outbound, payload: dict) -> None:
        self._socketio.emit(Outbound(event).value, payload, to=lobby_room(lobby_id), namespace=self._namespace)

    def send(self, connection_id: str, event: Outbound, payload: dict) -> None:
        self._socketio.emit(Outbound(event).value, payload, to=connection_id, namespace=self._namespace)

    def disconnect(self, connection_id: str) -> None:
        self._socketio.server.disconnect(connection_id, namespace=self._namespace)
