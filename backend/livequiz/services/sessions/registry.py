from dataclasses import dataclass
from enum import Enum
import threading
from typing import Dict, List, Optional

from .errors import AccessDenied


class Role(str, Enum):
    ADMIN = 'admin'
    PARTICIPANT = 'participant'


@dataclass(frozen=True)
class Binding:
    connection_id: str
    role: Role
    lobby_id: str
    identity_id: int  # admin id or participant id depending on role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


class ConnectionRegistry:
    """Thin connection -> identity association.

    Never touches session state; the scheduler reads bindings to authorize
    events and clears them on disconnect or kick.
    """

    def __init__(self):
        self._bindings: Dict[str, Binding] = {}
        self._lock = threading.Lock()

    def bind(self, connection_id: str, role: Role, lobby_id: str, identity_id: int) -> Binding:
        binding = Binding(connection_id, role, lobby_id, identity_id)
        with self._lock:
            self._bindings[connection_id] = binding
        return binding

    def get(self, connection_id: str) -> Optional[Binding]:
        with self._lock:
            return self._bindings.get(connection_id)

    def unbind(self, connection_id: str) -> Optional[Binding]:
        with self._lock:
            return self._bindings.pop(connection_id, None)

    def for_lobby(self, lobby_id: str) -> List[Binding]:
        with self._lock:
            return [b for b in self._bindings.values() if b.lobby_id == lobby_id]

    def require(self, connection_id: str, lobby_id: str, role: Optional[Role] = None) -> Binding:
        """Return the binding if it matches the lobby (and role); raise otherwise."""
        binding = self.get(connection_id)
        if binding is None or binding.lobby_id != lobby_id:
            raise AccessDenied()
        if role is not None and binding.role is not role:
            raise AccessDenied()
        return binding
