"""Typed inbound commands parsed from raw Socket.IO payloads."""

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from .errors import InvalidCommand
from .events import Inbound


@dataclass(frozen=True)
class Authenticate:
    credential: str
    lobby_id: str


@dataclass(frozen=True)
class StartSession:
    lobby_id: str


@dataclass(frozen=True)
class KickParticipant:
    lobby_id: str
    participant_id: int


@dataclass(frozen=True)
class QuestionSeen:
    lobby_id: str


@dataclass(frozen=True)
class JoinLobby:
    lobby_id: str
    nickname: str


@dataclass(frozen=True)
class SubmitAnswer:
    lobby_id: str
    question_id: int
    option_id: str


def _text(data: Dict[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _int(data: Dict[str, Any], key: str) -> int:
    try:
        return int(data.get(key))
    except (TypeError, ValueError):
        raise InvalidCommand(f'{key} must be an integer')


def _require_lobby(data: Dict[str, Any]) -> str:
    lobby_id = _text(data, 'lobbyId')
    if not lobby_id:
        raise InvalidCommand('lobbyId is required')
    return lobby_id.upper()


def _authenticate(data):
    credential = _text(data, 'token') or _text(data, 'credential')
    return Authenticate(credential=credential or '', lobby_id=_require_lobby(data))


def _join(data):
    # Join validation errors are reported as join_error by the engine
    lobby_id = _text(data, 'lobbyId')
    return JoinLobby(lobby_id=(lobby_id or '').upper(), nickname=_text(data, 'nickname') or '')


def _submit(data):
    option_id = _text(data, 'optionId')
    if not option_id:
        raise InvalidCommand('optionId is required')
    return SubmitAnswer(
        lobby_id=_require_lobby(data),
        question_id=_int(data, 'questionId'),
        option_id=option_id.upper(),
    )


_PARSERS: Dict[Inbound, Callable[[Dict[str, Any]], Any]] = {
    Inbound.AUTHENTICATE: _authenticate,
    Inbound.START_SESSION: lambda data: StartSession(lobby_id=_require_lobby(data)),
    Inbound.KICK_PARTICIPANT: lambda data: KickParticipant(
        lobby_id=_require_lobby(data), participant_id=_int(data, 'participantId')
    ),
    Inbound.QUESTION_SEEN: lambda data: QuestionSeen(lobby_id=_require_lobby(data)),
    Inbound.JOIN_LOBBY: _join,
    Inbound.SUBMIT_ANSWER: _submit,
}


def parse_command(kind: Inbound, data: Any):
    """Build the command object for an inbound event payload."""
    if not isinstance(data, dict):
        raise InvalidCommand('payload must be an object')
    return _PARSERS[Inbound(kind)](data)
