"""In-memory session records and the store that owns them."""

from dataclasses import dataclass, field
from enum import Enum
import threading
from typing import Callable, Dict, Iterable, List, Optional, Tuple


class SessionStatus(str, Enum):
    WAITING = 'waiting'
    RUNNING = 'running'
    FINISHED = 'finished'


class Phase(str, Enum):
    IDLE = 'idle'
    AWAITING_READINESS = 'awaiting_readiness'
    TIMING = 'timing'
    GRADING = 'grading'
    ADVANCE_DELAY = 'advance_delay'
    FINISHED = 'finished'


@dataclass(frozen=True)
class Option:
    id: str
    text: str

    def to_dict(self) -> dict:
        return {'id': self.id, 'text': self.text}


@dataclass(frozen=True)
class Question:
    id: int
    text: str
    options: Tuple[Option, ...]
    correct_option_id: str
    time_limit_seconds: int


@dataclass
class Participant:
    id: int
    nickname: str
    score: int = 0
    connection_id: Optional[str] = None

    @property
    def connected(self) -> bool:
        return self.connection_id is not None

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'nickname': self.nickname,
            'score': self.score,
            'connected': self.connected,
        }


@dataclass(frozen=True)
class AnswerRecord:
    participant_id: int
    option_id: str
    correct: bool


@dataclass
class Session:
    lobby_id: str
    status: SessionStatus = SessionStatus.WAITING
    phase: Phase = Phase.IDLE
    quiz: Tuple[Question, ...] = ()
    current_index: int = 0
    participants: Dict[int, Participant] = field(default_factory=dict)
    admin_connection_id: Optional[str] = None
    # per-question transient state
    ready_connections: set = field(default_factory=set)
    timer_started: bool = False
    answers: Dict[int, AnswerRecord] = field(default_factory=dict)
    active_timer: Optional[object] = None
    epoch: int = 0
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)

    @property
    def current_question(self) -> Optional[Question]:
        if 0 <= self.current_index < len(self.quiz):
            return self.quiz[self.current_index]
        return None

    @property
    def readiness_count(self) -> int:
        return len(self.ready_connections)

    def reset_question_state(self) -> None:
        self.ready_connections = set()
        self.timer_started = False
        self.answers = {}

    def all_answered(self) -> bool:
        return bool(self.participants) and all(pid in self.answers for pid in self.participants)

    def participant_list(self) -> List[Participant]:
        return sorted(self.participants.values(), key=lambda p: p.id)


ParticipantLoader = Callable[[str], Iterable[Participant]]


class SessionStore:
    """Maps lobby ids to their single live Session.

    The loader is called once, while the store lock is held, to seed a new
    session with the participants already persisted for that lobby.
    """

    def __init__(self, loader: Optional[ParticipantLoader] = None):
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self._loader = loader

    def get(self, lobby_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(lobby_id)

    def get_or_create(self, lobby_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(lobby_id)
            if session is None:
                session = Session(lobby_id=lobby_id)
                if self._loader is not None:
                    for participant in self._loader(lobby_id):
                        session.participants[participant.id] = participant
                self._sessions[lobby_id] = session
            return session

    def __contains__(self, lobby_id: str) -> bool:
        with self._lock:
            return lobby_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
