from enum import Enum


class Inbound(str, Enum):
    """Socket.IO event names accepted from clients."""

    AUTHENTICATE = 'authenticate'
    START_SESSION = 'start_session'
    KICK_PARTICIPANT = 'kick_participant'
    QUESTION_SEEN = 'question_seen'
    JOIN_LOBBY = 'join_lobby'
    SUBMIT_ANSWER = 'submit_answer'


class Outbound(str, Enum):
    """Socket.IO event names sent to clients."""

    AUTHENTICATED = 'authenticated'
    AUTH_ERROR = 'auth_error'
    JOINED = 'joined'
    JOIN_ERROR = 'join_error'
    LOBBY_STATE = 'lobby_state'
    START_ELIGIBILITY = 'start_eligibility'
    QUESTION_START = 'question_start'
    TIMER_STARTED = 'timer_started'
    ANSWER_ACCEPTED = 'answer_accepted'
    QUESTION_END = 'question_end'
    SCORE_UPDATE = 'score_update'
    FINAL_RESULTS = 'final_results'
    KICKED = 'kicked'
    ERROR = 'error'
