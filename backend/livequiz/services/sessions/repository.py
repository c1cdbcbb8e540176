"""Persistence collaborator for the session engine.

Every method runs inside its own application context so it can be called
from Socket.IO handlers and from background timer tasks alike. Database
failures are rolled back and surfaced as ``PersistenceError``.
"""

from dataclasses import dataclass
import functools
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from livequiz import db
from livequiz.models import Answer, Lobby, Participant as ParticipantRow, Question as QuestionRow, utcnow
from .errors import PersistenceError
from .state import Option, Participant, Question, SessionStatus


@dataclass(frozen=True)
class LobbyInfo:
    lobby_id: str
    quiz_id: int
    admin_id: int
    status: SessionStatus


def _transactional(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._app.app_context():
            try:
                return method(self, *args, **kwargs)
            except SQLAlchemyError as exc:
                db.session.rollback()
                self._app.logger.error(f"[db-error] {method.__name__}: {exc}")
                raise PersistenceError() from exc
    return wrapper


def _to_participant(row: ParticipantRow) -> Participant:
    # Stored connection ids are stale after a restart; presence is in-memory only
    return Participant(id=row.id, nickname=row.nickname, score=int(row.score or 0))


class QuizRepository:
    def __init__(self, app):
        self._app = app

    @_transactional
    def get_lobby(self, lobby_id: str) -> Optional[LobbyInfo]:
        lobby = Lobby.query.filter_by(lobby_id=lobby_id).first()
        if not lobby:
            return None
        return LobbyInfo(lobby.lobby_id, lobby.quiz_id, lobby.admin_id, SessionStatus(lobby.status))

    @_transactional
    def load_participants(self, lobby_id: str) -> List[Participant]:
        rows = ParticipantRow.query.filter_by(lobby_id=lobby_id).order_by(ParticipantRow.id).all()
        return [_to_participant(row) for row in rows]

    @_transactional
    def load_questions(self, lobby_id: str) -> List[Question]:
        lobby = Lobby.query.filter_by(lobby_id=lobby_id).first()
        if not lobby:
            return []
        rows = (
            QuestionRow.query.filter_by(quiz_id=lobby.quiz_id)
            .order_by(QuestionRow.order_index, QuestionRow.id)
            .all()
        )
        return [
            Question(
                id=row.id,
                text=row.text,
                options=tuple(Option(id=o['id'], text=o['text']) for o in row.option_list),
                correct_option_id=row.correct_option_id,
                time_limit_seconds=int(row.time_limit_seconds),
            )
            for row in rows
        ]

    @_transactional
    def upsert_participant(self, lobby_id: str, nickname: str, connection_id: str) -> Tuple[Participant, bool]:
        """Find the participant by (lobby, nickname) or create it; bind the connection.

        Returns the participant and whether it was newly created.
        """
        row = ParticipantRow.query.filter_by(lobby_id=lobby_id, nickname=nickname).first()
        created = row is None
        if created:
            row = ParticipantRow(lobby_id=lobby_id, nickname=nickname, score=0)
        row.connection_id = connection_id
        row.last_seen = utcnow()
        db.session.add(row)
        db.session.commit()
        return _to_participant(row), created

    @_transactional
    def delete_participant(self, participant_id: int) -> None:
        Answer.query.filter_by(participant_id=participant_id).delete()
        ParticipantRow.query.filter_by(id=participant_id).delete()
        db.session.commit()

    @_transactional
    def record_answer(self, lobby_id: str, question_id: int, participant_id: int, option_id: str, correct: bool) -> None:
        """Store the answer; a correct one also credits the participant's score."""
        db.session.add(Answer(
            lobby_id=lobby_id,
            question_id=question_id,
            participant_id=participant_id,
            option_id=option_id,
            correct=correct,
        ))
        if correct:
            ParticipantRow.query.filter_by(id=participant_id).update(
                {ParticipantRow.score: ParticipantRow.score + 1}
            )
        db.session.commit()

    @_transactional
    def set_status(self, lobby_id: str, status: SessionStatus) -> None:
        lobby = Lobby.query.filter_by(lobby_id=lobby_id).first()
        if not lobby:
            return
        lobby.status = SessionStatus(status).value
        if status is SessionStatus.RUNNING:
            lobby.started_at = utcnow()
        elif status is SessionStatus.FINISHED:
            lobby.finished_at = utcnow()
        db.session.add(lobby)
        db.session.commit()
