"""Question scheduler: the per-lobby live quiz state machine.

Idle -> AwaitingReadiness(q) -> Timing(q) -> Grading(q) -> AdvanceDelay
     -> AwaitingReadiness(q+1) | Finished

Every mutation of a Session happens while holding ``session.lock``. Timer
callbacks re-check the session epoch and phase under that lock before
acting, so a timer that fires after an early transition is a no-op.
"""

from datetime import datetime, timezone
import functools
import logging

from .commands import Authenticate, JoinLobby, KickParticipant, QuestionSeen, StartSession, SubmitAnswer
from .errors import AuthError, JoinError, PersistenceError, SessionError, StartError, SubmissionRejected
from .events import Outbound
from .registry import Role
from .scoring import apply_score, correct_participants, grade, rank
from .state import AnswerRecord, Phase, SessionStatus

MAX_NICKNAME_LENGTH = 64


def _utcnow():
    return datetime.now(timezone.utc)


def _timer_transition(expected_phase: Phase):
    """Wrap a timer callback: lookup, lock, stale-timer guard, error logging."""
    def decorator(method):
        @functools.wraps(method)
        def wrapper(self, lobby_id: str, epoch: int) -> None:
            session = self._store.get(lobby_id)
            if session is None:
                return
            with session.lock:
                if session.epoch != epoch or session.phase is not expected_phase:
                    self._logger.info(
                        f"[timer-abort] lobby={lobby_id} epoch={epoch}/{session.epoch} "
                        f"expected={expected_phase.value} actual={session.phase.value}"
                    )
                    return
                session.active_timer = None
                try:
                    method(self, session)
                except Exception:
                    self._logger.exception(f"[timer-error] lobby={lobby_id} phase={expected_phase.value}")
                    self._abort(session)
        return wrapper
    return decorator


class QuestionScheduler:
    def __init__(self, store, registry, gateway, repository, auth, timers,
                 ready_grace_sec: float = 1.0, advance_delay_sec: float = 3.0,
                 min_participants: int = 2, logger=None, clock=None):
        self._store = store
        self._registry = registry
        self._gateway = gateway
        self._repository = repository
        self._auth = auth
        self._timers = timers
        self.ready_grace_sec = ready_grace_sec
        self.advance_delay_sec = advance_delay_sec
        self.min_participants = min_participants
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock or _utcnow
        self._handlers = {
            Authenticate: self.authenticate,
            JoinLobby: self.join_lobby,
            StartSession: self.start_session,
            QuestionSeen: self.question_seen,
            SubmitAnswer: self.submit_answer,
            KickParticipant: self.kick_participant,
        }

    @property
    def store(self):
        return self._store

    def dispatch(self, connection_id: str, command) -> None:
        """Route one parsed inbound command from a connection."""
        self._handlers[type(command)](connection_id, command)

    # ---- connection lifecycle ----

    def authenticate(self, connection_id: str, command: Authenticate) -> None:
        lobby_id = command.lobby_id
        identity = self._auth.verify_token(command.credential) if command.credential else None
        if not identity:
            self._logger.info(f"[auth-reject] conn={connection_id} lobby={lobby_id} reason=token")
            raise AuthError('Invalid token')
        if not self._auth.owns_lobby(identity['id'], lobby_id):
            self._logger.info(f"[auth-reject] conn={connection_id} lobby={lobby_id} admin={identity['id']}")
            raise AuthError('Lobby not found')

        session = self._store.get_or_create(lobby_id)
        with session.lock:
            if session.phase is Phase.IDLE:
                self._close_if_already_started(session)
            session.admin_connection_id = connection_id
            self._registry.bind(connection_id, Role.ADMIN, lobby_id, identity['id'])
            self._gateway.join(connection_id, lobby_id)
            self._gateway.send(connection_id, Outbound.AUTHENTICATED, {'identity': identity, 'lobbyId': lobby_id})
            self._logger.info(f"[admin-auth] lobby={lobby_id} admin={identity['id']} conn={connection_id}")
            self._send_lobby_update(session)

            # Resync a reconnecting admin onto the question in flight
            if session.status is SessionStatus.RUNNING and session.current_question is not None:
                payload = self._question_payload(session, session.current_index)
                self._gateway.send(connection_id, Outbound.QUESTION_START, payload)
                self._logger.info(
                    f"[admin-resync] lobby={lobby_id} index={session.current_index + 1}/{len(session.quiz)}"
                )

    def join_lobby(self, connection_id: str, command: JoinLobby) -> None:
        lobby_id, nickname = command.lobby_id, command.nickname
        if not lobby_id or not nickname:
            raise JoinError('Lobby ID and nickname are required')
        if len(nickname) > MAX_NICKNAME_LENGTH:
            raise JoinError(f'Nickname must be at most {MAX_NICKNAME_LENGTH} characters')

        lobby = self._repository.get_lobby(lobby_id)
        if lobby is None:
            raise JoinError('Lobby not found')
        if lobby.status is not SessionStatus.WAITING:
            raise JoinError('Quiz already started or finished')

        # A connection holds one identity; joining again releases the previous one
        if self._registry.get(connection_id) is not None:
            self._release_connection(connection_id, lobby_id)

        session = self._store.get_or_create(lobby_id)
        with session.lock:
            if session.status is not SessionStatus.WAITING:
                raise JoinError('Quiz already started or finished')

            record, created = self._repository.upsert_participant(lobby_id, nickname, connection_id)
            participant = session.participants.get(record.id)
            if participant is None:
                participant = record
                session.participants[participant.id] = participant

            previous = participant.connection_id
            if previous and previous != connection_id:
                self._registry.unbind(previous)
                self._gateway.leave(previous, lobby_id)
            participant.connection_id = connection_id

            self._registry.bind(connection_id, Role.PARTICIPANT, lobby_id, participant.id)
            self._gateway.join(connection_id, lobby_id)
            self._gateway.send(connection_id, Outbound.JOINED, {
                'participantId': participant.id,
                'nickname': participant.nickname,
                'lobbyId': lobby_id,
            })
            action = 'join' if created else 'rejoin'
            self._logger.info(
                f"[{action}] lobby={lobby_id} participant={participant.id} nickname={nickname!r} "
                f"score={participant.score}"
            )
            self._send_lobby_update(session)

    def _release_connection(self, connection_id: str, next_lobby_id: str) -> None:
        previous = self._registry.get(connection_id)
        self.disconnect(connection_id)
        if previous.lobby_id != next_lobby_id:
            self._gateway.leave(connection_id, previous.lobby_id)

    def disconnect(self, connection_id: str) -> None:
        binding = self._registry.unbind(connection_id)
        if binding is None:
            return
        session = self._store.get(binding.lobby_id)
        if session is None:
            return
        with session.lock:
            if binding.is_admin:
                if session.admin_connection_id == connection_id:
                    session.admin_connection_id = None
            else:
                participant = session.participants.get(binding.identity_id)
                if participant is not None and participant.connection_id == connection_id:
                    participant.connection_id = None
            self._logger.info(f"[disconnect] lobby={binding.lobby_id} role={binding.role.value} conn={connection_id}")
            if session.status is SessionStatus.WAITING:
                self._send_lobby_update(session)

    def kick_participant(self, connection_id: str, command: KickParticipant) -> None:
        lobby_id = command.lobby_id
        self._registry.require(connection_id, lobby_id, Role.ADMIN)
        session = self._store.get(lobby_id)
        if session is None:
            raise SessionError('Lobby not found')
        with session.lock:
            if session.status is SessionStatus.FINISHED:
                raise SessionError('Quiz already finished')
            participant = session.participants.get(command.participant_id)
            if participant is None:
                raise SessionError('Participant not found')

            self._repository.delete_participant(participant.id)
            del session.participants[participant.id]
            session.answers.pop(participant.id, None)

            target = participant.connection_id
            if target:
                session.ready_connections.discard(target)
                self._gateway.send(target, Outbound.KICKED, {'message': 'You were removed from the lobby'})
                self._registry.unbind(target)
                self._gateway.leave(target, lobby_id)
                self._gateway.disconnect(target)
            participant.connection_id = None
            self._logger.info(f"[kick] lobby={lobby_id} participant={participant.id} nickname={participant.nickname!r}")
            self._send_lobby_update(session)

            # One fewer participant may complete the barrier or the question
            if session.phase is Phase.AWAITING_READINESS and self._everyone_ready(session):
                self._start_timing(session)
            elif session.phase is Phase.TIMING and session.all_answered():
                self._grade(session)

    # ---- quiz flow ----

    def start_session(self, connection_id: str, command: StartSession) -> None:
        lobby_id = command.lobby_id
        self._registry.require(connection_id, lobby_id, Role.ADMIN)
        session = self._store.get(lobby_id)
        if session is None:
            raise StartError('Lobby not found')
        with session.lock:
            if session.status is not SessionStatus.WAITING:
                raise StartError('Quiz already started or finished')
            count = len(session.participants)
            if count < self.min_participants:
                raise StartError(f'At least {self.min_participants} participants are required')
            try:
                lobby = self._repository.get_lobby(lobby_id)
            except PersistenceError as exc:
                raise StartError('Could not start quiz') from exc
            if lobby is None or lobby.status is not SessionStatus.WAITING:
                raise StartError('Quiz already started or finished')
            try:
                questions = self._repository.load_questions(lobby_id)
            except PersistenceError as exc:
                raise StartError('Could not load quiz questions') from exc
            if not questions:
                raise StartError('Quiz has no questions')
            try:
                self._repository.set_status(lobby_id, SessionStatus.RUNNING)
            except PersistenceError as exc:
                raise StartError('Could not start quiz') from exc

            session.quiz = tuple(questions)
            session.status = SessionStatus.RUNNING
            self._logger.info(f"[start] lobby={lobby_id} participants={count} questions={len(questions)}")
            self._begin_question(session, 0)

    def question_seen(self, connection_id: str, command: QuestionSeen) -> None:
        self._registry.require(connection_id, command.lobby_id)
        session = self._store.get(command.lobby_id)
        if session is None:
            return
        with session.lock:
            if session.phase is not Phase.AWAITING_READINESS or session.timer_started:
                return
            session.ready_connections.add(connection_id)
            if self._everyone_ready(session):
                self._logger.info(
                    f"[ready-all] lobby={session.lobby_id} acks={session.readiness_count} "
                    f"index={session.current_index + 1}"
                )
                self._start_timing(session)

    def submit_answer(self, connection_id: str, command: SubmitAnswer) -> None:
        binding = self._registry.require(connection_id, command.lobby_id, Role.PARTICIPANT)
        session = self._store.get(command.lobby_id)
        if session is None:
            raise SubmissionRejected('Quiz is not running')
        with session.lock:
            if session.status is not SessionStatus.RUNNING:
                raise SubmissionRejected('Quiz is not running')
            question = session.current_question
            if question is None or question.id != command.question_id:
                raise SubmissionRejected('Invalid question')
            if session.phase is not Phase.TIMING:
                raise SubmissionRejected('Question is not accepting answers')
            participant = session.participants.get(binding.identity_id)
            if participant is None:
                raise SubmissionRejected('Participant is not in this lobby')
            if participant.id in session.answers:
                raise SubmissionRejected('Answer already submitted')

            correct = grade(question, command.option_id)
            self._repository.record_answer(session.lobby_id, question.id, participant.id, command.option_id, correct)
            session.answers[participant.id] = AnswerRecord(participant.id, command.option_id, correct)
            if correct:
                apply_score(participant)

            self._gateway.send(connection_id, Outbound.ANSWER_ACCEPTED, {
                'questionId': question.id,
                'optionId': command.option_id,
            })
            self._logger.info(
                f"[answer] lobby={session.lobby_id} question={question.id} participant={participant.id} "
                f"answered={len(session.answers)}/{len(session.participants)}"
            )
            if session.all_answered():
                self._logger.info(f"[early-complete] lobby={session.lobby_id} index={session.current_index + 1}")
                self._grade(session)

    def snapshot(self, lobby_id: str):
        """Read-only view of a live session for result queries."""
        session = self._store.get(lobby_id)
        if session is None:
            return None
        with session.lock:
            return {
                'lobbyId': session.lobby_id,
                'status': session.status.value,
                'phase': session.phase.value,
                'questionIndex': session.current_index + 1 if session.quiz else 0,
                'totalQuestions': len(session.quiz),
                'ranking': rank(session.participants.values()),
            }

    # ---- transitions (session lock held) ----

    def _begin_question(self, session, index: int) -> None:
        session.current_index = index
        session.reset_question_state()
        session.phase = Phase.AWAITING_READINESS
        payload = self._question_payload(session, index)
        self._gateway.broadcast(session.lobby_id, Outbound.QUESTION_START, payload)
        self._logger.info(
            f"[question-start] lobby={session.lobby_id} index={index + 1}/{len(session.quiz)} "
            f"question={payload['questionId']}"
        )
        self._arm(session, self.ready_grace_sec, self._on_grace_elapsed)

    def _start_timing(self, session) -> None:
        question = session.current_question
        session.phase = Phase.TIMING
        session.timer_started = True
        self._gateway.broadcast(session.lobby_id, Outbound.TIMER_STARTED, {
            'questionId': question.id,
            'startedAt': self._clock().isoformat(),
            'timeLimitSeconds': question.time_limit_seconds,
        })
        self._arm(session, question.time_limit_seconds, self._on_deadline)

    def _grade(self, session) -> None:
        self._cancel_timer(session)
        session.phase = Phase.GRADING
        question = session.current_question
        self._gateway.broadcast(session.lobby_id, Outbound.QUESTION_END, {
            'questionId': question.id,
            'correctOptionId': question.correct_option_id,
            'correctParticipants': correct_participants(session.participants.values(), session.answers),
        })
        self._gateway.broadcast(session.lobby_id, Outbound.SCORE_UPDATE, {
            'ranking': rank(session.participants.values()),
        })
        self._logger.info(
            f"[question-end] lobby={session.lobby_id} index={session.current_index + 1} "
            f"answered={len(session.answers)}/{len(session.participants)}"
        )
        session.phase = Phase.ADVANCE_DELAY
        self._arm(session, self.advance_delay_sec, self._on_advance)

    def _finish(self, session) -> None:
        self._cancel_timer(session)
        try:
            self._repository.set_status(session.lobby_id, SessionStatus.FINISHED)
        except PersistenceError:
            self._logger.error(f"[finish] lobby={session.lobby_id} could not persist finished status")
            if session.admin_connection_id:
                self._gateway.send(session.admin_connection_id, Outbound.ERROR,
                                   {'message': 'Could not save final results'})
        session.status = SessionStatus.FINISHED
        session.phase = Phase.FINISHED
        ranking = rank(session.participants.values())
        self._gateway.broadcast(session.lobby_id, Outbound.FINAL_RESULTS, {'ranking': ranking})
        self._logger.info(f"[finish] lobby={session.lobby_id} questions={len(session.quiz)}")

    def _abort(self, session) -> None:
        """End a session whose timed transition failed; no timer would move it on."""
        self._gateway.broadcast(session.lobby_id, Outbound.ERROR, {'message': 'Quiz ended after an internal error'})
        self._finish(session)

    def _close_if_already_started(self, session) -> None:
        # A rebuilt session cannot resume a quiz that was already started
        lobby = self._repository.get_lobby(session.lobby_id)
        if lobby is None or lobby.status is SessionStatus.WAITING:
            return
        if lobby.status is SessionStatus.RUNNING:
            try:
                self._repository.set_status(session.lobby_id, SessionStatus.FINISHED)
            except PersistenceError:
                self._logger.error(f"[restore] lobby={session.lobby_id} could not persist finished status")
        session.status = SessionStatus.FINISHED
        session.phase = Phase.FINISHED
        self._logger.info(f"[restore] lobby={session.lobby_id} persisted={lobby.status.value} closed")

    @_timer_transition(Phase.AWAITING_READINESS)
    def _on_grace_elapsed(self, session) -> None:
        self._logger.info(
            f"[ready-grace] lobby={session.lobby_id} acks={session.readiness_count}/{len(session.participants) + 1}"
        )
        self._start_timing(session)

    @_timer_transition(Phase.TIMING)
    def _on_deadline(self, session) -> None:
        self._logger.info(f"[deadline] lobby={session.lobby_id} index={session.current_index + 1}")
        self._grade(session)

    @_timer_transition(Phase.ADVANCE_DELAY)
    def _on_advance(self, session) -> None:
        next_index = session.current_index + 1
        if next_index < len(session.quiz):
            self._begin_question(session, next_index)
        else:
            self._finish(session)

    # ---- helpers ----

    def _arm(self, session, delay: float, callback) -> None:
        self._cancel_timer(session)
        session.epoch += 1
        session.active_timer = self._timers.call_later(delay, callback, session.lobby_id, session.epoch)

    def _cancel_timer(self, session) -> None:
        if session.active_timer is not None:
            session.active_timer.cancel()
            session.active_timer = None

    def _everyone_ready(self, session) -> bool:
        # Every participant plus the admin
        return session.readiness_count >= len(session.participants) + 1

    def _question_payload(self, session, index: int) -> dict:
        question = session.quiz[index]
        return {
            'questionId': question.id,
            'text': question.text,
            'options': [option.to_dict() for option in question.options],
            'timeLimitSeconds': question.time_limit_seconds,
            'startedAt': self._clock().isoformat(),
            'questionIndex': index + 1,
            'totalQuestions': len(session.quiz),
        }

    def _send_lobby_update(self, session) -> None:
        participants = [p.to_dict() for p in session.participant_list()]
        count = len(participants)
        self._gateway.broadcast(session.lobby_id, Outbound.LOBBY_STATE, {
            'participants': participants,
            'count': count,
        })
        self._gateway.broadcast(session.lobby_id, Outbound.START_ELIGIBILITY, {
            'allowed': count >= self.min_participants,
            'count': count,
            'needed': max(0, self.min_participants - count),
        })
