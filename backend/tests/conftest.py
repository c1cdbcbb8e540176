import heapq
import itertools
import json
import os
import sys
import pytest
from flask import g
from flask.testing import FlaskClient

# Ensure the backend root (containing the `livequiz` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from livequiz import create_app, db, socketio
from livequiz.services.sessions import ConnectionRegistry, QuestionScheduler, SessionStore
from livequiz.services.sessions.errors import PersistenceError
from livequiz.services.sessions.repository import LobbyInfo
from livequiz.services.sessions.state import Option, Participant, Question, SessionStatus
from livequiz.services.sessions.timers import TimerHandle


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    JWT_SECRET = 'test-jwt-secret'
    JWT_EXPIRATION_HOURS = 1
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    READY_GRACE_SEC = 1.0
    ADVANCE_DELAY_SEC = 3.0
    MIN_PARTICIPANTS = 2
    CORS_ORIGINS = []
    LOG_LEVEL = 'DEBUG'
    BCRYPT_LOG_ROUNDS = 4


class ManualTimers:
    """Timer service driven by the test: nothing fires until advance()."""

    def __init__(self):
        self.now = 0.0
        self._queue = []
        self._seq = itertools.count()

    def call_later(self, delay, callback, *args):
        handle = TimerHandle(delay)
        heapq.heappush(self._queue, (self.now + delay, next(self._seq), handle, callback, args))
        return handle

    def pending(self):
        return [entry[2] for entry in self._queue if not entry[2].cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while self._queue and self._queue[0][0] <= target:
            due, _, handle, callback, args = heapq.heappop(self._queue)
            self.now = due
            if not handle.cancelled:
                callback(*args)
        self.now = target


class RecordingGateway:
    def __init__(self):
        self.broadcasts = []
        self.sent = []
        self.rooms = {}
        self.disconnected = []
        self.failing_events = set()

    def join(self, connection_id, lobby_id):
        self.rooms.setdefault(lobby_id, set()).add(connection_id)

    def leave(self, connection_id, lobby_id):
        self.rooms.get(lobby_id, set()).discard(connection_id)

    def broadcast(self, lobby_id, event, payload):
        if event.value in self.failing_events:
            raise RuntimeError(f"broadcast of {event.value} failed")
        self.broadcasts.append((lobby_id, event.value, payload))

    def send(self, connection_id, event, payload):
        self.sent.append((connection_id, event.value, payload))

    def disconnect(self, connection_id):
        self.disconnected.append(connection_id)

    def events(self, name):
        return [payload for _, event, payload in self.broadcasts if event == name]

    def sent_to(self, connection_id, name=None):
        return [payload for conn, event, payload in self.sent
                if conn == connection_id and (name is None or event == name)]


class FakeRepository:
    def __init__(self):
        self.lobbies = {}
        self.questions = {}
        self.participants = {}
        self.answers = []
        self.fail_loading = False
        self.fail_finish = False
        self._ids = itertools.count(1)

    def add_lobby(self, lobby_id, admin_id, questions, status=SessionStatus.WAITING):
        self.lobbies[lobby_id] = LobbyInfo(lobby_id, 1, admin_id, status)
        self.questions[lobby_id] = list(questions)

    def get_lobby(self, lobby_id):
        return self.lobbies.get(lobby_id)

    def load_participants(self, lobby_id):
        return [Participant(id=p['id'], nickname=p['nickname'], score=p['score'])
                for p in self.participants.values() if p['lobby_id'] == lobby_id]

    def load_questions(self, lobby_id):
        if self.fail_loading:
            raise PersistenceError()
        return list(self.questions.get(lobby_id, []))

    def upsert_participant(self, lobby_id, nickname, connection_id):
        for p in self.participants.values():
            if p['lobby_id'] == lobby_id and p['nickname'] == nickname:
                p['connection_id'] = connection_id
                return Participant(id=p['id'], nickname=nickname, score=p['score']), False
        pid = next(self._ids)
        self.participants[pid] = {'id': pid, 'lobby_id': lobby_id, 'nickname': nickname,
                                  'score': 0, 'connection_id': connection_id}
        return Participant(id=pid, nickname=nickname), True

    def delete_participant(self, participant_id):
        self.participants.pop(participant_id, None)

    def record_answer(self, lobby_id, question_id, participant_id, option_id, correct):
        self.answers.append((lobby_id, question_id, participant_id, option_id, correct))
        if correct:
            self.participants[participant_id]['score'] += 1

    def set_status(self, lobby_id, status):
        if status is SessionStatus.FINISHED and self.fail_finish:
            raise PersistenceError()
        info = self.lobbies[lobby_id]
        self.lobbies[lobby_id] = LobbyInfo(info.lobby_id, info.quiz_id, info.admin_id, status)


class FakeAuth:
    def __init__(self):
        self.tokens = {}
        self.owners = {}

    def verify_token(self, token):
        admin_id = self.tokens.get(token)
        return {'id': admin_id, 'name': f'Admin {admin_id}', 'email': f'admin{admin_id}@test'} if admin_id else None

    def owns_lobby(self, admin_id, lobby_id):
        return self.owners.get(lobby_id) == admin_id


def make_question(qid, correct, time_limit=15, option_ids=('A', 'B', 'C', 'D')):
    return Question(
        id=qid,
        text=f'Question {qid}?',
        options=tuple(Option(id=o, text=f'Option {o}') for o in option_ids),
        correct_option_id=correct,
        time_limit_seconds=time_limit,
    )


@pytest.fixture()
def timers():
    return ManualTimers()


@pytest.fixture()
def gateway():
    return RecordingGateway()


@pytest.fixture()
def repository():
    repo = FakeRepository()
    repo.add_lobby('LOBBY1', 7, [make_question(101, 'A'), make_question(102, 'B')])
    return repo


@pytest.fixture()
def fake_auth():
    auth = FakeAuth()
    auth.tokens['good-token'] = 7
    auth.tokens['other-token'] = 8
    auth.owners['LOBBY1'] = 7
    return auth


@pytest.fixture()
def engine(repository, fake_auth, gateway, timers):
    return QuestionScheduler(
        store=SessionStore(loader=repository.load_participants),
        registry=ConnectionRegistry(),
        gateway=gateway,
        repository=repository,
        auth=fake_auth,
        timers=timers,
        ready_grace_sec=1.0,
        advance_delay_sec=3.0,
        min_participants=2,
    )


# ---- Flask application fixtures ----

@pytest.fixture()
def app_timers():
    return ManualTimers()


@pytest.fixture()
def flask_app(app_timers):
    application = create_app(TestConfig, timers=app_timers)
    with application.app_context():
        # Ensure models are imported so tables are created
        import livequiz.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


class _FreshUserClient(FlaskClient):
    """Test client that drops Flask-Login's per-context user cache before each request.

    The `flask_app` fixture keeps one app context pushed, so `flask.g` (and the
    `_login_user` cached there) would otherwise leak between requests.
    """

    def open(self, *args, **kwargs):
        g.pop('_login_user', None)
        return super().open(*args, **kwargs)


@pytest.fixture()
def client(flask_app):
    flask_app.test_client_class = _FreshUserClient
    return flask_app.test_client()


@pytest.fixture()
def admin_account(flask_app):
    from livequiz.auth import issue_token
    from livequiz.models import Admin
    admin = Admin(name='Quiz Master', email='master@example.com')
    admin.set_password('s3cret-pass')
    db.session.add(admin)
    db.session.commit()
    return {'id': admin.id, 'email': admin.email, 'password': 's3cret-pass', 'token': issue_token(admin.id)}


@pytest.fixture()
def published_lobby(flask_app, admin_account):
    """Two-question quiz (Q1 correct=A, Q2 correct=B, 15s each) in a waiting lobby."""
    from livequiz.models import Lobby, Question as QuestionRow, Quiz
    quiz = Quiz(admin_id=admin_account['id'], title='Scenario quiz', published=True)
    options = json.dumps([{'id': 'A', 'text': 'Alpha'}, {'id': 'B', 'text': 'Bravo'}])
    quiz.questions.append(QuestionRow(text='First question?', options=options,
                                      correct_option_id='A', time_limit_seconds=15, order_index=0))
    quiz.questions.append(QuestionRow(text='Second question?', options=options,
                                      correct_option_id='B', time_limit_seconds=15, order_index=1))
    db.session.add(quiz)
    db.session.flush()
    lobby = Lobby(quiz_id=quiz.id, admin_id=admin_account['id'], status='waiting')
    db.session.add(lobby)
    db.session.commit()
    return {
        'lobby_id': lobby.lobby_id,
        'quiz_id': quiz.id,
        'question_ids': [q.id for q in quiz.questions],
    }


@pytest.fixture()
def sio_factory(flask_app):
    created = []

    def _connect():
        test_client = socketio.test_client(flask_app, namespace='/ws')
        test_client.get_received('/ws')  # flush 'connected'
        created.append(test_client)
        return test_client

    yield _connect
    for test_client in created:
        if test_client.is_connected('/ws'):
            test_client.disconnect(namespace='/ws')
