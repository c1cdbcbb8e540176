from datetime import datetime, timezone
import json
import uuid

from flask_login import UserMixin

from livequiz import db, bcrypt


OPTION_IDS = ('A', 'B', 'C', 'D')
TIME_LIMITS = (15, 30, 45, 60)


def utcnow():
    return datetime.now(timezone.utc)


class Admin(UserMixin, db.Model):
    __tablename__ = 'admin'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    quizzes = db.relationship('Quiz', back_populates='admin', lazy='dynamic')

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
        }


class Quiz(db.Model):
    __tablename__ = 'quiz'
    id = db.Column(db.Integer, primary_key=True)
    admin_id = db.Column(db.Integer, db.ForeignKey('admin.id'), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    published = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    admin = db.relationship('Admin', back_populates='quizzes')
    questions = db.relationship(
        'Question', back_populates='quiz', order_by='Question.order_index', cascade='all, delete-orphan'
    )

    def to_dict(self, include_answers=False):
        return {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'published': self.published,
            'questions': [q.to_dict(include_answer=include_answers) for q in self.questions],
        }


class Question(db.Model):
    __tablename__ = 'question'
    id = db.Column(db.Integer, primary_key=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False)
    text = db.Column(db.String(500), nullable=False)
    options = db.Column(db.Text, nullable=False)  # JSON-encoded list of {id, text}
    correct_option_id = db.Column(db.String(1), nullable=False)
    time_limit_seconds = db.Column(db.Integer, nullable=False)
    order_index = db.Column(db.Integer, nullable=False)
    quiz = db.relationship('Quiz', back_populates='questions')

    @property
    def option_list(self):
        return json.loads(self.options or '[]')

    def to_dict(self, include_answer=False):
        data = {
            'id': self.id,
            'text': self.text,
            'options': self.option_list,
            'timeLimitSeconds': self.time_limit_seconds,
            'orderIndex': self.order_index,
        }
        if include_answer:
            data['correctOptionId'] = self.correct_option_id
        return data


def generate_lobby_id(length=8):
    """Generate a unique, uppercase lobby code."""
    while True:
        code = uuid.uuid4().hex[:length].upper()
        if not Lobby.query.filter_by(lobby_id=code).first():
            return code


class Lobby(db.Model):
    __tablename__ = 'lobby'
    id = db.Column(db.Integer, primary_key=True)
    lobby_id = db.Column(db.String(16), unique=True, nullable=False, index=True)
    quiz_id = db.Column(db.Integer, db.ForeignKey('quiz.id'), nullable=False)
    admin_id = db.Column(db.Integer, db.ForeignKey('admin.id'), nullable=False)
    status = db.Column(db.String(16), default='waiting', nullable=False)  # waiting, running, finished
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    finished_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    quiz = db.relationship('Quiz')
    admin = db.relationship('Admin')

    def __init__(self, **kwargs):
        super(Lobby, self).__init__(**kwargs)
        if not self.lobby_id:
            self.lobby_id = generate_lobby_id()

    def to_dict(self):
        return {
            'lobbyId': self.lobby_id,
            'status': self.status,
            'quizTitle': self.quiz.title if self.quiz else None,
            'quizDescription': self.quiz.description if self.quiz else None,
            'adminName': self.admin.name if self.admin else None,
            'participantCount': Participant.query.filter_by(lobby_id=self.lobby_id).count(),
            'createdAt': self.created_at.isoformat() if self.created_at else None,
        }


class Participant(db.Model):
    __tablename__ = 'participant'
    __table_args__ = (db.UniqueConstraint('lobby_id', 'nickname', name='uq_participant_lobby_nickname'),)
    id = db.Column(db.Integer, primary_key=True)
    lobby_id = db.Column(db.String(16), db.ForeignKey('lobby.lobby_id'), nullable=False, index=True)
    nickname = db.Column(db.String(64), nullable=False)
    connection_id = db.Column(db.String(64), nullable=True)
    score = db.Column(db.Integer, default=0, nullable=False)
    joined_at = db.Column(db.DateTime(timezone=True), default=utcnow)
    last_seen = db.Column(db.DateTime(timezone=True), default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'nickname': self.nickname,
            'score': self.score,
            'connected': self.connection_id is not None,
            'joinedAt': self.joined_at.isoformat() if self.joined_at else None,
        }


class Answer(db.Model):
    __tablename__ = 'answer'
    __table_args__ = (
        db.UniqueConstraint('lobby_id', 'question_id', 'participant_id', name='uq_answer_once'),
    )
    id = db.Column(db.Integer, primary_key=True)
    lobby_id = db.Column(db.String(16), db.ForeignKey('lobby.lobby_id'), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id'), nullable=False)
    participant_id = db.Column(db.Integer, db.ForeignKey('participant.id'), nullable=False)
    option_id = db.Column(db.String(1), nullable=False)
    correct = db.Column(db.Boolean, default=False, nullable=False)
    answered_at = db.Column(db.DateTime(timezone=True), default=utcnow)
